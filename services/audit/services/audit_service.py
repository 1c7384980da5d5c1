"""Servicio de auditoría: append de eventos y consulta para administración"""
import csv
import io
import json
import logging
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.database.models import AuditLog
from shared.utils.pagination import paginate

logger = logging.getLogger(__name__)

CSV_HEADER = ["id", "action", "userId", "resourceId", "metadata", "createdAt"]


def _json_safe(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (uuid.UUID, Decimal)):
        return str(value)
    return value


class AuditService:
    """
    El append usa su propia sesión y commit, después de que la operación
    principal ya hizo commit. Un fallo aquí se loguea y nunca se propaga.
    """

    def __init__(self, session_maker: Callable[[], AsyncSession]):
        self.session_maker = session_maker

    async def log(
        self,
        action: str,
        user_id: Optional[Any] = None,
        resource_id: Optional[Any] = None,
        meta: Optional[Dict[str, Any]] = None,
    ) -> bool:
        try:
            async with self.session_maker() as session:
                session.add(AuditLog(
                    action=action,
                    user_id=str(user_id) if user_id is not None else None,
                    resource_id=str(resource_id) if resource_id is not None else None,
                    meta=_json_safe(meta or {}),
                ))
                await session.commit()
            return True
        except Exception as e:
            logger.error(f"Error registrando auditoría {action} para {resource_id}: {e}", exc_info=True)
            return False

    @staticmethod
    async def list_logs(db: AsyncSession, page: int = 1, limit: int = 20, action: Optional[str] = None) -> dict:
        stmt = select(AuditLog).order_by(AuditLog.created_at.desc(), AuditLog.id)
        if action:
            stmt = stmt.where(AuditLog.action == action)
        return await paginate(db, stmt, page, limit)

    @staticmethod
    async def get_log(db: AsyncSession, log_id) -> Optional[AuditLog]:
        try:
            log_uuid = uuid.UUID(str(log_id))
        except ValueError:
            return None
        result = await db.execute(select(AuditLog).where(AuditLog.id == log_uuid))
        return result.scalar_one_or_none()

    @staticmethod
    def to_csv(logs) -> str:
        """Todos los valores entre comillas dobles; comillas internas duplicadas"""
        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerow(CSV_HEADER)
        for log in logs:
            writer.writerow([
                str(log.id),
                log.action,
                log.user_id or "",
                log.resource_id or "",
                json.dumps(log.meta or {}, sort_keys=True),
                log.created_at.isoformat() if log.created_at else "",
            ])
        return buffer.getvalue().rstrip("\n")

    @classmethod
    async def export_csv(cls, db: AsyncSession, page: int = 1, limit: int = 100) -> str:
        paginated = await cls.list_logs(db, page, limit)
        return cls.to_csv(paginated["data"])
