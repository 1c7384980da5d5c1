"""Rutas de administración para consultar la auditoría"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import Response
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from shared.auth.dependencies import get_current_admin
from shared.database.session import get_db
from services.audit.services.audit_service import AuditService


router = APIRouter()


class AuditLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    action: str
    user_id: Optional[str] = None
    resource_id: Optional[str] = None
    meta: Optional[Dict[str, Any]] = None
    created_at: datetime


class AuditLogPageResponse(BaseModel):
    data: List[AuditLogResponse]
    meta: Dict[str, int]


def _to_response(log) -> AuditLogResponse:
    return AuditLogResponse(
        id=str(log.id),
        action=log.action,
        user_id=log.user_id,
        resource_id=log.resource_id,
        meta=log.meta,
        created_at=log.created_at,
    )


@router.get("", response_model=AuditLogPageResponse)
async def get_audit_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    action: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_admin)
):
    result = await AuditService.list_logs(db, page, limit, action)
    return AuditLogPageResponse(
        data=[_to_response(log) for log in result["data"]],
        meta=result["meta"],
    )


@router.get("/export")
async def export_audit_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_admin)
):
    """Exportar auditoría como CSV"""
    csv_content = await AuditService.export_csv(db, page, limit)
    return Response(
        content=csv_content,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="audit_logs.csv"'},
    )


@router.get("/{log_id}", response_model=AuditLogResponse)
async def get_audit_log(
    log_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_admin)
):
    log = await AuditService.get_log(db, log_id)
    if log is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Registro de auditoría no encontrado"
        )
    return _to_response(log)
