"""Acceso de solo lectura a pagos + la transición pending -> failed del barrido"""
from datetime import datetime
from typing import List, Optional
import uuid

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from shared.database.models import Payment, PaymentStatus


def parse_uuid(value) -> Optional[uuid.UUID]:
    """UUID o None si el valor no es un UUID válido"""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError, AttributeError):
        return None


class PaymentLedger:
    """Adaptador sobre la tabla payments (propiedad del subsistema de pagos)"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_payment(self, payment_id) -> Optional[Payment]:
        payment_uuid = parse_uuid(payment_id)
        if payment_uuid is None:
            return None
        result = await self.db.execute(select(Payment).where(Payment.id == payment_uuid))
        return result.scalar_one_or_none()

    async def find_stale_pending(self, now: datetime) -> List[Payment]:
        """Pagos pending cuyo expires_at ya pasó"""
        stmt = (
            select(Payment)
            .where(
                Payment.status == PaymentStatus.PENDING.value,
                Payment.expires_at.is_not(None),
                Payment.expires_at < now,
            )
            .order_by(Payment.expires_at)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def mark_failed_if_pending(self, payment_id: uuid.UUID) -> bool:
        """
        pending -> failed solo si sigue pending.
        Un pago confirmado entre el select y el update no se toca.
        """
        stmt = (
            update(Payment)
            .where(Payment.id == payment_id, Payment.status == PaymentStatus.PENDING.value)
            .values(status=PaymentStatus.FAILED.value)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount == 1
