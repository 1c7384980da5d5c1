"""Barrido periódico de intenciones de pago vencidas"""
from datetime import datetime, timezone
from typing import Callable, Optional
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from services.audit.services.audit_service import AuditService
from services.payments.services.payment_ledger import PaymentLedger

logger = logging.getLogger(__name__)

PAYMENT_EXPIRED = "PAYMENT_EXPIRED"


class PaymentExpiryService:
    """
    Pasa a failed los pagos pending con expires_at en el pasado.

    Cada pago se actualiza en su propia transacción: si uno falla se loguea
    y el barrido continúa con el resto (progreso parcial aceptado).
    """

    def __init__(self, session_maker: Callable[[], AsyncSession], audit: Optional[AuditService] = None):
        self.session_maker = session_maker
        self.audit = audit or AuditService(session_maker)

    async def expire_stale_payments(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)

        async with self.session_maker() as session:
            stale = await PaymentLedger(session).find_stale_pending(now)
            # Snapshot de lo necesario para la auditoría; las filas se actualizan en otra sesión
            candidates = [
                (p.id, p.user_id, p.event_id, p.expires_at)
                for p in stale
            ]

        if not candidates:
            return 0

        expired = 0
        for payment_id, user_id, event_id, expires_at in candidates:
            try:
                async with self.session_maker() as session:
                    changed = await PaymentLedger(session).mark_failed_if_pending(payment_id)
                    await session.commit()
            except Exception as e:
                logger.error(f"Error expirando pago {payment_id}: {e}", exc_info=True)
                continue

            if not changed:
                logger.info(f"Pago {payment_id} ya no está pending, se omite")
                continue

            expired += 1
            await self.audit.log(
                action=PAYMENT_EXPIRED,
                user_id=user_id,
                resource_id=payment_id,
                meta={"eventId": event_id, "expiresAt": expires_at},
            )

        logger.info(f"Expired {expired} stale payment intent(s)")
        return expired
