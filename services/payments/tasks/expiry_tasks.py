"""Tarea periódica de Celery para expirar pagos pendientes"""
import logging

from shared.cache.celery_app import celery_app
from services.notifications.tasks.email_tasks import run_async

logger = logging.getLogger(__name__)


@celery_app.task(name="expire_stale_payments")
def expire_stale_payments_task():
    """
    Ejecuta el barrido con un engine propio del worker.
    No hay retry: el siguiente tick de beat vuelve a barrer lo pendiente.
    """
    from shared.database import connection
    from services.payments.services.expiry_service import PaymentExpiryService

    async def sweep():
        await connection.init_db()
        try:
            service = PaymentExpiryService(connection.get_session_maker())
            return await service.expire_stale_payments()
        finally:
            await connection.close_db()

    expired = run_async(sweep())
    logger.info(f"[CELERY] Barrido de pagos completado: {expired} expirados")
    return {"expired": expired}
