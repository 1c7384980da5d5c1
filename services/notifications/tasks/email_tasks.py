"""Tareas asíncronas para envío de emails de tickets"""
import asyncio
import logging

from shared.cache.celery_app import celery_app

logger = logging.getLogger(__name__)


def run_async(coro):
    """Helper para ejecutar coroutines en contexto síncrono de Celery"""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@celery_app.task(
    name="send_ticket_email",
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_kwargs={"max_retries": 3},
)
def send_ticket_email_task(self, email: str, ticket_id: str, event_name: str):
    """
    Tarea Celery para enviar el email de un ticket emitido.

    La firma se recalcula aquí desde la configuración (es determinística),
    así no viaja por el broker.
    """
    from services.notifications.services.email_service import EmailService
    from services.ticketing.services.signing_service import build_signer

    logger.info(f"[CELERY] Enviando email de ticket {ticket_id} a {email} para evento {event_name}")

    qr_payload = build_signer().display_payload(ticket_id)
    service = EmailService()
    success = run_async(service.send_ticket_email(
        to_email=email,
        event_name=event_name,
        ticket_id=ticket_id,
        qr_payload=qr_payload,
    ))

    if not success:
        logger.error(f"[CELERY] Error enviando email a {email}")
        raise RuntimeError(f"Error enviando email a {email}")

    logger.info(f"[CELERY] Email enviado exitosamente a {email}")
    return {"status": "sent", "email": email, "ticket_id": ticket_id}
