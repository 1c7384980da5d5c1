"""Encolado fire-and-forget de notificaciones de tickets"""
from typing import List, Set
import asyncio
import logging

logger = logging.getLogger(__name__)


class TicketNotifier:
    """
    Encola el email del ticket en Celery sin bloquear el event loop.

    El publish a Redis (con sus reintentos de conexión) corre en el executor
    por defecto; la emisión no lo espera y un fallo al encolar nunca se propaga.
    """

    def __init__(self):
        self.pending: Set[asyncio.Future] = set()

    def queue_ticket_email(self, email: str, ticket_id: str, event_name: str) -> bool:
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(None, self._publish, email, str(ticket_id), event_name)
        self.pending.add(future)
        future.add_done_callback(self.pending.discard)
        return True

    @staticmethod
    def _publish(email: str, ticket_id: str, event_name: str) -> bool:
        from services.notifications.tasks.email_tasks import send_ticket_email_task

        try:
            result = send_ticket_email_task.delay(
                email=email,
                ticket_id=ticket_id,
                event_name=event_name,
            )
            logger.info(f"Email de ticket {ticket_id} encolado (task {result.id})")
            return True
        except Exception as e:
            logger.error(f"Error encolando email para ticket {ticket_id}: {e}", exc_info=True)
            return False

    async def drain(self) -> List[bool]:
        """Esperar los encolados en curso (shutdown de la API)"""
        if not self.pending:
            return []
        return list(await asyncio.gather(*self.pending))
