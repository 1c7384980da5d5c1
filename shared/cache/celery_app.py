"""
Celery del servicio de tickets.

Dos colas: `sweeps` para el barrido de pagos vencidos (nunca debe quedar
detrás de emails) y `emails` para las notificaciones de tickets emitidos.
"""
import logging
import os

from celery import Celery
from kombu import Exchange, Queue

logger = logging.getLogger(__name__)

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
PAYMENT_EXPIRY_INTERVAL_SECONDS = int(os.getenv("PAYMENT_EXPIRY_INTERVAL_SECONDS", "300"))

celery_app = Celery(
    "lumentix",
    broker=REDIS_URL,
    backend=REDIS_URL,
    include=[
        "services.notifications.tasks.email_tasks",
        "services.payments.tasks.expiry_tasks",
    ],
)

tasks_exchange = Exchange("lumentix", type="direct")

celery_app.conf.task_queues = (
    Queue("sweeps", tasks_exchange, routing_key="sweeps"),
    Queue("emails", tasks_exchange, routing_key="emails"),
)
celery_app.conf.task_routes = {
    "expire_stale_payments": {"queue": "sweeps", "routing_key": "sweeps"},
    "send_ticket_email": {"queue": "emails", "routing_key": "emails"},
}

celery_app.conf.beat_schedule = {
    "expire-stale-payments": {
        "task": "expire_stale_payments",
        "schedule": float(PAYMENT_EXPIRY_INTERVAL_SECONDS),
        # Un barrido que no arrancó antes del siguiente tick se descarta
        "options": {"expires": PAYMENT_EXPIRY_INTERVAL_SECONDS},
    },
}

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_default_queue="emails",
    task_default_exchange="lumentix",
    task_default_routing_key="emails",
    # La tarea se confirma al terminar: si el worker muere, otro la retoma
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    task_time_limit=5 * 60,
    task_soft_time_limit=4 * 60,
    result_expires=3600,
    broker_connection_retry_on_startup=True,
    task_annotations={"send_ticket_email": {"rate_limit": "30/m"}},
)

logger.info(
    "Celery listo (broker %s), barrido de pagos cada %ss",
    REDIS_URL.rsplit("@", 1)[-1],
    PAYMENT_EXPIRY_INTERVAL_SECONDS,
)
