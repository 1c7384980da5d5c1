import base64
import json
import uuid

import resend

from shared.utils.qr_generator import generate_qr_png_base64, qr_data_url
from services.notifications.services.email_service import EmailService
from services.notifications.services.ticket_notifier import TicketNotifier
from services.notifications.tasks import email_tasks

PNG_MAGIC = b"\x89PNG"


def test_qr_png_is_valid_image(signer):
    payload = signer.display_payload(str(uuid.uuid4()))

    image = base64.b64decode(generate_qr_png_base64(payload))

    assert image.startswith(PNG_MAGIC)
    assert qr_data_url(payload).startswith("data:image/png;base64,")


def test_qr_of_empty_payload_is_empty():
    assert generate_qr_png_base64("") == ""


async def test_email_is_simulated_without_api_key():
    service = EmailService(api_key="")

    assert service.resend_configured is False
    assert await service.send_ticket_email("a@example.com", "Fest", "t-1", '{"ticketId": "t-1"}') is True


async def test_ticket_email_embeds_qr_and_escapes_event_name(monkeypatch):
    sent = []
    monkeypatch.setattr(resend.Emails, "send", lambda params: sent.append(params) or {"id": "em_1"})
    service = EmailService(api_key="re_test", from_email="tickets@lumentix.test")

    ok = await service.send_ticket_email("a@example.com", "<Rock & Roll>", "t-1", '{"ticketId": "t-1"}')

    assert ok is True
    params = sent[0]
    assert params["to"] == ["a@example.com"]
    assert params["from"] == "tickets@lumentix.test"
    assert "data:image/png;base64," in params["html"]
    assert "&lt;Rock &amp; Roll&gt;" in params["html"]
    assert "<Rock & Roll>" not in params["html"]


async def test_resend_failure_returns_false(monkeypatch):
    def boom(params):
        raise RuntimeError("resend 500")

    monkeypatch.setattr(resend.Emails, "send", boom)

    assert await EmailService(api_key="re_test").send_email("a@example.com", "s", "<p>x</p>") is False


async def test_notifier_swallows_broker_errors(monkeypatch):
    def delay(**kwargs):
        raise ConnectionError("redis down")

    monkeypatch.setattr(email_tasks.send_ticket_email_task, "delay", delay)

    notifier = TicketNotifier()

    assert notifier.queue_ticket_email("a@example.com", "t-1", "Fest") is True
    assert await notifier.drain() == [False]
    assert notifier.pending == set()


async def test_notifier_enqueues_task(monkeypatch):
    queued = []

    class Result:
        id = "task-1"

    def delay(**kwargs):
        queued.append(kwargs)
        return Result()

    monkeypatch.setattr(email_tasks.send_ticket_email_task, "delay", delay)

    notifier = TicketNotifier()

    assert notifier.queue_ticket_email("a@example.com", uuid.UUID(int=3), "Fest") is True
    assert await notifier.drain() == [True]
    assert queued == [{"email": "a@example.com", "ticket_id": str(uuid.UUID(int=3)), "event_name": "Fest"}]


def test_email_task_rebuilds_signed_payload(monkeypatch, signer):
    captured = {}

    async def fake_send(self, to_email, event_name, ticket_id, qr_payload):
        captured["qr_payload"] = qr_payload
        return True

    monkeypatch.setattr(EmailService, "send_ticket_email", fake_send)
    ticket_id = str(uuid.uuid4())

    result = email_tasks.send_ticket_email_task(email="a@example.com", ticket_id=ticket_id, event_name="Fest")

    assert result == {"status": "sent", "email": "a@example.com", "ticket_id": ticket_id}
    assert json.loads(captured["qr_payload"]) == {"ticketId": ticket_id, "signature": signer.sign(ticket_id)}
