"""Dobles de prueba para los colaboradores del servicio de tickets"""
import asyncio

from sqlalchemy.exc import OperationalError

from shared.errors import UpstreamError
from services.stellar.services.horizon_client import OracleTransaction

SECRET = "test-signing-secret-0123456789abcdef"
TX_HASH = "b9d0b2292c4e09e8eb22d036171491e87b8d2086bf8b265874c8d182cb9c9020"


class FakeOracle:
    """Horizon en memoria: memo configurable, latencia opcional, contador de llamadas"""

    def __init__(self, memo=None, successful=True, delay=0.0, error=None):
        self.memo = memo
        self.successful = successful
        self.delay = delay
        self.error = error
        self.calls = 0

    async def get_transaction(self, tx_hash):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return OracleTransaction(hash=tx_hash, memo=self.memo, successful=self.successful)


class FailingOracle(FakeOracle):
    def __init__(self):
        super().__init__(error=UpstreamError("Timeout consultando Horizon"))


class RecordingNotifier:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def queue_ticket_email(self, email, ticket_id, event_name):
        if self.fail:
            raise RuntimeError("broker caído")
        self.sent.append((email, ticket_id, event_name))
        return True


class RecordingAudit:
    def __init__(self):
        self.entries = []

    async def log(self, action, user_id=None, resource_id=None, meta=None):
        self.entries.append({"action": action, "user_id": user_id, "resource_id": resource_id, "meta": meta})
        return True

    def actions(self):
        return [e["action"] for e in self.entries]


class UnreachableSession:
    """Sesión cuya conexión a la base de datos siempre falla"""

    async def execute(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, ConnectionRefusedError("connection refused"))

    async def rollback(self):
        pass
