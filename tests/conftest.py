import os
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

os.environ.setdefault("TICKET_SIGNING_SECRET", "test-signing-secret-0123456789abcdef")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from shared.config import get_settings
from shared.database.connection import Base
from shared.database.models import Event, Payment, PaymentStatus, User
from services.ticketing.services.signing_service import TicketSigner
from services.ticketing.services.ticket_service import TicketService
from tests.fakes import SECRET, TX_HASH, FakeOracle


get_settings.cache_clear()


@pytest.fixture
def signer():
    return TicketSigner(SECRET)


@pytest.fixture
async def session_maker(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
async def seed(session_maker):
    """Usuarios, evento y un pago confirmado listo para emitir"""
    organizer = User(id=uuid.uuid4(), email="organizer@example.com", role="organizer")
    buyer = User(id=uuid.uuid4(), email="buyer@example.com", role="user")
    friend = User(id=uuid.uuid4(), email="friend@example.com", role="user")
    event = Event(id=uuid.uuid4(), organizer_id=organizer.id, title="Stellar Fest")
    payment = Payment(
        id=uuid.uuid4(),
        event_id=event.id,
        user_id=buyer.id,
        amount=Decimal("25.5000000"),
        currency="XLM",
        transaction_hash=TX_HASH,
        status=PaymentStatus.CONFIRMED.value,
        expires_at=datetime.now(timezone.utc) + timedelta(minutes=30),
    )
    async with session_maker() as session:
        session.add_all([organizer, buyer, friend])
        await session.flush()
        session.add(event)
        await session.flush()
        session.add(payment)
        await session.commit()

    return {
        "organizer_id": organizer.id,
        "buyer_id": buyer.id,
        "friend_id": friend.id,
        "event_id": event.id,
        "payment_id": payment.id,
    }


@pytest.fixture
async def add_payment(session_maker, seed):
    """Crear pagos adicionales para el evento sembrado"""

    async def _add(**overrides):
        values = {
            "id": uuid.uuid4(),
            "event_id": seed["event_id"],
            "user_id": seed["buyer_id"],
            "amount": Decimal("10"),
            "currency": "XLM",
            "transaction_hash": None,
            "status": PaymentStatus.PENDING.value,
            "expires_at": None,
        }
        values.update(overrides)
        async with session_maker() as session:
            session.add(Payment(**values))
            await session.commit()
        return values["id"]

    return _add


@pytest.fixture
async def make_service(session_maker, signer):
    """Cada llamada abre su propia sesión, como cada request HTTP"""
    sessions = []

    def _make(oracle=None, notifier=None, audit=None):
        session = session_maker()
        sessions.append(session)
        return TicketService(session, signer, oracle or FakeOracle(), notifier=notifier, audit=audit)

    yield _make

    for session in sessions:
        await session.close()
