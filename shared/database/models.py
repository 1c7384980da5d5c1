"""Modelos SQLAlchemy de pagos, tickets y auditoría"""
import enum
import uuid

from sqlalchemy import Column, String, DateTime, ForeignKey, Numeric, JSON, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from shared.database.connection import Base


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    REFUNDED = "refunded"


class TicketStatus(str, enum.Enum):
    VALID = "valid"
    USED = "used"
    REFUNDED = "refunded"


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, nullable=False, index=True)
    role = Column(String, nullable=False, server_default="user")  # user, admin, scanner, organizer
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class Event(Base):
    __tablename__ = "events"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organizer_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False)
    title = Column(String, nullable=False)
    starts_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relaciones
    organizer = relationship("User")
    tickets = relationship("Ticket", back_populates="event")


class Payment(Base):
    """
    Intención de pago. La crea y confirma el subsistema de pagos;
    aquí solo se lee y el barrido de vencimiento la pasa a failed.
    """
    __tablename__ = "payments"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    event_id = Column(Uuid(as_uuid=True), ForeignKey("events.id"), nullable=False)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False)
    amount = Column(Numeric(18, 7), nullable=False)
    currency = Column(String, nullable=False, server_default="XLM")
    transaction_hash = Column(String, nullable=True)  # Hash de la transacción Stellar que liquida el pago
    status = Column(String, nullable=False, server_default=PaymentStatus.PENDING.value)
    expires_at = Column(DateTime(timezone=True), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class Ticket(Base):
    """
    Ticket emitido. La firma no se guarda: se recalcula desde el id y el secret.
    transaction_hash es único: como máximo un ticket por transacción de liquidación.
    """
    __tablename__ = "tickets"
    __table_args__ = (
        UniqueConstraint("transaction_hash", name="uq_tickets_transaction_hash"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    event_id = Column(Uuid(as_uuid=True), ForeignKey("events.id"), nullable=False, index=True)
    owner_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    asset_code = Column(String, nullable=False, server_default="XLM")
    transaction_hash = Column(String, nullable=False)
    status = Column(String, nullable=False, server_default=TicketStatus.VALID.value)  # valid, used, refunded
    used_at = Column(DateTime(timezone=True), nullable=True)  # Cuando fue escaneado en puerta
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relaciones
    event = relationship("Event", back_populates="tickets")


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    action = Column(String, nullable=False, index=True)  # PAYMENT_EXPIRED, TICKET_ISSUED, ...
    user_id = Column(String, nullable=True)
    resource_id = Column(String, nullable=True, index=True)
    meta = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
