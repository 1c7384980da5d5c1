"""
Servicio de ciclo de vida de tickets: emisión, transferencia y check-in.

Estados: valid -> used (terminal), valid -> valid (transferencia),
valid/used -> refunded (lo produce el flujo de reembolsos, fuera de este servicio).

Garantías de concurrencia:
- Emisión: la unicidad de tickets.transaction_hash la garantiza la base de
  datos. La búsqueda previa por hash solo evita llamadas innecesarias a
  Horizon; si dos emisiones compiten, la que pierde el insert devuelve el
  ticket existente.
- Check-in: la transición valid -> used es un UPDATE condicional
  (WHERE status = 'valid'); solo un escaneo concurrente afecta la fila.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol
import logging

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shared.database.connection import translate_storage_errors
from shared.database.models import Event, PaymentStatus, Ticket, TicketStatus, User
from shared.errors import (
    AlreadyUsedError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
)
from shared.utils.pagination import paginate, empty_page
from services.payments.services.payment_ledger import PaymentLedger, parse_uuid
from services.stellar.services.horizon_client import OracleTransaction
from services.ticketing.services.signing_service import TicketSigner

logger = logging.getLogger(__name__)

TICKET_ISSUED = "TICKET_ISSUED"
TICKET_TRANSFERRED = "TICKET_TRANSFERRED"
TICKET_CHECKED_IN = "TICKET_CHECKED_IN"


class TransactionOracle(Protocol):
    async def get_transaction(self, tx_hash: str) -> OracleTransaction: ...


class Notifier(Protocol):
    def queue_ticket_email(self, email: str, ticket_id: str, event_name: str) -> bool: ...


class AuditSink(Protocol):
    async def log(self, action: str, user_id: Any = None, resource_id: Any = None,
                  meta: Optional[Dict[str, Any]] = None) -> bool: ...


@dataclass
class IssuedTicket:
    ticket: Ticket
    signature: str
    qr_payload: str
    created: bool


def _same_id(a, b) -> bool:
    a_uuid, b_uuid = parse_uuid(a), parse_uuid(b)
    if a_uuid is None or b_uuid is None:
        return False
    return a_uuid == b_uuid


class TicketService:
    """Máquina de estados de tickets. Es el único componente que escribe tickets."""

    def __init__(
        self,
        db: AsyncSession,
        signer: TicketSigner,
        oracle: TransactionOracle,
        notifier: Optional[Notifier] = None,
        audit: Optional[AuditSink] = None,
    ):
        self.db = db
        self.signer = signer
        self.oracle = oracle
        self.notifier = notifier
        self.audit = audit

    # ==================== LECTURAS INTERNAS ====================

    async def _get_ticket(self, ticket_id, refresh: bool = False) -> Optional[Ticket]:
        ticket_uuid = parse_uuid(ticket_id)
        if ticket_uuid is None:
            return None
        stmt = select(Ticket).where(Ticket.id == ticket_uuid)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def _get_ticket_by_hash(self, tx_hash: str) -> Optional[Ticket]:
        result = await self.db.execute(select(Ticket).where(Ticket.transaction_hash == tx_hash))
        return result.scalar_one_or_none()

    async def _get_event(self, event_id) -> Event:
        event_uuid = parse_uuid(event_id)
        event = None
        if event_uuid is not None:
            result = await self.db.execute(select(Event).where(Event.id == event_uuid))
            event = result.scalar_one_or_none()
        if event is None:
            raise NotFoundError("Evento no encontrado")
        return event

    def _issued(self, ticket: Ticket, created: bool) -> IssuedTicket:
        return IssuedTicket(
            ticket=ticket,
            signature=self.signer.sign(ticket.id),
            qr_payload=self.signer.display_payload(ticket.id),
            created=created,
        )

    # ==================== EMISIÓN ====================

    @translate_storage_errors
    async def issue_ticket(self, payment_id) -> IssuedTicket:
        """
        Emitir ticket para un pago confirmado.

        Idempotente por transaction_hash: reintentos (o emisiones concurrentes)
        del mismo pago devuelven el mismo ticket.
        """
        payment = await PaymentLedger(self.db).get_payment(payment_id)
        if payment is None:
            raise NotFoundError("Pago no encontrado")

        if payment.status != PaymentStatus.CONFIRMED.value:
            raise InvalidStateError("El pago no está confirmado")

        if not payment.transaction_hash:
            raise InvalidStateError("El pago no tiene transaction hash")

        # Valores del pago antes de cualquier rollback (que expira el objeto)
        tx_hash = payment.transaction_hash
        payment_ref = str(payment.id)
        event_id = payment.event_id
        owner_id = payment.user_id
        asset_code = payment.currency

        existing = await self._get_ticket_by_hash(tx_hash)
        if existing is not None:
            logger.info(f"Ticket {existing.id} ya emitido para transacción {tx_hash[:12]}..., se reutiliza")
            return self._issued(existing, created=False)

        # Errores de Horizon se propagan (UpstreamError es reintentable); no se persiste nada
        tx = await self.oracle.get_transaction(tx_hash)

        memo = tx.memo if isinstance(tx.memo, str) else None
        if not memo:
            raise InvalidStateError(
                "La transacción no tiene memo. No se puede verificar la referencia del pago."
            )
        if not tx.successful:
            raise InvalidStateError("La transacción de liquidación falló en el ledger")
        if memo != payment_ref:
            raise InvalidStateError(
                f'El memo de la transacción no coincide con el pago. Esperado "{payment_ref}", recibido "{memo}".'
            )

        # Se persiste antes de firmar: la firma es sobre el id generado
        ticket = Ticket(
            event_id=event_id,
            owner_id=owner_id,
            asset_code=asset_code,
            transaction_hash=tx_hash,
            status=TicketStatus.VALID.value,
        )
        self.db.add(ticket)
        try:
            await self.db.flush()
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            existing = await self._get_ticket_by_hash(tx_hash)
            if existing is None:
                raise
            logger.info(f"Emisión concurrente para transacción {tx_hash[:12]}..., se devuelve ticket {existing.id}")
            return self._issued(existing, created=False)

        await self.db.refresh(ticket)
        logger.info(f"Ticket {ticket.id} emitido para pago {payment_ref}")

        issued = self._issued(ticket, created=True)
        await self._notify_issued(ticket, owner_id, event_id)
        await self._record(TICKET_ISSUED, owner_id, ticket.id, {
            "paymentId": payment_ref,
            "eventId": event_id,
            "transactionHash": tx_hash,
        })
        return issued

    async def _notify_issued(self, ticket: Ticket, owner_id, event_id):
        """Best-effort: un fallo aquí nunca hace fallar la emisión"""
        if self.notifier is None:
            return
        try:
            user = (await self.db.execute(select(User).where(User.id == owner_id))).scalar_one_or_none()
            event = (await self.db.execute(select(Event).where(Event.id == event_id))).scalar_one_or_none()
            if user is None or event is None:
                logger.warning(f"Sin usuario o evento para notificar ticket {ticket.id}")
                return
            self.notifier.queue_ticket_email(email=user.email, ticket_id=str(ticket.id), event_name=event.title)
        except Exception as e:
            logger.error(f"Error notificando ticket {ticket.id}: {e}", exc_info=True)

    async def _record(self, action: str, user_id, resource_id, meta: Dict[str, Any]):
        if self.audit is None:
            return
        try:
            await self.audit.log(action=action, user_id=user_id, resource_id=resource_id, meta=meta)
        except Exception as e:
            logger.error(f"Error registrando auditoría {action}: {e}", exc_info=True)

    # ==================== TRANSFERENCIA ====================

    def _check_transferable(self, ticket: Ticket, caller_owner_id):
        if not _same_id(ticket.owner_id, caller_owner_id):
            raise ForbiddenError("No eres el dueño de este ticket")
        if ticket.status != TicketStatus.VALID.value:
            raise InvalidStateError("El ticket no es transferible")

    @translate_storage_errors
    async def transfer_ticket(self, ticket_id, caller_owner_id, new_owner_id) -> Ticket:
        """
        Transferir ticket a otro usuario.

        caller_owner_id debe venir del contexto autenticado, nunca del body.
        La firma no cambia: depende solo del id del ticket.
        """
        ticket = await self._get_ticket(ticket_id)
        if ticket is None:
            raise NotFoundError("Ticket no encontrado")

        self._check_transferable(ticket, caller_owner_id)

        new_owner_uuid = parse_uuid(new_owner_id)
        if new_owner_uuid is None:
            raise InvalidStateError("Nuevo dueño inválido")

        previous_owner = ticket.owner_id
        result = await self.db.execute(
            update(Ticket)
            .where(
                Ticket.id == ticket.id,
                Ticket.owner_id == previous_owner,
                Ticket.status == TicketStatus.VALID.value,
            )
            .values(owner_id=new_owner_uuid)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            # La fila cambió entre la lectura y el update: re-evaluar con el estado actual
            await self.db.rollback()
            fresh = await self._get_ticket(ticket_id, refresh=True)
            if fresh is None:
                raise NotFoundError("Ticket no encontrado")
            self._check_transferable(fresh, caller_owner_id)
            raise InvalidStateError("El ticket cambió durante la transferencia, reintenta")

        await self.db.commit()
        await self.db.refresh(ticket)
        logger.info(f"Ticket {ticket.id} transferido")

        await self._record(TICKET_TRANSFERRED, caller_owner_id, ticket.id, {
            "fromOwnerId": previous_owner,
            "toOwnerId": new_owner_uuid,
        })
        return ticket

    # ==================== CHECK-IN ====================

    @staticmethod
    def _check_admissible(ticket: Ticket):
        if ticket.status == TicketStatus.USED.value:
            raise AlreadyUsedError("El ticket ya fue utilizado")
        if ticket.status != TicketStatus.VALID.value:
            raise InvalidStateError("El ticket ya no es válido")

    @translate_storage_errors
    async def verify_ticket(self, ticket_id, signature, scanned_by=None) -> Ticket:
        """
        Check-in en puerta. El orden importa:

        1. Firma primero, antes de consultar la base de datos: una firma
           inválida nunca revela si el ticket existe.
        2. Existencia.
        3. Estado (used -> AlreadyUsedError, otro distinto de valid -> InvalidStateError).
        4. UPDATE condicional valid -> used: único punto de linealización.
        """
        if not self.signer.verify(ticket_id, signature):
            raise UnauthorizedError("Firma de ticket inválida")

        ticket = await self._get_ticket(ticket_id)
        if ticket is None:
            raise NotFoundError("Ticket no encontrado")

        self._check_admissible(ticket)

        result = await self.db.execute(
            update(Ticket)
            .where(Ticket.id == ticket.id, Ticket.status == TicketStatus.VALID.value)
            .values(status=TicketStatus.USED.value, used_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            # Otro escaneo ganó la carrera
            await self.db.rollback()
            fresh = await self._get_ticket(ticket_id, refresh=True)
            if fresh is None:
                raise NotFoundError("Ticket no encontrado")
            self._check_admissible(fresh)
            raise AlreadyUsedError("El ticket ya fue utilizado")

        await self.db.commit()
        await self.db.refresh(ticket)
        logger.info(f"Ticket {ticket.id} validado en puerta")

        await self._record(TICKET_CHECKED_IN, scanned_by, ticket.id, {
            "eventId": ticket.event_id,
            "usedAt": ticket.used_at,
        })
        return ticket

    # ==================== CONSULTAS ====================

    @translate_storage_errors
    async def find_one(self, ticket_id, requester_id) -> Ticket:
        """Ticket por id; solo el dueño puede verlo"""
        ticket = await self._get_ticket(ticket_id)
        if ticket is None:
            raise NotFoundError("Ticket no encontrado")
        if not _same_id(ticket.owner_id, requester_id):
            raise ForbiddenError("No eres el dueño de este ticket")
        return ticket

    @translate_storage_errors
    async def get_signature(self, ticket_id, requester_id) -> IssuedTicket:
        """Re-generar el QR de un ticket (la firma es determinística)"""
        ticket = await self.find_one(ticket_id, requester_id)
        return self._issued(ticket, created=False)

    @translate_storage_errors
    async def find_by_owner(self, owner_id, page: int = 1, limit: int = 20) -> dict:
        owner_uuid = parse_uuid(owner_id)
        if owner_uuid is None:
            return empty_page(page, limit)
        stmt = (
            select(Ticket)
            .where(Ticket.owner_id == owner_uuid)
            .order_by(Ticket.created_at.desc(), Ticket.id)
        )
        return await paginate(self.db, stmt, page, limit)

    @translate_storage_errors
    async def find_by_event(
        self,
        event_id,
        requester_id,
        page: int = 1,
        limit: int = 20,
        status: Optional[str] = None,
    ) -> dict:
        """Tickets de un evento; solo para el organizador del evento"""
        event = await self._get_event(event_id)
        if not _same_id(event.organizer_id, requester_id):
            raise ForbiddenError("No eres el organizador de este evento")

        stmt = select(Ticket).where(Ticket.event_id == event.id)
        if status:
            if status not in {s.value for s in TicketStatus}:
                raise InvalidStateError(f"Estado de ticket desconocido: {status}")
            stmt = stmt.where(Ticket.status == status)
        stmt = stmt.order_by(Ticket.created_at.desc(), Ticket.id)
        return await paginate(self.db, stmt, page, limit)

    @translate_storage_errors
    async def get_event_ticket_summary(self, event_id, requester_id) -> Dict[str, int]:
        """Conteo de tickets por estado para el organizador"""
        event = await self._get_event(event_id)
        if not _same_id(event.organizer_id, requester_id):
            raise ForbiddenError("No eres el organizador de este evento")

        result = await self.db.execute(
            select(Ticket.status, func.count())
            .where(Ticket.event_id == event.id)
            .group_by(Ticket.status)
        )
        summary = {"total": 0, "valid": 0, "used": 0, "refunded": 0}
        for status, count in result.all():
            summary[status] = int(count)
            summary["total"] += int(count)
        return summary
