"""Rutas de tickets: emisión, transferencia, validación en puerta y consultas"""
from typing import Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from shared.auth.dependencies import get_current_scanner, get_current_user
from shared.database.session import get_db, get_session_maker
from shared.utils.qr_generator import qr_data_url
from shared.utils.rate_limiter import RATE_LIMITS, limiter
from services.audit.services.audit_service import AuditService
from services.ticketing.models.ticket import (
    IssueTicketRequest,
    IssueTicketResponse,
    TicketPageResponse,
    TicketQrResponse,
    TicketResponse,
    TicketStatusEnum,
    TicketSummaryResponse,
    TransferTicketRequest,
    VerifyTicketRequest,
)
from services.ticketing.services.ticket_service import IssuedTicket, TicketService


router = APIRouter()


def get_ticket_service(request: Request, db: AsyncSession = Depends(get_db)) -> TicketService:
    return TicketService(
        db=db,
        signer=request.app.state.signer,
        oracle=request.app.state.horizon,
        notifier=request.app.state.notifier,
        audit=AuditService(get_session_maker()),
    )


def _page_response(page: dict) -> TicketPageResponse:
    return TicketPageResponse(
        data=[TicketResponse.model_validate(t) for t in page["data"]],
        meta=page["meta"],
    )


def _issued_response(issued: IssuedTicket) -> IssueTicketResponse:
    return IssueTicketResponse(
        ticket=TicketResponse.model_validate(issued.ticket),
        signature=issued.signature,
        qr_payload=issued.qr_payload,
        qr_code_data_url=qr_data_url(issued.qr_payload),
        created=issued.created,
    )


@router.post("/issue", response_model=IssueTicketResponse)
@limiter.limit(RATE_LIMITS["issue"])
async def issue_ticket(
    request: Request,
    body: IssueTicketRequest,
    service: TicketService = Depends(get_ticket_service),
    current_user: Dict = Depends(get_current_user)
):
    """
    Emitir ticket para un pago confirmado.

    Seguro de reintentar: si el ticket ya existe se devuelve el mismo (created=false).
    """
    issued = await service.issue_ticket(body.payment_id)
    return _issued_response(issued)


@router.post("/verify", response_model=TicketResponse)
@limiter.limit(RATE_LIMITS["validation"])
async def verify_ticket(
    request: Request,
    body: VerifyTicketRequest,
    service: TicketService = Depends(get_ticket_service),
    current_user: Dict = Depends(get_current_scanner)
):
    """
    Check-in en puerta mediante ticket_id + firma del QR

    Requiere rol scanner o admin
    """
    ticket = await service.verify_ticket(
        body.ticket_id,
        body.signature,
        scanned_by=current_user.get("user_id"),
    )
    return TicketResponse.model_validate(ticket)


@router.post("/{ticket_id}/transfer", response_model=TicketResponse)
async def transfer_ticket(
    ticket_id: str,
    body: TransferTicketRequest,
    service: TicketService = Depends(get_ticket_service),
    current_user: Dict = Depends(get_current_user)
):
    """Transferir ticket; el dueño actual es siempre el usuario del token"""
    ticket = await service.transfer_ticket(
        ticket_id,
        current_user["user_id"],
        body.new_owner_id,
    )
    return TicketResponse.model_validate(ticket)


@router.get("/my", response_model=TicketPageResponse)
async def get_my_tickets(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    service: TicketService = Depends(get_ticket_service),
    current_user: Dict = Depends(get_current_user)
):
    result = await service.find_by_owner(current_user["user_id"], page, limit)
    return _page_response(result)


@router.get("/event/{event_id}", response_model=TicketPageResponse)
async def get_event_tickets(
    event_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[TicketStatusEnum] = None,
    service: TicketService = Depends(get_ticket_service),
    current_user: Dict = Depends(get_current_user)
):
    """Tickets de un evento (solo organizador)"""
    result = await service.find_by_event(
        event_id,
        current_user["user_id"],
        page,
        limit,
        status.value if status else None,
    )
    return _page_response(result)


@router.get("/event/{event_id}/summary", response_model=TicketSummaryResponse)
async def get_event_ticket_summary(
    event_id: str,
    service: TicketService = Depends(get_ticket_service),
    current_user: Dict = Depends(get_current_user)
):
    return await service.get_event_ticket_summary(event_id, current_user["user_id"])


@router.get("/{ticket_id}", response_model=TicketResponse)
async def get_ticket(
    ticket_id: str,
    service: TicketService = Depends(get_ticket_service),
    current_user: Dict = Depends(get_current_user)
):
    ticket = await service.find_one(ticket_id, current_user["user_id"])
    return TicketResponse.model_validate(ticket)


@router.get("/{ticket_id}/qr", response_model=TicketQrResponse)
async def get_ticket_qr(
    ticket_id: str,
    service: TicketService = Depends(get_ticket_service),
    current_user: Dict = Depends(get_current_user)
):
    """Re-generar el QR de un ticket propio (p. ej. si se perdió el email)"""
    issued = await service.get_signature(ticket_id, current_user["user_id"])
    return TicketQrResponse(
        ticket_id=issued.ticket.id,
        signature=issued.signature,
        qr_payload=issued.qr_payload,
        qr_code_data_url=qr_data_url(issued.qr_payload),
    )
