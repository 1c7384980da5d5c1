"""Modelos Pydantic para tickets"""
from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class TicketStatusEnum(str, Enum):
    VALID = "valid"
    USED = "used"
    REFUNDED = "refunded"


class IssueTicketRequest(BaseModel):
    """Solicitud de emisión de ticket para un pago confirmado"""
    payment_id: UUID


class TransferTicketRequest(BaseModel):
    """El dueño actual sale del token, nunca del body"""
    new_owner_id: UUID


class VerifyTicketRequest(BaseModel):
    """Contenido leído del QR en puerta"""
    ticket_id: str = Field(..., min_length=1, max_length=64)
    signature: str = Field(..., min_length=1, max_length=128)


class TicketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    event_id: UUID
    owner_id: UUID
    asset_code: str
    transaction_hash: str
    status: TicketStatusEnum
    used_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class IssueTicketResponse(BaseModel):
    ticket: TicketResponse
    signature: str
    qr_payload: str
    qr_code_data_url: str
    created: bool


class TicketQrResponse(BaseModel):
    ticket_id: UUID
    signature: str
    qr_payload: str
    qr_code_data_url: str


class PageMeta(BaseModel):
    total: int
    page: int
    limit: int
    totalPages: int


class TicketPageResponse(BaseModel):
    data: List[TicketResponse]
    meta: PageMeta


class TicketSummaryResponse(BaseModel):
    total: int
    valid: int
    used: int
    refunded: int
