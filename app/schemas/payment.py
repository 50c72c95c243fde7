from typing import Optional
from pydantic import BaseModel, UUID4
from decimal import Decimal
from datetime import datetime

from app.models.ticket import PaymentStatus, TicketStatus


# POST /payments/vnpay/create
class PaymentCreateRequest(BaseModel):
    ticket_id: UUID4


class PaymentCreateResponse(BaseModel):
    payment_url: str
    order_id: str
    amount: Decimal
    expires_at: Optional[datetime] = None


# GET /payments/vnpay/ipn: field names are fixed by VNPay
class IpnResponse(BaseModel):
    RspCode: str
    Message: str


# POST /payments/{ticket_id}/query
class PaymentQueryResponse(BaseModel):
    outcome: str  # confirmed, cancelled, already_processed, pending
    ticket_id: UUID4
    status: TicketStatus
    payment_status: PaymentStatus
    response_code: Optional[str] = None
    message: str
