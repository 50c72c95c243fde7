from uuid import UUID
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import get_current_admin_user
from app.api.v1.public.bookings import serialize_ticket
from app.models.account import Account
from app.models.ticket import PaymentStatus, TicketStatus
from app.schemas.common import MessageResponse, PaginatedResponse, paginate
from app.schemas.ticket import Ticket as TicketSchema
from app.services import reservations, tickets

router = APIRouter(prefix="/admin/tickets", tags=["Admin - Tickets"])


@router.get("/", response_model=PaginatedResponse[TicketSchema])
def list_all_tickets(
    # --- Filters ---
    search: Optional[str] = Query(None, description="Search by ticket code"),
    status: Optional[TicketStatus] = Query(None, description="pending, confirmed, used or cancelled"),
    payment_status: Optional[PaymentStatus] = Query(None, description="unpaid, paid or refunded"),
    # --- Pagination ---
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: Account = Depends(get_current_admin_user),
):
    """Every non-deleted ticket across all accounts, newest first."""
    items, total = tickets.list_tickets(db, search, status, payment_status, page, limit)
    return paginate([serialize_ticket(t) for t in items], total, page, limit)


@router.delete("/{ticket_id}", response_model=MessageResponse)
def delete_ticket(
    ticket_id: UUID,
    db: Session = Depends(get_db),
    current_user: Account = Depends(get_current_admin_user),
):
    """Soft delete: the row stays for audit and is hidden from every listing."""
    ticket = reservations.soft_delete_ticket(db, ticket_id)
    return MessageResponse(message="Ticket deleted", detail=ticket.tickets_code)
