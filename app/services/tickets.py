from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy.orm import Session, joinedload

from app.core.exceptions import TicketNotFoundError
from app.models.cinema import Room
from app.models.slot import Slot
from app.models.ticket import BookingSeat, Ticket, TicketDetail
from app.models.seat import Seat


def _with_relations(query):
    return query.options(
        joinedload(Ticket.account),
        joinedload(Ticket.slot).joinedload(Slot.movie),
        joinedload(Ticket.slot).joinedload(Slot.room).joinedload(Room.cinema),
        joinedload(Ticket.seats).joinedload(BookingSeat.seat).joinedload(Seat.seat_type),
        joinedload(Ticket.details).joinedload(TicketDetail.product),
        joinedload(Ticket.promotion),
        joinedload(Ticket.payment),
    )


def load_ticket(
    db: Session,
    ticket_id: UUID,
    account_id: Optional[UUID] = None,
    for_update: bool = False,
) -> Ticket:
    """Load a non-deleted ticket, optionally scoped to its owner."""
    query = db.query(Ticket).filter(Ticket.id == ticket_id, Ticket.is_deleted == False)  # noqa: E712
    if account_id is not None:
        query = query.filter(Ticket.account_id == account_id)
    if for_update:
        # Row lock only; relations are loaded lazily afterwards
        ticket = query.with_for_update().first()
    else:
        ticket = _with_relations(query).first()
    if not ticket:
        raise TicketNotFoundError()
    return ticket


def list_account_tickets(
    db: Session,
    account_id: UUID,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[Ticket], int]:
    query = db.query(Ticket).filter(
        Ticket.account_id == account_id,
        Ticket.is_deleted == False,  # noqa: E712
    )
    if status:
        query = query.filter(Ticket.status == status)
    total = query.count()
    tickets = (
        _with_relations(query)
        .order_by(Ticket.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return tickets, total


def list_tickets(
    db: Session,
    search: Optional[str] = None,
    status: Optional[str] = None,
    payment_status: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[Ticket], int]:
    """Admin listing across all accounts, newest first."""
    query = db.query(Ticket).filter(Ticket.is_deleted == False)  # noqa: E712
    if search:
        query = query.filter(Ticket.tickets_code.ilike(f"%{search.strip()}%"))
    if status:
        query = query.filter(Ticket.status == status)
    if payment_status:
        query = query.filter(Ticket.payment_status == payment_status)
    total = query.count()
    tickets = (
        _with_relations(query)
        .order_by(Ticket.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return tickets, total
