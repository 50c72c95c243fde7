from uuid import UUID
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import get_current_user
from app.models.account import Account
from app.models.ticket import Ticket, TicketStatus
from app.schemas.account import AccountSummary
from app.schemas.ticket import (
    BookingCreate,
    BookingCancelResponse,
    Ticket as TicketSchema,
    TicketPayment,
    TicketProduct,
    TicketSeat,
    TicketSlot,
)
from app.schemas.common import PaginatedResponse, paginate
from app.services import reservations, tickets

router = APIRouter(prefix="/bookings", tags=["Bookings"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def serialize_ticket(ticket: Ticket) -> TicketSchema:
    """Convert a Ticket ORM object, relations loaded, to its schema representation."""
    slot_summary = None
    if ticket.slot:
        s = ticket.slot
        slot_summary = TicketSlot(
            id=s.id,
            show_time=s.show_time,
            end_time=s.end_time,
            movie_title=s.movie.title if s.movie else None,
            room_name=s.room.room_name if s.room else None,
            cinema_name=s.room.cinema.cinema_name if s.room and s.room.cinema else None,
        )

    seats_out = [
        TicketSeat(
            seat_id=bs.seat_id,
            seat_row=bs.seat.seat_row,
            seat_number=bs.seat.seat_number,
            seat_type=bs.seat.seat_type.type_name if bs.seat.seat_type else None,
            seat_price=bs.seat_price,
        )
        for bs in sorted(ticket.seats, key=lambda bs: (bs.seat.seat_row, bs.seat.seat_number))
    ]

    products_out = [
        TicketProduct(
            product_id=d.product_id,
            product_name=d.product.product_name if d.product else "",
            quantity=d.quantity,
            unit_price=d.unit_price,
            total_price=d.total_price,
        )
        for d in ticket.details
    ]

    return TicketSchema(
        id=ticket.id,
        tickets_code=ticket.tickets_code,
        account_id=ticket.account_id,
        slot_id=ticket.slot_id,
        total_amount=ticket.total_amount,
        discount_amount=ticket.discount_amount,
        final_amount=ticket.final_amount,
        status=ticket.status,
        payment_status=ticket.payment_status,
        promotion_id=ticket.promotion_id,
        promotion_code=ticket.promotion.promotion_code if ticket.promotion else None,
        expires_at=ticket.expires_at if ticket.status == TicketStatus.PENDING else None,
        created_at=ticket.created_at,
        account=AccountSummary.model_validate(ticket.account) if ticket.account else None,
        slot=slot_summary,
        seats=seats_out,
        products=products_out,
        payment=TicketPayment.model_validate(ticket.payment) if ticket.payment else None,
    )


# ---------------------------------------------------------------------------
# POST /bookings: reserve seats and combos, ticket stays pending until paid
# ---------------------------------------------------------------------------


@router.post("/", response_model=TicketSchema, status_code=status.HTTP_201_CREATED)
def create_booking(
    data: BookingCreate,
    db: Session = Depends(get_db),
    current_user: Account = Depends(get_current_user),
):
    """
    Create a pending ticket for the selected seats and combos.

    - All seats must be in the showtime's room, share one seat type and be free.
    - Prices are computed on the server. If `totalAmount` / `finalAmount` are sent
      and no longer match, the request fails with `price_changed`.
    - `voucher_id` applies a voucher already activated on the account;
      `promotion_code` activates the code on the fly if needed.
    - Seats are held for a few minutes; an unpaid ticket is then cancelled.
    """
    ticket = reservations.create_reservation(
        db,
        account_id=current_user.id,
        slot_id=data.slot_id,
        seat_ids=[s.seat_id for s in data.seats],
        products=[(c.product_id, c.quantity) for c in data.combos],
        promotion_id=data.voucher_id,
        promotion_code=data.promotion_code,
        quoted_total=data.total_amount,
        quoted_final=data.final_amount,
    )
    return serialize_ticket(ticket)


# ---------------------------------------------------------------------------
# GET /bookings: current account's tickets
# ---------------------------------------------------------------------------


@router.get("/", response_model=PaginatedResponse[TicketSchema])
def list_my_bookings(
    status: Optional[TicketStatus] = Query(None, description="pending, confirmed, used or cancelled"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: Account = Depends(get_current_user),
):
    reservations.release_expired_holds(db)
    items, total = tickets.list_account_tickets(db, current_user.id, status, page, limit)
    return paginate([serialize_ticket(t) for t in items], total, page, limit)


@router.get("/{ticket_id}", response_model=TicketSchema)
def get_booking(
    ticket_id: UUID,
    db: Session = Depends(get_db),
    current_user: Account = Depends(get_current_user),
):
    reservations.release_expired_holds(db)
    return serialize_ticket(tickets.load_ticket(db, ticket_id, account_id=current_user.id))


# ---------------------------------------------------------------------------
# PATCH /bookings/{id}/cancel: give up a pending ticket
# ---------------------------------------------------------------------------


@router.patch("/{ticket_id}/cancel", response_model=BookingCancelResponse)
def cancel_booking(
    ticket_id: UUID,
    db: Session = Depends(get_db),
    current_user: Account = Depends(get_current_user),
):
    ticket = tickets.load_ticket(db, ticket_id, account_id=current_user.id)
    reservations.cancel_reservation(db, ticket, reason="cancelled by user")
    return BookingCancelResponse(
        id=ticket.id,
        tickets_code=ticket.tickets_code,
        status=ticket.status,
        message="Booking cancelled and seats released",
    )
