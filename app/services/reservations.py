"""
Reservation writer.

A reservation is a pending ticket plus its seat claims. Everything is written in
one transaction: either the ticket, its seat and product lines and every seat
claim are committed together, or nothing is.
"""
import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import (
    BookingError,
    InvalidRequestError,
    PriceChangedError,
    PromotionAlreadyUsedError,
    PromotionInvalidError,
    ReservationExpiredError,
    SeatUnavailableError,
    TicketStateError,
)
from app.models.promotion import Promotion, PromotionUsage
from app.models.seat import SeatAvailability
from app.models.slot import Slot
from app.models.ticket import BookingSeat, PaymentStatus, Ticket, TicketDetail, TicketStatus
from app.services import inventory, pricing, promotions
from app.services.tickets import load_ticket
from app.utils.clock import as_utc, utcnow
from app.utils.codes import generate_ticket_code
from app.utils.money import round_vnd

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _merge_product_lines(lines: Iterable[Tuple[UUID, int]]) -> List[Tuple[UUID, int]]:
    merged = {}
    for product_id, quantity in lines:
        if quantity is None or quantity < 1:
            raise InvalidRequestError("Product quantity must be at least 1")
        merged[product_id] = merged.get(product_id, 0) + quantity
    return list(merged.items())


def _has_live_pending_ticket(db: Session, account_id: UUID, promotion_id: UUID, now: datetime) -> bool:
    return (
        db.query(Ticket.id)
        .filter(
            Ticket.account_id == account_id,
            Ticket.promotion_id == promotion_id,
            Ticket.status == TicketStatus.PENDING,
            Ticket.is_deleted == False,  # noqa: E712
            Ticket.expires_at > now,
        )
        .first()
        is not None
    )


def _resolve_promotion(
    db: Session,
    account_id: UUID,
    promotion_id: Optional[UUID],
    promotion_code: Optional[str],
    now: datetime,
) -> Tuple[Optional[Promotion], Optional[PromotionUsage]]:
    """Return the promotion to apply and the account's usage of it (None when it
    still has to be activated inline)."""
    if not promotion_id and not promotions.normalize_code(promotion_code):
        return None, None

    if promotions.normalize_code(promotion_code):
        promotion = promotions.find_eligible(db, promotion_code, now)
        if promotion_id and promotion.id != promotion_id:
            raise InvalidRequestError("voucher_id and promotion_code refer to different promotions")
    else:
        promotions.expire_sweep(db, now)
        promotion = promotions.get_promotion(db, promotion_id)
        promotions.check_window(promotion, now)

    usage = promotions.get_usage(db, account_id, promotion.id)
    if usage is None:
        if not promotion_code:
            raise PromotionInvalidError("This voucher has not been activated on your account")
        return promotion, None
    if usage.ticket_id is not None:
        raise PromotionAlreadyUsedError()
    if _has_live_pending_ticket(db, account_id, promotion.id, now):
        raise PromotionAlreadyUsedError("This voucher is already applied to another pending booking")
    return promotion, usage


def _check_client_quote(quote: pricing.PriceQuote, quoted_total, quoted_final) -> None:
    changed = (
        quoted_total is not None and round_vnd(quoted_total) != quote.total_amount
    ) or (
        quoted_final is not None and round_vnd(quoted_final) != quote.final_amount
    )
    if changed:
        raise PriceChangedError(
            extra={
                "total_amount": int(quote.total_amount),
                "discount_amount": int(quote.discount_amount),
                "final_amount": int(quote.final_amount),
            }
        )


def _claim_seats(db: Session, slot_id: UUID, seat_ids: Sequence[UUID], ticket_id: UUID) -> List[UUID]:
    """Claim each seat for the ticket; return the seats another request holds."""
    lost = []
    for seat_id in seat_ids:
        updated = (
            db.query(SeatAvailability)
            .filter(
                SeatAvailability.slot_id == slot_id,
                SeatAvailability.seat_id == seat_id,
                SeatAvailability.status == "available",
            )
            .update(
                {SeatAvailability.status: "booked", SeatAvailability.ticket_id: ticket_id},
                synchronize_session=False,
            )
        )
        if updated:
            continue
        exists = (
            db.query(SeatAvailability.id)
            .filter(SeatAvailability.slot_id == slot_id, SeatAvailability.seat_id == seat_id)
            .first()
        )
        if exists:
            lost.append(seat_id)
        else:
            db.add(SeatAvailability(slot_id=slot_id, seat_id=seat_id, ticket_id=ticket_id, status="booked"))
    # A unique violation here means a concurrent request inserted the same claim
    db.flush()
    return lost


def _release_claims(db: Session, ticket: Ticket) -> int:
    released = (
        db.query(SeatAvailability)
        .filter(
            SeatAvailability.ticket_id == ticket.id,
            SeatAvailability.status == "booked",
        )
        .update(
            {SeatAvailability.status: "available", SeatAvailability.ticket_id: None},
            synchronize_session=False,
        )
    )
    if released:
        db.query(Slot).filter(Slot.id == ticket.slot_id).update(
            {Slot.empty_seats: Slot.empty_seats + released},
            synchronize_session=False,
        )
    return released


def _cancel_if_pending(db: Session, ticket: Ticket, reason: str) -> bool:
    """
    Flip the ticket to cancelled/unpaid only if the row is still pending, then
    release its seats. Returns False when the row was finalized elsewhere.

    The status test runs in the UPDATE itself, so a payment confirmed by a
    concurrent callback is never overwritten by a stale in-memory ticket.
    """
    won = (
        db.query(Ticket)
        .filter(Ticket.id == ticket.id, Ticket.status == TicketStatus.PENDING)
        .update(
            {Ticket.status: TicketStatus.CANCELLED, Ticket.payment_status: PaymentStatus.UNPAID},
            synchronize_session=False,
        )
    )
    db.expire(ticket, ["status", "payment_status"])
    if not won:
        return False

    released = _release_claims(db, ticket)
    logger.info("Cancelled ticket %s (%s), released %d seat(s).", ticket.tickets_code, reason, released)
    return True


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


def create_reservation(
    db: Session,
    account_id: UUID,
    slot_id: UUID,
    seat_ids: Sequence[UUID],
    products: Iterable[Tuple[UUID, int]] = (),
    promotion_id: Optional[UUID] = None,
    promotion_code: Optional[str] = None,
    quoted_total=None,
    quoted_final=None,
    now: Optional[datetime] = None,
) -> Ticket:
    """
    Create a pending ticket holding `seat_ids` on `slot_id` for HOLD_MINUTES.

    Prices always come from the catalog. When the caller sends the totals it
    displayed, they must match the server quote or PriceChangedError is raised.
    """
    now = now or utcnow()
    release_expired_holds(db, now)

    seat_ids = list(seat_ids)
    if not seat_ids:
        raise InvalidRequestError("At least one seat must be selected")
    if len(set(seat_ids)) != len(seat_ids):
        raise InvalidRequestError("Duplicate seats in request")

    slot = inventory.get_slot(db, slot_id)

    seats_by_id = {seat.id: seat for seat in inventory.get_seats(db, seat_ids)}
    foreign = [sid for sid in seat_ids if sid not in seats_by_id or seats_by_id[sid].room_id != slot.room_id]
    if foreign:
        raise InvalidRequestError(
            "Seats do not belong to this showtime's room: " + ", ".join(str(s) for s in foreign)
        )
    seats = [seats_by_id[sid] for sid in seat_ids]

    taken = inventory.booked_seat_ids(db, slot.id, seat_ids)
    unavailable = [seat.id for seat in seats if seat.status == "broken" or seat.id in taken]
    if unavailable:
        raise SeatUnavailableError(unavailable)

    product_lines = _merge_product_lines(products)
    products_by_id = inventory.get_products(db, [pid for pid, _ in product_lines])

    promotion, usage = _resolve_promotion(db, account_id, promotion_id, promotion_code, now)

    quote = pricing.quote(
        slot.price,
        seats,
        [(products_by_id[pid], qty) for pid, qty in product_lines],
        promotion,
    )
    _check_client_quote(quote, quoted_total, quoted_final)

    try:
        if promotion is not None and usage is None:
            usage = promotions.add_activation(db, account_id, promotion, now)

        ticket = Ticket(
            account_id=account_id,
            slot_id=slot.id,
            tickets_code=generate_ticket_code(db, now),
            total_amount=quote.total_amount,
            discount_amount=quote.discount_amount,
            final_amount=quote.final_amount,
            status=TicketStatus.PENDING,
            payment_status=PaymentStatus.UNPAID,
            promotion_id=promotion.id if promotion else None,
            expires_at=now + timedelta(minutes=settings.HOLD_MINUTES),
        )
        db.add(ticket)
        db.flush()

        for line in quote.seat_lines:
            db.add(BookingSeat(ticket_id=ticket.id, seat_id=line.seat_id, slot_id=slot.id, seat_price=line.price))
        for line in quote.product_lines:
            db.add(
                TicketDetail(
                    ticket_id=ticket.id,
                    product_id=line.product_id,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    total_price=line.total_price,
                )
            )

        lost = _claim_seats(db, slot.id, seat_ids, ticket.id)
        if lost:
            raise SeatUnavailableError(lost)

        db.query(Slot).filter(Slot.id == slot.id, Slot.empty_seats >= len(seat_ids)).update(
            {Slot.empty_seats: Slot.empty_seats - len(seat_ids)},
            synchronize_session=False,
        )
        db.commit()
    except BookingError:
        db.rollback()
        raise
    except IntegrityError:
        db.rollback()
        logger.info("Seat claim conflict on slot %s for seats %s.", slot_id, seat_ids)
        raise SeatUnavailableError(seat_ids)

    logger.info(
        "Reserved ticket %s: %d seat(s), final amount %s, hold until %s.",
        ticket.tickets_code, len(seat_ids), quote.final_amount, ticket.expires_at,
    )
    return load_ticket(db, ticket.id)


def cancel_reservation(
    db: Session, ticket: Ticket, reason: str = "cancelled by user", commit: bool = True
) -> Ticket:
    """Cancel a pending ticket and give its seats back. No-op if already cancelled."""
    if ticket.status == TicketStatus.CANCELLED:
        return ticket
    if ticket.status != TicketStatus.PENDING:
        raise TicketStateError("Only pending bookings can be cancelled")

    if not _cancel_if_pending(db, ticket, reason):
        # Another transaction moved the ticket on since it was loaded
        if ticket.status != TicketStatus.CANCELLED:
            raise TicketStateError(f"Ticket is {ticket.status.value}, it cannot be cancelled")
        return ticket
    if commit:
        db.commit()
    return ticket


def release_expired_holds(db: Session, now: Optional[datetime] = None) -> int:
    """Cancel pending, unpaid tickets whose hold deadline has passed, deleted or not."""
    now = now or utcnow()
    expired = (
        db.query(Ticket)
        .filter(
            Ticket.status == TicketStatus.PENDING,
            Ticket.payment_status == PaymentStatus.UNPAID,
            Ticket.expires_at.isnot(None),
            Ticket.expires_at < now,
        )
        .all()
    )
    released = sum(1 for ticket in expired if _cancel_if_pending(db, ticket, "hold expired"))
    if expired:
        db.commit()
    if released:
        logger.info("Released %d expired hold(s).", released)
    return released


def soft_delete_ticket(db: Session, ticket_id: UUID) -> Ticket:
    """Hide a ticket from every listing. A pending ticket is cancelled first so its seats go back on sale."""
    ticket = load_ticket(db, ticket_id)
    if ticket.status == TicketStatus.PENDING:
        cancel_reservation(db, ticket, reason="deleted by admin", commit=False)
    ticket.is_deleted = True
    db.commit()
    logger.info("Soft-deleted ticket %s.", ticket.tickets_code)
    return ticket


def ensure_payable(db: Session, ticket: Ticket, now: Optional[datetime] = None) -> Ticket:
    """Reject payment for tickets that are not pending or whose hold ran out."""
    now = now or utcnow()
    if ticket.status != TicketStatus.PENDING:
        raise TicketStateError(f"Ticket is {ticket.status.value}, it cannot be paid")
    if ticket.expires_at is not None and as_utc(ticket.expires_at) <= now:
        cancel_reservation(db, ticket, reason="hold expired")
        raise ReservationExpiredError()
    return ticket
