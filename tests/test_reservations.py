import uuid
from datetime import timedelta
from decimal import Decimal

import pytest

from app.core.exceptions import (
    InvalidRequestError,
    MixedSeatTypesError,
    PriceChangedError,
    PromotionAlreadyUsedError,
    PromotionInvalidError,
    ReservationExpiredError,
    SeatUnavailableError,
    TicketStateError,
)
from app.models import BookingSeat, PromotionUsage, SeatAvailability, Ticket, TicketDetail
from app.models.ticket import PaymentStatus, TicketStatus
from app.services import inventory, reconciliation
from app.services.reservations import (
    cancel_reservation,
    create_reservation,
    ensure_payable,
    release_expired_holds,
    soft_delete_ticket,
)
from app.utils.clock import as_utc, utcnow


def _booked(db, slot_id):
    return {
        row.seat_id
        for row in db.query(SeatAvailability).filter(
            SeatAvailability.slot_id == slot_id, SeatAvailability.status == "booked"
        )
    }


def test_reservation_creates_pending_ticket_with_server_prices(db, seed):
    before = utcnow()
    ticket = create_reservation(
        db,
        seed.user.id,
        seed.slot.id,
        [seed.seats["B1"].id],
        products=[(seed.combo.id, 2)],
        promotion_code="welcome10",
        quoted_total=Decimal("178000"),
        quoted_final=Decimal("163000"),
    )

    assert ticket.status == TicketStatus.PENDING
    assert ticket.payment_status == PaymentStatus.UNPAID
    assert ticket.tickets_code.startswith("TK") and len(ticket.tickets_code) == 18
    assert ticket.total_amount == Decimal("178000")
    assert ticket.discount_amount == Decimal("15000")
    assert ticket.final_amount == Decimal("163000")
    assert ticket.promotion_id == seed.promotions.welcome.id
    assert as_utc(ticket.expires_at) >= before + timedelta(minutes=5)

    assert [bs.seat_price for bs in ticket.seats] == [Decimal("108000")]
    assert [(d.quantity, d.unit_price, d.total_price) for d in ticket.details] == [
        (2, Decimal("35000"), Decimal("70000"))
    ]
    assert _booked(db, seed.slot.id) == {seed.seats["B1"].id}
    db.refresh(seed.slot)
    assert seed.slot.empty_seats == 9

    usage = db.query(PromotionUsage).one()
    assert usage.account_id == seed.user.id
    assert usage.ticket_id is None


def test_conflicting_reservation_fails_without_partial_rows(db, seed):
    create_reservation(db, seed.user.id, seed.slot.id, [seed.seats["B1"].id])

    with pytest.raises(SeatUnavailableError) as exc_info:
        create_reservation(db, seed.other.id, seed.slot.id, [seed.seats["B2"].id, seed.seats["B1"].id])

    assert exc_info.value.to_dict()["unavailable_seat_ids"] == [str(seed.seats["B1"].id)]
    assert db.query(Ticket).filter(Ticket.account_id == seed.other.id).count() == 0
    assert db.query(BookingSeat).count() == 1
    assert _booked(db, seed.slot.id) == {seed.seats["B1"].id}


def test_claim_row_taken_between_check_and_write_is_rejected(db, seed, monkeypatch):
    # Simulates a concurrent request committing its claim after our availability read
    monkeypatch.setattr(inventory, "booked_seat_ids", lambda *args, **kwargs: set())
    create_reservation(db, seed.user.id, seed.slot.id, [seed.seats["A1"].id])

    with pytest.raises(SeatUnavailableError):
        create_reservation(db, seed.other.id, seed.slot.id, [seed.seats["A1"].id, seed.seats["A2"].id])

    assert db.query(Ticket).count() == 1
    assert db.query(TicketDetail).count() == 0
    assert _booked(db, seed.slot.id) == {seed.seats["A1"].id}


def test_released_seats_can_be_booked_again(db, seed):
    first = create_reservation(db, seed.user.id, seed.slot.id, [seed.seats["A1"].id, seed.seats["A2"].id])
    cancel_reservation(db, first)

    assert first.status == TicketStatus.CANCELLED
    assert _booked(db, seed.slot.id) == set()
    db.refresh(seed.slot)
    assert seed.slot.empty_seats == 10

    second = create_reservation(db, seed.other.id, seed.slot.id, [seed.seats["A1"].id])
    assert second.status == TicketStatus.PENDING
    assert _booked(db, seed.slot.id) == {seed.seats["A1"].id}


def test_cancel_is_idempotent_and_refuses_confirmed_tickets(db, seed):
    ticket = create_reservation(db, seed.user.id, seed.slot.id, [seed.seats["A1"].id])
    cancel_reservation(db, ticket)
    cancel_reservation(db, ticket)
    db.refresh(seed.slot)
    assert seed.slot.empty_seats == 10

    confirmed = create_reservation(db, seed.user.id, seed.slot.id, [seed.seats["A2"].id])
    confirmed.status = TicketStatus.CONFIRMED
    db.commit()
    with pytest.raises(TicketStateError):
        cancel_reservation(db, confirmed)


def test_mixed_seat_types_write_nothing(db, seed):
    with pytest.raises(MixedSeatTypesError):
        create_reservation(db, seed.user.id, seed.slot.id, [seed.seats["A1"].id, seed.seats["B1"].id])
    assert db.query(Ticket).count() == 0
    assert _booked(db, seed.slot.id) == set()


def test_broken_seat_is_unavailable(db, seed):
    with pytest.raises(SeatUnavailableError) as exc_info:
        create_reservation(db, seed.user.id, seed.slot.id, [seed.seats["C1"].id])
    assert exc_info.value.extra["unavailable_seat_ids"] == [str(seed.seats["C1"].id)]


@pytest.mark.parametrize("seat_key", ["X1", None])
def test_seats_outside_the_room_are_rejected(db, seed, seat_key):
    seat_id = seed.seats[seat_key].id if seat_key else uuid.uuid4()
    with pytest.raises(InvalidRequestError):
        create_reservation(db, seed.user.id, seed.slot.id, [seat_id])


def test_empty_or_duplicate_seat_lists_are_rejected(db, seed):
    with pytest.raises(InvalidRequestError):
        create_reservation(db, seed.user.id, seed.slot.id, [])
    with pytest.raises(InvalidRequestError):
        create_reservation(db, seed.user.id, seed.slot.id, [seed.seats["A1"].id, seed.seats["A1"].id])


def test_inactive_product_is_rejected(db, seed):
    with pytest.raises(InvalidRequestError):
        create_reservation(
            db, seed.user.id, seed.slot.id, [seed.seats["A1"].id], products=[(seed.retired.id, 1)]
        )


def test_stale_client_quote_is_rejected_with_server_amounts(db, seed):
    with pytest.raises(PriceChangedError) as exc_info:
        create_reservation(
            db,
            seed.user.id,
            seed.slot.id,
            [seed.seats["B1"].id],
            quoted_total=Decimal("100000"),
        )

    assert exc_info.value.to_dict()["total_amount"] == 108000
    assert exc_info.value.to_dict()["final_amount"] == 108000
    assert db.query(Ticket).count() == 0


def test_voucher_must_be_activated_before_use_by_id(db, seed):
    with pytest.raises(PromotionInvalidError):
        create_reservation(
            db, seed.user.id, seed.slot.id, [seed.seats["A1"].id], promotion_id=seed.promotions.fixed.id
        )


def test_voucher_cannot_back_two_pending_tickets(db, seed):
    create_reservation(db, seed.user.id, seed.slot.id, [seed.seats["A1"].id], promotion_code="FIXED50K")

    with pytest.raises(PromotionAlreadyUsedError):
        create_reservation(
            db, seed.user.id, seed.slot.id, [seed.seats["A2"].id], promotion_id=seed.promotions.fixed.id
        )
    assert db.query(Ticket).count() == 1


def test_expired_holds_are_released(db, seed):
    past = utcnow() - timedelta(minutes=10)
    ticket = create_reservation(db, seed.user.id, seed.slot.id, [seed.seats["A1"].id], now=past)

    assert release_expired_holds(db) == 1

    db.refresh(ticket)
    assert ticket.status == TicketStatus.CANCELLED
    assert ticket.payment_status == PaymentStatus.UNPAID
    assert _booked(db, seed.slot.id) == set()
    assert release_expired_holds(db) == 0


def test_paying_after_the_hold_expired_is_refused(db, seed):
    past = utcnow() - timedelta(minutes=10)
    ticket = create_reservation(db, seed.user.id, seed.slot.id, [seed.seats["A1"].id], now=past)

    with pytest.raises(ReservationExpiredError):
        ensure_payable(db, ticket)

    db.refresh(ticket)
    assert ticket.status == TicketStatus.CANCELLED


def test_stale_cancel_never_overwrites_a_confirmed_payment(db, seed, second_session, gateway, make_callback):
    past = utcnow() - timedelta(minutes=10)
    ticket = create_reservation(db, seed.user.id, seed.slot.id, [seed.seats["A1"].id], now=past)
    # The sweeping request read the ticket while it was still pending
    stale = second_session.get(Ticket, ticket.id)
    assert stale.status == TicketStatus.PENDING

    result = reconciliation.reconcile_callback(db, make_callback(ticket), gateway)
    assert result.outcome == reconciliation.CONFIRMED

    with pytest.raises(TicketStateError):
        cancel_reservation(second_session, stale, reason="hold expired")
    second_session.rollback()

    db.refresh(ticket)
    assert ticket.status == TicketStatus.CONFIRMED
    assert ticket.payment_status == PaymentStatus.PAID
    assert _booked(db, seed.slot.id) == {seed.seats["A1"].id}
    assert release_expired_holds(second_session) == 0


def test_soft_deleted_pending_ticket_gives_its_seats_back(db, seed):
    past = utcnow() - timedelta(minutes=10)
    ticket = create_reservation(db, seed.user.id, seed.slot.id, [seed.seats["A1"].id], now=past)

    soft_delete_ticket(db, ticket.id)

    db.refresh(ticket)
    assert ticket.is_deleted
    assert ticket.status == TicketStatus.CANCELLED
    assert _booked(db, seed.slot.id) == set()
    db.refresh(seed.slot)
    assert seed.slot.empty_seats == 10
    assert create_reservation(db, seed.other.id, seed.slot.id, [seed.seats["A1"].id]).status == TicketStatus.PENDING


def test_hold_sweep_also_covers_hidden_tickets(db, seed):
    past = utcnow() - timedelta(minutes=10)
    ticket = create_reservation(db, seed.user.id, seed.slot.id, [seed.seats["A1"].id], now=past)
    ticket.is_deleted = True
    db.commit()

    assert release_expired_holds(db) == 1
    assert _booked(db, seed.slot.id) == set()
