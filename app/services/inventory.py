from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.orm import Session, joinedload

from app.core.exceptions import InvalidRequestError, SlotNotFoundError
from app.models.cinema import Room
from app.models.product import Product
from app.models.seat import Seat, SeatAvailability
from app.models.slot import Slot


def get_slot(db: Session, slot_id: UUID, active_only: bool = True) -> Slot:
    """Load a slot with movie, room and cinema; raise when missing."""
    query = (
        db.query(Slot)
        .options(
            joinedload(Slot.movie),
            joinedload(Slot.room).joinedload(Room.cinema),
        )
        .filter(Slot.id == slot_id)
    )
    if active_only:
        query = query.filter(Slot.is_active == True)  # noqa: E712
    slot = query.first()
    if not slot:
        raise SlotNotFoundError()
    return slot


def list_room_seats(
    db: Session, room_id: UUID, page: int = 1, limit: int = 100
) -> Tuple[List[Seat], int]:
    query = (
        db.query(Seat)
        .options(joinedload(Seat.seat_type))
        .filter(Seat.room_id == room_id)
        .order_by(Seat.seat_row, Seat.seat_number)
    )
    total = query.count()
    seats = query.offset((page - 1) * limit).limit(limit).all()
    return seats, total


def get_seats(db: Session, seat_ids: Iterable[UUID]) -> List[Seat]:
    seat_ids = list(seat_ids)
    return (
        db.query(Seat)
        .options(joinedload(Seat.seat_type))
        .filter(Seat.id.in_(seat_ids))
        .all()
    )


def booked_seat_ids(db: Session, slot_id: UUID, seat_ids: Optional[Iterable[UUID]] = None) -> set:
    query = db.query(SeatAvailability.seat_id).filter(
        SeatAvailability.slot_id == slot_id,
        SeatAvailability.status == "booked",
    )
    if seat_ids is not None:
        query = query.filter(SeatAvailability.seat_id.in_(list(seat_ids)))
    return {row.seat_id for row in query.all()}


def seat_map(db: Session, slot: Slot) -> List[dict]:
    """Seats of the slot's room grouped by row, each with its live status."""
    seats, _ = list_room_seats(db, slot.room_id, page=1, limit=10_000)
    booked = booked_seat_ids(db, slot.id)

    rows: Dict[str, dict] = {}
    for seat in seats:
        if seat.status == "broken":
            status = "broken"
        elif seat.id in booked:
            status = "booked"
        else:
            status = "available"
        row = rows.setdefault(seat.seat_row, {"label": seat.seat_row, "seats": []})
        row["seats"].append({"seat": seat, "status": status})
    return list(rows.values())


def get_products(db: Session, product_ids: Iterable[UUID]) -> Dict[UUID, Product]:
    product_ids = list(product_ids)
    if not product_ids:
        return {}
    products = (
        db.query(Product)
        .filter(Product.id.in_(product_ids), Product.is_active == True)  # noqa: E712
        .all()
    )
    found = {p.id: p for p in products}
    missing = [str(pid) for pid in product_ids if pid not in found]
    if missing:
        raise InvalidRequestError(f"Products not found or unavailable: {', '.join(missing)}")
    return found


def list_products(
    db: Session,
    category: Optional[str] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[Product], int]:
    query = db.query(Product).filter(Product.is_active == True)  # noqa: E712
    if category:
        query = query.filter(Product.category == category)
    if search:
        query = query.filter(Product.product_name.ilike(f"%{search}%"))
    total = query.count()
    products = (
        query.order_by(Product.product_name)
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return products, total
