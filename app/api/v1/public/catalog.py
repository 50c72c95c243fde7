from uuid import UUID
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.schemas.catalog import (
    Product as ProductSchema,
    Seat as SeatSchema,
    SeatMapResponse,
    SeatMapRow,
    SeatMapSeat,
    Slot as SlotSchema,
)
from app.schemas.common import PaginatedResponse, paginate
from app.services import inventory
from app.services.pricing import seat_price
from app.services.reservations import release_expired_holds

slots_router = APIRouter(prefix="/slots", tags=["Showtimes"])
rooms_router = APIRouter(prefix="/rooms", tags=["Showtimes"])
products_router = APIRouter(prefix="/products", tags=["Products"])


@slots_router.get("/{slot_id}", response_model=SlotSchema)
def get_slot(slot_id: UUID, db: Session = Depends(get_db)):
    return inventory.get_slot(db, slot_id)


@slots_router.get("/{slot_id}/seat-map", response_model=SeatMapResponse)
def get_seat_map(slot_id: UUID, db: Session = Depends(get_db)):
    """
    Seat grid for a showtime, grouped by row.
    Each seat carries its live status and the price it would be charged at.
    Expired holds are released first so abandoned seats show as available.
    """
    slot = inventory.get_slot(db, slot_id)
    release_expired_holds(db)

    rows = []
    available = 0
    for row in inventory.seat_map(db, slot):
        seats_out = []
        for entry in row["seats"]:
            seat = entry["seat"]
            if entry["status"] == "available":
                available += 1
            seats_out.append(
                SeatMapSeat(
                    id=seat.id,
                    number=seat.seat_number,
                    seat_type=seat.seat_type.type_name,
                    price=seat_price(slot.price, seat.seat_type.price_multiplier),
                    status=entry["status"],
                )
            )
        rows.append(SeatMapRow(label=row["label"], seats=seats_out))

    return SeatMapResponse(
        slot_id=slot.id,
        room_id=slot.room_id,
        base_price=slot.price,
        available_count=available,
        rows=rows,
    )


@rooms_router.get("/{room_id}/seats", response_model=PaginatedResponse[SeatSchema])
def list_room_seats(
    room_id: UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    seats, total = inventory.list_room_seats(db, room_id, page, limit)
    return paginate(seats, total, page, limit)


@products_router.get("/", response_model=PaginatedResponse[ProductSchema])
def list_products(
    category: Optional[str] = Query(None, description="combo, food, drink or voucher"),
    search: Optional[str] = Query(None, description="Case-insensitive match on product name"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    products, total = inventory.list_products(db, category, search, page, limit)
    return paginate(products, total, page, limit)
