from typing import Optional, List
from pydantic import BaseModel, UUID4
from decimal import Decimal
from datetime import datetime


class MovieSummary(BaseModel):
    id: UUID4
    title: str
    duration_minutes: Optional[int] = None
    poster_url: Optional[str] = None

    class Config:
        from_attributes = True


class CinemaSummary(BaseModel):
    id: UUID4
    cinema_name: str
    address: Optional[str] = None
    city: Optional[str] = None

    class Config:
        from_attributes = True


class RoomSummary(BaseModel):
    id: UUID4
    room_name: str
    capacity: int
    cinema: Optional[CinemaSummary] = None

    class Config:
        from_attributes = True


# Slot: GET /slots/{id}
class Slot(BaseModel):
    id: UUID4
    movie_id: UUID4
    room_id: UUID4
    show_time: datetime
    end_time: Optional[datetime] = None
    price: Decimal
    empty_seats: int
    is_active: bool
    movie: Optional[MovieSummary] = None
    room: Optional[RoomSummary] = None

    class Config:
        from_attributes = True


class SeatType(BaseModel):
    id: UUID4
    type_name: str
    price_multiplier: Decimal

    class Config:
        from_attributes = True


# Seat: GET /rooms/{id}/seats
class Seat(BaseModel):
    id: UUID4
    room_id: UUID4
    seat_row: str
    seat_number: int
    status: str
    seat_type: SeatType

    class Config:
        from_attributes = True


# --- Seat map (GET /slots/{id}/seat-map) ---

class SeatMapSeat(BaseModel):
    id: UUID4
    number: int
    seat_type: str
    price: Decimal
    status: str  # available, booked, broken


class SeatMapRow(BaseModel):
    label: str
    seats: List[SeatMapSeat]


class SeatMapResponse(BaseModel):
    slot_id: UUID4
    room_id: UUID4
    base_price: Decimal
    available_count: int
    rows: List[SeatMapRow]


# Product: GET /products
class Product(BaseModel):
    id: UUID4
    product_name: str
    description: Optional[str] = None
    category: str
    price: Decimal

    class Config:
        from_attributes = True
