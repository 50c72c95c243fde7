from __future__ import annotations

from typing import Annotated, Optional, List
from pydantic import AliasChoices, BaseModel, Field, UUID4, field_validator
from decimal import Decimal
from datetime import datetime

from app.models.ticket import PaymentStatus, TicketStatus
from app.schemas.account import AccountSummary


# --- Booking: create (POST /bookings) ---

class BookingSeatIn(BaseModel):
    seat_id: UUID4
    seat_price: Optional[Decimal] = None  # display price; the server reprices every seat


class BookingComboIn(BaseModel):
    product_id: UUID4
    quantity: int = Field(1, ge=1)
    unit_price: Optional[Decimal] = None
    total_price: Optional[Decimal] = None


class BookingCreate(BaseModel):
    slot_id: UUID4 = Field(validation_alias=AliasChoices("slotId", "slot_id"))
    seats: Annotated[List[BookingSeatIn], Field(max_length=10)] = Field(
        default_factory=list,
        validation_alias=AliasChoices("seats", "selectedSeats"),
    )
    combos: List[BookingComboIn] = []
    total_amount: Optional[Decimal] = Field(None, validation_alias=AliasChoices("totalAmount", "total_amount"))
    discount_amount: Optional[Decimal] = Field(
        None, validation_alias=AliasChoices("discountAmount", "discount_amount")
    )
    final_amount: Optional[Decimal] = Field(None, validation_alias=AliasChoices("finalAmount", "final_amount"))
    voucher_id: Optional[UUID4] = None
    promotion_code: Optional[str] = None

    @field_validator("seats", mode="before")
    @classmethod
    def accept_bare_seat_ids(cls, v):
        if isinstance(v, list):
            return [{"seat_id": s} if isinstance(s, str) else s for s in v]
        return v

    @field_validator("voucher_id", "promotion_code", mode="before")
    @classmethod
    def parse_empty_str_to_none(cls, v):
        if v == "":
            return None
        return v


# --- Booking: response objects ---

class TicketSeat(BaseModel):
    seat_id: UUID4
    seat_row: str
    seat_number: int
    seat_type: Optional[str] = None
    seat_price: Decimal


class TicketProduct(BaseModel):
    product_id: UUID4
    product_name: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal


class TicketSlot(BaseModel):
    id: UUID4
    show_time: datetime
    end_time: Optional[datetime] = None
    movie_title: Optional[str] = None
    room_name: Optional[str] = None
    cinema_name: Optional[str] = None


class TicketPayment(BaseModel):
    txn_ref: str
    status: str
    response_code: Optional[str] = None
    transaction_no: Optional[str] = None
    bank_code: Optional[str] = None
    pay_date: Optional[str] = None

    class Config:
        from_attributes = True


# Ticket: full response (POST /bookings, GET /bookings/{id}, admin list)
class Ticket(BaseModel):
    id: UUID4
    tickets_code: str
    account_id: UUID4
    slot_id: UUID4
    total_amount: Decimal
    discount_amount: Decimal
    final_amount: Decimal
    status: TicketStatus
    payment_status: PaymentStatus
    promotion_id: Optional[UUID4] = None
    promotion_code: Optional[str] = None
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    account: Optional[AccountSummary] = None
    slot: Optional[TicketSlot] = None
    seats: List[TicketSeat] = []
    products: List[TicketProduct] = []
    payment: Optional[TicketPayment] = None


class BookingCancelResponse(BaseModel):
    id: UUID4
    tickets_code: str
    status: TicketStatus
    message: str
