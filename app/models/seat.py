import uuid
from sqlalchemy import Column, String, Integer, DECIMAL, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from app.db.session import Base


class SeatType(Base):
    __tablename__ = "seat_types"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    type_name = Column(String(50), nullable=False, unique=True)  # standard, vip, couple
    price_multiplier = Column(DECIMAL(4, 2), nullable=False, default=1)


class Seat(Base):
    __tablename__ = "seats"
    __table_args__ = (
        UniqueConstraint("room_id", "seat_row", "seat_number", name="uq_seats_room_position"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    room_id = Column(UUID(as_uuid=True), ForeignKey("rooms.id"), nullable=False, index=True)
    seat_type_id = Column(UUID(as_uuid=True), ForeignKey("seat_types.id"), nullable=False)
    seat_row = Column(String(5), nullable=False)
    seat_number = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default="active")  # active, broken

    room = relationship("Room", back_populates="seats")
    seat_type = relationship("SeatType")
    availabilities = relationship("SeatAvailability", back_populates="seat", cascade="all, delete-orphan")


class SeatAvailability(Base):
    """Per-slot claim on a seat. At most one row per (slot, seat)."""

    __tablename__ = "seat_availability"
    __table_args__ = (
        UniqueConstraint("slot_id", "seat_id", name="uq_seat_availability_slot_seat"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    slot_id = Column(UUID(as_uuid=True), ForeignKey("slots.id"), nullable=False, index=True)
    seat_id = Column(UUID(as_uuid=True), ForeignKey("seats.id"), nullable=False, index=True)
    ticket_id = Column(UUID(as_uuid=True), ForeignKey("tickets.id"), nullable=True, index=True)
    status = Column(String(20), nullable=False, default="available", index=True)  # available, booked

    slot = relationship("Slot", back_populates="seat_availability")
    seat = relationship("Seat", back_populates="availabilities")
    ticket = relationship("Ticket")
