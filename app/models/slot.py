import uuid
from sqlalchemy import Column, Boolean, DateTime, Integer, DECIMAL, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from app.db.session import Base


class Slot(Base):
    __tablename__ = "slots"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    movie_id = Column(UUID(as_uuid=True), ForeignKey("movies.id"), nullable=False, index=True)
    room_id = Column(UUID(as_uuid=True), ForeignKey("rooms.id"), nullable=False, index=True)
    show_time = Column(DateTime(timezone=True), nullable=False, index=True)
    end_time = Column(DateTime(timezone=True), nullable=True)
    price = Column(DECIMAL(12, 2), nullable=False)  # base price, multiplied per seat type
    empty_seats = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, default=True)

    # Relationships
    movie = relationship("Movie")
    room = relationship("Room")
    seat_availability = relationship("SeatAvailability", back_populates="slot", cascade="all, delete-orphan")
    tickets = relationship("Ticket", back_populates="slot")
