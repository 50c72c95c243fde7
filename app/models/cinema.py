import uuid
from sqlalchemy import Column, String, Boolean, DateTime, func, Text, Integer, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from app.db.session import Base


class Cinema(Base):
    __tablename__ = "cinemas"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    cinema_name = Column(String(255), nullable=False)
    address = Column(Text, nullable=True)
    city = Column(String(100), nullable=True, index=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    rooms = relationship("Room", back_populates="cinema", cascade="all, delete-orphan")


class Room(Base):
    __tablename__ = "rooms"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    cinema_id = Column(UUID(as_uuid=True), ForeignKey("cinemas.id"), nullable=False, index=True)
    room_name = Column(String(100), nullable=False)
    capacity = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, default=True)

    cinema = relationship("Cinema", back_populates="rooms")
    seats = relationship("Seat", back_populates="room", cascade="all, delete-orphan")
