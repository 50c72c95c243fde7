import uuid
from sqlalchemy import Column, String, Boolean, DateTime, func, Text, Integer
from sqlalchemy.dialects.postgresql import UUID
from app.db.session import Base


class Movie(Base):
    __tablename__ = "movies"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String(255), nullable=False)
    duration_minutes = Column(Integer, nullable=True)
    poster_url = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
