import uuid
from sqlalchemy import Column, String, Boolean, DateTime, func, Text, DECIMAL
from sqlalchemy.dialects.postgresql import UUID
from app.db.session import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    product_name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(20), nullable=False, default="combo", index=True)  # combo, food, drink, voucher
    price = Column(DECIMAL(12, 2), nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
