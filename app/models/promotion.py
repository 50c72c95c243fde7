import uuid
import enum
from sqlalchemy import (
    Column, String, Boolean, DateTime, func, Text, DECIMAL, Integer, ForeignKey,
    UniqueConstraint, CheckConstraint, Enum as SAEnum,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from app.db.session import Base
from app.models.ticket import _enum_values


class DiscountType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"


class PromotionStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    EXPIRED = "expired"


class Promotion(Base):
    __tablename__ = "promotions"
    __table_args__ = (
        CheckConstraint("usage_per_user = 1", name="ck_promotions_usage_per_user"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    promotion_code = Column(String(64), unique=True, nullable=False, index=True)  # stored upper-case
    promotion_name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    discount_type = Column(
        SAEnum(DiscountType, native_enum=False, values_callable=_enum_values, length=20),
        nullable=False,
    )
    discount_value = Column(DECIMAL(12, 2), nullable=False)
    max_discount_amount = Column(DECIMAL(12, 2), nullable=True)  # percentage only
    min_order_amount = Column(DECIMAL(12, 2), nullable=False, default=0)
    usage_limit = Column(Integer, nullable=True)  # NULL = unlimited
    usage_count = Column(Integer, nullable=False, default=0)
    usage_per_user = Column(Integer, nullable=False, default=1)  # always 1: one usage row per account
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False, index=True)
    status = Column(
        SAEnum(PromotionStatus, native_enum=False, values_callable=_enum_values, length=20),
        nullable=False,
        default=PromotionStatus.ACTIVE,
        index=True,
    )
    is_deleted = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)

    usages = relationship("PromotionUsage", back_populates="promotion")


class PromotionUsage(Base):
    """Activation of a promotion by an account; redeemed once linked to a paid ticket."""

    __tablename__ = "promotion_usages"
    __table_args__ = (
        UniqueConstraint("account_id", "promotion_id", name="uq_promotion_usages_account_promotion"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    account_id = Column(UUID(as_uuid=True), ForeignKey("accounts.id"), nullable=False, index=True)
    promotion_id = Column(UUID(as_uuid=True), ForeignKey("promotions.id"), nullable=False, index=True)
    ticket_id = Column(UUID(as_uuid=True), ForeignKey("tickets.id"), nullable=True)
    discount_amount = Column(DECIMAL(12, 2), nullable=False, default=0)
    used_at = Column(DateTime(timezone=True), nullable=False)
    redeemed_at = Column(DateTime(timezone=True), nullable=True)

    account = relationship("Account")
    promotion = relationship("Promotion", back_populates="usages")
    ticket = relationship("Ticket")

    @property
    def state(self) -> str:
        return "redeemed" if self.ticket_id is not None else "activated"
