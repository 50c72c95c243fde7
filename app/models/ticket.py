import uuid
import enum
from sqlalchemy import Column, String, Boolean, DateTime, func, DECIMAL, Integer, ForeignKey, Enum as SAEnum
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from app.db.session import Base


class TicketStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    USED = "used"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    UNPAID = "unpaid"
    PAID = "paid"
    REFUNDED = "refunded"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Ticket(Base):
    __tablename__ = "tickets"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    account_id = Column(UUID(as_uuid=True), ForeignKey("accounts.id"), nullable=False, index=True)
    slot_id = Column(UUID(as_uuid=True), ForeignKey("slots.id"), nullable=False, index=True)
    tickets_code = Column(String(32), unique=True, nullable=False, index=True)
    total_amount = Column(DECIMAL(12, 2), nullable=False)
    discount_amount = Column(DECIMAL(12, 2), nullable=False, default=0)
    final_amount = Column(DECIMAL(12, 2), nullable=False)
    payment_status = Column(
        SAEnum(PaymentStatus, native_enum=False, values_callable=_enum_values, length=20),
        nullable=False,
        default=PaymentStatus.UNPAID,
        index=True,
    )
    status = Column(
        SAEnum(TicketStatus, native_enum=False, values_callable=_enum_values, length=20),
        nullable=False,
        default=TicketStatus.PENDING,
        index=True,
    )
    promotion_id = Column(UUID(as_uuid=True), ForeignKey("promotions.id"), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True, index=True)  # hold deadline while pending
    is_deleted = Column(Boolean, default=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)

    # Relationships
    account = relationship("Account")
    slot = relationship("Slot", back_populates="tickets")
    promotion = relationship("Promotion")
    seats = relationship("BookingSeat", back_populates="ticket", cascade="all, delete-orphan")
    details = relationship("TicketDetail", back_populates="ticket", cascade="all, delete-orphan")
    payment = relationship("Payment", back_populates="ticket", uselist=False)

    @property
    def is_terminal(self) -> bool:
        return self.status != TicketStatus.PENDING


class BookingSeat(Base):
    __tablename__ = "booking_seats"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    ticket_id = Column(UUID(as_uuid=True), ForeignKey("tickets.id"), nullable=False, index=True)
    seat_id = Column(UUID(as_uuid=True), ForeignKey("seats.id"), nullable=False)
    slot_id = Column(UUID(as_uuid=True), ForeignKey("slots.id"), nullable=False)
    seat_price = Column(DECIMAL(12, 2), nullable=False)  # snapshot at booking time

    ticket = relationship("Ticket", back_populates="seats")
    seat = relationship("Seat")


class TicketDetail(Base):
    __tablename__ = "ticket_details"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    ticket_id = Column(UUID(as_uuid=True), ForeignKey("tickets.id"), nullable=False, index=True)
    product_id = Column(UUID(as_uuid=True), ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(DECIMAL(12, 2), nullable=False)
    total_price = Column(DECIMAL(12, 2), nullable=False)

    ticket = relationship("Ticket", back_populates="details")
    product = relationship("Product")
