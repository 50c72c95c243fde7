import uuid
from sqlalchemy import Column, String, DateTime, func, DECIMAL, ForeignKey, JSON
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from app.db.session import Base


class Payment(Base):
    __tablename__ = "payments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    ticket_id = Column(UUID(as_uuid=True), ForeignKey("tickets.id"), unique=True, nullable=False)
    txn_ref = Column(String(100), unique=True, nullable=False, index=True)  # BOOKING_<ticket id>
    amount = Column(DECIMAL(12, 2), nullable=False)
    status = Column(String(20), nullable=False, default="created")  # created, paid, failed
    response_code = Column(String(4), nullable=True)
    transaction_no = Column(String(50), nullable=True)  # gateway-side transaction number
    bank_code = Column(String(20), nullable=True)
    create_date = Column(String(14), nullable=True)  # vnp_CreateDate of the redirect, needed by querydr
    pay_date = Column(String(14), nullable=True)  # yyyyMMddHHmmss as sent by the gateway
    raw_params = Column(JSON, nullable=True)  # last verified callback
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)

    ticket = relationship("Ticket", back_populates="payment")
