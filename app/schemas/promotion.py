from typing import Optional, List
from pydantic import BaseModel, Field, UUID4
from decimal import Decimal
from datetime import datetime

from app.models.promotion import DiscountType, PromotionStatus
from app.schemas.account import AccountSummary


# POST /vouchers/activate
class VoucherActivateRequest(BaseModel):
    promotion_code: str = Field(min_length=1, max_length=64)


class PromotionSummary(BaseModel):
    id: UUID4
    promotion_code: str
    promotion_name: str
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: Decimal
    max_discount_amount: Optional[Decimal] = None
    min_order_amount: Decimal
    start_date: datetime
    end_date: datetime
    status: PromotionStatus

    class Config:
        from_attributes = True


# A promotion as seen from the account that activated it
class Voucher(BaseModel):
    id: UUID4
    promotion_id: UUID4
    ticket_id: Optional[UUID4] = None
    state: str  # activated, redeemed
    discount_amount: Decimal
    used_at: datetime
    redeemed_at: Optional[datetime] = None
    promotion: PromotionSummary

    class Config:
        from_attributes = True


# --- Admin: GET /admin/promotions/{id}/stats ---

class DailyUsage(BaseModel):
    date: str
    count: int
    discount: Decimal


class TopUser(BaseModel):
    account_id: UUID4
    email: str
    full_name: str
    usage_count: int
    total_discount: Decimal


class PromotionStats(BaseModel):
    promotion_id: UUID4
    promotion_code: str
    status: PromotionStatus
    usage_count: int  # activations counted against the limit
    usage_limit: Optional[int] = None
    total_usage: int  # redeemed usages only
    total_discount: Decimal
    unique_users: int
    average_discount: Decimal
    usage_by_day: List[DailyUsage]
    top_users: List[TopUser]


# Admin: GET /admin/promotions/{id}/activations
class Activation(BaseModel):
    id: UUID4
    account: AccountSummary
    discount_amount: Decimal
    used_at: datetime

    class Config:
        from_attributes = True
