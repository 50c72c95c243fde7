"""
Voucher / promotion ledger.

A promotion is activated once per account (a PromotionUsage row with no ticket)
and redeemed when a paid ticket is linked to that usage. Promotions past their
end date are flipped to `expired` lazily, before any eligibility read.
"""
import logging
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from app.core.exceptions import (
    PromotionAlreadyUsedError,
    PromotionExpiredError,
    PromotionInvalidError,
    PromotionUsageLimitError,
)
from app.models.account import Account
from app.models.promotion import Promotion, PromotionStatus, PromotionUsage
from app.models.ticket import Ticket
from app.utils.clock import as_utc, utcnow
from app.utils.money import D, ZERO, round_vnd

logger = logging.getLogger(__name__)


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def expire_sweep(db: Session, now: Optional[datetime] = None) -> int:
    """Mark active promotions whose end date has passed as expired."""
    now = now or utcnow()
    count = (
        db.query(Promotion)
        .filter(
            Promotion.status == PromotionStatus.ACTIVE,
            Promotion.is_deleted == False,  # noqa: E712
            Promotion.end_date < now,
        )
        .update(
            {Promotion.status: PromotionStatus.EXPIRED, Promotion.updated_at: now},
            synchronize_session=False,
        )
    )
    if count:
        db.commit()
        logger.info("Expired %d promotion(s).", count)
    return count


def check_window(promotion: Promotion, now: datetime) -> None:
    if promotion.status == PromotionStatus.EXPIRED or as_utc(promotion.end_date) < now:
        raise PromotionExpiredError()
    if promotion.status != PromotionStatus.ACTIVE:
        raise PromotionInvalidError()
    if as_utc(promotion.start_date) > now:
        raise PromotionInvalidError("This promotion has not started yet")


def find_eligible(db: Session, code: str, now: Optional[datetime] = None) -> Promotion:
    code = normalize_code(code)
    if not code:
        raise PromotionInvalidError("Promotion code is required")

    now = now or utcnow()
    expire_sweep(db, now)

    promotion = (
        db.query(Promotion)
        .filter(
            func.upper(Promotion.promotion_code) == code,
            Promotion.is_deleted == False,  # noqa: E712
        )
        .first()
    )
    if not promotion:
        raise PromotionInvalidError()
    check_window(promotion, now)
    return promotion


def get_promotion(db: Session, promotion_id: UUID) -> Promotion:
    promotion = (
        db.query(Promotion)
        .filter(Promotion.id == promotion_id, Promotion.is_deleted == False)  # noqa: E712
        .first()
    )
    if not promotion:
        raise PromotionInvalidError("Promotion not found")
    return promotion


def get_usage(db: Session, account_id: UUID, promotion_id: UUID) -> Optional[PromotionUsage]:
    return (
        db.query(PromotionUsage)
        .filter(
            PromotionUsage.account_id == account_id,
            PromotionUsage.promotion_id == promotion_id,
        )
        .first()
    )


def add_activation(
    db: Session, account_id: UUID, promotion: Promotion, now: datetime
) -> PromotionUsage:
    """Create the usage row and count it against the limit. Flushes, never commits."""
    if get_usage(db, account_id, promotion.id):
        raise PromotionAlreadyUsedError()

    # Conditional increment: only succeeds while the limit has room
    query = db.query(Promotion).filter(Promotion.id == promotion.id)
    if promotion.usage_limit is not None:
        query = query.filter(Promotion.usage_count < Promotion.usage_limit)
    updated = query.update(
        {Promotion.usage_count: Promotion.usage_count + 1},
        synchronize_session=False,
    )
    if not updated:
        raise PromotionUsageLimitError()
    db.expire(promotion, ["usage_count"])

    usage = PromotionUsage(
        account_id=account_id,
        promotion_id=promotion.id,
        discount_amount=promotion.discount_value,
        used_at=now,
    )
    db.add(usage)
    try:
        db.flush()
    except IntegrityError:
        # Concurrent activation by the same account won the unique constraint
        db.rollback()
        raise PromotionAlreadyUsedError()
    return usage


def activate(db: Session, account_id: UUID, code: str, now: Optional[datetime] = None) -> PromotionUsage:
    now = now or utcnow()
    promotion = find_eligible(db, code, now)
    usage = add_activation(db, account_id, promotion, now)
    db.commit()
    db.refresh(usage)
    logger.info("Account %s activated promotion %s.", account_id, promotion.promotion_code)
    return usage


def redeem(
    db: Session, usage: PromotionUsage, ticket: Ticket, now: Optional[datetime] = None
) -> PromotionUsage:
    """Link an activated usage to a paid ticket. Caller commits."""
    if usage.ticket_id is not None:
        if usage.ticket_id == ticket.id:
            return usage
        raise PromotionAlreadyUsedError()
    usage.ticket_id = ticket.id
    usage.discount_amount = ticket.discount_amount
    usage.redeemed_at = now or utcnow()
    return usage


def list_account_vouchers(
    db: Session, account_id: UUID, now: Optional[datetime] = None
) -> List[PromotionUsage]:
    now = now or utcnow()
    expire_sweep(db, now)
    return (
        db.query(PromotionUsage)
        .join(Promotion, Promotion.id == PromotionUsage.promotion_id)
        .options(joinedload(PromotionUsage.promotion))
        .filter(
            PromotionUsage.account_id == account_id,
            Promotion.is_deleted == False,  # noqa: E712
            Promotion.end_date >= now,
        )
        .order_by(PromotionUsage.used_at.desc())
        .all()
    )


def usage_stats(db: Session, promotion_id: UUID, now: Optional[datetime] = None) -> dict:
    """Redemption statistics for one promotion. Activations that never paid are not counted."""
    now = now or utcnow()
    expire_sweep(db, now)
    promotion = get_promotion(db, promotion_id)

    redeemed = db.query(PromotionUsage).filter(
        PromotionUsage.promotion_id == promotion.id,
        PromotionUsage.ticket_id.isnot(None),
    )

    total_usage = redeemed.count()
    total_discount = D(
        redeemed.with_entities(func.coalesce(func.sum(PromotionUsage.discount_amount), 0)).scalar()
    )
    unique_users = (
        redeemed.with_entities(func.count(func.distinct(PromotionUsage.account_id))).scalar() or 0
    )
    average_discount = round_vnd(total_discount / total_usage) if total_usage else ZERO

    since = now - timedelta(days=7)
    by_day: "OrderedDict[str, dict]" = OrderedDict()
    recent = (
        redeemed.filter(PromotionUsage.redeemed_at >= since)
        .order_by(PromotionUsage.redeemed_at)
        .all()
    )
    for usage in recent:
        day = as_utc(usage.redeemed_at).date().isoformat()
        bucket = by_day.setdefault(day, {"date": day, "count": 0, "discount": ZERO})
        bucket["count"] += 1
        bucket["discount"] += D(usage.discount_amount)

    top_rows = (
        redeemed.join(Account, Account.id == PromotionUsage.account_id)
        .with_entities(
            PromotionUsage.account_id,
            Account.email,
            Account.full_name,
            func.count(PromotionUsage.id).label("usage_count"),
            func.coalesce(func.sum(PromotionUsage.discount_amount), 0).label("total_discount"),
        )
        .group_by(PromotionUsage.account_id, Account.email, Account.full_name)
        .order_by(func.count(PromotionUsage.id).desc())
        .limit(10)
        .all()
    )
    top_users = [
        {
            "account_id": row.account_id,
            "email": row.email,
            "full_name": row.full_name,
            "usage_count": row.usage_count,
            "total_discount": D(row.total_discount),
        }
        for row in top_rows
    ]

    return {
        "promotion_id": promotion.id,
        "promotion_code": promotion.promotion_code,
        "status": promotion.status,
        "usage_count": promotion.usage_count,
        "usage_limit": promotion.usage_limit,
        "total_usage": total_usage,
        "total_discount": total_discount,
        "unique_users": unique_users,
        "average_discount": average_discount,
        "usage_by_day": list(by_day.values()),
        "top_users": top_users,
    }


def list_activations(
    db: Session, promotion_id: UUID, page: int = 1, limit: int = 10, now: Optional[datetime] = None
) -> Tuple[List[PromotionUsage], int]:
    """Usages that were activated but not yet redeemed."""
    expire_sweep(db, now or utcnow())
    promotion = get_promotion(db, promotion_id)
    query = (
        db.query(PromotionUsage)
        .options(joinedload(PromotionUsage.account))
        .filter(
            PromotionUsage.promotion_id == promotion.id,
            PromotionUsage.ticket_id.is_(None),
        )
    )
    total = query.count()
    usages = (
        query.order_by(PromotionUsage.used_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return usages, total
