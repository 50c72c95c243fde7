from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import get_current_admin_user
from app.models.account import Account
from app.schemas.common import PaginatedResponse, paginate
from app.schemas.promotion import Activation, PromotionStats
from app.services import promotions

router = APIRouter(prefix="/admin/promotions", tags=["Admin - Promotions"])


@router.get("/{promotion_id}/stats", response_model=PromotionStats)
def get_promotion_stats(
    promotion_id: UUID,
    db: Session = Depends(get_db),
    current_user: Account = Depends(get_current_admin_user),
):
    """Redemption totals, last-7-days breakdown and top users. Unpaid activations are excluded."""
    return promotions.usage_stats(db, promotion_id)


@router.get("/{promotion_id}/activations", response_model=PaginatedResponse[Activation])
def list_promotion_activations(
    promotion_id: UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: Account = Depends(get_current_admin_user),
):
    usages, total = promotions.list_activations(db, promotion_id, page, limit)
    return paginate(usages, total, page, limit)
