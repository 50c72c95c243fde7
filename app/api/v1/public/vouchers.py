from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import get_current_user
from app.models.account import Account
from app.schemas.promotion import Voucher, VoucherActivateRequest
from app.services import promotions

router = APIRouter(prefix="/vouchers", tags=["Vouchers"])


@router.post("/activate", response_model=Voucher, status_code=status.HTTP_201_CREATED)
def activate_voucher(
    data: VoucherActivateRequest,
    db: Session = Depends(get_db),
    current_user: Account = Depends(get_current_user),
):
    """
    Activate a promotion code on the current account.
    Each account can activate a given code once; the code is case-insensitive.
    """
    return promotions.activate(db, current_user.id, data.promotion_code)


@router.get("/", response_model=List[Voucher])
def list_my_vouchers(
    db: Session = Depends(get_db),
    current_user: Account = Depends(get_current_user),
):
    return promotions.list_account_vouchers(db, current_user.id)
