import uuid
from decimal import Decimal
from types import SimpleNamespace

import pytest

from app.core.exceptions import MixedSeatTypesError, PromotionNotApplicableError
from app.models.promotion import DiscountType
from app.services.pricing import compute_discount, quote, seat_price

STANDARD = uuid.uuid4()
VIP = uuid.uuid4()


def _seat(seat_type_id=VIP, multiplier="1.20"):
    return SimpleNamespace(
        id=uuid.uuid4(),
        seat_type_id=seat_type_id,
        seat_type=SimpleNamespace(price_multiplier=Decimal(multiplier)),
    )


def _product(price):
    return SimpleNamespace(id=uuid.uuid4(), price=Decimal(price))


def _promotion(discount_type, value, max_discount=None, min_order="0"):
    return SimpleNamespace(
        discount_type=discount_type,
        discount_value=Decimal(value),
        max_discount_amount=Decimal(max_discount) if max_discount is not None else None,
        min_order_amount=Decimal(min_order),
    )


def test_seat_price_rounds_half_up_to_whole_units():
    assert seat_price(Decimal("90000"), Decimal("1.20")) == Decimal("108000")
    assert seat_price(Decimal("85555"), Decimal("1.50")) == Decimal("128333")
    assert seat_price(Decimal("75000"), Decimal("1.00")) == Decimal("75000")


def test_vip_seat_with_combo_and_capped_percentage():
    result = quote(
        Decimal("90000"),
        [_seat()],
        [(_product("35000"), 2)],
        _promotion(DiscountType.PERCENTAGE, "10", max_discount="15000"),
    )

    assert result.seat_subtotal == Decimal("108000")
    assert result.product_subtotal == Decimal("70000")
    assert result.total_amount == Decimal("178000")
    assert result.discount_amount == Decimal("15000")
    assert result.final_amount == Decimal("163000")
    assert result.product_lines[0].total_price == Decimal("70000")


def test_percentage_below_cap_is_not_capped():
    promotion = _promotion(DiscountType.PERCENTAGE, "10", max_discount="50000")
    assert compute_discount(Decimal("100000"), promotion) == Decimal("10000")


def test_percentage_rounds_half_up():
    promotion = _promotion(DiscountType.PERCENTAGE, "15")
    # 15% of 108,333 = 16,249.95
    assert compute_discount(Decimal("108333"), promotion) == Decimal("16250")


def test_fixed_discount_never_exceeds_total():
    result = quote(
        Decimal("30000"),
        [_seat(STANDARD, "1.00")],
        promotion=_promotion(DiscountType.FIXED_AMOUNT, "50000"),
    )
    assert result.total_amount == Decimal("30000")
    assert result.discount_amount == Decimal("30000")
    assert result.final_amount == Decimal("0")


def test_no_promotion_means_no_discount():
    result = quote(Decimal("90000"), [_seat(), _seat()])
    assert result.discount_amount == Decimal("0")
    assert result.final_amount == result.total_amount == Decimal("216000")


def test_order_below_minimum_is_rejected():
    promotion = _promotion(DiscountType.FIXED_AMOUNT, "20000", min_order="500000")
    with pytest.raises(PromotionNotApplicableError):
        compute_discount(Decimal("178000"), promotion)


def test_seats_of_different_types_are_rejected():
    with pytest.raises(MixedSeatTypesError) as exc_info:
        quote(Decimal("90000"), [_seat(STANDARD, "1.00"), _seat(VIP, "1.20")])
    assert exc_info.value.status_code == 422
    assert exc_info.value.error == "mixed_seat_types"
