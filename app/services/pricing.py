"""
Pricing for a reservation.

Seat price = base slot price x seat-type multiplier, rounded half-up to a whole
currency unit. Product lines are unit price x quantity. The discount of an
applied promotion is taken from the combined total and never exceeds it.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from app.core.exceptions import MixedSeatTypesError, PromotionNotApplicableError
from app.models.product import Product
from app.models.promotion import DiscountType, Promotion
from app.models.seat import Seat
from app.utils.money import D, ZERO, Money, round_vnd


@dataclass
class SeatLine:
    seat_id: UUID
    seat_type_id: UUID
    price: Money


@dataclass
class ProductLine:
    product_id: UUID
    quantity: int
    unit_price: Money

    @property
    def total_price(self) -> Money:
        return self.unit_price * self.quantity


@dataclass
class PriceQuote:
    seat_lines: List[SeatLine] = field(default_factory=list)
    product_lines: List[ProductLine] = field(default_factory=list)
    seat_subtotal: Money = ZERO
    product_subtotal: Money = ZERO
    total_amount: Money = ZERO
    discount_amount: Money = ZERO
    final_amount: Money = ZERO


def seat_price(base_price, multiplier) -> Money:
    return round_vnd(D(base_price) * D(multiplier))


def compute_discount(base_total, promotion: Optional[Promotion]) -> Money:
    """Discount for `base_total`; raises if the order is below the promotion minimum."""
    base_total = D(base_total)
    if promotion is None or base_total <= ZERO:
        return ZERO

    if promotion.min_order_amount and base_total < D(promotion.min_order_amount):
        raise PromotionNotApplicableError(
            f"Minimum order amount for this promotion is {round_vnd(promotion.min_order_amount)}"
        )

    value = D(promotion.discount_value)
    if promotion.discount_type == DiscountType.PERCENTAGE:
        discount = round_vnd(base_total * value / Decimal(100))
        if promotion.max_discount_amount is not None:
            discount = min(discount, D(promotion.max_discount_amount))
    else:
        discount = min(base_total, value)

    return max(min(discount, base_total), ZERO)


def quote(
    base_price,
    seats: Sequence[Seat],
    products: Iterable[Tuple[Product, int]] = (),
    promotion: Optional[Promotion] = None,
) -> PriceQuote:
    """Price a set of seats and product lines for one slot."""
    seat_type_ids = {seat.seat_type_id for seat in seats}
    if len(seat_type_ids) > 1:
        raise MixedSeatTypesError()

    seat_lines = [
        SeatLine(
            seat_id=seat.id,
            seat_type_id=seat.seat_type_id,
            price=seat_price(base_price, seat.seat_type.price_multiplier),
        )
        for seat in seats
    ]
    product_lines = [
        ProductLine(product_id=product.id, quantity=quantity, unit_price=round_vnd(product.price))
        for product, quantity in products
    ]

    seat_subtotal = sum((line.price for line in seat_lines), ZERO)
    product_subtotal = sum((line.total_price for line in product_lines), ZERO)
    total = seat_subtotal + product_subtotal
    discount = compute_discount(total, promotion)

    return PriceQuote(
        seat_lines=seat_lines,
        product_lines=product_lines,
        seat_subtotal=seat_subtotal,
        product_subtotal=product_subtotal,
        total_amount=total,
        discount_amount=discount,
        final_amount=max(total - discount, ZERO),
    )
