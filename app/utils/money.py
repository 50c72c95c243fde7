from decimal import Decimal, ROUND_HALF_UP

Money = Decimal

ZERO = Decimal("0")


def D(x) -> Money:
    return x if isinstance(x, Decimal) else Decimal(str(x or "0"))


def round_vnd(x) -> Money:
    """Round to a whole currency unit (VND has no minor unit)."""
    return D(x).quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def to_gateway_amount(x) -> int:
    # VNPay expects the amount multiplied by 100, as an integer
    return int(round_vnd(x) * 100)
