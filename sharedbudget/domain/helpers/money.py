from decimal import ROUND_HALF_UP, Decimal
from typing import Any

CENT = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    """Quantize any numeric value to cents."""
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def share_of(amount: Any, percent: int) -> Decimal:
    return Decimal(str(amount)) * Decimal(percent) / Decimal(100)


def as_float(value: Any) -> float:
    return float(to_money(value))
