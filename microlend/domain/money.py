"""Decimal money helpers"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def to_decimal(value) -> Decimal:
    """Convert int/float/str to Decimal without binary float artifacts"""
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Not a numeric amount: {value!r}") from e


def money(value) -> Decimal:
    """Always return 2-decimal Decimal with HALF_UP rounding."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def percent_of(base: Decimal, rate: Decimal) -> Decimal:
    """base * rate%, unrounded"""
    return base * rate / HUNDRED
