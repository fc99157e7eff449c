"""Decimal helpers for money and unit-cost arithmetic."""

from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")
COST_QUANTUM = Decimal("0.000001")
PERCENT_QUANTUM = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    """Convert a number to Decimal without inheriting float artifacts."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def quantize_money(value: Decimal | int | float | str) -> Decimal:
    """Round a currency amount to cents (half up)."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def quantize_cost(value: Decimal | int | float | str) -> Decimal:
    """Round a unit cost to six decimal places (half up)."""
    return to_decimal(value).quantize(COST_QUANTUM, rounding=ROUND_HALF_UP)


def percentage_of(part: Decimal, whole: Decimal) -> Decimal:
    """Return ``part`` as a percentage of ``whole``; zero when ``whole`` is zero."""
    if whole == ZERO:
        return ZERO.quantize(PERCENT_QUANTUM)
    return (part / whole * HUNDRED).quantize(PERCENT_QUANTUM, rounding=ROUND_HALF_UP)
