"""Decimal rounding helpers shared by the analytics modules."""

from decimal import Decimal, ROUND_HALF_UP


def quantize(value: Decimal, places: int) -> Decimal:
    """Round value to the given number of decimal places (half-up)."""
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def to_decimal(value: float | int | str | Decimal) -> Decimal:
    """Convert a number to Decimal without binary float artifacts."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def mean(values: list[Decimal]) -> Decimal:
    """Arithmetic mean of a non-empty list of Decimals."""
    return sum(values, Decimal("0")) / Decimal(len(values))
