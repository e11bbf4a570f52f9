"""
Money Utilities - Fixed-point operations for monetary values.

Amounts are summed as integer minor units (cents) and converted back to
Decimal with two places only when a result is presented. Floats never
enter the arithmetic.
"""
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Union

# Presentation precision (2 decimal places)
MONEY_PRECISION = Decimal("0.01")

Numeric = Union[str, int, float, Decimal]


def parse_amount(value: Numeric) -> Decimal:
    """
    Strict conversion for prices and rates.

    Invalid, negative or non-finite input raises ValueError; nothing is
    silently read as zero.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid amount: {value!r}")
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        raise ValueError(f"Invalid amount: {value!r}")
    if not amount.is_finite() or amount < 0:
        raise ValueError(f"Invalid amount: {value!r}")
    return amount


def to_cents(value: Numeric) -> int:
    """
    Convert a decimal amount to integer minor units.

    Args:
        value: Amount in major units (e.g., 29.99)

    Returns:
        Amount in minor units (e.g., 2999)

    Raises:
        ValueError: value is not a non-negative amount
    """
    decimal_value = parse_amount(value)
    return int((decimal_value * 100).to_integral_value(rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    """Convert integer minor units back to a two-place Decimal."""
    return round_money(Decimal(cents) / Decimal(100))


def round_money(value: Numeric) -> Decimal:
    """Round a monetary value to presentation precision (half up)."""
    return parse_amount(value).quantize(MONEY_PRECISION, rounding=ROUND_HALF_UP)


def money_str(value: Numeric) -> str:
    """Fixed two-decimal string, e.g. "12.30". Used for every wire format."""
    return f"{round_money(value):.2f}"


def parse_price(value: Numeric) -> Decimal:
    """
    Strict unit price: non-negative with at most two decimal places.

    Returns the price quantized to two places so it maps exactly onto
    integer cents.
    """
    amount = parse_amount(value)
    if amount != amount.quantize(MONEY_PRECISION, rounding=ROUND_HALF_UP):
        raise ValueError(f"Price has more than two decimal places: {value!r}")
    return round_money(amount)
