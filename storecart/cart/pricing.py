"""
Pricing Calculator

Pure function from an ordered set of lines to {subtotal, tax, total}.

Subtotal is summed in integer cents, so no rounding happens while
accumulating. Tax is the only step that produces fractional cents and it
is rounded once, half up, when the result is produced.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import TYPE_CHECKING, Iterable

from storecart.services.money import from_cents, money_str, parse_amount, to_cents

if TYPE_CHECKING:
    from storecart.cart.models import CartLine


@dataclass(frozen=True)
class CartTotals:
    subtotal: Decimal
    tax: Decimal
    total: Decimal

    def to_dict(self) -> dict:
        return {
            "subtotal": money_str(self.subtotal),
            "tax": money_str(self.tax),
            "total": money_str(self.total),
        }


def subtotal_cents(lines: Iterable["CartLine"]) -> int:
    return sum(to_cents(line.unit_price) * line.quantity for line in lines)


def tax_cents(subtotal: int, tax_rate: Decimal) -> int:
    return int((Decimal(subtotal) * tax_rate).to_integral_value(rounding=ROUND_HALF_UP))


def compute(lines: Iterable["CartLine"], tax_rate) -> CartTotals:
    """
    Compute cart totals.

    Args:
        lines: Cart lines (unit_price, quantity)
        tax_rate: Vendor tax rate as a fraction, e.g. Decimal("0.08")

    Returns:
        CartTotals with two-place Decimals
    """
    rate = parse_amount(tax_rate)
    subtotal = subtotal_cents(lines)
    tax = tax_cents(subtotal, rate)
    return CartTotals(
        subtotal=from_cents(subtotal),
        tax=from_cents(tax),
        total=from_cents(subtotal + tax),
    )
