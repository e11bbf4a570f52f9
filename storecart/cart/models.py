"""Cart models with fixed-point pricing.

All models are frozen: every mutation produces a new snapshot. A Cart's
totals are derived from its lines in __post_init__ and cannot be passed in.
"""
import uuid
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Iterable, NamedTuple, Optional, Tuple

from storecart.cart.pricing import CartTotals, compute
from storecart.errors import (
    ERROR_DUPLICATE_LINE,
    ERROR_MISSING_PRODUCT,
    ERROR_VENDOR_MISMATCH,
    InvalidQuantity,
    ValidationError,
)
from storecart.services.money import money_str, parse_amount, parse_price


class LineKey(NamedTuple):
    """Merge/aggregation identity of a cart line."""
    product_id: int
    variant: Optional[str] = None

    @classmethod
    def of(cls, product_id, variant: Optional[str] = None) -> "LineKey":
        return cls(int(product_id), normalize_variant(variant))


def normalize_variant(variant: Optional[str]) -> Optional[str]:
    """Treat an empty variant the same as no variant."""
    if variant is None:
        return None
    variant = str(variant).strip()
    return variant or None


def new_line_id() -> str:
    return uuid.uuid4().hex


def check_quantity(quantity) -> int:
    """Return quantity if it is a positive int, else raise InvalidQuantity."""
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise InvalidQuantity(quantity)
    return quantity


def _coerce_id(value, what: str) -> int:
    if value is None or value == "" or isinstance(value, bool):
        raise ValidationError(f"{what} is required")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {what}: {value!r}")


def _coerce_text(value, what: str, required: bool = True) -> Optional[str]:
    if value is None and not required:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"Invalid {what}: {value!r}")
    return value


def _coerce_price(value) -> Decimal:
    try:
        return parse_price(value)
    except ValueError as e:
        raise ValidationError(str(e))


@dataclass(frozen=True)
class ProductRef:
    """What a caller passes to add(): product identity plus catalog snapshot."""
    product_id: int
    name: str
    unit_price: Decimal
    vendor_id: int
    variant: Optional[str] = None
    image_url: Optional[str] = None

    def __post_init__(self):
        if self.product_id is None or self.product_id == "":
            raise ValidationError(ERROR_MISSING_PRODUCT)
        object.__setattr__(self, "product_id", _coerce_id(self.product_id, "product id"))
        object.__setattr__(self, "vendor_id", _coerce_id(self.vendor_id, "vendor id"))
        object.__setattr__(self, "unit_price", _coerce_price(self.unit_price))
        object.__setattr__(self, "variant", normalize_variant(self.variant))
        object.__setattr__(self, "name", _coerce_text(self.name, "name"))
        object.__setattr__(self, "image_url", _coerce_text(self.image_url, "image url", required=False))

    @property
    def key(self) -> LineKey:
        return LineKey(self.product_id, self.variant)


@dataclass(frozen=True)
class CartLine:
    """Single line in a cart."""
    id: str
    product_id: int
    name: str
    unit_price: Decimal
    quantity: int
    vendor_id: int
    variant: Optional[str] = None
    image_url: Optional[str] = None

    def __post_init__(self):
        check_quantity(self.quantity)
        object.__setattr__(self, "id", str(self.id))
        object.__setattr__(self, "product_id", _coerce_id(self.product_id, "product id"))
        object.__setattr__(self, "vendor_id", _coerce_id(self.vendor_id, "vendor id"))
        object.__setattr__(self, "unit_price", _coerce_price(self.unit_price))
        object.__setattr__(self, "variant", normalize_variant(self.variant))
        object.__setattr__(self, "name", _coerce_text(self.name, "name"))
        object.__setattr__(self, "image_url", _coerce_text(self.image_url, "image url", required=False))

    @property
    def key(self) -> LineKey:
        return LineKey(self.product_id, self.variant)

    @classmethod
    def from_product(cls, product: ProductRef, quantity: int, line_id: Optional[str] = None) -> "CartLine":
        return cls(
            id=line_id or new_line_id(),
            product_id=product.product_id,
            name=product.name,
            unit_price=product.unit_price,
            quantity=quantity,
            vendor_id=product.vendor_id,
            variant=product.variant,
            image_url=product.image_url,
        )

    def with_quantity(self, quantity: int) -> "CartLine":
        return replace(self, quantity=quantity)

    def to_dict(self) -> dict:
        """Wire representation shared by local storage and the server API."""
        return {
            "id": self.id,
            "productId": self.product_id,
            "variant": self.variant,
            "name": self.name,
            "price": money_str(self.unit_price),
            "quantity": self.quantity,
            "imageUrl": self.image_url,
            "vendorId": self.vendor_id,
        }


@dataclass(frozen=True)
class Cart:
    """
    Immutable cart snapshot for one owner x vendor pair.

    subtotal/tax/total are computed from lines on construction.
    """
    owner_ref: str
    vendor_id: int
    tax_rate: Decimal
    lines: Tuple[CartLine, ...] = ()
    subtotal: Decimal = field(init=False)
    tax: Decimal = field(init=False)
    total: Decimal = field(init=False)

    def __post_init__(self):
        vendor_id = _coerce_id(self.vendor_id, "vendor id")
        try:
            tax_rate = parse_amount(self.tax_rate)
        except ValueError as e:
            raise ValidationError(str(e))
        lines = tuple(self.lines)

        seen = set()
        for line in lines:
            if line.vendor_id != vendor_id:
                raise ValidationError(f"{ERROR_VENDOR_MISMATCH}: {line.vendor_id} != {vendor_id}")
            if line.key in seen:
                raise ValidationError(f"{ERROR_DUPLICATE_LINE}: {line.key}")
            seen.add(line.key)

        object.__setattr__(self, "owner_ref", str(self.owner_ref))
        object.__setattr__(self, "vendor_id", vendor_id)
        object.__setattr__(self, "tax_rate", tax_rate)
        object.__setattr__(self, "lines", lines)

        totals = compute(lines, tax_rate)
        object.__setattr__(self, "subtotal", totals.subtotal)
        object.__setattr__(self, "tax", totals.tax)
        object.__setattr__(self, "total", totals.total)

    @classmethod
    def empty(cls, owner_ref: str, vendor_id: int, tax_rate: Decimal) -> "Cart":
        return cls(owner_ref=owner_ref, vendor_id=vendor_id, tax_rate=tax_rate)

    def with_lines(self, lines: Iterable[CartLine]) -> "Cart":
        return Cart(self.owner_ref, self.vendor_id, self.tax_rate, tuple(lines))

    def with_owner(self, owner_ref: str) -> "Cart":
        return Cart(owner_ref, self.vendor_id, self.tax_rate, self.lines)

    def find(self, key) -> Optional[CartLine]:
        key = LineKey.of(*key)
        return next((line for line in self.lines if line.key == key), None)

    def find_by_id(self, line_id) -> Optional[CartLine]:
        return next((line for line in self.lines if line.id == str(line_id)), None)

    @property
    def totals(self) -> CartTotals:
        return CartTotals(self.subtotal, self.tax, self.total)

    @property
    def item_count(self) -> int:
        """Total number of units in the cart."""
        return sum(line.quantity for line in self.lines)

    @property
    def is_empty(self) -> bool:
        return not self.lines

    def summary(self) -> dict:
        return {**self.totals.to_dict(), "itemCount": self.item_count}

    def to_dict(self) -> dict:
        """Local storage payload: items plus fixed two-decimal totals."""
        return {
            "items": [line.to_dict() for line in self.lines],
            **self.totals.to_dict(),
        }
