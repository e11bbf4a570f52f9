"""
Cart Store

Canonical in-memory cart for one owner x vendor pair. Every operation
builds a new Cart (which recomputes totals) and returns it, so callers
never observe lines and totals out of step.
"""
from decimal import Decimal
from typing import Optional

from storecart.cart.models import Cart, CartLine, LineKey, ProductRef, check_quantity
from storecart.errors import ERROR_MISSING_PRODUCT, ERROR_VENDOR_MISMATCH, InvalidQuantity, NotFoundError, ValidationError
from storecart.logging import cart_scope, get_logger

logger = get_logger(__name__)


class CartStore:
    """
    Holds the current Cart snapshot and applies mutations to it.

    Policy:
    - add() sums quantities for an existing key, otherwise appends
    - update() with quantity < 1 removes the line
    - remove() of an absent key raises NotFoundError and changes nothing
    """

    def __init__(self, owner_ref: str, vendor_id: int, tax_rate: Decimal, cart: Optional[Cart] = None):
        if cart is None:
            cart = Cart.empty(owner_ref, vendor_id, tax_rate)
        elif cart.vendor_id != int(vendor_id):
            raise ValidationError(f"{ERROR_VENDOR_MISMATCH}: {cart.vendor_id} != {vendor_id}")
        self._cart = cart

    @classmethod
    def from_cart(cls, cart: Cart) -> "CartStore":
        return cls(cart.owner_ref, cart.vendor_id, cart.tax_rate, cart)

    @property
    def snapshot(self) -> Cart:
        return self._cart

    @property
    def owner_ref(self) -> str:
        return self._cart.owner_ref

    @property
    def vendor_id(self) -> int:
        return self._cart.vendor_id

    @property
    def tax_rate(self) -> Decimal:
        return self._cart.tax_rate

    def get(self, key) -> Optional[CartLine]:
        return self._cart.find(key)

    def add(self, product: ProductRef, quantity: int) -> Cart:
        """Add units of a product; quantities for the same key are summed."""
        if product is None:
            raise ValidationError(ERROR_MISSING_PRODUCT)
        check_quantity(quantity)
        if product.vendor_id != self.vendor_id:
            raise ValidationError(f"{ERROR_VENDOR_MISMATCH}: {product.vendor_id} != {self.vendor_id}")

        lines = list(self._cart.lines)
        index = self._index_of(product.key)
        if index is not None:
            lines[index] = lines[index].with_quantity(lines[index].quantity + quantity)
        else:
            lines.append(CartLine.from_product(product, quantity))

        return self._commit(lines)

    def update(self, key, quantity: int) -> Cart:
        """Set a line's quantity in place; quantity < 1 removes the line."""
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise InvalidQuantity(quantity)
        if quantity < 1:
            return self.remove(key)

        index = self._index_of(key)
        if index is None:
            raise NotFoundError(LineKey.of(*key))

        lines = list(self._cart.lines)
        lines[index] = lines[index].with_quantity(quantity)
        return self._commit(lines)

    def remove(self, key) -> Cart:
        index = self._index_of(key)
        if index is None:
            raise NotFoundError(LineKey.of(*key))

        lines = list(self._cart.lines)
        del lines[index]
        return self._commit(lines)

    def clear(self) -> Cart:
        return self._commit([])

    def replace(self, cart: Cart) -> Cart:
        """
        Swap in a whole snapshot (server response or merge result).

        The owner may change (guest to user at login); the vendor may not.
        """
        if cart.vendor_id != self.vendor_id:
            raise ValidationError(f"{ERROR_VENDOR_MISMATCH}: {cart.vendor_id} != {self.vendor_id}")
        self._cart = cart
        return cart

    def _index_of(self, key) -> Optional[int]:
        key = LineKey.of(*key)
        for i, line in enumerate(self._cart.lines):
            if line.key == key:
                return i
        return None

    def _commit(self, lines) -> Cart:
        self._cart = self._cart.with_lines(lines)
        logger.debug(
            f"Cart ({cart_scope(self.owner_ref, self.vendor_id)}): {len(self._cart.lines)} lines, "
            f"{self._cart.item_count} units, total {self._cart.total}"
        )
        return self._cart
