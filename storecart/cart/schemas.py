"""
Cart wire schemas (pydantic).

Line items have exactly one shape; unknown fields are rejected here at
the boundary so nothing loosely typed reaches the cart logic.
"""
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from storecart.cart.models import Cart, CartLine
from storecart.services.money import parse_price


class CartLinePayload(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    id: str
    product_id: int = Field(alias="productId")
    variant: Optional[str] = None
    name: str
    price: Decimal
    quantity: int = Field(ge=1)
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    vendor_id: Optional[int] = Field(default=None, alias="vendorId")

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, value):
        # Server ids may be numeric
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("price", mode="before")
    @classmethod
    def _strict_price(cls, value):
        if isinstance(value, float):
            raise ValueError("price must be a decimal string, not a float")
        return parse_price(value)

    def to_line(self, vendor_id: int) -> CartLine:
        return CartLine(
            id=self.id,
            product_id=self.product_id,
            name=self.name,
            unit_price=self.price,
            quantity=self.quantity,
            vendor_id=self.vendor_id if self.vendor_id is not None else vendor_id,
            variant=self.variant,
            image_url=self.image_url,
        )


class CartDocument(BaseModel):
    """Stored cart document: { items, subtotal, tax, total }."""
    model_config = ConfigDict(extra="forbid")

    items: List[CartLinePayload] = []
    subtotal: str = "0.00"
    tax: str = "0.00"
    total: str = "0.00"


class ServerCartPayload(BaseModel):
    """Full canonical cart returned by every server endpoint."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    vendor_id: int = Field(alias="vendorId")
    items: List[CartLinePayload]
    subtotal: str
    tax: str
    total: str
    user_id: Optional[str] = Field(default=None, alias="userId")
    session_id: Optional[str] = Field(default=None, alias="sessionId")

    @field_validator("user_id", "session_id", mode="before")
    @classmethod
    def _owner_as_str(cls, value):
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


def cart_from_payload(payload, owner_ref: str, vendor_id: int, tax_rate: Decimal) -> Cart:
    """Build a Cart from a validated payload; totals are recomputed from items."""
    lines = [item.to_line(vendor_id) for item in payload.items]
    return Cart(owner_ref=owner_ref, vendor_id=vendor_id, tax_rate=tax_rate, lines=tuple(lines))


def totals_match(payload, cart: Cart) -> bool:
    """Whether the totals a payload carried agree with the recomputed ones."""
    return cart.totals.to_dict() == {"subtotal": payload.subtotal, "tax": payload.tax, "total": payload.total}


def server_cart_body(cart: Cart, user_id: Optional[str] = None, session_id: Optional[str] = None) -> dict:
    """Response body for the server cart endpoints."""
    return {
        "userId": user_id,
        "sessionId": session_id,
        "vendorId": cart.vendor_id,
        **cart.to_dict(),
    }


# ==================== REQUEST MODELS ====================

class AddToCartRequest(BaseModel):
    product_id: int = Field(alias="productId")
    quantity: int = Field(gt=0)
    variant: Optional[str] = None
    vendor_id: int = Field(alias="vendorId")


class UpdateCartItemRequest(BaseModel):
    quantity: int = Field(gt=0)
