"""
Cart Router

Reference implementation of the server cart API. Every endpoint returns
the full canonical cart: {userId, sessionId, vendorId, items, subtotal,
tax, total}.

Owner and vendor come from headers set by the edge (authentication and
domain-to-vendor mapping are handled elsewhere):
- X-User-Id: authenticated user
- X-Session-Id: guest session (used when there is no user)
- X-Vendor-Id: storefront vendor
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request

from storecart.cart.backend import ServerCartService
from storecart.cart.schemas import AddToCartRequest, UpdateCartItemRequest, server_cart_body
from storecart.errors import (
    ConfigurationError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from storecart.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["cart"])

ERROR_NO_OWNER = "No user or session ID available"


@dataclass(frozen=True)
class CartOwner:
    user_id: Optional[str]
    session_id: Optional[str]

    @property
    def ref(self) -> str:
        return self.user_id or self.session_id


def get_cart_owner(
    x_user_id: Optional[str] = Header(default=None),
    x_session_id: Optional[str] = Header(default=None),
) -> CartOwner:
    if not x_user_id and not x_session_id:
        raise HTTPException(status_code=400, detail=ERROR_NO_OWNER)
    return CartOwner(user_id=x_user_id or None, session_id=x_session_id or None)


def get_vendor_id(x_vendor_id: int = Header()) -> int:
    return x_vendor_id


def get_cart_service(request: Request) -> ServerCartService:
    return request.app.state.cart_service


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ValidationError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, PersistenceError):
        logger.error(f"Cart storage failure: {e}")
        return HTTPException(status_code=503, detail="Cart storage unavailable")
    logger.error(f"Cart configuration error: {e}")
    return HTTPException(status_code=500, detail="Cart service misconfigured")


CART_ERRORS = (NotFoundError, ValidationError, PersistenceError, ConfigurationError)


@router.get("/cart")
def get_cart(
    owner: CartOwner = Depends(get_cart_owner),
    vendor_id: int = Depends(get_vendor_id),
    service: ServerCartService = Depends(get_cart_service),
):
    """Get the owner's cart for this vendor."""
    try:
        cart = service.get_cart(owner.ref, vendor_id)
    except CART_ERRORS as e:
        raise _http_error(e)
    return server_cart_body(cart, owner.user_id, owner.session_id)


@router.post("/cart/add")
def add_to_cart(
    request: AddToCartRequest,
    owner: CartOwner = Depends(get_cart_owner),
    vendor_id: int = Depends(get_vendor_id),
    service: ServerCartService = Depends(get_cart_service),
):
    """Add a product (quantities for the same product+variant are summed)."""
    if request.vendor_id != vendor_id:
        raise HTTPException(status_code=400, detail="vendorId does not match storefront vendor")
    try:
        cart = service.add(owner.ref, vendor_id, request.product_id, request.quantity, request.variant)
    except CART_ERRORS as e:
        raise _http_error(e)
    return server_cart_body(cart, owner.user_id, owner.session_id)


@router.put("/cart/items/{item_id}")
def update_cart_item(
    item_id: str,
    request: UpdateCartItemRequest,
    owner: CartOwner = Depends(get_cart_owner),
    vendor_id: int = Depends(get_vendor_id),
    service: ServerCartService = Depends(get_cart_service),
):
    """Set a line's quantity (must be positive; use DELETE to remove)."""
    try:
        cart = service.update(owner.ref, vendor_id, item_id, request.quantity)
    except CART_ERRORS as e:
        raise _http_error(e)
    return server_cart_body(cart, owner.user_id, owner.session_id)


@router.delete("/cart/items/{item_id}")
def remove_cart_item(
    item_id: str,
    owner: CartOwner = Depends(get_cart_owner),
    vendor_id: int = Depends(get_vendor_id),
    service: ServerCartService = Depends(get_cart_service),
):
    """Remove a line from the cart."""
    try:
        cart = service.remove(owner.ref, vendor_id, item_id)
    except CART_ERRORS as e:
        raise _http_error(e)
    return server_cart_body(cart, owner.user_id, owner.session_id)


@router.delete("/cart")
def clear_cart(
    owner: CartOwner = Depends(get_cart_owner),
    vendor_id: int = Depends(get_vendor_id),
    service: ServerCartService = Depends(get_cart_service),
):
    """Empty the cart; returns the empty canonical cart."""
    try:
        cart = service.clear(owner.ref, vendor_id)
    except CART_ERRORS as e:
        raise _http_error(e)
    return server_cart_body(cart, owner.user_id, owner.session_id)
