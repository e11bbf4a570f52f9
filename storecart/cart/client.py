"""
Server cart client.

Maps each cart mutation to one HTTP call and replaces the CartStore with
the cart the server returns. Nothing is applied optimistically: if a call
fails, the store keeps its last known-good snapshot and NetworkError is
raised to the caller. There is no automatic retry.

Calls may overlap. Responses are applied in the order the calls were
issued, so a slow earlier response can never overwrite a later one.
"""
import asyncio
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError as PayloadValidationError

from storecart.cart.models import Cart, CartLine, LineKey, ProductRef, check_quantity
from storecart.cart.schemas import ServerCartPayload, cart_from_payload, totals_match
from storecart.cart.store import CartStore
from storecart.config import get_cart_api_timeout, get_cart_api_url
from storecart.errors import (
    ERROR_MALFORMED_RESPONSE,
    ERROR_MISSING_PRODUCT,
    ERROR_SERVER_UNAVAILABLE,
    ERROR_VENDOR_MISMATCH,
    CartError,
    InvalidQuantity,
    NetworkError,
    NotFoundError,
    ValidationError,
)
from storecart.logging import get_logger

logger = get_logger(__name__)


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200] if response.text else "no response body"
    if isinstance(data, dict):
        return str(data.get("detail") or data.get("message") or data)[:200]
    return str(data)[:200]


class ServerCartClient:
    """
    Network adapter for the authenticated cart.

    Endpoints:
        GET    /cart             current cart
        POST   /cart/add         add units of a product
        PUT    /cart/items/{id}  set quantity
        DELETE /cart/items/{id}  remove line
        DELETE /cart             clear cart
    """

    def __init__(
        self,
        store: CartStore,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
        headers: Optional[Dict[str, str]] = None,
        owner_ref: Optional[str] = None,
    ):
        self.store = store
        self.owner_ref = owner_ref
        self.headers: Dict[str, str] = dict(headers or {})
        self._base_url = base_url
        self._timeout = timeout
        self._http_client = http_client
        self._owns_client = http_client is None
        # Set once the most recently issued call has been applied
        self._last_applied: Optional[asyncio.Event] = None

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Lazy creation of the httpx client with timeouts."""
        if self._http_client is None:
            timeout = self._timeout or get_cart_api_timeout()
            self._http_client = httpx.AsyncClient(
                base_url=self._base_url or get_cart_api_url(),
                timeout=httpx.Timeout(timeout, connect=min(timeout, 5.0)),
            )
        return self._http_client

    async def aclose(self) -> None:
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> "ServerCartClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    # ---- public operations ----

    async def fetch(self) -> Cart:
        return await self._call("GET", "/cart")

    async def add(self, product: ProductRef, quantity: int) -> Cart:
        if product is None:
            raise ValidationError(ERROR_MISSING_PRODUCT)
        check_quantity(quantity)
        if product.vendor_id != self.store.vendor_id:
            raise ValidationError(f"{ERROR_VENDOR_MISMATCH}: {product.vendor_id} != {self.store.vendor_id}")
        body: Dict[str, Any] = {
            "productId": product.product_id,
            "quantity": quantity,
            "vendorId": product.vendor_id,
        }
        if product.variant is not None:
            body["variant"] = product.variant
        return await self._call("POST", "/cart/add", body)

    async def add_line(self, line: CartLine) -> Cart:
        """Push a whole local line (used when reconciling at login)."""
        body: Dict[str, Any] = {
            "productId": line.product_id,
            "quantity": line.quantity,
            "vendorId": line.vendor_id,
        }
        if line.variant is not None:
            body["variant"] = line.variant
        return await self._call("POST", "/cart/add", body)

    async def update(self, key, quantity: int) -> Cart:
        """Set a line's quantity; quantity < 1 is sent as a removal."""
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise InvalidQuantity(quantity)
        if quantity < 1:
            return await self.remove(key)
        line = self._line_for(key)
        return await self._call("PUT", f"/cart/items/{line.id}", {"quantity": quantity})

    async def remove(self, key) -> Cart:
        line = self._line_for(key)
        return await self._call("DELETE", f"/cart/items/{line.id}")

    async def clear(self) -> Cart:
        return await self._call("DELETE", "/cart")

    # ---- internals ----

    def _line_for(self, key) -> CartLine:
        line = self.store.get(key)
        if line is None:
            raise NotFoundError(LineKey.of(*key))
        return line

    async def _call(self, method: str, path: str, body: Optional[dict] = None) -> Cart:
        previous = self._last_applied
        applied = asyncio.Event()
        self._last_applied = applied
        try:
            try:
                outcome: Any = await self._send(method, path, body)
            except NetworkError as e:
                outcome = e
            # Apply strictly in issuance order
            if previous is not None:
                await previous.wait()
            if isinstance(outcome, NetworkError):
                raise outcome
            return self.store.replace(outcome)
        finally:
            applied.set()

    async def _send(self, method: str, path: str, body: Optional[dict]) -> Cart:
        client = await self._get_http_client()
        try:
            response = await client.request(method, path, json=body, headers=self.headers)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            logger.warning(f"Cart server timeout on {method} {path}")
            raise NetworkError(f"{ERROR_SERVER_UNAVAILABLE}: request timed out") from e
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            detail = _error_detail(e.response)
            logger.warning(f"Cart server error {status_code} on {method} {path}: {detail}")
            raise NetworkError(f"Cart server returned {status_code}: {detail}", status_code=status_code) from e
        except httpx.RequestError as e:
            logger.warning(f"Cart server unreachable on {method} {path}: {e}")
            raise NetworkError(f"{ERROR_SERVER_UNAVAILABLE}: {e}") from e

        return self._parse(response)

    def _parse(self, response: httpx.Response) -> Cart:
        try:
            payload = ServerCartPayload.model_validate(response.json())
        except (ValueError, PayloadValidationError) as e:
            raise NetworkError(f"{ERROR_MALFORMED_RESPONSE}: {e}", status_code=response.status_code) from e

        if payload.vendor_id != self.store.vendor_id:
            raise NetworkError(
                f"{ERROR_MALFORMED_RESPONSE}: {ERROR_VENDOR_MISMATCH}",
                status_code=response.status_code,
            )

        owner = self.owner_ref or payload.user_id or payload.session_id or self.store.owner_ref
        try:
            cart = cart_from_payload(payload, owner, self.store.vendor_id, self.store.tax_rate)
        except CartError as e:
            raise NetworkError(f"{ERROR_MALFORMED_RESPONSE}: {e}", status_code=response.status_code) from e

        if not totals_match(payload, cart):
            logger.warning(
                f"Server totals {payload.subtotal}/{payload.tax}/{payload.total} differ from "
                f"recomputed {cart.totals.to_dict()}; keeping recomputed totals"
            )
        return cart
