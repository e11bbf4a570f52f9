"""
Cart session: the public mutation API.

Guest mutations go CartStore -> LocalPersistenceAdapter. After login()
they go through ServerCartClient and the server's reply becomes the
store state.

The stored guest cart is read before the first guest mutation or login,
whether or not load() was called explicitly, so nothing written by an
earlier session is overwritten or lost.

login() reconciles once: fetch the server cart, merge the guest cart
into it, make the merge the store state and push the guest lines to the
server. Each accepted line is dropped from local storage right away, so
a login that fails halfway can be retried without counting any line
twice.
"""
from typing import Dict, Optional

import httpx

from storecart.cart.client import ServerCartClient
from storecart.cart.models import Cart, ProductRef
from storecart.cart.reconcile import merge
from storecart.cart.storage import CartRepository, LocalPersistenceAdapter
from storecart.cart.store import CartStore
from storecart.config import VendorTaxRates
from storecart.errors import NetworkError
from storecart.logging import cart_scope, get_logger

logger = get_logger(__name__)


class CartSession:
    """
    One shopper's cart for one vendor.

    Usage:
        session = CartSession(vendor_id=7, guest_session_id=sid, repository=repo)
        session.load()
        await session.add(product, 1)
        await session.login(user_id, headers={"Authorization": f"Bearer {token}"})
    """

    def __init__(
        self,
        vendor_id: int,
        guest_session_id: str,
        repository: CartRepository,
        tax_rates: Optional[VendorTaxRates] = None,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        tax_rates = tax_rates if tax_rates is not None else VendorTaxRates.from_env()
        self.vendor_id = int(vendor_id)
        self.tax_rate = tax_rates.for_vendor(self.vendor_id)
        self.guest_session_id = str(guest_session_id)
        self.user_id: Optional[str] = None

        self.store = CartStore(self.guest_session_id, self.vendor_id, self.tax_rate)
        self.local = LocalPersistenceAdapter(repository, self.vendor_id, self.tax_rate, self.guest_session_id)
        self.server = ServerCartClient(self.store, base_url=base_url, http_client=http_client, timeout=timeout)
        self._local_loaded = False

    @property
    def cart(self) -> Cart:
        return self.store.snapshot

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    def summary(self) -> dict:
        """{subtotal, tax, total, itemCount} of the current cart."""
        return self.store.snapshot.summary()

    def load(self) -> Cart:
        """Restore the guest cart from local storage (session start)."""
        if self.is_authenticated:
            return self.store.snapshot
        self._local_loaded = True
        return self.store.replace(self.local.load())

    async def refresh(self) -> Cart:
        """Re-read the cart from its source of truth."""
        if self.is_authenticated:
            return await self.server.fetch()
        return self.load()

    # ---- mutations ----

    async def add(self, product: ProductRef, quantity: int) -> Cart:
        if self.is_authenticated:
            return await self.server.add(product, quantity)
        return self._saved(self._guest_store().add(product, quantity))

    async def update(self, key, quantity: int) -> Cart:
        if self.is_authenticated:
            return await self.server.update(key, quantity)
        return self._saved(self._guest_store().update(key, quantity))

    async def remove(self, key) -> Cart:
        if self.is_authenticated:
            return await self.server.remove(key)
        return self._saved(self._guest_store().remove(key))

    async def clear(self) -> Cart:
        if self.is_authenticated:
            return await self.server.clear()
        return self._saved(self._guest_store().clear())

    def _guest_store(self) -> CartStore:
        if not self._local_loaded:
            self.load()
        return self.store

    def _saved(self, cart: Cart) -> Cart:
        self.local.save(cart)
        return cart

    # ---- authentication ----

    async def login(self, user_id: str, headers: Optional[Dict[str, str]] = None) -> Cart:
        """
        Switch to the server cart, folding the guest cart into it.

        Logging in as a different user than the current one logs out
        first, so one user's server cart is never merged into another's.

        Raises:
            NetworkError: the server cart could not be fetched or a guest
                line could not be pushed. The session stays in guest mode
                and local storage keeps only the lines not yet accepted.
        """
        user_id = str(user_id)
        if self.user_id == user_id:
            return await self.refresh()
        if self.is_authenticated:
            logger.info(f"Switching user ({cart_scope(self.user_id, self.vendor_id)}), logging out first")
            self.logout()

        guest_cart = self._guest_store().snapshot
        previous_headers = dict(self.server.headers)
        self.server.owner_ref = user_id
        self.server.headers.update(headers or {})
        scope = cart_scope(user_id, self.vendor_id)

        remaining = list(guest_cart.lines)
        try:
            server_cart = await self.server.fetch()
            merged = merge(guest_cart, server_cart)
            self.store.replace(merged)

            for line in guest_cart.lines:
                await self.server.add_line(line)
                remaining.pop(0)
                if remaining:
                    self.local.save(guest_cart.with_lines(remaining))
        except NetworkError:
            logger.warning(f"Cart reconciliation failed ({scope}), {len(remaining)} guest lines kept locally")
            self.server.owner_ref = None
            self.server.headers = previous_headers
            self.store.replace(guest_cart.with_lines(remaining))
            raise

        self.local.clear()
        self.user_id = user_id

        canonical = self.store.snapshot
        expected = {line.key: line.quantity for line in merged.lines}
        actual = {line.key: line.quantity for line in canonical.lines}
        if expected != actual:
            logger.info(f"Server cart differs from local merge ({scope}); server state kept")
        logger.info(f"Reconciled {len(guest_cart.lines)} guest lines ({scope})")
        return canonical

    def logout(self) -> Cart:
        """Back to the guest cart in local storage; the server cart is left as is."""
        self.user_id = None
        self.server.owner_ref = None
        self.server.headers = {}
        self.store.replace(Cart.empty(self.guest_session_id, self.vendor_id, self.tax_rate))
        return self.load()
