"""
Server-side cart service.

Backs the reference cart API: carts are kept per owner x vendor in a
CartRepository, product names and prices come from a ProductCatalog, and
every operation returns the full canonical cart.
"""
import json
import threading
from contextlib import contextmanager
from dataclasses import replace
from typing import Dict, Iterable, Iterator, Optional, Protocol, Tuple

from pydantic import ValidationError as PayloadValidationError

from storecart.cart.models import Cart, ProductRef
from storecart.cart.schemas import CartDocument, cart_from_payload
from storecart.cart.storage import CartRepository
from storecart.cart.store import CartStore
from storecart.config import VendorTaxRates
from storecart.db import RedisKeys
from storecart.errors import ERROR_STORAGE_UNAVAILABLE, CartError, NotFoundError, PersistenceError
from storecart.logging import cart_scope, get_logger

logger = get_logger(__name__)


class ProductCatalog(Protocol):
    """Pricing source of truth (owned by the catalog service)."""

    def get_product(self, product_id: int, vendor_id: int, variant: Optional[str] = None) -> Optional[ProductRef]: ...


class InMemoryProductCatalog:
    def __init__(self, products: Iterable[ProductRef] = ()):
        self._products: Dict[Tuple[int, int], ProductRef] = {}
        for product in products:
            self.put(product)

    def put(self, product: ProductRef) -> None:
        self._products[(product.product_id, product.vendor_id)] = product

    def get_product(self, product_id: int, vendor_id: int, variant: Optional[str] = None) -> Optional[ProductRef]:
        product = self._products.get((int(product_id), int(vendor_id)))
        if product is None:
            return None
        return replace(product, variant=variant)


class ServerCartService:
    """
    Cart operations for authenticated and session-scoped owners.

    Endpoints run on a threadpool, so each mutation holds the lock of its
    owner x vendor cart across load, change and save.
    """

    def __init__(self, repository: CartRepository, catalog: ProductCatalog, tax_rates: VendorTaxRates):
        self.repository = repository
        self.catalog = catalog
        self.tax_rates = tax_rates
        self._locks: Dict[Tuple[str, int], threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def _locked(self, owner_ref: str, vendor_id: int) -> Iterator[None]:
        key = (owner_ref, int(vendor_id))
        with self._locks_guard:
            lock = self._locks.setdefault(key, threading.Lock())
        with lock:
            yield

    # ---- internal helpers ----

    def _load(self, owner_ref: str, vendor_id: int) -> CartStore:
        tax_rate = self.tax_rates.for_vendor(vendor_id)
        raw = self.repository.get(RedisKeys.server_cart_key(vendor_id, owner_ref))
        if not raw:
            return CartStore(owner_ref, vendor_id, tax_rate)
        try:
            document = CartDocument.model_validate(json.loads(raw))
            cart = cart_from_payload(document, owner_ref, vendor_id, tax_rate)
        except (json.JSONDecodeError, PayloadValidationError, CartError) as e:
            logger.error(f"Corrupted server cart ({cart_scope(owner_ref, vendor_id)}): {e}")
            raise PersistenceError(f"{ERROR_STORAGE_UNAVAILABLE}: corrupted cart") from e
        return CartStore.from_cart(cart)

    def _save(self, cart: Cart) -> Cart:
        key = RedisKeys.server_cart_key(cart.vendor_id, cart.owner_ref)
        self.repository.set(key, json.dumps(cart.to_dict()))
        return cart

    # ---- public operations ----

    def get_cart(self, owner_ref: str, vendor_id: int) -> Cart:
        return self._load(owner_ref, vendor_id).snapshot

    def add(self, owner_ref: str, vendor_id: int, product_id: int, quantity: int, variant: Optional[str] = None) -> Cart:
        """Add units of a catalog product; same product+variant lines are summed."""
        product = self.catalog.get_product(product_id, vendor_id, variant)
        if product is None:
            raise NotFoundError((product_id, variant))
        with self._locked(owner_ref, vendor_id):
            store = self._load(owner_ref, vendor_id)
            return self._save(store.add(product, quantity))

    def update(self, owner_ref: str, vendor_id: int, item_id: str, quantity: int) -> Cart:
        with self._locked(owner_ref, vendor_id):
            store = self._load(owner_ref, vendor_id)
            line = store.snapshot.find_by_id(item_id)
            if line is None:
                raise NotFoundError(item_id)
            return self._save(store.update(line.key, quantity))

    def remove(self, owner_ref: str, vendor_id: int, item_id: str) -> Cart:
        with self._locked(owner_ref, vendor_id):
            store = self._load(owner_ref, vendor_id)
            line = store.snapshot.find_by_id(item_id)
            if line is None:
                raise NotFoundError(item_id)
            return self._save(store.remove(line.key))

    def clear(self, owner_ref: str, vendor_id: int) -> Cart:
        with self._locked(owner_ref, vendor_id):
            store = self._load(owner_ref, vendor_id)
            return self._save(store.clear())
