"""Cart package: models, pricing, store, reconciliation, persistence and session facade."""
from .client import ServerCartClient
from .models import Cart, CartLine, LineKey, ProductRef
from .pricing import CartTotals, compute
from .reconcile import merge
from .service import CartSession
from .storage import (
    CartRepository,
    FileCartRepository,
    LocalPersistenceAdapter,
    MemoryCartRepository,
    RedisCartRepository,
)
from .store import CartStore

__all__ = [
    "Cart",
    "CartLine",
    "CartRepository",
    "CartSession",
    "CartStore",
    "CartTotals",
    "FileCartRepository",
    "LineKey",
    "LocalPersistenceAdapter",
    "MemoryCartRepository",
    "ProductRef",
    "RedisCartRepository",
    "ServerCartClient",
    "compute",
    "merge",
]
