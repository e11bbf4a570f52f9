"""
Cart storage.

CartRepository is the key/value capability carts are persisted through;
implementations are injected, never module-level singletons.

LocalPersistenceAdapter stores the guest cart. Reads never raise: a
missing or corrupt document yields an empty cart. Writes are best effort:
a failure is logged and the in-memory cart stays authoritative.
"""
import json
import os
import re
import tempfile
from decimal import Decimal
from pathlib import Path
from typing import Dict, Optional, Protocol

from pydantic import ValidationError as PayloadValidationError

from storecart.cart.models import Cart
from storecart.cart.schemas import CartDocument, cart_from_payload, totals_match
from storecart.config import get_storage_dir
from storecart.db import RedisKeys, TTL
from storecart.errors import ERROR_STORAGE_UNAVAILABLE, CartError, PersistenceError
from storecart.logging import cart_scope, get_logger

logger = get_logger(__name__)


class CartRepository(Protocol):
    """Synchronous document store for serialized carts."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryCartRepository:
    """Process-local repository (tests, ephemeral sessions)."""

    def __init__(self, data: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(data or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)


class FileCartRepository:
    """One JSON document per key under a directory."""

    _UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")

    def __init__(self, directory=None):
        self.directory = Path(directory) if directory is not None else get_storage_dir()

    def _path(self, key: str) -> Path:
        return self.directory / f"{self._UNSAFE.sub('_', key)}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise PersistenceError(f"{ERROR_STORAGE_UNAVAILABLE}: {e}") from e

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            # Write then rename so readers never see a half-written file
            fd, tmp = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(value)
                os.replace(tmp, path)
            except OSError:
                Path(tmp).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise PersistenceError(f"{ERROR_STORAGE_UNAVAILABLE}: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            raise PersistenceError(f"{ERROR_STORAGE_UNAVAILABLE}: {e}") from e


class RedisCartRepository:
    """
    Upstash Redis repository with the cart TTL.

    The client is created lazily from UPSTASH_REDIS_REST_* when not given.
    """

    def __init__(self, redis=None, ttl: int = TTL.CART):
        self._redis = redis
        self.ttl = ttl

    @property
    def redis(self):
        if self._redis is None:
            from storecart.db import create_redis_sync
            self._redis = create_redis_sync()
        return self._redis

    def get(self, key: str) -> Optional[str]:
        redis = self.redis
        try:
            value = redis.get(key)
        except Exception as e:
            raise PersistenceError(f"{ERROR_STORAGE_UNAVAILABLE}: {e}") from e
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value

    def set(self, key: str, value: str) -> None:
        redis = self.redis
        try:
            redis.set(key, value, ex=self.ttl)
        except Exception as e:
            raise PersistenceError(f"{ERROR_STORAGE_UNAVAILABLE}: {e}") from e

    def delete(self, key: str) -> None:
        redis = self.redis
        try:
            redis.delete(key)
        except Exception as e:
            raise PersistenceError(f"{ERROR_STORAGE_UNAVAILABLE}: {e}") from e


class LocalPersistenceAdapter:
    """
    Guest cart persistence for one vendor scope.

    load() at session start, save() after every mutation, clear() once the
    server has accepted the reconciled cart.
    """

    def __init__(self, repository: CartRepository, vendor_id: int, tax_rate: Decimal, owner_ref: str):
        self.repository = repository
        self.vendor_id = int(vendor_id)
        self.tax_rate = tax_rate
        self.owner_ref = owner_ref
        self.key = RedisKeys.local_cart_key(self.vendor_id)

    @property
    def _scope(self) -> str:
        return cart_scope(self.owner_ref, self.vendor_id)

    def _empty(self) -> Cart:
        return Cart.empty(self.owner_ref, self.vendor_id, self.tax_rate)

    def load(self) -> Cart:
        try:
            raw = self.repository.get(self.key)
        except PersistenceError as e:
            logger.warning(f"Failed to read local cart ({self._scope}): {e}")
            return self._empty()

        if not raw:
            return self._empty()

        try:
            payload = CartDocument.model_validate(json.loads(raw))
            cart = cart_from_payload(payload, self.owner_ref, self.vendor_id, self.tax_rate)
        except (json.JSONDecodeError, PayloadValidationError, CartError) as e:
            # Corrupted document - drop it and start over
            logger.warning(f"Corrupted local cart ({self._scope}): {e}")
            self._discard()
            return self._empty()

        if not totals_match(payload, cart):
            logger.warning(f"Stored totals disagree with lines ({self._scope}); using recomputed totals")
        return cart

    def save(self, cart: Cart) -> bool:
        """Persist a snapshot. Returns False (and logs) on failure."""
        try:
            self.repository.set(self.key, json.dumps(cart.to_dict()))
            return True
        except PersistenceError as e:
            logger.error(f"Failed to save local cart ({self._scope}): {e}")
            return False

    def clear(self) -> bool:
        """
        Remove the stored cart.

        If the delete fails an empty document is written in its place, so
        lines already handed to the server cannot come back on the next
        load(). Returns False only if both writes fail.
        """
        try:
            self.repository.delete(self.key)
            return True
        except PersistenceError as e:
            logger.warning(f"Failed to delete local cart ({self._scope}): {e}; writing an empty cart instead")
        return self.save(self._empty())

    def _discard(self) -> None:
        try:
            self.repository.delete(self.key)
        except PersistenceError as e:
            logger.warning(f"Failed to discard corrupted local cart ({self._scope}): {e}")
