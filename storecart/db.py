"""
Database Module - Redis client factory and key layout

Provides:
- Sync Upstash Redis client for cart repositories
- Redis key builders for local and server carts
- TTL constants

Clients are created on request and owned by the caller; there are no
module-level instances.
"""

from upstash_redis import Redis

from storecart.config import get_redis_credentials


def create_redis_sync() -> Redis:
    """
    Create a sync Upstash Redis client.

    Uses standard Upstash env var names:
    - UPSTASH_REDIS_REST_URL
    - UPSTASH_REDIS_REST_TOKEN
    """
    url, token = get_redis_credentials()
    return Redis(url=url, token=token)


class RedisKeys:
    """Key prefixes for cart documents."""

    # Guest carts, one document per vendor scope
    LOCAL_CART = "cart:local:"  # cart:local:{vendor_id}

    # Server-side carts
    SERVER_CART = "cart:server:"  # cart:server:{vendor_id}:{owner_ref}

    @staticmethod
    def local_cart_key(vendor_id: int) -> str:
        return f"{RedisKeys.LOCAL_CART}{vendor_id}"

    @staticmethod
    def server_cart_key(vendor_id: int, owner_ref: str) -> str:
        return f"{RedisKeys.SERVER_CART}{vendor_id}:{owner_ref}"


class TTL:
    """Time-to-live constants for Redis keys (seconds)."""

    CART = 86400  # 24 hours
