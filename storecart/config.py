"""Cart configuration read from the environment.

Values are read on each call so tests can patch the environment.
"""
import json
import os
from decimal import Decimal
from pathlib import Path
from typing import Dict, Mapping, Optional

from storecart.errors import ConfigurationError, ERROR_TAX_RATE_NOT_CONFIGURED
from storecart.services.money import parse_amount

DEFAULT_API_TIMEOUT = 10.0


def get_cart_api_url() -> str:
    """Base URL of the server cart API."""
    url = os.environ.get("CART_API_URL", "").strip()
    if not url:
        raise ConfigurationError("CART_API_URL must be set")
    return url.rstrip("/")


def get_cart_api_timeout() -> float:
    raw = os.environ.get("CART_API_TIMEOUT")
    if not raw:
        return DEFAULT_API_TIMEOUT
    try:
        timeout = float(raw)
    except ValueError:
        raise ConfigurationError(f"CART_API_TIMEOUT must be a number, got {raw!r}")
    if timeout <= 0:
        raise ConfigurationError("CART_API_TIMEOUT must be positive")
    return timeout


def get_storage_dir() -> Path:
    """Directory for the file-backed local cart repository."""
    raw = os.environ.get("CART_STORAGE_DIR", "").strip()
    if raw:
        return Path(raw)
    return Path.home() / ".storecart"


def get_redis_credentials() -> tuple[str, str]:
    """Upstash REST credentials (standard env var names)."""
    url = os.environ.get("UPSTASH_REDIS_REST_URL", "")
    token = os.environ.get("UPSTASH_REDIS_REST_TOKEN", "")
    if not url or not token:
        raise ConfigurationError("UPSTASH_REDIS_REST_URL and UPSTASH_REDIS_REST_TOKEN must be set")
    return url, token


class VendorTaxRates:
    """
    The single authoritative per-vendor tax rate source.

    Rates are fractions ("0.08" is 8%). A vendor without an entry is a
    configuration error; there is no fallback rate.
    """

    def __init__(self, rates: Optional[Mapping[int, Decimal]] = None):
        self._rates: Dict[int, Decimal] = {}
        for vendor_id, rate in (rates or {}).items():
            self._rates[int(vendor_id)] = self._validate(vendor_id, rate)

    @staticmethod
    def _validate(vendor_id, rate) -> Decimal:
        try:
            value = parse_amount(rate)
        except ValueError:
            raise ConfigurationError(f"Invalid tax rate for vendor {vendor_id}: {rate!r}")
        if value >= 1:
            raise ConfigurationError(f"Tax rate for vendor {vendor_id} must be below 1, got {rate!r}")
        return value

    @classmethod
    def from_env(cls) -> "VendorTaxRates":
        """Load rates from CART_VENDOR_TAX_RATES, e.g. '{"7": "0.08"}'."""
        raw = os.environ.get("CART_VENDOR_TAX_RATES", "").strip()
        if not raw:
            return cls()
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"CART_VENDOR_TAX_RATES is not valid JSON: {e}")
        if not isinstance(data, dict):
            raise ConfigurationError("CART_VENDOR_TAX_RATES must be a JSON object")
        try:
            return cls({int(k): v for k, v in data.items()})
        except ValueError:
            raise ConfigurationError("CART_VENDOR_TAX_RATES keys must be vendor ids")

    def for_vendor(self, vendor_id: int) -> Decimal:
        rate = self._rates.get(int(vendor_id))
        if rate is None:
            raise ConfigurationError(f"{ERROR_TAX_RATE_NOT_CONFIGURED} {vendor_id}")
        return rate

    def __contains__(self, vendor_id) -> bool:
        return int(vendor_id) in self._rates
