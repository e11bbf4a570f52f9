"""
Logging setup for storecart.

Usage:
    from storecart.logging import get_logger, cart_scope
    logger = get_logger(__name__)

    logger.info(f"Cart saved ({cart_scope(owner_ref, vendor_id)})")

Owner refs are guest session ids or user ids and come from the client, so
they go through sanitize_id_for_logging (directly or via cart_scope)
before reaching a log line.
"""

import logging
import os
import sys
from functools import cache

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FORMAT_SIMPLE = "%(levelname)s - %(name)s - %(message)s"

# Third-party loggers that log every request at INFO
_NOISY_LOGGERS = ("httpx", "httpcore", "upstash_redis")


def _get_log_level() -> int:
    level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_name, logging.INFO)


def _configure_root_logger() -> None:
    """Attach a stdout handler to the root logger unless the host app already did."""
    root = logging.getLogger()
    if root.handlers:
        return

    level = _get_log_level()
    root.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    production = os.environ.get("STORECART_ENV") == "production"
    handler.setFormatter(logging.Formatter(LOG_FORMAT_SIMPLE if production else LOG_FORMAT))
    root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


_configure_root_logger()


@cache
def get_logger(name: str) -> logging.Logger:
    """Module logger (pass __name__)."""
    return logging.getLogger(name)


def sanitize_id_for_logging(id_value: str | int | None) -> str:
    """
    Shorten an owner/session id to its first 8 characters.

    Control characters are escaped so a crafted id cannot forge log
    entries (CWE-117). Returns "N/A" for None or "".
    """
    if id_value is None or id_value == "":
        return "N/A"
    safe_value = (
        str(id_value)
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
        .replace("\x00", "")
    )
    return safe_value[:8]


def cart_scope(owner_ref: str | None, vendor_id: int) -> str:
    """Log label for one owner x vendor cart, e.g. "owner=guest-12 vendor=7"."""
    return f"owner={sanitize_id_for_logging(owner_ref)} vendor={vendor_id}"


__all__ = [
    "LOG_FORMAT",
    "LOG_FORMAT_SIMPLE",
    "cart_scope",
    "get_logger",
    "sanitize_id_for_logging",
]
