"""
Cart Errors

Exception taxonomy for cart operations plus shared message constants.

- ValidationError: bad input, the cart is left unchanged
- NotFoundError: operation on an absent line (non-fatal)
- PersistenceError: local storage failure (recovered by the adapter)
- NetworkError: server unreachable or non-success response
- ConfigurationError: missing or invalid setting

There is no merge-conflict error: reconciliation is additive only.
"""

# Validation
ERROR_INVALID_QUANTITY = "Quantity must be a positive integer"
ERROR_MISSING_PRODUCT = "Product reference is required"
ERROR_VENDOR_MISMATCH = "Cart lines must belong to the cart vendor"
ERROR_DUPLICATE_LINE = "Duplicate line key in cart"

# Lookup
ERROR_LINE_NOT_FOUND = "Cart line not found"

# Persistence / network
ERROR_STORAGE_UNAVAILABLE = "Cart storage unavailable"
ERROR_SERVER_UNAVAILABLE = "Cart server unavailable"
ERROR_MALFORMED_RESPONSE = "Malformed cart response"

# Configuration
ERROR_TAX_RATE_NOT_CONFIGURED = "Tax rate is not configured for vendor"


class CartError(Exception):
    """Base class for cart errors."""


class ValidationError(CartError):
    """Input rejected before any state change."""


class InvalidQuantity(ValidationError):
    """Quantity is not a positive integer."""

    def __init__(self, quantity=None):
        self.quantity = quantity
        super().__init__(f"{ERROR_INVALID_QUANTITY}, got {quantity!r}")


class NotFoundError(CartError):
    """Line is not present in the cart. Callers may ignore it."""

    def __init__(self, key=None):
        self.key = key
        super().__init__(f"{ERROR_LINE_NOT_FOUND}: {key!r}")


class PersistenceError(CartError):
    """Local storage read or write failed."""


class NetworkError(CartError):
    """Server call failed; the cart was not advanced."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class ConfigurationError(CartError):
    """Required configuration is missing or invalid."""
