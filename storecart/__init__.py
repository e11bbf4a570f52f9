"""
storecart

Guest and authenticated shopping carts for a multi-vendor storefront:
- cart: models, pricing, store, reconciliation, persistence, session API
- routers: FastAPI reference implementation of the server cart endpoints
- services.money: fixed-point money helpers
"""

__version__ = "0.1.0"
