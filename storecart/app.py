"""
storecart cart service - FastAPI application

Usage:
    app = create_app(catalog, repository=RedisCartRepository())
    uvicorn.run(app)  # or any ASGI server
"""
from typing import Optional

from fastapi import FastAPI

from storecart import __version__
from storecart.cart.backend import ProductCatalog, ServerCartService
from storecart.cart.storage import CartRepository, RedisCartRepository
from storecart.config import VendorTaxRates
from storecart.routers import cart_router


def create_app(
    catalog: ProductCatalog,
    repository: Optional[CartRepository] = None,
    tax_rates: Optional[VendorTaxRates] = None,
) -> FastAPI:
    """
    Build the cart API.

    Args:
        catalog: Product/pricing source
        repository: Cart storage (defaults to Upstash Redis)
        tax_rates: Per-vendor tax rates (defaults to CART_VENDOR_TAX_RATES)
    """
    app = FastAPI(title="storecart", version=__version__)
    app.state.cart_service = ServerCartService(
        repository=repository if repository is not None else RedisCartRepository(),
        catalog=catalog,
        tax_rates=tax_rates if tax_rates is not None else VendorTaxRates.from_env(),
    )
    app.include_router(cart_router)

    @app.get("/health")
    def health():
        """Health check endpoint."""
        return {"status": "ok", "service": "storecart"}

    return app
