"""Pytest configuration and fixtures"""
import os

import httpx
import pytest

# Set test environment variables
os.environ.setdefault("CART_VENDOR_TAX_RATES", '{"7": "0.08"}')
os.environ.setdefault("CART_API_URL", "http://cart.test")

from storecart.app import create_app
from storecart.cart import CartStore, MemoryCartRepository, ProductRef
from storecart.cart.backend import InMemoryProductCatalog
from storecart.config import VendorTaxRates

from factories import TAX_RATE, VENDOR_ID


@pytest.fixture
def shirt():
    """Sample product with a variant"""
    return ProductRef(
        product_id=123,
        name="T-Shirt",
        unit_price="29.99",
        vendor_id=VENDOR_ID,
        variant="M/Red",
        image_url="https://cdn.test/shirt.png",
    )


@pytest.fixture
def mug():
    """Sample product without a variant"""
    return ProductRef(product_id=456, name="Mug", unit_price="12.50", vendor_id=VENDOR_ID)


@pytest.fixture
def store():
    """Empty guest cart store"""
    return CartStore("guest-1", VENDOR_ID, TAX_RATE)


@pytest.fixture
def repository():
    """In-memory cart repository"""
    return MemoryCartRepository()


@pytest.fixture
def tax_rates():
    return VendorTaxRates({VENDOR_ID: "0.08"})


@pytest.fixture
def catalog(shirt, mug):
    return InMemoryProductCatalog([shirt, mug])


@pytest.fixture
def app(catalog, tax_rates):
    """Reference cart API backed by memory storage"""
    return create_app(catalog, repository=MemoryCartRepository(), tax_rates=tax_rates)


@pytest.fixture
def asgi_client(app):
    """Async HTTP client wired to the reference cart API"""
    return httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://cart.test",
        headers={"X-Vendor-Id": str(VENDOR_ID)},
    )
