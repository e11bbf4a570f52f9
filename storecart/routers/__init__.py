"""
FastAPI Routers Package

All routers are included by storecart.app.create_app().
"""

from storecart.routers.cart import router as cart_router

__all__ = ["cart_router"]
