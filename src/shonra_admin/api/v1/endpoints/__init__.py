"""API endpoint modules for version 1."""

from .auth import router as auth_router
from .categories import router as categories_router
from .ip_blocking import router as ip_blocking_router
from .products import router as products_router
from .system import router as system_router

__all__ = [
    "auth_router",
    "categories_router",
    "ip_blocking_router",
    "products_router",
    "system_router",
]
