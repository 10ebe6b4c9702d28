"""Version 1 API endpoints."""

from .endpoints import (
    auth_router,
    categories_router,
    ip_blocking_router,
    products_router,
    system_router,
)

__all__ = [
    "auth_router",
    "categories_router",
    "ip_blocking_router",
    "products_router",
    "system_router",
]
