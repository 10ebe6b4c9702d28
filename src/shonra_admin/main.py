"""Main entry point for the Shonra admin backend."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from shonra_admin.api.errors import register_exception_handlers
from shonra_admin.api.pipeline import (
    IPBlockingMiddleware,
    OriginPolicyMiddleware,
    RequestLoggingMiddleware,
    RequestTimeoutMiddleware,
    SecurityHeadersMiddleware,
)
from shonra_admin.api.v1 import (
    auth_router,
    categories_router,
    ip_blocking_router,
    products_router,
    system_router,
)
from shonra_admin.core.clock import Clock, now_ms
from shonra_admin.core.settings import Settings, settings, validate_runtime
from shonra_admin.services.access import AccessCore, build_access_core

logger = logging.getLogger("shonra_admin")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(config: Settings) -> None:
    """Install a root handler at ``LOG_LEVEL`` once per process."""
    level = logging.getLevelName(config.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    logger.setLevel(level)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    access: AccessCore = app.state.access
    await access.start()
    try:
        yield
    finally:
        await access.stop()


def create_app(
    config: Settings | None = None,
    *,
    clock: Clock = now_ms,
    affiliate_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Build the application with its own access-control state.

    Args:
        config: Settings to use; defaults to the process-wide ``settings``.
        clock: Epoch-millisecond clock for every in-memory component.
        affiliate_transport: Optional httpx transport for the affiliate client.

    Returns:
        A configured FastAPI application.
    """
    config = config or settings
    configure_logging(config)
    validate_runtime(config)

    app = FastAPI(
        title="Shonra Admin API",
        description="Admin backend for the Shonra affiliate storefront",
        version=config.app_version,
        lifespan=lifespan,
    )
    app.state.settings = config
    app.state.access = build_access_core(config, clock, affiliate_transport=affiliate_transport)

    register_exception_handlers(app)

    # Starlette runs the last-added middleware first.
    app.add_middleware(GZipMiddleware)
    if config.is_production:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.allowed_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    else:
        app.add_middleware(
            CORSMiddleware,
            allow_origin_regex=".*",
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    app.add_middleware(OriginPolicyMiddleware)
    app.add_middleware(IPBlockingMiddleware)
    app.add_middleware(SecurityHeadersMiddleware, production=config.is_production)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestTimeoutMiddleware, timeout_ms=config.request_timeout_ms)

    # Include API routers
    app.include_router(system_router)
    app.include_router(auth_router, prefix="/api")
    app.include_router(ip_blocking_router, prefix="/api")
    app.include_router(categories_router, prefix="/api")
    app.include_router(products_router, prefix="/api")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("shonra_admin.main:app", host="0.0.0.0", port=settings.server_port)
