"""Global request gates run before routing.

Registered by :func:`shonra_admin.main.create_app`, outermost first:
request timeout, request logging, security headers, IP blocking, origin
policy, then Starlette's CORS middleware.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections.abc import Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from shonra_admin.api.errors import error_response
from shonra_admin.core.errors import IPBlocked, OriginNotAllowed, RequestTimeout
from shonra_admin.core.responses import iso_from_ms
from shonra_admin.core.settings import Settings
from shonra_admin.services.access import AccessCore
from shonra_admin.services.ip_blocking import get_client_ip

BYPASS_PREFIXES = ("/api/uploads/",)
BYPASS_PATHS = ("/favicon.ico",)
STOREFRONT_PUBLIC_PATHS = (
    "/api/products/public",
    "/api/categories/public",
    "/api/health",
    "/health",
)
STOREFRONT_USER_AGENTS = ("SHONRA-Frontend", "node-fetch", "undici")
FRONTEND_SECRET_HEADER = "x-frontend-api-secret"

CallNext = Callable[[Request], Awaitable[Response]]

logger = logging.getLogger(__name__)


def _access(request: Request) -> AccessCore:
    return request.app.state.access


def client_ip(request: Request) -> str:
    """Return the canonical client IP, computed once per request."""
    cached = getattr(request.state, "client_ip", None)
    if cached:
        return cached
    config: Settings = request.app.state.settings
    ip = get_client_ip(request, trust_proxy=config.trust_proxy)
    request.state.client_ip = ip
    return ip


class RequestTimeoutMiddleware(BaseHTTPMiddleware):
    """Answer 408 when the downstream app has not produced headers in time."""

    def __init__(self, app: ASGIApp, timeout_ms: int) -> None:
        super().__init__(app)
        self.timeout_seconds = timeout_ms / 1000

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        try:
            return await asyncio.wait_for(call_next(request), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("Request timeout: %s %s", request.method, request.url.path)
            return error_response(RequestTimeout())


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log one line per request with status and duration."""

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "%s %s -> %d (%.1f ms) [%s]",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            client_ip(request),
        )
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Attach browser security headers; CSP and HSTS only in production."""

    def __init__(self, app: ASGIApp, production: bool) -> None:
        super().__init__(app)
        self.production = production

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        response = await call_next(request)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "SAMEORIGIN")
        response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
        response.headers.setdefault("Cross-Origin-Resource-Policy", "cross-origin")
        if self.production:
            response.headers.setdefault(
                "Content-Security-Policy",
                "default-src 'self'; img-src 'self' data: https:; object-src 'none'; frame-ancestors 'self'",
            )
            response.headers.setdefault(
                "Strict-Transport-Security", "max-age=31536000; includeSubDomains"
            )
        return response


def _is_storefront_fetch(request: Request, config: Settings) -> bool:
    path = request.url.path
    if not any(path.startswith(prefix) for prefix in STOREFRONT_PUBLIC_PATHS):
        return False
    user_agent = request.headers.get("user-agent", "")
    if not any(marker in user_agent for marker in STOREFRONT_USER_AGENTS):
        return False
    if not config.is_production or not config.frontend_api_secret:
        return True
    if request.headers.get(FRONTEND_SECRET_HEADER) == config.frontend_api_secret:
        return True
    logger.warning("Storefront request without a valid secret header from %s on %s", client_ip(request), path)
    return False


class IPBlockingMiddleware(BaseHTTPMiddleware):
    """Reject requests from blocked IPs with 403 before anything else runs."""

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        path = request.url.path
        if path in BYPASS_PATHS or path.startswith(BYPASS_PREFIXES):
            return await call_next(request)

        config: Settings = request.app.state.settings
        if _is_storefront_fetch(request, config):
            # Route limiters must still count this client if it is blocked.
            request.state.block_gate_bypassed = True
            return await call_next(request)

        access = _access(request)
        ip = client_ip(request)
        if access.blocker.is_whitelisted(ip):
            return await call_next(request)

        status = access.blocker.is_blocked(ip)
        if not status.is_blocked or status.blocked_until is None:
            return await call_next(request)

        remaining_minutes = max(1, math.ceil((status.blocked_until - access.clock()) / 60_000))
        if access.blocker.should_log_blocked_access(ip):
            logger.warning(
                "Blocked IP attempted access: %s (%s, %d minute(s) left)",
                ip,
                status.reason,
                remaining_minutes,
            )
        return error_response(
            IPBlocked(
                error="IP address blocked",
                reason=status.reason,
                blockedUntil=iso_from_ms(status.blocked_until),
                remainingMinutes=remaining_minutes,
            )
        )


class OriginPolicyMiddleware(BaseHTTPMiddleware):
    """In production, refuse cross-origin requests from unknown origins."""

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        config: Settings = request.app.state.settings
        origin = request.headers.get("origin")
        if not config.is_production or not origin:
            return await call_next(request)

        if _access(request).validator.is_allowed_origin(origin):
            return await call_next(request)

        logger.warning(
            "CORS blocked origin %s from %s; allowed: %s",
            origin,
            client_ip(request),
            ", ".join(config.allowed_origins),
        )
        return error_response(OriginNotAllowed(error="Not allowed by CORS"))
