"""Shared API dependencies for route-scoped gates and authentication.

Route gates are declared in ``dependencies=[...]`` and run in order: rate
limit, request validator, then authentication and permission checks. All of
them are ``async`` so in-memory state is only touched from the event loop.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from shonra_admin.api.pipeline import client_ip
from shonra_admin.core.errors import (
    AuthenticationRequired,
    OriginNotAllowed,
    PasswordChangeRequired,
    PermissionDenied,
    RateLimitExceeded,
)
from shonra_admin.core.settings import Settings
from shonra_admin.db.session import get_db
from shonra_admin.services.access import AccessCore
from shonra_admin.services.rate_limit import (
    DEFAULT_MESSAGE,
    RateLimitProfile,
    default_profile,
    strict_profile,
)
from shonra_admin.services.request_validator import ValidatorPolicy
from shonra_admin.services.sessions import Session as AdminSession
from shonra_admin.services.sessions import SessionUser

# HTTP Bearer scheme for session tokens; missing credentials are handled below.
bearer_scheme = HTTPBearer(auto_error=False)

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]


def get_access(request: Request) -> AccessCore:
    """Return the application's access-control service object."""
    return request.app.state.access


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


AccessDep = Annotated[AccessCore, Depends(get_access)]
SettingsDep = Annotated[Settings, Depends(get_settings)]


class RateLimit:
    """Route dependency enforcing a per-IP request budget.

    Buckets are namespaced by ``name``; routes sharing a name share a budget.
    The profile is either fixed (``window_ms``/``max_requests``) or derived
    from settings by ``profile``.
    """

    def __init__(
        self,
        name: str,
        profile: Callable[[Settings], RateLimitProfile] | None = None,
        *,
        window_ms: int | None = None,
        max_requests: int | None = None,
        message: str = DEFAULT_MESSAGE,
    ) -> None:
        if profile is None and (window_ms is None or max_requests is None):
            raise ValueError("RateLimit needs a profile or window_ms and max_requests")
        self.name = name
        self._profile = profile
        self._fixed = (
            RateLimitProfile(window_ms, max_requests, message)
            if window_ms is not None and max_requests is not None
            else None
        )

    def resolve(self, config: Settings) -> RateLimitProfile:
        if self._profile is not None:
            return self._profile(config)
        return self._fixed  # type: ignore[return-value]

    async def __call__(self, request: Request) -> None:
        access = get_access(request)
        decision = access.rate_limiter.hit(
            self.name,
            client_ip(request),
            self.resolve(access.settings),
            count_blocked=getattr(request.state, "block_gate_bypassed", False),
        )
        if not decision.allowed:
            raise RateLimitExceeded(decision.message, retry_after=decision.retry_after)


def default_limit(name: str = "default") -> RateLimit:
    """Default profile (``RATE_LIMIT_*``)."""
    return RateLimit(name, default_profile)


def strict_limit(name: str = "auth") -> RateLimit:
    """Strict profile (``STRICT_RATE_LIMIT_*``) for authentication endpoints."""
    return RateLimit(name, strict_profile)


class ValidateRequest:
    """Route dependency applying the Origin/Referer allow-list."""

    def __init__(self, allow_no_referer: bool = True, require_referer: bool | None = None) -> None:
        self.allow_no_referer = allow_no_referer
        self.require_referer = require_referer

    async def __call__(self, request: Request) -> None:
        access = get_access(request)
        require = (
            self.require_referer
            if self.require_referer is not None
            else access.settings.is_production
        )
        error = access.validator.check(
            ip=client_ip(request),
            origin=request.headers.get("origin"),
            referer=request.headers.get("referer") or request.headers.get("referrer"),
            user_agent=request.headers.get("user-agent"),
            policy=ValidatorPolicy(require_referer=require, allow_no_referer=self.allow_no_referer),
        )
        if error is not None:
            raise OriginNotAllowed(error=error)


async def get_current_session(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> AdminSession:
    """Resolve the bearer token to a live session.

    Force-password-change sessions are returned as well; use
    ``get_current_user`` for endpoints that require a fully authenticated user.

    Raises:
        AuthenticationRequired: If the token is missing, unknown or expired.
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationRequired("Authentication required")
    session = get_access(request).sessions.get(credentials.credentials)
    if session is None:
        raise AuthenticationRequired("Invalid or expired session")
    return session


CurrentSessionDep = Annotated[AdminSession, Depends(get_current_session)]


async def get_current_user(session: CurrentSessionDep) -> SessionUser:
    """Return the session user, refusing one-shot password-change sessions."""
    if session.user.requires_password_change:
        raise PasswordChangeRequired(
            "Password change required",
            data={"requiresPasswordChange": True},
        )
    return session.user


CurrentUserDep = Annotated[SessionUser, Depends(get_current_user)]


def require_permission(slug: str) -> Callable[..., object]:
    """Build a dependency that admits only users holding ``slug``."""

    async def check_permission(user: CurrentUserDep) -> SessionUser:
        if not user.has_permission(slug):
            raise PermissionDenied("Admin access required")
        return user

    check_permission.__name__ = f"require_{slug.replace('.', '_')}"
    return check_permission


async def optional_bearer_token(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> str | None:
    return credentials.credentials if credentials else None


BearerTokenDep = Annotated[str | None, Depends(optional_bearer_token)]
