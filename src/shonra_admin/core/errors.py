"""Application error hierarchy mapped to HTTP responses by the API layer."""

from __future__ import annotations

from typing import Any


class AppError(Exception):
    """Base exception for failures that surface to clients with a fixed status.

    Every subclass carries the status code and the envelope fields the error
    handler renders: ``message``, optional ``data``, optional ``error`` and any
    additional top-level keys in ``extra``.
    """

    status_code = 500
    default_message = "Internal server error"

    def __init__(
        self,
        message: str | None = None,
        *,
        data: Any = None,
        error: str | None = None,
        headers: dict[str, str] | None = None,
        **extra: Any,
    ) -> None:
        self.message = message or self.default_message
        self.data = data
        self.error = error
        self.headers = headers or {}
        self.extra = extra
        super().__init__(self.message)


class IPBlocked(AppError):
    status_code = 403
    default_message = "Access forbidden"


class RateLimitExceeded(AppError):
    status_code = 429
    default_message = "Too many requests from this IP, please try again later."

    def __init__(self, message: str | None = None, *, retry_after: int) -> None:
        super().__init__(
            message,
            error=message or self.default_message,
            headers={"Retry-After": str(retry_after)},
            retryAfter=retry_after,
        )
        self.retry_after = retry_after


class OriginNotAllowed(AppError):
    status_code = 403
    default_message = "Origin/Referer not allowed"


class AuthenticationRequired(AppError):
    status_code = 401
    default_message = "Authentication required"


class PermissionDenied(AppError):
    status_code = 403
    default_message = "Admin access required"


class PasswordChangeRequired(AppError):
    status_code = 403
    default_message = "Password change required"


class AccountLocked(AppError):
    status_code = 423
    default_message = "Account is locked"


class InvalidCredentials(AppError):
    status_code = 401
    default_message = "Invalid username or password"


class ValidationFailed(AppError):
    status_code = 400
    default_message = "Validation failed"


class Conflict(AppError):
    status_code = 409
    default_message = "Resource already exists"


class NotFound(AppError):
    status_code = 404
    default_message = "Resource not found"


class UpstreamError(AppError):
    """Raised when the affiliate API fails or returns an unusable body.

    ``status`` and ``body`` stay server-side; only ``message`` reaches clients.
    """

    status_code = 500
    default_message = "Upstream service error"

    def __init__(
        self,
        message: str | None = None,
        *,
        status: int | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class StoreError(AppError):
    status_code = 500
    default_message = "Database error"


class RequestTimeout(AppError):
    status_code = 408
    default_message = "Request timeout"
