"""Exception handlers rendering every failure in the response envelope."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from shonra_admin.core.errors import AppError, Conflict
from shonra_admin.core.responses import format_response
from shonra_admin.core.settings import Settings

logger = logging.getLogger(__name__)


def _is_development(request: Request) -> bool:
    config: Settings | None = getattr(request.app.state, "settings", None)
    return bool(config and config.is_development)


def error_response(exc: AppError) -> JSONResponse:
    """Render an ``AppError`` as a JSON envelope response."""
    return JSONResponse(
        status_code=exc.status_code,
        content=format_response(False, exc.data, exc.message, exc.error, **exc.extra),
        headers=exc.headers or None,
    )


def _flatten_validation_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    errors: list[dict[str, Any]] = []
    for item in exc.errors():
        location = [str(part) for part in item.get("loc", ()) if part not in ("body", "query", "path")]
        errors.append({"field": ".".join(location) or None, "message": item.get("msg", "Invalid value")})
    return errors


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if isinstance(exc, Conflict):
        logger.info("%s %s conflict: %s", request.method, request.url.path, exc.message)
    elif exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    if exc.status_code >= 500 and not _is_development(request):
        exc.error = None
    return error_response(exc)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = _flatten_validation_errors(exc)
    return JSONResponse(
        status_code=400,
        content=format_response(False, None, "Validation failed", errors=errors),
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = "API endpoint not found" if exc.status_code == 404 else str(exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content=format_response(False, None, message),
        headers=getattr(exc, "headers", None),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled error on %s %s", request.method, request.url.path, exc_info=exc
    )
    detail = str(exc) if _is_development(request) else None
    return JSONResponse(
        status_code=500,
        content=format_response(False, None, "Internal server error", detail),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the envelope handlers on ``app``."""
    app.add_exception_handler(AppError, app_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_error_handler)
