"""JSON envelope helpers shared by every endpoint."""

from __future__ import annotations

import math
from datetime import UTC, datetime
from typing import Any


def iso_from_ms(ms: int) -> str:
    """Format epoch milliseconds as ISO-8601 UTC with millisecond precision."""
    moment = datetime.fromtimestamp(ms / 1000, tz=UTC)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def iso_from_datetime(value: datetime | None) -> str | None:
    """Format a (naive UTC or aware) datetime in the envelope's timestamp style."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return iso_from_ms(int(value.timestamp() * 1000))


def utc_timestamp() -> str:
    """Return the current time in envelope format."""
    now = datetime.now(UTC)
    return iso_from_ms(int(now.timestamp() * 1000))


def format_response(
    success: bool,
    data: Any = None,
    message: str = "",
    error: str | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """Build the standard response envelope.

    Args:
        success: Whether the operation succeeded.
        data: Payload, or None.
        message: Human readable message.
        error: Error detail, or None.
        **extra: Additional top-level keys (for example ``retryAfter``).

    Returns:
        ``{success, data, message, error, timestamp, **extra}``.
    """
    body: dict[str, Any] = {
        "success": success,
        "data": data,
        "message": message,
        "error": error,
        "timestamp": utc_timestamp(),
    }
    body.update(extra)
    return body


def paginate(page: int, limit: int, total: int) -> dict[str, Any]:
    """Return pagination metadata for a page of ``limit`` rows."""
    total_pages = math.ceil(total / limit) if limit > 0 else 0
    return {
        "currentPage": page,
        "totalPages": total_pages,
        "totalCount": total,
        "limit": limit,
        "offset": (page - 1) * limit,
        "hasNext": page < total_pages,
        "hasPrev": page > 1,
    }
