"""Keyed JSON response memoization with TTL and substring invalidation."""

from __future__ import annotations

import functools
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.requests import Request
from starlette.responses import Response

from shonra_admin.core.clock import Clock, now_ms

CACHE_HEADER = "X-Cache"

logger = logging.getLogger(__name__)

KeyGenerator = Callable[[Request], str]
ShouldCache = Callable[[Request, Response], bool]
Endpoint = Callable[..., Awaitable[Any]]


@dataclass
class CacheEntry:
    key: str
    body: bytes
    status_code: int
    media_type: str | None
    created_at: int
    expires_at: int


def default_cache_key(request: Request) -> str:
    """Return ``"GET:" + path[?query]``."""
    query = request.url.query
    return f"{request.method}:{request.url.path}" + (f"?{query}" if query else "")


def _default_should_cache(request: Request, response: Response) -> bool:
    return response.status_code == 200


def _find_request(args: tuple[Any, ...], kwargs: dict[str, Any]) -> Request | None:
    for value in (*kwargs.values(), *args):
        if isinstance(value, Request):
            return value
    return None


class ResponseCache:
    """In-memory cache of serialized GET responses."""

    def __init__(self, default_ttl_ms: int = 5 * 60 * 1000, clock: Clock = now_ms) -> None:
        self.default_ttl_ms = default_ttl_ms
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            logger.debug("Cache entry expired: %s", key)
            return None
        return entry

    def set(
        self,
        key: str,
        body: bytes,
        *,
        status_code: int = 200,
        media_type: str | None = "application/json",
        ttl_ms: int | None = None,
    ) -> CacheEntry:
        now = self._clock()
        entry = CacheEntry(
            key=key,
            body=body,
            status_code=status_code,
            media_type=media_type,
            created_at=now,
            expires_at=now + (ttl_ms if ttl_ms is not None else self.default_ttl_ms),
        )
        self._entries[key] = entry
        logger.debug("Cache set: %s", key)
        return entry

    def clear(self, pattern: str | None = None) -> int:
        """Remove every entry, or those whose key contains ``pattern``."""
        if pattern is None:
            removed = len(self._entries)
            self._entries.clear()
        else:
            keys = [key for key in self._entries if pattern in key]
            for key in keys:
                del self._entries[key]
            removed = len(keys)
        if removed:
            logger.info("Cache cleared %d entries (pattern=%s)", removed, pattern)
        return removed

    def sweep(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.info("Cache sweep removed %d expired entries", len(expired))
        else:
            logger.debug("Cache sweep found nothing to remove")
        return len(expired)

    def stats(self) -> dict[str, Any]:
        return {
            "size": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
            "keys": sorted(self._entries),
        }

    def cached(
        self,
        ttl_ms: int | None = None,
        key_generator: KeyGenerator | None = None,
        should_cache: ShouldCache | None = None,
    ) -> Callable[[Endpoint], Endpoint]:
        """Decorate an async endpoint so its GET responses are memoized in this cache."""
        return _decorate(lambda _request: self, ttl_ms, key_generator, should_cache)


def _app_cache(request: Request) -> ResponseCache:
    return request.app.state.access.response_cache


def cached(
    ttl_ms: int | None = None,
    key_generator: KeyGenerator | None = None,
    should_cache: ShouldCache | None = None,
) -> Callable[[Endpoint], Endpoint]:
    """Decorate an async endpoint so its GET responses are memoized.

    The endpoint must declare a ``request: Request`` parameter. The cache is
    the application's ``ResponseCache``, looked up per request. The return
    value (a JSON-able object or a ``Response``) is intercepted; cacheable
    results are stored and marked ``X-Cache: MISS``, later identical requests
    are answered from the cache with ``X-Cache: HIT``.

    Args:
        ttl_ms: Entry lifetime; defaults to the cache's default TTL.
        key_generator: Maps a request to its cache key.
        should_cache: Decides whether a produced response is stored.
    """
    return _decorate(_app_cache, ttl_ms, key_generator, should_cache)


def _decorate(
    resolve: Callable[[Request], ResponseCache],
    ttl_ms: int | None,
    key_generator: KeyGenerator | None,
    should_cache: ShouldCache | None,
) -> Callable[[Endpoint], Endpoint]:
    make_key = key_generator or default_cache_key
    accept = should_cache or _default_should_cache

    def decorator(func: Endpoint) -> Endpoint:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            request = _find_request(args, kwargs)
            if request is None or request.method != "GET":
                return await func(*args, **kwargs)

            cache = resolve(request)
            key = make_key(request)
            entry = cache.get(key)
            if entry is not None:
                cache.hits += 1
                logger.debug("Cache hit: %s", key)
                return Response(
                    content=entry.body,
                    status_code=entry.status_code,
                    media_type=entry.media_type,
                    headers={CACHE_HEADER: "HIT"},
                )

            cache.misses += 1
            result = await func(*args, **kwargs)
            response = (
                result
                if isinstance(result, Response)
                else JSONResponse(content=jsonable_encoder(result))
            )
            body = getattr(response, "body", None)
            if isinstance(body, bytes) and accept(request, response):
                cache.set(
                    key,
                    body,
                    status_code=response.status_code,
                    media_type=response.media_type,
                    ttl_ms=ttl_ms,
                )
                response.headers[CACHE_HEADER] = "MISS"
            return response

        # Resolve annotations against the endpoint's module for FastAPI.
        wrapper.__signature__ = inspect.signature(func, eval_str=True)  # type: ignore[attr-defined]
        return wrapper

    return decorator
