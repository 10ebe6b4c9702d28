"""Tests for the response cache and its endpoint decorator."""

from __future__ import annotations

from typing import Any

import pytest
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient

from shonra_admin.services.response_cache import CACHE_HEADER, ResponseCache


@pytest.fixture()
def cache(fake_clock) -> ResponseCache:
    return ResponseCache(default_ttl_ms=1000, clock=fake_clock)


def test_set_get_and_expire(cache: ResponseCache, fake_clock) -> None:
    cache.set("GET:/a", b'{"a":1}')
    entry = cache.get("GET:/a")
    assert entry is not None
    assert entry.body == b'{"a":1}'
    assert entry.expires_at == fake_clock.now + 1000

    fake_clock.advance(1000)
    assert cache.get("GET:/a") is None
    assert cache.stats()["size"] == 0


def test_clear_by_substring(cache: ResponseCache) -> None:
    cache.set("GET:/api/categories/public", b"1")
    cache.set("GET:/api/categories/public?page=2", b"2")
    cache.set("GET:/api/products/public", b"3")

    assert cache.clear("GET:/api/categories") == 2
    assert cache.stats()["keys"] == ["GET:/api/products/public"]
    assert cache.clear() == 1


def test_sweep_removes_expired(cache: ResponseCache, fake_clock) -> None:
    cache.set("short", b"1", ttl_ms=10)
    cache.set("long", b"2", ttl_ms=10_000)
    fake_clock.advance(10)
    assert cache.sweep() == 1
    assert cache.stats()["keys"] == ["long"]


def _build_app(cache: ResponseCache) -> tuple[FastAPI, dict[str, int]]:
    app = FastAPI()
    calls = {"n": 0}

    @app.get("/items")
    @cache.cached(ttl_ms=5000)
    async def list_items(request: Request, q: str | None = None) -> dict[str, Any]:
        calls["n"] += 1
        return {"n": calls["n"], "q": q}

    @app.get("/missing")
    @cache.cached()
    async def missing(request: Request) -> Any:
        calls["n"] += 1
        return JSONResponse(status_code=404, content={"error": "nope"})

    @app.get("/by-header")
    @cache.cached(key_generator=lambda request: f"tenant:{request.headers.get('x-tenant')}")
    async def by_header(request: Request) -> dict[str, Any]:
        calls["n"] += 1
        return {"n": calls["n"]}

    @app.post("/items")
    @cache.cached()
    async def create_item(request: Request) -> dict[str, Any]:
        calls["n"] += 1
        return {"n": calls["n"]}

    return app, calls


def test_decorator_miss_then_hit(cache: ResponseCache) -> None:
    app, calls = _build_app(cache)
    client = TestClient(app)

    first = client.get("/items")
    assert first.headers[CACHE_HEADER] == "MISS"
    second = client.get("/items")
    assert second.headers[CACHE_HEADER] == "HIT"
    assert second.content == first.content
    assert second.headers["content-type"] == "application/json"
    assert calls["n"] == 1
    assert cache.stats()["hits"] == 1
    assert cache.stats()["misses"] == 1


def test_query_string_is_part_of_key(cache: ResponseCache) -> None:
    app, calls = _build_app(cache)
    client = TestClient(app)

    client.get("/items?q=a")
    response = client.get("/items?q=b")
    assert response.headers[CACHE_HEADER] == "MISS"
    assert response.json() == {"n": 2, "q": "b"}
    assert "GET:/items?q=a" in cache.stats()["keys"]


def test_entries_expire_after_ttl(cache: ResponseCache, fake_clock) -> None:
    app, calls = _build_app(cache)
    client = TestClient(app)

    client.get("/items")
    fake_clock.advance(5000)
    assert client.get("/items").headers[CACHE_HEADER] == "MISS"
    assert calls["n"] == 2


def test_uncacheable_status_passes_through(cache: ResponseCache) -> None:
    app, calls = _build_app(cache)
    client = TestClient(app)

    for _ in range(2):
        response = client.get("/missing")
        assert response.status_code == 404
        assert CACHE_HEADER not in response.headers
    assert calls["n"] == 2


def test_custom_key_generator(cache: ResponseCache) -> None:
    app, calls = _build_app(cache)
    client = TestClient(app)

    client.get("/by-header", headers={"x-tenant": "a"})
    assert client.get("/by-header", headers={"x-tenant": "a"}).headers[CACHE_HEADER] == "HIT"
    assert client.get("/by-header", headers={"x-tenant": "b"}).headers[CACHE_HEADER] == "MISS"
    assert "tenant:a" in cache.stats()["keys"]


def test_non_get_requests_bypass_cache(cache: ResponseCache) -> None:
    app, calls = _build_app(cache)
    client = TestClient(app)

    first = client.post("/items")
    second = client.post("/items")
    assert CACHE_HEADER not in second.headers
    assert (first.json()["n"], second.json()["n"]) == (1, 2)
    assert cache.stats()["size"] == 0
