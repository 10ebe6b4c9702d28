# tests/v1/test_api_categories.py
"""Tests for category endpoints and their response cache."""

from __future__ import annotations

from decimal import Decimal

import pytest
from fastapi import status

from shonra_admin.models import Category, SavedProduct

VISITOR = {"X-Forwarded-For": "203.0.113.80"}


@pytest.fixture()
def catalog(db_session):
    electronics = Category(name="Electronics")
    fashion = Category(name="Fashion")
    hidden = Category(name="Archive", is_active=False)
    db_session.add_all([electronics, fashion, hidden])
    db_session.flush()
    db_session.add_all(
        [
            SavedProduct(item_id="2001", product_name="Earbuds", price=Decimal("590"), category=electronics),
            SavedProduct(item_id="2002", product_name="Charger", price=Decimal("250"), category=electronics),
            SavedProduct(
                item_id="2003",
                product_name="Old cable",
                price=Decimal("50"),
                category=electronics,
                status="inactive",
            ),
        ]
    )
    db_session.commit()
    return {"electronics": electronics, "fashion": fashion, "hidden": hidden}


def test_public_categories_cached_until_write(client, catalog, admin_token, auth_headers) -> None:
    first = client.get("/api/categories/public", headers=VISITOR)
    assert first.status_code == status.HTTP_200_OK
    assert first.headers["X-Cache"] == "MISS"
    data = first.json()["data"]
    assert [item["name"] for item in data] == ["Electronics", "Fashion"]
    assert data[0]["productCount"] == 2
    assert data[1]["productCount"] == 0

    second = client.get("/api/categories/public", headers=VISITOR)
    assert second.headers["X-Cache"] == "HIT"
    assert second.content == first.content

    created = client.post("/api/categories", json={"name": "Home"}, headers=auth_headers(admin_token))
    assert created.status_code == status.HTTP_201_CREATED
    assert created.json()["data"]["name"] == "Home"

    third = client.get("/api/categories/public", headers=VISITOR)
    assert third.headers["X-Cache"] == "MISS"
    assert [item["name"] for item in third.json()["data"]] == ["Electronics", "Fashion", "Home"]


def test_public_categories_cache_expires(client, catalog, fake_clock) -> None:
    client.get("/api/categories/public", headers=VISITOR)
    fake_clock.advance(5 * 60 * 1000)
    assert client.get("/api/categories/public", headers=VISITOR).headers["X-Cache"] == "MISS"


def test_public_categories_rate_limited(client) -> None:
    for _ in range(30):
        assert client.get("/api/categories/public", headers=VISITOR).status_code == 200
    assert client.get("/api/categories/public", headers=VISITOR).status_code == 429


def test_public_categories_reject_foreign_origin(client) -> None:
    response = client.get(
        "/api/categories/public",
        headers={**VISITOR, "Origin": "https://evil.example"},
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN
    body = response.json()
    assert body["message"] == "Origin/Referer not allowed"
    assert body["error"] == "Forbidden: Invalid origin"


def test_public_categories_reject_scripted_clients(client) -> None:
    response = client.get("/api/categories/public", headers={**VISITOR, "User-Agent": "curl/8.4.0"})
    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json()["error"] == "Forbidden: Unauthorized access method"


def test_admin_list_includes_inactive(client, catalog, admin_token, auth_headers) -> None:
    response = client.get("/api/categories", headers=auth_headers(admin_token))
    assert response.status_code == status.HTTP_200_OK
    assert {item["name"] for item in response.json()["data"]} == {"Archive", "Electronics", "Fashion"}

    assert client.get("/api/categories", headers=VISITOR).status_code == status.HTTP_401_UNAUTHORIZED


def test_create_duplicate_category(client, catalog, admin_token, auth_headers) -> None:
    response = client.post(
        "/api/categories", json={"name": "  Fashion "}, headers=auth_headers(admin_token)
    )
    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["message"] == "Category name already exists"


def test_create_blank_category(client, admin_token, auth_headers) -> None:
    response = client.post("/api/categories", json={"name": "   "}, headers=auth_headers(admin_token))
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["message"] == "Category name is required"


def test_update_category(client, catalog, admin_token, auth_headers) -> None:
    category_id = catalog["fashion"].id
    response = client.put(
        f"/api/categories/{category_id}",
        json={"name": "Apparel", "isActive": False},
        headers=auth_headers(admin_token),
    )
    assert response.status_code == status.HTTP_200_OK
    data = response.json()["data"]
    assert data["name"] == "Apparel"
    assert data["isActive"] is False

    clash = client.put(
        f"/api/categories/{category_id}", json={"name": "Electronics"}, headers=auth_headers(admin_token)
    )
    assert clash.status_code == status.HTTP_409_CONFLICT


def test_update_missing_category(client, admin_token, auth_headers) -> None:
    response = client.put("/api/categories/9999", json={"name": "X"}, headers=auth_headers(admin_token))
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["message"] == "Category not found"


def test_delete_category_with_products(client, catalog, admin_token, auth_headers) -> None:
    response = client.delete(
        f"/api/categories/{catalog['electronics'].id}", headers=auth_headers(admin_token)
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["message"] == "Cannot delete category because it has assigned products"


def test_delete_empty_category(client, catalog, admin_token, auth_headers) -> None:
    response = client.delete(f"/api/categories/{catalog['fashion'].id}", headers=auth_headers(admin_token))
    assert response.status_code == status.HTTP_200_OK
    assert client.delete(
        f"/api/categories/{catalog['fashion'].id}", headers=auth_headers(admin_token)
    ).status_code == status.HTTP_404_NOT_FOUND


def test_writes_require_permission(client, make_user, login, auth_headers) -> None:
    make_user("viewer", "Correct1Pass!")
    token = login("viewer", "Correct1Pass!").json()["data"]["token"]
    response = client.post("/api/categories", json={"name": "Toys"}, headers=auth_headers(token))
    assert response.status_code == status.HTTP_403_FORBIDDEN
