"""Category endpoints; public reads are cached, every write clears the cache."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from shonra_admin.api.v1.dependencies import (
    AccessDep,
    RateLimit,
    SessionDep,
    ValidateRequest,
    get_current_user,
    require_permission,
)
from shonra_admin.core.errors import Conflict, NotFound, StoreError, ValidationFailed
from shonra_admin.core.responses import format_response, iso_from_datetime
from shonra_admin.models import PRODUCT_STATUS_ACTIVE, Category, SavedProduct
from shonra_admin.schemas.catalog import CategoryCreate, CategoryUpdate
from shonra_admin.services.response_cache import cached

router = APIRouter(prefix="/categories", tags=["categories"])

logger = logging.getLogger(__name__)

# Every cached read of this collection starts with this key prefix.
CACHE_PREFIX = "GET:/api/categories"

manage = [Depends(require_permission("categories.manage"))]


def _category_payload(category: Category, product_count: int | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": category.id,
        "name": category.name,
        "isActive": category.is_active,
        "createdAt": iso_from_datetime(category.created_at),
    }
    if product_count is not None:
        payload["productCount"] = product_count
    return payload


def _name_taken(db: SessionDep, name: str, exclude_id: int | None = None) -> bool:
    stmt = select(Category.id).where(Category.name == name)
    if exclude_id is not None:
        stmt = stmt.where(Category.id != exclude_id)
    return db.execute(stmt).first() is not None


def _commit(db: SessionDep, action: str) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise Conflict("Category name already exists") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise StoreError(f"Failed to {action} category") from exc


@router.get(
    "/public",
    dependencies=[
        Depends(RateLimit("categories-public", window_ms=60_000, max_requests=30)),
        Depends(ValidateRequest()),
    ],
)
@cached(ttl_ms=5 * 60 * 1000)
async def list_public_categories(request: Request, db: SessionDep) -> dict[str, Any]:
    """Active categories with the number of active products in each."""
    product_count = func.count(SavedProduct.id)
    stmt = (
        select(Category, product_count)
        .outerjoin(
            SavedProduct,
            and_(
                SavedProduct.category_id == Category.id,
                SavedProduct.status == PRODUCT_STATUS_ACTIVE,
            ),
        )
        .where(Category.is_active.is_(True))
        .group_by(Category.id)
        .order_by(Category.name)
    )
    rows = db.execute(stmt).all()
    return format_response(
        True,
        [_category_payload(category, count) for category, count in rows],
        "Categories retrieved successfully",
    )


@router.get("", dependencies=[Depends(get_current_user)])
async def list_categories(db: SessionDep) -> dict[str, Any]:
    categories = db.execute(select(Category).order_by(Category.name)).scalars().all()
    return format_response(
        True,
        [_category_payload(category) for category in categories],
        "Categories retrieved successfully",
    )


@router.post("", status_code=status.HTTP_201_CREATED, dependencies=manage)
async def create_category(payload: CategoryCreate, db: SessionDep, access: AccessDep) -> dict[str, Any]:
    """Create a category.

    Raises:
        Conflict: A category with the same name exists.
    """
    name = payload.name.strip()
    if not name:
        raise ValidationFailed("Category name is required")
    if _name_taken(db, name):
        raise Conflict("Category name already exists")

    category = Category(name=name, is_active=payload.is_active)
    db.add(category)
    _commit(db, "create")
    db.refresh(category)

    access.response_cache.clear(CACHE_PREFIX)
    logger.info("Category created: %s", category.name)
    return format_response(True, _category_payload(category), "Category created successfully")


@router.put("/{category_id}", dependencies=manage)
async def update_category(
    category_id: int,
    payload: CategoryUpdate,
    db: SessionDep,
    access: AccessDep,
) -> dict[str, Any]:
    category = db.get(Category, category_id)
    if category is None:
        raise NotFound("Category not found")

    if payload.name is not None:
        name = payload.name.strip()
        if not name:
            raise ValidationFailed("Category name is required")
        if _name_taken(db, name, exclude_id=category_id):
            raise Conflict("Category name already exists")
        category.name = name
    if payload.is_active is not None:
        category.is_active = payload.is_active

    _commit(db, "update")
    db.refresh(category)

    access.response_cache.clear(CACHE_PREFIX)
    return format_response(True, _category_payload(category), "Category updated successfully")


@router.delete("/{category_id}", dependencies=manage)
async def delete_category(category_id: int, db: SessionDep, access: AccessDep) -> dict[str, Any]:
    category = db.get(Category, category_id)
    if category is None:
        raise NotFound("Category not found")

    in_use = db.execute(
        select(func.count(SavedProduct.id)).where(SavedProduct.category_id == category_id)
    ).scalar_one()
    if in_use:
        raise ValidationFailed("Cannot delete category because it has assigned products")

    db.delete(category)
    _commit(db, "delete")

    access.response_cache.clear(CACHE_PREFIX)
    logger.info("Category deleted: %d", category_id)
    return format_response(True, None, "Category deleted successfully")
