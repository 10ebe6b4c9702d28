"""Saved product endpoints."""

from __future__ import annotations

import math
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import func, select

from shonra_admin.api.v1.dependencies import (
    SessionDep,
    ValidateRequest,
    default_limit,
    require_permission,
)
from shonra_admin.core.responses import format_response, iso_from_datetime, paginate
from shonra_admin.models import PRODUCT_STATUS_ACTIVE, SavedProduct
from shonra_admin.services.response_cache import cached

router = APIRouter(prefix="/products", tags=["products"])


def _product_payload(product: SavedProduct) -> dict[str, Any]:
    return {
        "id": product.id,
        "itemId": product.item_id,
        "productName": product.product_name,
        "shopName": product.shop_name,
        "price": float(product.price) if product.price is not None else None,
        "commissionRate": float(product.commission_rate) if product.commission_rate is not None else None,
        "imageUrl": product.image_url,
        "offerLink": product.offer_link,
        "status": product.status,
        "categoryId": product.category_id,
        "createdAt": iso_from_datetime(product.created_at),
    }


@router.get("/saved", dependencies=[Depends(require_permission("products.view"))])
async def list_saved_products(
    db: SessionDep,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
    status: Annotated[str | None, Query()] = None,
) -> dict[str, Any]:
    """Page through saved products, newest first.

    Args:
        db: Database session.
        page: 1-based page number.
        limit: Page size.
        status: Optional status filter (``active`` or ``inactive``).

    Returns:
        Envelope with ``total``, ``page``, ``limit``, ``totalPages`` and
        a ``pagination`` block.
    """
    stmt = select(SavedProduct)
    count_stmt = select(func.count(SavedProduct.id))
    if status:
        stmt = stmt.where(SavedProduct.status == status)
        count_stmt = count_stmt.where(SavedProduct.status == status)

    total = db.execute(count_stmt).scalar_one()
    products = (
        db.execute(
            stmt.order_by(SavedProduct.created_at.desc(), SavedProduct.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        .scalars()
        .all()
    )
    return format_response(
        True,
        [_product_payload(product) for product in products],
        "Products retrieved successfully",
        total=total,
        page=page,
        limit=limit,
        totalPages=math.ceil(total / limit) if total else 0,
        pagination=paginate(page, limit, total),
    )


@router.get("/public", dependencies=[Depends(default_limit()), Depends(ValidateRequest())])
@cached(ttl_ms=3 * 60 * 1000)
async def list_public_products(
    request: Request,
    db: SessionDep,
    category_id: Annotated[int | None, Query(alias="categoryId")] = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
) -> dict[str, Any]:
    stmt = select(SavedProduct).where(SavedProduct.status == PRODUCT_STATUS_ACTIVE)
    if category_id is not None:
        stmt = stmt.where(SavedProduct.category_id == category_id)
    products = (
        db.execute(stmt.order_by(SavedProduct.created_at.desc(), SavedProduct.id.desc()).limit(limit))
        .scalars()
        .all()
    )
    return format_response(
        True,
        [_product_payload(product) for product in products],
        "Products retrieved successfully",
        total=len(products),
    )
