"""Health endpoints."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from shonra_admin.api.v1.dependencies import SessionDep, SettingsDep
from shonra_admin.core.responses import format_response, utc_timestamp

router = APIRouter(tags=["system"])

logger = logging.getLogger(__name__)


@router.get("/health")
async def health(config: SettingsDep) -> dict[str, Any]:
    """Liveness probe; never touches the database."""
    return {"status": "healthy", "timestamp": utc_timestamp(), "service": config.app_name}


@router.get("/api/health/db", response_model=None)
async def database_health(db: SessionDep) -> dict[str, Any] | JSONResponse:
    """Run ``SELECT 1`` against the store."""
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("Database health check failed: %s", exc)
        return JSONResponse(
            status_code=500,
            content=format_response(False, {"database": "disconnected"}, "Database connection failed"),
        )
    return format_response(True, {"database": "connected"}, "Database connection successful")
