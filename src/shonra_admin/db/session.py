"""Database session configuration."""

from __future__ import annotations

import logging
from collections.abc import Generator
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from shonra_admin.core.settings import Settings, settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base shared by all ORM models."""


# Ensure model modules are imported so that metadata is populated when create_all runs.
import shonra_admin.models  # noqa: E402,F401


def build_engine(config: Settings) -> Engine:
    """Create an engine with a bounded pool for the configured store.

    MySQL connections are pinned to ``DB_TIMEZONE`` so that session-local
    timestamp functions agree with the UTC values written by the lockout
    counters.
    """
    url = config.effective_database_url
    kwargs: dict[str, Any] = {"pool_pre_ping": True, "echo": config.sql_debug}

    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        kwargs["pool_size"] = config.db_pool_size
        kwargs["pool_recycle"] = 3600
        kwargs["connect_args"] = {"connect_timeout": config.db_connect_timeout}

    new_engine = create_engine(url, **kwargs)

    if new_engine.dialect.name == "mysql":
        timezone = config.db_timezone

        @event.listens_for(new_engine, "connect")
        def _set_time_zone(dbapi_connection, connection_record) -> None:  # pragma: no cover - needs MySQL
            cursor = dbapi_connection.cursor()
            try:
                cursor.execute("SET time_zone = %s", (timezone,))
            finally:
                cursor.close()

    logger.debug("Database engine created for dialect %s", new_engine.dialect.name)
    return new_engine


engine = build_engine(settings)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Yield a database session for dependency injection."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables() -> None:
    """Create all database tables."""
    Base.metadata.create_all(bind=engine)


def drop_tables() -> None:
    """Drop all database tables."""
    Base.metadata.drop_all(bind=engine)
