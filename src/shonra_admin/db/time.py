"""Time utilities for database models and UTC-safe lockout comparisons."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import DateTime, Integer, literal
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.sql.expression import FunctionElement


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(UTC)


def utcnow_naive() -> datetime:
    """Return the current UTC time without tzinfo, as stored in DateTime columns."""
    return datetime.now(UTC).replace(tzinfo=None)


class utc_timestamp(FunctionElement):
    """The store's current UTC time, independent of the connection time zone."""

    type = DateTime()
    inherit_cache = True
    name = "utc_timestamp"


class utc_after_minutes(FunctionElement):
    """The store's current UTC time plus a number of minutes."""

    type = DateTime()
    inherit_cache = True
    name = "utc_after_minutes"

    def __init__(self, minutes: int) -> None:
        super().__init__(literal(int(minutes), Integer()))


@compiles(utc_timestamp)
def _default_utc_timestamp(element, compiler, **kw) -> str:
    return "CURRENT_TIMESTAMP"


@compiles(utc_timestamp, "mysql")
def _mysql_utc_timestamp(element, compiler, **kw) -> str:
    return "UTC_TIMESTAMP()"


@compiles(utc_timestamp, "postgresql")
def _pg_utc_timestamp(element, compiler, **kw) -> str:
    return "timezone('utc', now())"


@compiles(utc_timestamp, "sqlite")
def _sqlite_utc_timestamp(element, compiler, **kw) -> str:
    # Matches SQLAlchemy's SQLite DATETIME storage format (microseconds).
    return "(strftime('%Y-%m-%d %H:%M:%f', 'now') || '000')"


@compiles(utc_after_minutes)
def _default_utc_after(element, compiler, **kw) -> str:
    minutes = compiler.process(element.clauses, **kw)
    return f"(CURRENT_TIMESTAMP + {minutes} * INTERVAL '1' MINUTE)"


@compiles(utc_after_minutes, "mysql")
def _mysql_utc_after(element, compiler, **kw) -> str:
    minutes = compiler.process(element.clauses, **kw)
    return f"DATE_ADD(UTC_TIMESTAMP(), INTERVAL {minutes} MINUTE)"


@compiles(utc_after_minutes, "postgresql")
def _pg_utc_after(element, compiler, **kw) -> str:
    minutes = compiler.process(element.clauses, **kw)
    return f"(timezone('utc', now()) + make_interval(mins => {minutes}))"


@compiles(utc_after_minutes, "sqlite")
def _sqlite_utc_after(element, compiler, **kw) -> str:
    minutes = compiler.process(element.clauses, **kw)
    return f"(strftime('%Y-%m-%d %H:%M:%f', 'now', '+' || {minutes} || ' minutes') || '000')"
