"""Persistent failed-login counters and account lockout.

Lock state lives on ``admin_users`` (``failed_login_attempts``,
``locked_until``). Every "is it still locked" decision is made by the
database against its own UTC clock, so the connection time zone and the
application host's clock never enter the comparison. Store failures fail
open: a broken database must not lock administrators out.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import case, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shonra_admin.core.settings import Settings
from shonra_admin.db.time import utc_after_minutes, utc_timestamp, utcnow_naive
from shonra_admin.models import AdminUser

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LockStatus:
    """Result of :meth:`AccountLockoutService.check_locked`."""

    is_locked: bool
    locked_until: datetime | None = None
    remaining_minutes: int | None = None
    attempts: int = 0


@dataclass(frozen=True)
class LockResult:
    """Result of :meth:`AccountLockoutService.increment_failed_attempts`."""

    is_locked: bool
    attempts: int
    locked_until: datetime | None = None


UNLOCKED = LockStatus(is_locked=False)


def remaining_minutes(locked_until: datetime | None) -> int | None:
    """Whole minutes (rounded up, at least 1) until a naive-UTC lock expires."""
    if locked_until is None:
        return None
    seconds = (locked_until - utcnow_naive()).total_seconds()
    return max(1, math.ceil(seconds / 60))


class AccountLockoutService:
    """Failed-attempt counting and lockout on the admin store."""

    def __init__(self, config: Settings) -> None:
        self.max_attempts = config.max_failed_login_attempts
        self.lockout_minutes = config.account_lockout_minutes

    def config(self) -> dict[str, int]:
        return {
            "maxFailedAttempts": self.max_attempts,
            "lockoutDurationMinutes": self.lockout_minutes,
        }

    def _read(self, db: Session, user_id: int):
        is_locked = case(
            (AdminUser.locked_until.is_(None), False),
            (utc_timestamp() < AdminUser.locked_until, True),
            else_=False,
        ).label("is_locked")
        stmt = select(
            AdminUser.failed_login_attempts,
            AdminUser.locked_until,
            is_locked,
        ).where(AdminUser.id == user_id)
        return db.execute(stmt).one_or_none()

    def check_locked(self, db: Session, user_id: int) -> LockStatus:
        """Return the current lock state, clearing an expired lock.

        Args:
            db: Database session.
            user_id: Admin user id.

        Returns:
            ``LockStatus``; unlocked when the user does not exist or the
            store is unavailable.
        """
        try:
            row = self._read(db, user_id)
        except SQLAlchemyError:
            logger.error("Lockout check failed for user %s; allowing login", user_id, exc_info=True)
            db.rollback()
            return UNLOCKED

        if row is None:
            logger.debug("Lockout check: user %s not found", user_id)
            return UNLOCKED

        if bool(row.is_locked):
            minutes = remaining_minutes(row.locked_until)
            logger.warning("Account %s is locked for %s more minute(s)", user_id, minutes)
            return LockStatus(
                is_locked=True,
                locked_until=row.locked_until,
                remaining_minutes=minutes,
                attempts=row.failed_login_attempts,
            )

        if row.locked_until is not None:
            logger.info("Lockout expired for user %s, clearing", user_id)
            self.clear_lockout(db, user_id)
            return UNLOCKED

        return LockStatus(is_locked=False, attempts=row.failed_login_attempts)

    def increment_failed_attempts(self, db: Session, user_id: int) -> LockResult:
        """Count a failed password and lock the account at the threshold.

        An account that is already locked is returned unchanged, so repeated
        attempts cannot extend the lock.
        """
        try:
            row = self._read(db, user_id)
            if row is None:
                return LockResult(is_locked=False, attempts=0)

            if bool(row.is_locked):
                logger.warning("Account %s already locked; not incrementing attempts", user_id)
                return LockResult(
                    is_locked=True,
                    attempts=row.failed_login_attempts,
                    locked_until=row.locked_until,
                )

            attempts = row.failed_login_attempts or 0
            if row.locked_until is not None:
                # Expired lock: the counter restarts from zero.
                attempts = 0

            attempts += 1
            values: dict[str, object] = {"failed_login_attempts": attempts}
            locking = attempts >= self.max_attempts
            if locking:
                values["locked_until"] = utc_after_minutes(self.lockout_minutes)
            elif row.locked_until is not None:
                values["locked_until"] = None

            db.execute(update(AdminUser).where(AdminUser.id == user_id).values(**values))
            db.commit()

            if not locking:
                logger.debug(
                    "Failed login attempt %d/%d for user %s", attempts, self.max_attempts, user_id
                )
                return LockResult(is_locked=False, attempts=attempts)

            locked_until = db.execute(
                select(AdminUser.locked_until).where(AdminUser.id == user_id)
            ).scalar_one_or_none()
            logger.warning(
                "Account %s locked after %d failed attempts until %s",
                user_id,
                attempts,
                locked_until,
            )
            return LockResult(is_locked=True, attempts=attempts, locked_until=locked_until)
        except SQLAlchemyError:
            logger.error(
                "Failed to record login failure for user %s; failing open", user_id, exc_info=True
            )
            db.rollback()
            return LockResult(is_locked=False, attempts=0)

    def clear_lockout(self, db: Session, user_id: int) -> bool:
        """Reset the counter and lock together; False if the store failed."""
        try:
            db.execute(
                update(AdminUser)
                .where(AdminUser.id == user_id)
                .values(failed_login_attempts=0, locked_until=None)
            )
            db.commit()
        except SQLAlchemyError:
            logger.error("Failed to clear lockout for user %s", user_id, exc_info=True)
            db.rollback()
            return False
        logger.info("Lockout cleared for user %s", user_id)
        return True
