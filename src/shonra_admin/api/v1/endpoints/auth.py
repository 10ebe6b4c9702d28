"""Authentication endpoints: login state machine, sessions and lockout admin."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from shonra_admin.api.pipeline import client_ip
from shonra_admin.api.v1.dependencies import (
    AccessDep,
    BearerTokenDep,
    CurrentSessionDep,
    SessionDep,
    require_permission,
    strict_limit,
)
from shonra_admin.core.errors import (
    AccountLocked,
    InvalidCredentials,
    NotFound,
    PasswordChangeRequired,
    StoreError,
    ValidationFailed,
)
from shonra_admin.core.password_policy import describe_policy, validate_password_strength
from shonra_admin.core.responses import format_response, iso_from_datetime
from shonra_admin.core.security import hash_password, verify_password
from shonra_admin.models import AdminUser
from shonra_admin.schemas.auth import ChangePasswordRequest, LoginRequest, UnlockAccountRequest
from shonra_admin.services.account_lockout import remaining_minutes
from shonra_admin.services.ip_blocking import ViolationKind
from shonra_admin.services.sessions import DEFAULT_ROLE, SessionUser

router = APIRouter(prefix="/auth", tags=["authentication"])

logger = logging.getLogger(__name__)


def build_session_user(user: AdminUser, *, requires_password_change: bool = False) -> SessionUser:
    """Snapshot an admin user, with role name and permission slugs, for a session."""
    role = user.role
    return SessionUser(
        id=user.id,
        username=user.username,
        full_name=user.full_name,
        email=user.email,
        role_id=user.role_id,
        role=role.name if role else DEFAULT_ROLE,
        permissions=role.permission_slugs if role else [],
        requires_password_change=requires_password_change,
    )


def _account_locked(locked_until: datetime | None, minutes: int | None) -> AccountLocked:
    minutes = minutes or remaining_minutes(locked_until) or 0
    return AccountLocked(
        f"Account is locked due to too many failed login attempts. "
        f"Please try again in {minutes} minute(s).",
        data={
            "locked": True,
            "lockedUntil": iso_from_datetime(locked_until),
            "remainingMinutes": minutes,
        },
    )


def _find_user(db: SessionDep, username: str | None, user_id: int | None) -> AdminUser | None:
    stmt = select(AdminUser)
    if user_id is not None:
        stmt = stmt.where(AdminUser.id == user_id)
    else:
        stmt = stmt.where(AdminUser.username == username)
    return db.execute(stmt).scalar_one_or_none()


@router.post("/login", dependencies=[Depends(strict_limit("auth-login"))])
async def login(payload: LoginRequest, request: Request, db: SessionDep, access: AccessDep) -> dict[str, Any]:
    """Authenticate an admin and issue a session token.

    Args:
        payload: Username and password.
        request: Incoming request (client IP for violation tracking).
        db: Database session.
        access: Access-control service object.

    Returns:
        Envelope with ``{user, token}``.

    Raises:
        AccountLocked: The account is locked, or this failure locked it.
        InvalidCredentials: Unknown user, disabled account or wrong password.
        PasswordChangeRequired: The account has no password yet; carries a
            one-shot session token valid only for ``/change-password``.
    """
    ip = client_ip(request)
    user = _find_user(db, payload.username, None)
    if user is None:
        logger.warning("Login failed for unknown username from %s", ip)
        raise InvalidCredentials()

    lock = access.lockout.check_locked(db, user.id)
    if lock.is_locked:
        logger.warning("Login attempt for locked account %s from %s", user.username, ip)
        raise _account_locked(lock.locked_until, lock.remaining_minutes)

    if not user.is_active:
        raise InvalidCredentials("Account is disabled")

    if user.password_hash is None:
        session_user = build_session_user(user, requires_password_change=True)
        token = access.sessions.create(user.id, session_user)
        logger.info("User %s must set a password before continuing", user.username)
        raise PasswordChangeRequired(
            "Password change required. Please set a new password.",
            data={
                "requiresPasswordChange": True,
                "token": token,
                "user": session_user.to_public(),
            },
        )

    # The lock may have been set by a concurrent request since the first check.
    lock = access.lockout.check_locked(db, user.id)
    if lock.is_locked:
        raise _account_locked(lock.locked_until, lock.remaining_minutes)

    if not verify_password(payload.password, user.password_hash):
        result = access.lockout.increment_failed_attempts(db, user.id)
        if result.attempts >= access.settings.login_violation_soft_threshold:
            access.blocker.record_violation(
                ip,
                f"Failed login for {user.username}: attempt {result.attempts}",
                ViolationKind.LOGIN,
            )
        if result.is_locked:
            raise _account_locked(result.locked_until, None)

        max_attempts = access.lockout.max_attempts
        raise InvalidCredentials(
            data={
                "remainingAttempts": max(0, max_attempts - result.attempts),
                "attempts": result.attempts,
                "maxAttempts": max_attempts,
            },
        )

    access.lockout.clear_lockout(db, user.id)
    session_user = build_session_user(user)
    token = access.sessions.create(user.id, session_user)
    logger.info("User %s logged in from %s", user.username, ip)
    return format_response(
        True,
        {"user": session_user.to_public(), "token": token},
        "Login successful",
    )


@router.post("/logout")
async def logout(token: BearerTokenDep, access: AccessDep) -> dict[str, Any]:
    """Delete the caller's session if there is one."""
    access.sessions.delete(token)
    return format_response(True, None, "Logout successful")


@router.get("/me")
async def me(session: CurrentSessionDep) -> dict[str, Any]:
    return format_response(True, session.user.to_public(), "User retrieved successfully")


@router.put("/change-password")
async def change_password(
    payload: ChangePasswordRequest,
    db: SessionDep,
    session: CurrentSessionDep,
    access: AccessDep,
) -> dict[str, Any]:
    """Set a new password.

    Force-change sessions skip the current-password check and are consumed on
    success. Every other session of the user is revoked.
    """
    check = validate_password_strength(payload.new_password)
    if not check.ok:
        raise ValidationFailed(
            "Password does not meet requirements",
            data={"errors": check.errors, "policy": describe_policy()},
        )

    user = db.get(AdminUser, session.user_id)
    if user is None:
        raise NotFound("User not found")

    forced = session.user.requires_password_change
    if not forced and user.password_hash is not None:
        if not payload.old_password:
            raise ValidationFailed("Current password is required")
        if not verify_password(payload.old_password, user.password_hash):
            raise InvalidCredentials("Current password is incorrect")

    user.password_hash = hash_password(payload.new_password)
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise StoreError("Failed to change password") from exc

    if forced:
        access.sessions.delete(session.token)
        access.sessions.delete_for_user(user.id)
    else:
        access.sessions.delete_for_user(user.id, keep=session.token)
    logger.info("Password changed for user %s", user.username)
    return format_response(True, None, "Password changed successfully")


@router.post("/unlock-account", dependencies=[Depends(require_permission("users.unlock"))])
async def unlock_account(
    payload: UnlockAccountRequest,
    db: SessionDep,
    access: AccessDep,
) -> dict[str, Any]:
    """Clear the failed-attempt counter and lock of an admin account."""
    if payload.username is None and payload.user_id is None:
        raise ValidationFailed("Username or userId is required")

    user = _find_user(db, payload.username, payload.user_id)
    if user is None:
        raise NotFound("User not found")

    status = access.lockout.check_locked(db, user.id)
    if not access.lockout.clear_lockout(db, user.id):
        raise StoreError("Failed to unlock account")

    logger.info("Account %s unlocked by admin", user.username)
    return format_response(
        True,
        {
            "userId": user.id,
            "username": user.username,
            "wasLocked": status.is_locked,
            "previousAttempts": status.attempts,
        },
        "Account unlocked successfully",
    )


@router.get("/check-lockout", dependencies=[Depends(require_permission("users.unlock"))])
async def check_lockout(
    db: SessionDep,
    access: AccessDep,
    username: Annotated[str | None, Query()] = None,
    user_id: Annotated[int | None, Query(alias="userId")] = None,
) -> dict[str, Any]:
    """Report the lock state of an admin account."""
    if username is None and user_id is None:
        raise ValidationFailed("Username or userId is required")

    user = _find_user(db, username, user_id)
    if user is None:
        raise NotFound("User not found")

    status = access.lockout.check_locked(db, user.id)
    return format_response(
        True,
        {
            "userId": user.id,
            "username": user.username,
            "isLocked": status.is_locked,
            "lockedUntil": iso_from_datetime(status.locked_until),
            "remainingMinutes": status.remaining_minutes,
            "failedAttempts": status.attempts,
            "config": access.lockout.config(),
        },
        "Lockout status retrieved",
    )


@router.get("/password-policy")
async def password_policy() -> dict[str, Any]:
    return format_response(True, describe_policy(), "Password policy retrieved")
