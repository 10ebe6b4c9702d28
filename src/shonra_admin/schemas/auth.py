"""Authentication request schemas."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class LoginRequest(BaseModel):
    """Credentials submitted to ``POST /api/auth/login``."""

    username: str = Field(..., min_length=1, description="Admin username")
    password: str = Field(..., min_length=1, description="Plain text password")


class ChangePasswordRequest(BaseModel):
    """Password change payload.

    ``oldPassword`` is required unless the caller holds a force-change session.
    """

    old_password: str | None = Field(None, alias="oldPassword")
    new_password: str = Field(..., alias="newPassword")

    model_config = ConfigDict(populate_by_name=True)


class UnlockAccountRequest(BaseModel):
    """Target of an admin unlock; one of ``username`` or ``userId`` is required."""

    username: str | None = None
    user_id: int | None = Field(None, alias="userId")

    model_config = ConfigDict(populate_by_name=True)
