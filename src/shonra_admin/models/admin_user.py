"""SQLAlchemy model for admin accounts and their lockout counters."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shonra_admin.db.session import Base
from shonra_admin.db.time import utcnow_naive

from .role import Role

USER_STATUS_ACTIVE = "active"
USER_STATUS_INACTIVE = "inactive"


class AdminUser(Base):
    """An administrator of the affiliate backend.

    ``password_hash`` is NULL for accounts that must set a password on first
    login. ``locked_until`` is stored as naive UTC.
    """

    __tablename__ = "admin_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=USER_STATUS_ACTIVE)
    role_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("roles.id", ondelete="SET NULL"),
        nullable=True,
    )
    failed_login_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    locked_until: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow_naive)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=utcnow_naive,
        onupdate=utcnow_naive,
    )

    role: Mapped[Role | None] = relationship("Role", lazy="joined")

    @property
    def is_active(self) -> bool:
        return self.status == USER_STATUS_ACTIVE
