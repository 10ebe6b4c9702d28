"""In-memory admin session registry with sliding expiry."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any

from shonra_admin.core.clock import Clock, now_ms, random_hex

TOKEN_BYTES = 32
DEFAULT_ROLE = "Viewer"

logger = logging.getLogger(__name__)


@dataclass
class SessionUser:
    """Snapshot of the authenticated user taken at login."""

    id: int
    username: str
    full_name: str | None = None
    email: str | None = None
    role_id: int | None = None
    role: str = DEFAULT_ROLE
    permissions: list[str] = field(default_factory=list)
    requires_password_change: bool = False

    def has_permission(self, slug: str) -> bool:
        return slug in self.permissions

    def to_public(self) -> dict[str, Any]:
        """Return the camelCase representation sent to clients."""
        data = asdict(self)
        return {
            "id": data["id"],
            "username": data["username"],
            "fullName": data["full_name"],
            "email": data["email"],
            "roleId": data["role_id"],
            "role": data["role"],
            "permissions": data["permissions"],
            "requiresPasswordChange": data["requires_password_change"],
        }


@dataclass
class Session:
    """A live session keyed by its bearer token."""

    token: str
    user_id: int
    user: SessionUser
    created_at: int
    last_access_at: int
    expires_at: int


class SessionRegistry:
    """Token to session map with auto-refresh on read.

    A session is valid while ``now < expires_at``. Reads within
    ``refresh_threshold_ms`` of expiry push the expiry out by a full timeout.
    """

    def __init__(
        self,
        *,
        timeout_ms: int,
        refresh_threshold_ms: int,
        clock: Clock = now_ms,
    ) -> None:
        self.timeout_ms = timeout_ms
        self.refresh_threshold_ms = refresh_threshold_ms
        self._clock = clock
        self._sessions: dict[str, Session] = {}

    def create(self, user_id: int, user: SessionUser) -> str:
        """Store a new session and return its token."""
        now = self._clock()
        token = random_hex(TOKEN_BYTES)
        self._sessions[token] = Session(
            token=token,
            user_id=user_id,
            user=user,
            created_at=now,
            last_access_at=now,
            expires_at=now + self.timeout_ms,
        )
        logger.info("Session created for user %s", user_id)
        return token

    def get(self, token: str | None, auto_refresh: bool = True) -> Session | None:
        """Return the live session for ``token``, evicting it if expired."""
        if not token:
            return None
        session = self._sessions.get(token)
        if session is None:
            return None

        now = self._clock()
        if now >= session.expires_at:
            del self._sessions[token]
            return None

        if auto_refresh and session.expires_at - now < self.refresh_threshold_ms:
            session.expires_at = now + self.timeout_ms
            logger.debug("Session for user %s refreshed", session.user_id)
        session.last_access_at = now
        return session

    def delete(self, token: str | None) -> bool:
        if not token:
            return False
        removed = self._sessions.pop(token, None)
        if removed is not None:
            logger.info("Session deleted for user %s", removed.user_id)
        return removed is not None

    def delete_for_user(self, user_id: int, *, keep: str | None = None) -> int:
        """Remove every session of ``user_id`` except ``keep``."""
        tokens = [
            token
            for token, session in self._sessions.items()
            if session.user_id == user_id and token != keep
        ]
        for token in tokens:
            del self._sessions[token]
        if tokens:
            logger.info("Revoked %d session(s) for user %s", len(tokens), user_id)
        return len(tokens)

    def sweep(self) -> int:
        """Remove expired sessions and return how many were dropped."""
        now = self._clock()
        expired = [token for token, s in self._sessions.items() if now >= s.expires_at]
        for token in expired:
            del self._sessions[token]
        if expired:
            logger.info("Session sweep removed %d expired session(s)", len(expired))
        else:
            logger.debug("Session sweep found nothing to remove")
        return len(expired)

    def count(self) -> int:
        return len(self._sessions)
