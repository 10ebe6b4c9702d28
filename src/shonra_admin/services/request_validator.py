"""Origin / referer allow-list checks for public read endpoints."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from .ip_blocking import IPBlockEngine, ViolationKind

SUSPICIOUS_USER_AGENTS = re.compile(r"^(curl|wget|python-requests|postman|insomnia)", re.IGNORECASE)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidatorPolicy:
    """Per-route strictness."""

    require_referer: bool
    allow_no_referer: bool = True


class RequestValidator:
    """Reject requests whose Origin or Referer is outside the allow-list.

    Every rejection is recorded as an ``origin`` violation for the client IP.
    """

    def __init__(
        self,
        blocker: IPBlockEngine,
        allowed_origins: list[str],
        *,
        allowed_referers: list[str] | None = None,
        is_production: bool = False,
    ) -> None:
        self.blocker = blocker
        self.allowed_origins = [origin.rstrip("/") for origin in allowed_origins]
        self.allowed_referers = (
            allowed_referers if allowed_referers is not None else list(self.allowed_origins)
        )
        self.is_production = is_production

    def default_policy(self) -> ValidatorPolicy:
        return ValidatorPolicy(require_referer=self.is_production)

    def is_allowed_origin(self, origin: str) -> bool:
        return origin.rstrip("/") in self.allowed_origins

    def check(
        self,
        *,
        ip: str,
        origin: str | None,
        referer: str | None,
        user_agent: str | None,
        policy: ValidatorPolicy | None = None,
    ) -> str | None:
        """Validate request headers.

        Returns:
            None when the request passes, otherwise the rejection detail.
        """
        policy = policy or self.default_policy()
        error: str | None = None

        if origin and self.allowed_origins and not self.is_allowed_origin(origin):
            error = "Forbidden: Invalid origin"
        elif policy.require_referer and not referer and not policy.allow_no_referer:
            error = "Forbidden: Missing referer"
        elif (
            policy.require_referer
            and referer
            and self.allowed_referers
            and not any(referer.startswith(allowed) for allowed in self.allowed_referers)
        ):
            error = "Forbidden: Invalid referer"
        elif user_agent and SUSPICIOUS_USER_AGENTS.match(user_agent) and not origin and not referer:
            error = "Forbidden: Unauthorized access method"

        if error is None:
            return None

        logger.warning(
            "Request rejected for %s: %s (origin=%s referer=%s ua=%s)",
            ip,
            error,
            origin,
            referer,
            user_agent,
        )
        self.blocker.record_violation(ip, error, ViolationKind.ORIGIN)
        return error
