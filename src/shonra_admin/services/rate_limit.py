"""Fixed-window request counters per (route class, client IP).

Every decision runs without suspension points: the bucket is inspected and
updated in the same synchronous call, so concurrent requests on the event
loop cannot both slip past ``max_requests``.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from shonra_admin.core.clock import Clock, now_ms
from shonra_admin.core.settings import Settings

from .ip_blocking import IPBlockEngine, ViolationKind

DEFAULT_MESSAGE = "Too many requests from this IP, please try again later."
STRICT_MESSAGE = "Too many login attempts. Please try again later."

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitProfile:
    """Window size, budget and rejection message for one route class."""

    window_ms: int
    max_requests: int
    message: str = DEFAULT_MESSAGE


@dataclass
class RateBucket:
    count: int
    reset_at: int
    window_ms: int
    max_requests: int


@dataclass(frozen=True)
class RateDecision:
    """Outcome of :meth:`RateLimiter.hit`."""

    allowed: bool
    count: int = 0
    retry_after: int = 0
    message: str = DEFAULT_MESSAGE


def default_profile(config: Settings) -> RateLimitProfile:
    return RateLimitProfile(config.rate_limit_window_ms, config.rate_limit_max_requests)


def strict_profile(config: Settings) -> RateLimitProfile:
    return RateLimitProfile(
        config.strict_rate_limit_window_ms,
        config.strict_rate_limit_max_requests,
        STRICT_MESSAGE,
    )


class RateLimiter:
    """Per-route-class buckets that report overflow to the block engine."""

    def __init__(self, blocker: IPBlockEngine, clock: Clock = now_ms) -> None:
        self.blocker = blocker
        self._clock = clock
        self._buckets: dict[tuple[str, str], RateBucket] = {}

    def hit(
        self,
        route_class: str,
        ip: str,
        profile: RateLimitProfile,
        *,
        count_blocked: bool = False,
    ) -> RateDecision:
        """Count one request from ``ip`` against ``route_class``.

        Blocked IPs pass through uncounted so the block engine's 403 is what
        the client sees, unless ``count_blocked`` is set because the block
        gate was skipped for this request. Whitelisted IPs are never counted.

        Args:
            route_class: Namespace for the buckets (one per limiter).
            ip: Canonical client IP.
            profile: Window and budget to enforce.
            count_blocked: Count blocked IPs like any other client.

        Returns:
            A ``RateDecision``; rejected decisions have already been recorded
            as a violation.
        """
        if not count_blocked and self.blocker.is_blocked(ip).is_blocked:
            return RateDecision(allowed=True)
        if self.blocker.is_whitelisted(ip):
            return RateDecision(allowed=True)

        now = self._clock()
        key = (route_class, ip)
        bucket = self._buckets.get(key)
        if bucket is None or now >= bucket.reset_at:
            self._buckets[key] = RateBucket(
                count=1,
                reset_at=now + profile.window_ms,
                window_ms=profile.window_ms,
                max_requests=profile.max_requests,
            )
            logger.debug("Rate bucket opened for %s on %s", ip, route_class)
            return RateDecision(allowed=True, count=1)

        if bucket.count >= profile.max_requests:
            retry_after = math.ceil((bucket.reset_at - now) / 1000)
            logger.warning(
                "Rate limit exceeded for %s on %s: %d/%d",
                ip,
                route_class,
                bucket.count,
                profile.max_requests,
            )
            self.blocker.record_violation(
                ip,
                f"Rate limit exceeded: {bucket.count}/{profile.max_requests} requests",
                ViolationKind.RATE_LIMIT,
            )
            return RateDecision(
                allowed=False,
                count=bucket.count,
                retry_after=retry_after,
                message=profile.message,
            )

        bucket.count += 1
        return RateDecision(allowed=True, count=bucket.count)

    def reset(self, ip: str | None = None) -> int:
        """Drop buckets for ``ip`` (or all buckets)."""
        keys = [key for key in self._buckets if ip is None or key[1] == ip]
        for key in keys:
            del self._buckets[key]
        return len(keys)

    def sweep(self) -> int:
        """Delete buckets whose window has ended."""
        now = self._clock()
        expired = [key for key, bucket in self._buckets.items() if bucket.reset_at <= now]
        for key in expired:
            del self._buckets[key]
        if expired:
            logger.info("Rate limiter sweep removed %d bucket(s)", len(expired))
        else:
            logger.debug("Rate limiter sweep found nothing to remove")
        return len(expired)

    def snapshot(self, ip: str | None = None) -> list[dict[str, object]]:
        """Return live bucket counts, optionally for a single IP."""
        now = self._clock()
        return [
            {
                "routeClass": route_class,
                "ip": bucket_ip,
                "count": bucket.count,
                "maxRequests": bucket.max_requests,
                "resetInMs": max(0, bucket.reset_at - now),
            }
            for (route_class, bucket_ip), bucket in self._buckets.items()
            if bucket.reset_at > now and (ip is None or bucket_ip == ip)
        ]
