"""IP block list, whitelist and violation escalation.

Violations recorded by the rate limiter, the request validator and the login
endpoint accumulate per client IP. Once an IP collects ``threshold``
violations inside ``window_ms`` a block is materialized for
``block_duration_ms``. Whitelisted IPs are never counted or blocked.
"""

from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass, field
from enum import Enum

from starlette.requests import HTTPConnection

from shonra_admin.core.clock import Clock, now_ms
from shonra_admin.core.settings import Settings

LOCALHOST_IPS = ("127.0.0.1", "::1")
UNKNOWN_IP = "unknown"
BLOCKED_LOG_INTERVAL_MS = 30_000
MAX_REASONS = 20

logger = logging.getLogger(__name__)


class ViolationKind(str, Enum):
    """Source of a violation; selects the auto-block reason."""

    RATE_LIMIT = "rate_limit"
    ORIGIN = "origin"
    LOGIN = "login"

    @property
    def block_reason(self) -> str:
        return _BLOCK_REASONS[self]


_BLOCK_REASONS = {
    ViolationKind.RATE_LIMIT: "Rate limit violations exceeded",
    ViolationKind.ORIGIN: "Origin/Referer violations exceeded",
    ViolationKind.LOGIN: "Failed login violations exceeded",
}


@dataclass
class BlockRecord:
    """An active denial of service for one IP."""

    ip: str
    blocked_until: int
    reason: str
    violations: int
    blocked_at: int
    history: list[str] = field(default_factory=list)

    def is_active(self, now: int) -> bool:
        return now < self.blocked_until


@dataclass
class ViolationLedger:
    """Running violation count for an IP that is not (yet) blocked."""

    count: int
    first_at: int
    last_at: int
    reasons: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class BlockStatus:
    """Result of :meth:`IPBlockEngine.is_blocked`."""

    is_blocked: bool
    blocked_until: int | None = None
    reason: str | None = None
    violations: int = 0


NOT_BLOCKED = BlockStatus(is_blocked=False)


def canonical_ip(value: str) -> str:
    """Normalize an address so equal peers share one key.

    IPv4-mapped IPv6 addresses are unwrapped, IPv6 loopback becomes
    ``127.0.0.1`` and IPv6 is compressed and lowercased. Values that do not
    parse are lowercased and returned as-is.
    """
    raw = value.strip()
    candidate = raw[1:-1] if raw.startswith("[") and raw.endswith("]") else raw
    try:
        address = ipaddress.ip_address(candidate)
    except ValueError:
        return raw.lower()

    if isinstance(address, ipaddress.IPv6Address):
        if address.ipv4_mapped is not None:
            address = address.ipv4_mapped
        elif address.is_loopback:
            return "127.0.0.1"
    return str(address)


def _is_parsable(ip: str) -> bool:
    try:
        ipaddress.ip_address(ip)
    except ValueError:
        return False
    return True


def _is_global(ip: str) -> bool:
    try:
        return ipaddress.ip_address(ip).is_global
    except ValueError:
        return False


def get_client_ip(request: HTTPConnection, trust_proxy: bool = True) -> str:
    """Derive the canonical client identity for a request.

    Args:
        request: Incoming request or websocket connection.
        trust_proxy: Honor ``X-Forwarded-For`` and ``X-Real-IP``.

    Returns:
        The first globally routable address in ``X-Forwarded-For`` (or the
        first parsable one), then ``X-Real-IP``, then the socket peer, else
        ``"unknown"``.
    """
    if trust_proxy:
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            hops = [canonical_ip(part) for part in forwarded_for.split(",") if part.strip()]
            parsable = [hop for hop in hops if _is_parsable(hop)]
            for hop in parsable:
                if _is_global(hop):
                    return hop
            if parsable:
                return parsable[0]

        real_ip = request.headers.get("x-real-ip")
        if real_ip and real_ip.strip():
            return canonical_ip(real_ip)

    if request.client and request.client.host:
        return canonical_ip(request.client.host)
    return UNKNOWN_IP


class IPBlockEngine:
    """Process-local block list, whitelist and violation ledger."""

    def __init__(
        self,
        *,
        threshold: int = 10,
        window_ms: int = 15 * 60 * 1000,
        block_duration_ms: int = 60 * 60 * 1000,
        auto_block: bool = True,
        whitelist: tuple[str, ...] | list[str] = (),
        clock: Clock = now_ms,
    ) -> None:
        self.threshold = threshold
        self.window_ms = window_ms
        self.block_duration_ms = block_duration_ms
        self.auto_block = auto_block
        self._clock = clock
        self._blocked: dict[str, BlockRecord] = {}
        self._whitelist: set[str] = set()
        self._violations: dict[str, ViolationLedger] = {}
        self._last_log: dict[str, int] = {}
        for ip in whitelist:
            self._whitelist.add(canonical_ip(ip))

    @classmethod
    def from_settings(cls, config: Settings, clock: Clock = now_ms) -> IPBlockEngine:
        """Build an engine from settings, seeding the whitelist."""
        seeds = list(config.whitelisted_ips)
        if not config.is_production:
            seeds.extend(LOCALHOST_IPS)
            logger.info("Non-production mode: localhost whitelisted automatically")
        engine = cls(
            threshold=config.violation_threshold,
            window_ms=config.violation_window_ms,
            block_duration_ms=config.block_duration_ms,
            auto_block=config.auto_block_enabled,
            clock=clock,
        )
        for ip in seeds:
            engine.whitelist_ip(ip)
        if config.whitelisted_ips:
            logger.info("Initialized %d whitelisted IP(s) from environment", len(config.whitelisted_ips))
        return engine

    # Whitelist

    def is_whitelisted(self, ip: str) -> bool:
        return canonical_ip(ip) in self._whitelist

    def whitelist_ip(self, ip: str) -> bool:
        """Whitelist ``ip``, lifting any block and forgetting its violations."""
        key = canonical_ip(ip)
        self._whitelist.add(key)
        self.unblock_ip(key)
        logger.info("IP whitelisted: %s", key)
        return True

    def remove_whitelist(self, ip: str) -> bool:
        key = canonical_ip(ip)
        if key not in self._whitelist:
            return False
        self._whitelist.discard(key)
        logger.info("IP removed from whitelist: %s", key)
        return True

    def list_whitelisted(self) -> list[str]:
        return sorted(self._whitelist)

    # Blocks

    def is_blocked(self, ip: str) -> BlockStatus:
        """Return the active block for ``ip``, evicting an expired one."""
        key = canonical_ip(ip)
        if key in self._whitelist:
            return NOT_BLOCKED

        record = self._blocked.get(key)
        if record is None:
            return NOT_BLOCKED

        if not record.is_active(self._clock()):
            del self._blocked[key]
            self._last_log.pop(key, None)
            return NOT_BLOCKED

        return BlockStatus(
            is_blocked=True,
            blocked_until=record.blocked_until,
            reason=record.reason,
            violations=record.violations,
        )

    def block_ip(
        self,
        ip: str,
        duration_ms: int | None = None,
        reason: str = "Manual block",
    ) -> bool:
        """Block ``ip`` for ``duration_ms``; whitelisted IPs are refused."""
        key = canonical_ip(ip)
        if key in self._whitelist:
            logger.warning("Attempted to block whitelisted IP: %s", key)
            return False

        now = self._clock()
        ledger = self._violations.pop(key, None)
        existing = self._blocked.get(key)
        if existing is not None and existing.is_active(now):
            violations = existing.violations + 1
        elif ledger is not None:
            violations = ledger.count
        else:
            violations = 1

        self._blocked[key] = BlockRecord(
            ip=key,
            blocked_until=now + (duration_ms or self.block_duration_ms),
            reason=reason,
            violations=violations,
            blocked_at=now,
            history=list(ledger.reasons) if ledger else [],
        )
        logger.warning("IP blocked: %s (%s, %d violations)", key, reason, violations)
        return True

    def unblock_ip(self, ip: str) -> bool:
        """Lift a block and reset the violation ledger for ``ip``."""
        key = canonical_ip(ip)
        existed = self._blocked.pop(key, None) is not None
        self._violations.pop(key, None)
        self._last_log.pop(key, None)
        if existed:
            logger.info("IP unblocked: %s", key)
        return existed

    def list_blocked(self) -> list[BlockRecord]:
        now = self._clock()
        return [record for record in self._blocked.values() if record.is_active(now)]

    # Violations

    def record_violation(
        self,
        ip: str,
        reason: str,
        kind: ViolationKind = ViolationKind.RATE_LIMIT,
    ) -> bool:
        """Count a violation against ``ip``.

        Returns:
            True when this violation materialized a new block.
        """
        key = canonical_ip(ip)
        if key in self._whitelist:
            return False

        now = self._clock()
        record = self._blocked.get(key)
        if record is not None and record.is_active(now):
            if len(record.history) < MAX_REASONS:
                record.history.append(reason)
            return False

        ledger = self._violations.get(key)
        if ledger is None or now - ledger.first_at > self.window_ms:
            ledger = ViolationLedger(count=0, first_at=now, last_at=now)
            self._violations[key] = ledger

        ledger.count += 1
        ledger.last_at = now
        ledger.reasons.append(reason)
        del ledger.reasons[:-MAX_REASONS]
        logger.info(
            "Recording violation for %s: %d/%d (%s)", key, ledger.count, self.threshold, reason
        )

        if not self.auto_block or ledger.count < self.threshold:
            return False

        logger.warning("Violation threshold reached for %s, blocking", key)
        self.block_ip(key, self.block_duration_ms, kind.block_reason)
        return True

    def reset_violations(self, ip: str) -> bool:
        return self._violations.pop(canonical_ip(ip), None) is not None

    def list_violations(self) -> dict[str, ViolationLedger]:
        now = self._clock()
        return {
            ip: ledger
            for ip, ledger in self._violations.items()
            if now - ledger.first_at <= self.window_ms
        }

    def should_log_blocked_access(self, ip: str) -> bool:
        """Throttle "blocked IP attempted access" lines to one per 30 s per IP."""
        key = canonical_ip(ip)
        now = self._clock()
        last = self._last_log.get(key)
        if last is not None and now - last <= BLOCKED_LOG_INTERVAL_MS:
            return False
        self._last_log[key] = now
        return True

    def sweep(self) -> int:
        """Evict expired blocks and stale violation ledgers."""
        now = self._clock()
        expired = [ip for ip, record in self._blocked.items() if not record.is_active(now)]
        for ip in expired:
            del self._blocked[ip]
            self._last_log.pop(ip, None)

        stale = [
            ip for ip, ledger in self._violations.items() if now - ledger.first_at > self.window_ms
        ]
        for ip in stale:
            del self._violations[ip]

        removed = len(expired) + len(stale)
        if removed:
            logger.info("Block sweep removed %d block(s) and %d ledger(s)", len(expired), len(stale))
        else:
            logger.debug("Block sweep found nothing to remove")
        return removed
