"""The access-control service object shared by middleware and routes.

All process-local state (blocks, buckets, sessions, cached responses) hangs
off one ``AccessCore`` built at application startup and stored on
``app.state.access``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from shonra_admin.core.clock import Clock, now_ms
from shonra_admin.core.settings import Settings

from .account_lockout import AccountLockoutService
from .affiliate import AffiliateClient
from .ip_blocking import IPBlockEngine
from .maintenance import MaintenanceWorker, SweepTask
from .rate_limit import RateLimiter
from .request_validator import RequestValidator
from .response_cache import ResponseCache
from .sessions import SessionRegistry

logger = logging.getLogger(__name__)


@dataclass
class AccessCore:
    """Container for every access-control component of one application."""

    settings: Settings
    clock: Clock
    blocker: IPBlockEngine
    sessions: SessionRegistry
    rate_limiter: RateLimiter
    response_cache: ResponseCache
    validator: RequestValidator
    lockout: AccountLockoutService
    affiliate: AffiliateClient
    worker: MaintenanceWorker

    async def start(self) -> None:
        await self.worker.start()
        logger.info("Access core started (sweep tick %d ms)", self.worker.tick_ms)

    async def stop(self) -> None:
        await self.worker.stop()
        await self.affiliate.aclose()
        logger.info("Access core stopped")


def build_access_core(
    config: Settings,
    clock: Clock = now_ms,
    *,
    affiliate_transport: httpx.AsyncBaseTransport | None = None,
) -> AccessCore:
    """Construct every component, leaves first.

    Args:
        config: Application settings.
        clock: Epoch-millisecond clock shared by all in-memory components.
        affiliate_transport: Optional httpx transport for the affiliate client.

    Returns:
        A ready ``AccessCore``; call ``start()`` to begin background sweeps.
    """
    blocker = IPBlockEngine.from_settings(config, clock)
    sessions = SessionRegistry(
        timeout_ms=config.session_timeout_ms,
        refresh_threshold_ms=config.auto_refresh_threshold_ms,
        clock=clock,
    )
    rate_limiter = RateLimiter(blocker, clock)
    response_cache = ResponseCache(config.response_cache_ttl_ms, clock)
    validator = RequestValidator(
        blocker,
        config.allowed_origins,
        is_production=config.is_production,
    )
    worker = MaintenanceWorker(
        [
            SweepTask("sessions", config.session_sweep_interval_ms, sessions.sweep),
            SweepTask("rate_limits", config.rate_limit_sweep_interval_ms, rate_limiter.sweep),
            SweepTask("response_cache", config.cache_sweep_interval_ms, response_cache.sweep),
            SweepTask("blocks", config.block_sweep_interval_ms, blocker.sweep),
        ],
        clock,
    )
    return AccessCore(
        settings=config,
        clock=clock,
        blocker=blocker,
        sessions=sessions,
        rate_limiter=rate_limiter,
        response_cache=response_cache,
        validator=validator,
        lockout=AccountLockoutService(config),
        affiliate=AffiliateClient(config, transport=affiliate_transport),
        worker=worker,
    )
