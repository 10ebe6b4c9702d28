"""Tests for the IP block engine and client IP derivation."""

from __future__ import annotations

import pytest
from starlette.requests import Request

from shonra_admin.core.settings import Settings
from shonra_admin.services.ip_blocking import (
    IPBlockEngine,
    ViolationKind,
    canonical_ip,
    get_client_ip,
)

MINUTE = 60 * 1000


@pytest.fixture()
def blocker(fake_clock) -> IPBlockEngine:
    return IPBlockEngine(
        threshold=3,
        window_ms=15 * MINUTE,
        block_duration_ms=60 * MINUTE,
        clock=fake_clock,
    )


def _request(headers: dict[str, str] | None = None, client: tuple[str, int] | None = ("10.0.0.9", 5000)) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("203.0.113.5", "203.0.113.5"),
        ("::ffff:203.0.113.5", "203.0.113.5"),
        ("::ffff:127.0.0.1", "127.0.0.1"),
        ("::1", "127.0.0.1"),
        ("2001:DB8:0:0:0:0:0:1", "2001:db8::1"),
        ("[2001:db8::2]", "2001:db8::2"),
        (" Not-An-IP ", "not-an-ip"),
    ],
)
def test_canonical_ip(raw: str, expected: str) -> None:
    assert canonical_ip(raw) == expected


def test_client_ip_prefers_first_global_forwarded_hop() -> None:
    request = _request({"X-Forwarded-For": "10.1.1.1, 8.8.8.8, 1.1.1.1"})
    assert get_client_ip(request) == "8.8.8.8"


def test_client_ip_falls_back_to_first_parsable_hop() -> None:
    request = _request({"X-Forwarded-For": "garbage, 10.1.1.1, 192.168.0.2"})
    assert get_client_ip(request) == "10.1.1.1"


def test_client_ip_uses_real_ip_then_peer() -> None:
    assert get_client_ip(_request({"X-Real-IP": "::ffff:8.8.4.4"})) == "8.8.4.4"
    assert get_client_ip(_request()) == "10.0.0.9"
    assert get_client_ip(_request(client=None)) == "unknown"


def test_client_ip_ignores_headers_without_trusted_proxy() -> None:
    request = _request({"X-Forwarded-For": "8.8.8.8"})
    assert get_client_ip(request, trust_proxy=False) == "10.0.0.9"


def test_violations_escalate_to_block(blocker: IPBlockEngine, fake_clock) -> None:
    assert blocker.record_violation("203.0.113.1", "r1") is False
    assert blocker.record_violation("203.0.113.1", "r2") is False
    assert blocker.record_violation("203.0.113.1", "r3") is True

    status = blocker.is_blocked("203.0.113.1")
    assert status.is_blocked
    assert status.reason == "Rate limit violations exceeded"
    assert status.blocked_until == fake_clock.now + 60 * MINUTE
    assert status.violations == 3
    assert "203.0.113.1" not in blocker.list_violations()


@pytest.mark.parametrize(
    ("kind", "reason"),
    [
        (ViolationKind.ORIGIN, "Origin/Referer violations exceeded"),
        (ViolationKind.LOGIN, "Failed login violations exceeded"),
    ],
)
def test_block_reason_follows_violation_kind(blocker: IPBlockEngine, kind, reason: str) -> None:
    for i in range(3):
        blocker.record_violation("203.0.113.2", f"v{i}", kind)
    assert blocker.is_blocked("203.0.113.2").reason == reason


def test_violation_window_resets_ledger(blocker: IPBlockEngine, fake_clock) -> None:
    blocker.record_violation("203.0.113.3", "a")
    blocker.record_violation("203.0.113.3", "b")
    fake_clock.advance(15 * MINUTE + 1)
    assert blocker.record_violation("203.0.113.3", "c") is False
    assert blocker.list_violations()["203.0.113.3"].count == 1


def test_violations_during_block_only_extend_history(blocker: IPBlockEngine) -> None:
    blocker.block_ip("203.0.113.4", reason="Manual block")
    until = blocker.is_blocked("203.0.113.4").blocked_until
    assert blocker.record_violation("203.0.113.4", "late") is False
    record = blocker.list_blocked()[0]
    assert record.history == ["late"]
    assert record.blocked_until == until


def test_block_expires_lazily(blocker: IPBlockEngine, fake_clock) -> None:
    blocker.block_ip("203.0.113.5", duration_ms=1000)
    assert blocker.is_blocked("203.0.113.5").is_blocked
    fake_clock.advance(1000)
    assert not blocker.is_blocked("203.0.113.5").is_blocked
    assert blocker.list_blocked() == []


def test_reblock_after_unswept_expiry_uses_fresh_ledger(blocker: IPBlockEngine, fake_clock) -> None:
    for i in range(3):
        blocker.record_violation("203.0.113.9", f"v{i}")
    assert blocker.list_blocked()[0].violations == 3

    fake_clock.advance(60 * MINUTE)
    blocker.record_violation("203.0.113.9", "after expiry")
    assert blocker.block_ip("203.0.113.9", reason="Manual block")

    record = blocker.list_blocked()[0]
    assert record.violations == 1
    assert record.history == ["after expiry"]


def test_reblock_increments_violations(blocker: IPBlockEngine) -> None:
    blocker.block_ip("203.0.113.6")
    blocker.block_ip("203.0.113.6")
    assert blocker.is_blocked("203.0.113.6").violations == 2


def test_whitelist_overrides_blocks(blocker: IPBlockEngine) -> None:
    blocker.block_ip("203.0.113.7")
    blocker.whitelist_ip("203.0.113.7")

    assert not blocker.is_blocked("203.0.113.7").is_blocked
    assert blocker.block_ip("203.0.113.7") is False
    for _ in range(5):
        assert blocker.record_violation("203.0.113.7", "ignored") is False
    assert blocker.list_violations() == {}

    assert blocker.remove_whitelist("203.0.113.7") is True
    assert blocker.remove_whitelist("203.0.113.7") is False
    assert blocker.list_whitelisted() == []


def test_unblock_clears_ledger(blocker: IPBlockEngine) -> None:
    blocker.record_violation("203.0.113.8", "a")
    blocker.block_ip("203.0.113.8")
    assert blocker.unblock_ip("203.0.113.8") is True
    assert blocker.unblock_ip("203.0.113.8") is False
    assert blocker.list_violations() == {}


def test_auto_block_disabled_still_records(fake_clock) -> None:
    engine = IPBlockEngine(threshold=1, auto_block=False, clock=fake_clock)
    assert engine.record_violation("203.0.113.9", "a") is False
    assert not engine.is_blocked("203.0.113.9").is_blocked
    assert engine.list_violations()["203.0.113.9"].count == 1


def test_blocked_access_logging_is_throttled(blocker: IPBlockEngine, fake_clock) -> None:
    assert blocker.should_log_blocked_access("203.0.113.10") is True
    assert blocker.should_log_blocked_access("203.0.113.10") is False
    fake_clock.advance(30_001)
    assert blocker.should_log_blocked_access("203.0.113.10") is True


def test_sweep_evicts_expired_blocks_and_stale_ledgers(blocker: IPBlockEngine, fake_clock) -> None:
    blocker.block_ip("203.0.113.11", duration_ms=MINUTE)
    blocker.record_violation("203.0.113.12", "a")
    fake_clock.advance(16 * MINUTE)
    assert blocker.sweep() == 2
    assert blocker.sweep() == 0


def test_from_settings_whitelists_localhost_outside_production(fake_clock) -> None:
    config = Settings(_env_file=None, NODE_ENV="development", WHITELISTED_IPS="203.0.113.50")
    engine = IPBlockEngine.from_settings(config, fake_clock)
    assert engine.is_whitelisted("127.0.0.1")
    assert engine.is_whitelisted("::1")
    assert engine.is_whitelisted("203.0.113.50")

    production = Settings(_env_file=None, NODE_ENV="production")
    assert not IPBlockEngine.from_settings(production, fake_clock).is_whitelisted("127.0.0.1")
