"""IP blocking administration endpoints."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request

from shonra_admin.api.pipeline import client_ip
from shonra_admin.api.v1.dependencies import AccessDep, default_limit, require_permission
from shonra_admin.core.errors import NotFound, ValidationFailed
from shonra_admin.core.responses import format_response, iso_from_ms
from shonra_admin.schemas.ip_blocking import BlockIPRequest, IPRequest
from shonra_admin.services.ip_blocking import BlockRecord, ViolationLedger, canonical_ip

router = APIRouter(prefix="/ip-blocking", tags=["ip-blocking"])

logger = logging.getLogger(__name__)

manage = [Depends(require_permission("ip_blocking.manage"))]


def _block_payload(record: BlockRecord, now: int) -> dict[str, Any]:
    return {
        "ip": record.ip,
        "reason": record.reason,
        "violations": record.violations,
        "blockedAt": iso_from_ms(record.blocked_at),
        "blockedUntil": iso_from_ms(record.blocked_until),
        "remainingMs": max(0, record.blocked_until - now),
        "history": list(record.history),
    }


def _ledger_payload(ip: str, ledger: ViolationLedger) -> dict[str, Any]:
    return {
        "ip": ip,
        "count": ledger.count,
        "firstViolation": iso_from_ms(ledger.first_at),
        "lastViolation": iso_from_ms(ledger.last_at),
        "reasons": list(ledger.reasons),
    }


@router.get("/status", dependencies=[Depends(default_limit())])
async def get_status(request: Request, access: AccessDep) -> dict[str, Any]:
    """Report the caller's IP, whether it is whitelisted or blocked, and its live rate buckets."""
    ip = client_ip(request)
    status = access.blocker.is_blocked(ip)
    return format_response(
        True,
        {
            "ip": ip,
            "isWhitelisted": access.blocker.is_whitelisted(ip),
            "isBlocked": status.is_blocked,
            "blockedUntil": iso_from_ms(status.blocked_until) if status.blocked_until else None,
            "reason": status.reason,
            "violations": status.violations,
            "rateLimits": access.rate_limiter.snapshot(ip),
        },
        "IP status retrieved",
    )


@router.get("/blocked", dependencies=manage)
async def list_blocked(access: AccessDep) -> dict[str, Any]:
    now = access.clock()
    blocked = [_block_payload(record, now) for record in access.blocker.list_blocked()]
    return format_response(True, blocked, f"{len(blocked)} blocked IP(s)")


@router.get("/whitelisted", dependencies=manage)
async def list_whitelisted(access: AccessDep) -> dict[str, Any]:
    whitelisted = access.blocker.list_whitelisted()
    return format_response(True, whitelisted, f"{len(whitelisted)} whitelisted IP(s)")


@router.get("/violations", dependencies=manage)
async def list_violations(access: AccessDep) -> dict[str, Any]:
    violations = [
        _ledger_payload(ip, ledger) for ip, ledger in access.blocker.list_violations().items()
    ]
    return format_response(True, violations, "Violations retrieved")


@router.post("/block", dependencies=manage)
async def block_ip(payload: BlockIPRequest, access: AccessDep) -> dict[str, Any]:
    """Block an IP manually.

    Whitelisted addresses cannot be blocked and yield 400.
    """
    ip = canonical_ip(payload.ip)
    reason = payload.reason or "Manual block by admin"
    if not access.blocker.block_ip(ip, payload.duration_ms, reason):
        raise ValidationFailed(f"Failed to block IP {ip} (may be whitelisted)")

    status = access.blocker.is_blocked(ip)
    return format_response(
        True,
        {
            "ip": ip,
            "reason": status.reason,
            "blockedUntil": iso_from_ms(status.blocked_until) if status.blocked_until else None,
        },
        f"IP {ip} blocked successfully",
    )


@router.post("/unblock", dependencies=manage)
async def unblock_ip(payload: IPRequest, access: AccessDep) -> dict[str, Any]:
    ip = canonical_ip(payload.ip)
    if not access.blocker.unblock_ip(ip):
        raise NotFound(f"IP {ip} is not currently blocked")
    # A fresh start also forgets the request budget.
    access.rate_limiter.reset(ip)
    return format_response(True, {"ip": ip}, f"IP {ip} unblocked successfully")


@router.post("/whitelist", dependencies=manage)
async def whitelist_ip(payload: IPRequest, access: AccessDep) -> dict[str, Any]:
    ip = canonical_ip(payload.ip)
    access.blocker.whitelist_ip(ip)
    return format_response(True, {"ip": ip}, f"IP {ip} added to whitelist")


@router.delete("/whitelist/{ip}", dependencies=manage)
async def remove_whitelist(ip: str, access: AccessDep) -> dict[str, Any]:
    key = canonical_ip(ip)
    if not access.blocker.remove_whitelist(key):
        raise NotFound(f"IP {key} is not whitelisted")
    return format_response(True, {"ip": key}, f"IP {key} removed from whitelist")
