"""Wall clock and randomness primitives shared by the access core."""

from __future__ import annotations

import secrets
import string
import time
from collections.abc import Callable

Clock = Callable[[], int]

_PASSWORD_CHARSET = string.ascii_letters + string.digits + "!@#$%^&*"


def now_ms() -> int:
    """Return the current wall-clock time in integer milliseconds since the epoch."""
    return time.time_ns() // 1_000_000


def random_bytes(n: int) -> bytes:
    """Return ``n`` cryptographically strong random bytes."""
    return secrets.token_bytes(n)


def random_hex(n: int) -> str:
    """Return ``n`` random bytes hex-encoded (``2 * n`` characters)."""
    return secrets.token_hex(n)


def random_int_in_range(lo: int, hi: int) -> int:
    """Return a random integer in ``[lo, hi)``."""
    if hi <= lo:
        raise ValueError("hi must be greater than lo")
    return lo + secrets.randbelow(hi - lo)


def generate_password(length: int = 12) -> str:
    """Generate a random password drawn from letters, digits and a few symbols."""
    return "".join(
        _PASSWORD_CHARSET[random_int_in_range(0, len(_PASSWORD_CHARSET))]
        for _ in range(length)
    )
