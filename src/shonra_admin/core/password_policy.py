"""Password strength policy for admin accounts."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

MIN_LENGTH = 8
MAX_LENGTH = 128

COMMON_PASSWORDS = (
    "password",
    "123456",
    "admin",
    "qwerty",
    "letmein",
    "welcome",
    "monkey",
    "1234567890",
    "abc123",
    "password123",
    "admin123",
    "root",
    "toor",
    "pass",
    "test",
    "guest",
)

SEQUENCES = (
    "0123456789",
    "abcdefghijklmnopqrstuvwxyz",
    "qwertyuiop",
    "asdfghjkl",
    "zxcvbnm",
)
SEQUENCE_RUN = 5

_UPPER = re.compile(r"[A-Z]")
_LOWER = re.compile(r"[a-z]")
_DIGIT = re.compile(r"[0-9]")
_SYMBOL = re.compile(r"[^A-Za-z0-9\s]")
_REPEAT_5 = re.compile(r"(.)\1{4,}")
_REPEAT_4 = re.compile(r"(.)\1{3,}")
_NON_ALNUM = re.compile(r"[^a-z0-9]")


@dataclass
class PasswordCheck:
    """Outcome of a strength check."""

    ok: bool
    errors: list[str] = field(default_factory=list)
    strength: int = 0


def _sequence_windows() -> set[str]:
    windows: set[str] = set()
    for seq in SEQUENCES:
        for i in range(len(seq) - SEQUENCE_RUN + 1):
            window = seq[i : i + SEQUENCE_RUN]
            windows.add(window)
            windows.add(window[::-1])
    return windows


_SEQUENCE_WINDOWS = frozenset(_sequence_windows())


def _has_sequence(password: str) -> bool:
    compact = _NON_ALNUM.sub("", password.lower())
    return any(window in compact for window in _SEQUENCE_WINDOWS)


def password_strength(password: str) -> int:
    """Return a 0-100 strength score for the password."""
    score = 0
    length = len(password)
    if length >= 8:
        score += 10
    if length >= 12:
        score += 10
    if length >= 16:
        score += 5

    for pattern in (_LOWER, _UPPER, _DIGIT):
        if pattern.search(password):
            score += 10
    if re.search(r"[^a-zA-Z0-9]", password):
        score += 10

    unique_chars = len(set(password))
    score += min(unique_chars * 2, 20)
    if not _REPEAT_4.search(password):
        score += 10
    if length >= 12 and unique_chars >= 8:
        score += 5
    return min(score, 100)


def validate_password_strength(password: str | None) -> PasswordCheck:
    """Validate a candidate password against the admin password policy.

    Args:
        password: Candidate password.

    Returns:
        A ``PasswordCheck`` listing every failed rule. The check never raises;
        callers report the errors as a validation failure.
    """
    if not password or not isinstance(password, str):
        return PasswordCheck(ok=False, errors=["Password is required"], strength=0)

    errors: list[str] = []
    if len(password) < MIN_LENGTH:
        errors.append(f"Password must be at least {MIN_LENGTH} characters long")
    if len(password) > MAX_LENGTH:
        errors.append(f"Password must be at most {MAX_LENGTH} characters long")
    if not _UPPER.search(password):
        errors.append("Password must contain at least one uppercase letter (A-Z)")
    if not _LOWER.search(password):
        errors.append("Password must contain at least one lowercase letter (a-z)")
    if not _DIGIT.search(password):
        errors.append("Password must contain at least one number (0-9)")
    if not _SYMBOL.search(password):
        errors.append("Password must contain at least one special character (!@#$%^&*...)")

    lowered = password.lower()
    if any(common in lowered for common in COMMON_PASSWORDS):
        errors.append("Password cannot be a common password or contain common words")
    if _REPEAT_5.search(password):
        errors.append("Password cannot contain more than 4 repeated characters")
    if _has_sequence(password):
        errors.append("Password cannot contain sequential characters")

    return PasswordCheck(ok=not errors, errors=errors, strength=password_strength(password))


def describe_policy() -> dict[str, object]:
    """Return a client-facing description of the password policy."""
    return {
        "minLength": MIN_LENGTH,
        "maxLength": MAX_LENGTH,
        "requirements": [
            f"At least {MIN_LENGTH} characters long",
            "At least one uppercase letter (A-Z)",
            "At least one lowercase letter (a-z)",
            "At least one number (0-9)",
            "At least one special character (!@#$%^&*...)",
            "Cannot be a common password",
            "Cannot contain more than 4 repeated characters",
            "Cannot contain sequential characters (e.g., 12345, abcde)",
        ],
        "examples": {
            "weak": ["password", "12345678", "admin123"],
            "strong": ["MyP@ssw0rd!", "Tr0ub4dor&3", "C0rrectH0rseB@ttery"],
        },
    }
