"""Password hashing built on PBKDF2-HMAC-SHA512."""

from __future__ import annotations

import hashlib
import hmac

from shonra_admin.core.clock import random_hex

PBKDF2_ITERATIONS = 10_000
PBKDF2_KEY_LENGTH = 64
SALT_BYTES = 16


def _derive(password: str, salt_hex: str) -> str:
    # The hex salt string itself is the PBKDF2 salt, matching stored records.
    return hashlib.pbkdf2_hmac(
        "sha512",
        password.encode("utf-8"),
        salt_hex.encode("utf-8"),
        PBKDF2_ITERATIONS,
        dklen=PBKDF2_KEY_LENGTH,
    ).hex()


def hash_password(password: str) -> str:
    """Hash a password with a fresh random salt.

    Args:
        password: Plain text password.

    Returns:
        A password record in the form ``"<salt hex>:<derived key hex>"``.
    """
    salt = random_hex(SALT_BYTES)
    return f"{salt}:{_derive(password, salt)}"


def verify_password(password: str, password_hash: str | None) -> bool:
    """Verify a password against a stored ``salt:key`` record.

    Args:
        password: Plain text password to check.
        password_hash: Stored password record.

    Returns:
        True if the password matches; False on mismatch or any malformed record.
    """
    if not password_hash or not isinstance(password, str):
        return False
    salt, sep, expected = password_hash.partition(":")
    if not sep or not salt or not expected:
        return False
    try:
        candidate = _derive(password, salt)
    except (TypeError, ValueError):
        return False
    return hmac.compare_digest(candidate, expected.lower())
