"""SHA-256 signature envelope for the affiliate GraphQL API."""

from __future__ import annotations

import hashlib
import hmac
import json
from dataclasses import dataclass
from typing import Any

SCHEME = "SHA256"


@dataclass(frozen=True)
class SignatureEnvelope:
    """Parsed components of an affiliate ``Authorization`` header."""

    credential: str
    timestamp: str
    signature: str


def canonical_payload(query: str, variables: dict[str, Any] | None = None) -> str:
    """Serialize a GraphQL request body exactly as it is sent on the wire."""
    body: dict[str, Any] = {"query": query}
    if variables is not None:
        body["variables"] = variables
    return json.dumps(body, separators=(",", ":"), ensure_ascii=False)


def generate_signature(app_id: str, timestamp: int | str, payload: str, secret: str) -> str:
    """Return ``sha256_hex(app_id + timestamp + payload + secret)``.

    Args:
        app_id: Affiliate application id.
        timestamp: Unix time in seconds.
        payload: The exact request body.
        secret: Affiliate application secret.

    Returns:
        Lowercase hex digest.
    """
    factor = f"{app_id}{timestamp}{payload}{secret}"
    return hashlib.sha256(factor.encode("utf-8")).hexdigest()


def authorization_header(app_id: str, timestamp: int | str, signature: str) -> str:
    """Compose the ``Authorization`` header value."""
    return f"{SCHEME} Credential={app_id},Timestamp={timestamp},Signature={signature}"


def parse_authorization_header(header: str) -> SignatureEnvelope:
    """Parse an ``Authorization`` header built by :func:`authorization_header`.

    Raises:
        ValueError: If the header does not follow the envelope format.
    """
    scheme, sep, rest = header.partition(" ")
    if scheme != SCHEME or not sep:
        raise ValueError("Unsupported authorization scheme")

    parts: dict[str, str] = {}
    for item in rest.split(","):
        key, eq, value = item.partition("=")
        if not eq or not value:
            raise ValueError(f"Malformed authorization component: {item!r}")
        parts[key] = value

    try:
        return SignatureEnvelope(
            credential=parts["Credential"],
            timestamp=parts["Timestamp"],
            signature=parts["Signature"],
        )
    except KeyError as err:
        raise ValueError(f"Missing authorization component: {err.args[0]}") from err


def verify_signature(
    header: str,
    payload: str,
    secret: str,
    *,
    now_s: int | None = None,
    max_skew_s: int | None = None,
) -> bool:
    """Check a received envelope against the recomputed signature.

    Returns False for malformed headers, stale timestamps (when ``now_s`` and
    ``max_skew_s`` are given) and signature mismatches.
    """
    try:
        envelope = parse_authorization_header(header)
    except ValueError:
        return False

    if now_s is not None and max_skew_s is not None:
        try:
            skew = abs(now_s - int(envelope.timestamp))
        except ValueError:
            return False
        if skew > max_skew_s:
            return False

    expected = generate_signature(envelope.credential, envelope.timestamp, payload, secret)
    return hmac.compare_digest(expected, envelope.signature.lower())
