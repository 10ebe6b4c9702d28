"""Tests for the affiliate signature envelope."""

from __future__ import annotations

import hashlib
import json
import random

import pytest

from shonra_admin.core.signature import (
    SignatureEnvelope,
    authorization_header,
    canonical_payload,
    generate_signature,
    parse_authorization_header,
    verify_signature,
)


def test_signature_matches_known_digest() -> None:
    payload = '{"q":1}'
    expected = hashlib.sha256(b'A1700000000{"q":1}S').hexdigest()
    assert generate_signature("A", "1700000000", payload, "S") == expected
    assert generate_signature("A", 1700000000, payload, "S") == expected


def test_signature_is_deterministic() -> None:
    first = generate_signature("A", "1700000000", '{"q":1}', "S")
    second = generate_signature("A", "1700000000", '{"q":1}', "S")
    assert first == second
    assert generate_signature("A", "1700000001", '{"q":1}', "S") != first


def test_authorization_header_format() -> None:
    header = authorization_header("A", 1700000000, "abc")
    assert header == "SHA256 Credential=A,Timestamp=1700000000,Signature=abc"
    assert parse_authorization_header(header) == SignatureEnvelope("A", "1700000000", "abc")


@pytest.mark.parametrize(
    "header",
    [
        "",
        "Bearer token",
        "SHA256",
        "SHA256 Credential=A,Timestamp=1",
        "SHA256 Credential=A,Timestamp,Signature=x",
        "SHA256 Credential=,Timestamp=1,Signature=x",
    ],
)
def test_parse_rejects_malformed_headers(header: str) -> None:
    with pytest.raises(ValueError):
        parse_authorization_header(header)


def test_canonical_payload_is_compact_and_keeps_unicode() -> None:
    payload = canonical_payload("{ productOfferV2 { nodes { itemId } } }", {"keyword": "รองเท้า"})
    assert payload == (
        '{"query":"{ productOfferV2 { nodes { itemId } } }","variables":{"keyword":"รองเท้า"}}'
    )
    assert canonical_payload("{ a }") == '{"query":"{ a }"}'


def test_sign_then_verify_on_receiver() -> None:
    rng = random.Random(7)
    for _ in range(20):
        payload = json.dumps({"query": "q", "variables": {"n": rng.randint(0, 10**6)}})
        timestamp = 1_700_000_000 + rng.randint(0, 1000)
        signature = generate_signature("app", timestamp, payload, "secret")
        header = authorization_header("app", timestamp, signature)
        assert verify_signature(header, payload, "secret")
        assert not verify_signature(header, payload + " ", "secret")
        assert not verify_signature(header, payload, "other-secret")


def test_verify_enforces_skew_when_requested() -> None:
    payload = '{"query":"q"}'
    header = authorization_header("app", 1000, generate_signature("app", 1000, payload, "s"))
    assert verify_signature(header, payload, "s", now_s=1200, max_skew_s=300)
    assert not verify_signature(header, payload, "s", now_s=1400, max_skew_s=300)


def test_verify_rejects_garbage_header() -> None:
    assert verify_signature("nonsense", "{}", "s") is False
