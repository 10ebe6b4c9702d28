"""Tests for the origin / referer validator."""

from __future__ import annotations

import pytest

from shonra_admin.services.ip_blocking import IPBlockEngine
from shonra_admin.services.request_validator import RequestValidator, ValidatorPolicy

IP = "203.0.113.30"
ALLOWED = ["https://shonra.example", "http://localhost:3000/"]


@pytest.fixture()
def blocker(fake_clock) -> IPBlockEngine:
    return IPBlockEngine(clock=fake_clock)


@pytest.fixture()
def validator(blocker: IPBlockEngine) -> RequestValidator:
    return RequestValidator(blocker, ALLOWED, is_production=True)


def _check(validator: RequestValidator, **headers):
    values = {"origin": None, "referer": None, "user_agent": "Mozilla/5.0"}
    values.update(headers)
    return validator.check(ip=IP, **values)


def test_allowed_origin_and_referer_pass(validator: RequestValidator) -> None:
    assert _check(
        validator,
        origin="https://shonra.example",
        referer="https://shonra.example/products",
    ) is None
    assert _check(validator, origin="http://localhost:3000") is None


def test_unknown_origin_rejected_and_recorded(validator: RequestValidator, blocker: IPBlockEngine) -> None:
    assert _check(validator, origin="https://evil.example") == "Forbidden: Invalid origin"
    ledger = blocker.list_violations()[IP]
    assert ledger.count == 1
    assert ledger.reasons == ["Forbidden: Invalid origin"]


def test_invalid_referer_rejected_in_production(validator: RequestValidator) -> None:
    assert _check(validator, referer="https://evil.example/page") == "Forbidden: Invalid referer"


def test_missing_referer_when_required(validator: RequestValidator) -> None:
    strict = ValidatorPolicy(require_referer=True, allow_no_referer=False)
    assert _check(validator, policy=strict) == "Forbidden: Missing referer"
    assert _check(validator) is None


def test_referer_not_checked_outside_production(blocker: IPBlockEngine) -> None:
    validator = RequestValidator(blocker, ALLOWED, is_production=False)
    assert _check(validator, referer="https://elsewhere.example/") is None


@pytest.mark.parametrize("agent", ["curl/8.4.0", "Wget/1.21", "python-requests/2.31", "PostmanRuntime/7.36"])
def test_scripted_clients_without_origin_rejected(validator: RequestValidator, agent: str) -> None:
    assert _check(validator, user_agent=agent) == "Forbidden: Unauthorized access method"
    assert _check(validator, user_agent=agent, origin="https://shonra.example") is None


def test_empty_allow_list_accepts_any_origin(blocker: IPBlockEngine) -> None:
    validator = RequestValidator(blocker, [], is_production=True)
    assert _check(validator, origin="https://anything.example") is None
