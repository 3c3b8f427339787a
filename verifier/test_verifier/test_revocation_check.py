# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

from unittest import mock

import httpx
import pytest

from common.cache import InMemoryTTLCache
from common.clock import FixedClock
from common.config import FailurePolicy

from verifier.config import VerifierConfig
from verifier.revocation_check import RevocationChecker

STATUS_URL = "http://issuer.test"
CREDENTIAL_ID = "5b5e2a2c-6c1e-4f4b-9d4e-6f1b3c1d2e3f"


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def status_config() -> VerifierConfig:
    config = VerifierConfig()
    config.issuer_status_url = STATUS_URL
    return config


def _checker(config: VerifierConfig, clock: FixedClock, policy: FailurePolicy = FailurePolicy.FAIL_OPEN) -> RevocationChecker:
    return RevocationChecker(config, InMemoryTTLCache(clock), ttl=60, policy=policy, clock=clock)


@pytest.mark.parametrize("is_valid", [True, False])
def test_status_of_issuer(status_config, clock, is_valid):
    checker = _checker(status_config, clock)
    with mock.patch("httpx.request", return_value=httpx.Response(200, json={"credential_id": CREDENTIAL_ID, "is_valid": is_valid})) as request:
        status = checker.status(CREDENTIAL_ID)
    assert status.is_valid is is_valid
    assert not status.from_policy
    assert request.call_args.args == ("GET", f"{STATUS_URL}/credentials/{CREDENTIAL_ID}/valid")


def test_unknown_credential_is_not_valid(status_config, clock):
    checker = _checker(status_config, clock)
    with mock.patch("httpx.request", return_value=httpx.Response(404, json={"error": "not_found"})):
        assert not checker.is_valid(CREDENTIAL_ID)


@pytest.mark.parametrize("credential_id", [None, "", " "])
def test_blank_credential_id_is_not_valid(status_config, clock, credential_id):
    checker = _checker(status_config, clock)
    with mock.patch("httpx.request") as request:
        assert not checker.is_valid(credential_id)
    request.assert_not_called()


def test_status_is_cached_for_ttl(status_config, clock):
    checker = _checker(status_config, clock)
    with mock.patch("httpx.request", return_value=httpx.Response(200, json={"is_valid": True})) as request:
        assert checker.is_valid(CREDENTIAL_ID)
        clock.advance(59)
        assert checker.is_valid(CREDENTIAL_ID)
    request.assert_called_once()

    clock.advance(1)
    with mock.patch("httpx.request", return_value=httpx.Response(200, json={"is_valid": False})) as request:
        assert not checker.is_valid(CREDENTIAL_ID), "An expired entry has to be looked up again"
    request.assert_called_once()


@pytest.mark.parametrize(
    "policy,expected",
    [
        (FailurePolicy.FAIL_OPEN, True),
        (FailurePolicy.FAIL_CLOSED, False),
    ],
)
@pytest.mark.parametrize(
    "failure",
    [
        {"side_effect": httpx.ConnectError("unreachable")},
        {"side_effect": httpx.ConnectTimeout("timeout")},
        {"return_value": httpx.Response(503)},
        {"return_value": httpx.Response(200, json={"valid": True})},
    ],
)
def test_failure_policy(status_config, clock, policy, expected, failure):
    checker = _checker(status_config, clock, policy)
    with mock.patch("httpx.request", **failure):
        status = checker.status(CREDENTIAL_ID)
    assert status.is_valid is expected
    assert status.from_policy

    with mock.patch("httpx.request", return_value=httpx.Response(200, json={"is_valid": not expected})) as request:
        assert checker.is_valid(CREDENTIAL_ID) is not expected, "Failed lookups must not be cached"
    request.assert_called_once()


@pytest.mark.parametrize("policy,expected", [(FailurePolicy.FAIL_OPEN, True), (FailurePolicy.FAIL_CLOSED, False)])
def test_without_status_endpoint(clock, policy, expected):
    config = VerifierConfig()
    config.issuer_status_url = None
    checker = _checker(config, clock, policy)
    with mock.patch("httpx.request") as request:
        status = checker.status(CREDENTIAL_ID)
    request.assert_not_called()
    assert status.is_valid is expected
    assert status.from_policy
