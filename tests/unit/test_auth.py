"""Tests for cron shared-secret checks"""

from __future__ import annotations

import pytest

from inboxq.infrastructure.auth import extract_bearer_token, verify_cron_secret
from inboxq.observability.telemetry import get_counters


@pytest.mark.parametrize(
    "header, token",
    [
        ("Bearer abc", "abc"),
        ("Bearer  abc ", "abc"),
        ("Basic abc", None),
        ("", None),
        (None, None),
    ],
)
def test_extract_bearer_token(header, token):
    assert extract_bearer_token(header) == token


def test_no_secret_allows_everything():
    assert verify_cron_secret(None, None)
    assert verify_cron_secret("Bearer anything", "")


def test_matching_secret():
    assert verify_cron_secret("Bearer s3cret", "s3cret")


@pytest.mark.parametrize("header", [None, "Bearer wrong", "s3cret"])
def test_rejected(header):
    assert not verify_cron_secret(header, "s3cret")
    assert get_counters()["api.cron.unauthorized"] == 1
