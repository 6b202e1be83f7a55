"""
Unit tests for Slack request signature verification.
Tests HMAC matching, replay window, and the 401 route helper.
"""

import hashlib
import hmac

import pytest
from fastapi import HTTPException
from unittest.mock import Mock

from emlbot.auth import (
    MAX_CLOCK_SKEW_SECONDS,
    SIGNATURE_HEADER,
    TIMESTAMP_HEADER,
    compute_signature,
    verify_request_or_401,
    verify_slack_signature,
)

SECRET = "8f742231b10e8888abcd99yyyzzz85a5"
TIMESTAMP = "1531420618"
NOW = 1531420618.0
BODY = b"token=xyzz0WbapA4vBCDEFasx0q6G&team_id=T1DC2JH3J&command=%2Fweather"


class TestComputeSignature:
    """Test the v0 signature format."""

    def test_matches_hmac_sha256_over_basestring(self):
        """Signature is v0= + hex HMAC-SHA256 of 'v0:{ts}:{body}'."""
        expected = hmac.new(
            SECRET.encode(), b"v0:" + TIMESTAMP.encode() + b":" + BODY, hashlib.sha256
        ).hexdigest()

        assert compute_signature(SECRET, TIMESTAMP, BODY) == f"v0={expected}"


class TestVerifySlackSignature:
    """Test the pure signature predicate."""

    def test_valid_signature_accepted(self):
        signature = compute_signature(SECRET, TIMESTAMP, BODY)
        assert verify_slack_signature(SECRET, TIMESTAMP, BODY, signature, now=NOW) is True

    def test_tampered_body_rejected(self):
        """Changing a single byte of the body invalidates the signature."""
        signature = compute_signature(SECRET, TIMESTAMP, BODY)
        assert verify_slack_signature(SECRET, TIMESTAMP, BODY + b"x", signature, now=NOW) is False

    def test_wrong_secret_rejected(self):
        signature = compute_signature("another-secret", TIMESTAMP, BODY)
        assert verify_slack_signature(SECRET, TIMESTAMP, BODY, signature, now=NOW) is False

    def test_stale_timestamp_rejected_even_when_correctly_signed(self):
        """A replayed request outside the window fails regardless of the HMAC."""
        signature = compute_signature(SECRET, TIMESTAMP, BODY)
        later = NOW + MAX_CLOCK_SKEW_SECONDS + 1
        assert verify_slack_signature(SECRET, TIMESTAMP, BODY, signature, now=later) is False

    def test_future_timestamp_rejected(self):
        signature = compute_signature(SECRET, TIMESTAMP, BODY)
        earlier = NOW - MAX_CLOCK_SKEW_SECONDS - 1
        assert verify_slack_signature(SECRET, TIMESTAMP, BODY, signature, now=earlier) is False

    def test_timestamp_at_window_edge_accepted(self):
        signature = compute_signature(SECRET, TIMESTAMP, BODY)
        edge = NOW + MAX_CLOCK_SKEW_SECONDS
        assert verify_slack_signature(SECRET, TIMESTAMP, BODY, signature, now=edge) is True

    def test_non_integer_timestamp_rejected(self):
        signature = compute_signature(SECRET, "abc", BODY)
        assert verify_slack_signature(SECRET, "abc", BODY, signature, now=NOW) is False

    def test_non_ascii_signature_rejected(self):
        """Header values are latin-1 decoded, so a signature can hold non-ASCII text."""
        assert verify_slack_signature(SECRET, TIMESTAMP, BODY, "v0=\u00e9", now=NOW) is False

    @pytest.mark.parametrize("timestamp", ["9" * 400, "9" * 5000, "-5", "1e9", "\u0661\u0662\u0663"])
    def test_unusable_timestamp_rejected(self, timestamp):
        assert verify_slack_signature(SECRET, timestamp, BODY, "v0=ab", now=NOW) is False

    @pytest.mark.parametrize("secret,timestamp,signature", [
        ("", TIMESTAMP, "v0=abc"),
        (SECRET, None, "v0=abc"),
        (SECRET, TIMESTAMP, None),
        (None, TIMESTAMP, "v0=abc"),
    ])
    def test_missing_inputs_rejected(self, secret, timestamp, signature):
        assert verify_slack_signature(secret, timestamp, BODY, signature, now=NOW) is False


class TestVerifyRequestOr401:
    """Test the route-level helper."""

    def _request(self, headers: dict) -> Mock:
        request = Mock()
        request.headers = headers
        return request

    def test_valid_request_passes(self, signed_headers):
        headers = signed_headers(BODY)
        verify_request_or_401(self._request(headers), BODY, "test-signing-secret")

    def test_invalid_signature_raises_401(self):
        headers = {TIMESTAMP_HEADER: TIMESTAMP, SIGNATURE_HEADER: "v0=deadbeef"}

        with pytest.raises(HTTPException) as exc_info:
            verify_request_or_401(self._request(headers), BODY, SECRET)

        assert exc_info.value.status_code == 401
        assert "Invalid Slack signature" in str(exc_info.value.detail)

    def test_missing_headers_raise_401(self):
        with pytest.raises(HTTPException) as exc_info:
            verify_request_or_401(self._request({}), BODY, SECRET)

        assert exc_info.value.status_code == 401

    def test_unconfigured_secret_raises_401(self, signed_headers):
        headers = signed_headers(BODY)

        with pytest.raises(HTTPException) as exc_info:
            verify_request_or_401(self._request(headers), BODY, "")

        assert exc_info.value.status_code == 401
