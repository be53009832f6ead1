"""Tests for webhook signature verification.

Tests:
- Identity provider HMAC-SHA256 (hex) over the raw body, with timestamp window
- Stripe-Signature verification through the stripe library
- Fail-closed behaviour on missing secret, signature or timestamp
"""

from __future__ import annotations

import hashlib
import hmac
import time

from freezegun import freeze_time
from hypothesis import given, settings
from hypothesis import strategies as st

from src.webhooks.verification import (
    compute_signature,
    is_timestamp_valid,
    parse_timestamp,
    verify_signature,
    verify_stripe,
)
from tests.helpers import stripe_signature_header

SECRET = "didit-test-secret"
NOW = 1_700_000_000


def _sign(body: bytes, secret: str = SECRET) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


# ── Timestamp parsing ─────────────────────────────────────────────────────


class TestParseTimestamp:
    """Epoch-seconds header parsing."""

    def test_parses_integer(self):
        assert parse_timestamp("1700000000") == 1_700_000_000

    def test_strips_whitespace(self):
        assert parse_timestamp(" 1700000000 ") == 1_700_000_000

    def test_missing(self):
        assert parse_timestamp(None) is None
        assert parse_timestamp("") is None

    def test_unparsable(self):
        assert parse_timestamp("yesterday") is None
        assert parse_timestamp("1700000000.5") is None


class TestTimestampWindow:
    """Freshness window is inclusive at 300 seconds either side."""

    def test_exactly_at_bound_is_valid(self):
        assert is_timestamp_valid(NOW - 300, NOW) is True
        assert is_timestamp_valid(NOW + 300, NOW) is True

    def test_one_past_bound_is_stale(self):
        assert is_timestamp_valid(NOW - 301, NOW) is False
        assert is_timestamp_valid(NOW + 301, NOW) is False

    @given(skew=st.integers(min_value=-10_000, max_value=10_000))
    def test_window_matches_absolute_skew(self, skew):
        assert is_timestamp_valid(NOW + skew, NOW) is (abs(skew) <= 300)


# ── Identity provider signature ───────────────────────────────────────────


class TestVerifySignature:
    """HMAC-SHA256 hex signature plus X-Timestamp freshness."""

    def test_valid_signature(self):
        body = b'{"session_id": "s1", "status": "Approved"}'
        assert verify_signature(SECRET, _sign(body), body, str(NOW), now=NOW) is True

    def test_compute_signature_is_hex_hmac(self):
        body = b"payload"
        assert compute_signature(SECRET, body) == _sign(body)

    def test_tampered_body(self):
        body = b'{"status": "Declined"}'
        sig = _sign(body)
        assert verify_signature(SECRET, sig, b'{"status": "Approved"}', str(NOW), now=NOW) is False

    def test_wrong_secret(self):
        body = b"{}"
        assert verify_signature(SECRET, _sign(body, "other"), body, str(NOW), now=NOW) is False

    def test_missing_signature(self):
        assert verify_signature(SECRET, None, b"{}", str(NOW), now=NOW) is False

    def test_missing_timestamp(self):
        body = b"{}"
        assert verify_signature(SECRET, _sign(body), body, None, now=NOW) is False

    def test_missing_secret_rejects(self):
        """No secret configured -> always reject (fail-closed)."""
        body = b"{}"
        assert verify_signature("", _sign(body, ""), body, str(NOW), now=NOW) is False

    def test_stale_timestamp_rejected_even_with_valid_digest(self):
        body = b"{}"
        assert verify_signature(SECRET, _sign(body), body, str(NOW - 301), now=NOW) is False
        assert verify_signature(SECRET, _sign(body), body, str(NOW - 300), now=NOW) is True

    def test_signature_is_over_raw_bytes_not_reencoded_json(self):
        body = b'{"b": 1,  "a": 2}'
        assert verify_signature(SECRET, _sign(body), b'{"a": 2, "b": 1}', str(NOW), now=NOW) is False

    @settings(max_examples=50)
    @given(body=st.binary(min_size=1, max_size=256), data=st.data())
    def test_any_single_byte_flip_fails(self, body, data):
        sig = _sign(body)
        index = data.draw(st.integers(min_value=0, max_value=len(body) - 1))
        flipped = bytearray(body)
        flipped[index] ^= 0x01
        assert verify_signature(SECRET, sig, bytes(flipped), str(NOW), now=NOW) is False

    @settings(max_examples=50)
    @given(body=st.binary(max_size=256))
    def test_own_signature_always_verifies(self, body):
        assert verify_signature(SECRET, compute_signature(SECRET, body), body, str(NOW), now=NOW) is True

    @freeze_time("2024-01-01 12:00:00")
    def test_window_against_frozen_clock(self):
        now = int(time.time())
        body = b"{}"
        assert verify_signature(SECRET, _sign(body), body, str(now - 300), now=now) is True
        assert verify_signature(SECRET, _sign(body), body, str(now - 301), now=now) is False


# ── Stripe ────────────────────────────────────────────────────────────────


class TestStripeVerification:
    """Stripe-Signature (t=...,v1=...) with 300s tolerance."""

    STRIPE_SECRET = "whsec_unit_test"

    def test_valid_signature(self):
        body = b'{"id": "evt_1", "type": "checkout.session.completed"}'
        header = stripe_signature_header(body, self.STRIPE_SECRET)
        assert verify_stripe(self.STRIPE_SECRET, body, header) is True

    def test_tampered_body(self):
        body = b'{"id": "evt_1"}'
        header = stripe_signature_header(body, self.STRIPE_SECRET)
        assert verify_stripe(self.STRIPE_SECRET, b'{"id": "evt_2"}', header) is False

    def test_wrong_secret(self):
        body = b"{}"
        header = stripe_signature_header(body, "whsec_other")
        assert verify_stripe(self.STRIPE_SECRET, body, header) is False

    def test_old_timestamp_rejected(self):
        body = b"{}"
        header = stripe_signature_header(body, self.STRIPE_SECRET, timestamp=int(time.time()) - 600)
        assert verify_stripe(self.STRIPE_SECRET, body, header) is False

    def test_missing_header(self):
        assert verify_stripe(self.STRIPE_SECRET, b"{}", None) is False

    def test_malformed_header(self):
        assert verify_stripe(self.STRIPE_SECRET, b"{}", "garbage") is False

    def test_missing_secret_rejects(self):
        body = b"{}"
        header = stripe_signature_header(body, "")
        assert verify_stripe("", body, header) is False
