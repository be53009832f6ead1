"""Webhook signature verification — constant-time HMAC over the raw body.

Security contract:
- Digests are computed over the exact received bytes, before any JSON decoding
- All comparisons use hmac.compare_digest() (constant-time, no timing attacks)
- Missing secret, signature or timestamp -> verification fails (fail-closed)
- Timestamp tolerance: 300s either side of now (replay window)
- Secrets and computed digests are never logged
"""

from __future__ import annotations

import hashlib
import hmac
import logging

import stripe

logger = logging.getLogger(__name__)

DEFAULT_MAX_SKEW_SECONDS = 300


def parse_timestamp(value: str | None) -> int | None:
    """Parse an epoch-seconds header. Returns None when absent or unparsable."""
    if not value:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


def is_timestamp_valid(timestamp: int, now: int, max_skew_seconds: int = DEFAULT_MAX_SKEW_SECONDS) -> bool:
    """True if ``timestamp`` lies within ``max_skew_seconds`` of ``now`` (inclusive)."""
    return abs(now - timestamp) <= max_skew_seconds


def compute_signature(secret: str, body: bytes) -> str:
    """Hex-encoded HMAC-SHA256 of ``body`` keyed by ``secret``."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(
    secret: str,
    signature_header: str | None,
    body: bytes,
    timestamp_header: str | None,
    now: int,
    max_skew_seconds: int = DEFAULT_MAX_SKEW_SECONDS,
) -> bool:
    """Verify an HMAC-SHA256 hex signature plus a freshness timestamp.

    Used for the identity provider (X-Signature-V2 / X-Timestamp).

    Args:
        secret: Shared webhook secret
        signature_header: Hex digest sent by the provider
        body: Raw request body bytes
        timestamp_header: Epoch seconds sent by the provider
        now: Current epoch seconds
        max_skew_seconds: Allowed distance between ``now`` and the timestamp

    Returns:
        True only if the timestamp is fresh and the digest matches
    """
    if not secret:
        logger.warning("Webhook secret not configured — rejecting webhook")
        return False

    timestamp = parse_timestamp(timestamp_header)
    if timestamp is None:
        logger.info("Webhook rejected: missing or unparsable timestamp")
        return False
    if not is_timestamp_valid(timestamp, now, max_skew_seconds):
        logger.info("Webhook rejected: timestamp outside %ds window (skew=%ds)", max_skew_seconds, now - timestamp)
        return False

    if not signature_header:
        return False

    expected = compute_signature(secret, body)
    return hmac.compare_digest(expected.encode("utf-8"), signature_header.strip().encode("utf-8"))


def verify_stripe(
    secret: str,
    body: bytes,
    signature_header: str | None,
    tolerance: int = DEFAULT_MAX_SKEW_SECONDS,
) -> bool:
    """Verify a Stripe-Signature header (t=...,v1=...) with the stripe library.

    Stripe signs ``"{t}.{body}"``; the library checks every v1 signature
    in constant time and enforces the timestamp tolerance.
    """
    if not secret:
        logger.warning("Stripe webhook secret not configured — rejecting webhook")
        return False
    if not signature_header:
        return False
    try:
        payload = body.decode("utf-8")
    except UnicodeDecodeError:
        return False
    try:
        stripe.WebhookSignature.verify_header(payload, signature_header, secret, tolerance=tolerance)
    except stripe.SignatureVerificationError as e:
        logger.info("Stripe webhook rejected: %s", e.user_message or "signature mismatch")
        return False
    return True
