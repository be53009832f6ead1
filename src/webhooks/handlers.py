"""Webhook HTTP handlers — FastAPI routes for inbound provider webhooks.

Each handler:
1. Reads the raw body (needed for HMAC verification)
2. Verifies the provider-specific signature and timestamp
3. Decodes and reconciles the event
4. Responds according to the provider's retry semantics

Response policy:
- Stripe: 200 on success/no-op/ignored, 400 malformed or uncorrelated,
  404 unknown payment, 500 on store failure
- Didit: 401 on bad/stale signature, otherwise always 200
- Never return error details beyond a short message
- Log all webhook activity for audit trail
"""

from __future__ import annotations

import json
import logging
import time

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from src.errors import AuthenticationFailed, ValidationFailed
from src.webhooks.dispatcher import EventParseError, parse_event
from src.webhooks.verification import verify_signature, verify_stripe

logger = logging.getLogger(__name__)

STRIPE_SIGNATURE_HEADER = "Stripe-Signature"
DIDIT_SIGNATURE_HEADER = "X-Signature-V2"
DIDIT_TIMESTAMP_HEADER = "X-Timestamp"

_ACK = {"message": "Webhook processed"}


def _log_webhook(provider: str, event_type: str, webhook_id: str, status: str) -> None:
    """Audit log for webhook activity."""
    logger.info(
        "WEBHOOK_AUDIT provider=%s event=%s id=%s status=%s",
        provider,
        event_type or "unknown",
        webhook_id or "unknown",
        status,
    )


async def raw_body(request: Request) -> bytes:
    """The exact request bytes, read before any decoding."""
    return await request.body()


def handle_stripe_webhook(request: Request, body: bytes) -> JSONResponse:
    services = request.app.state.services
    settings = services.settings

    if not verify_stripe(
        settings.stripe_webhook_secret,
        body,
        request.headers.get(STRIPE_SIGNATURE_HEADER),
        tolerance=settings.webhook_max_skew_seconds,
    ):
        _log_webhook("stripe", "", "", "signature_failed")
        raise AuthenticationFailed("invalid signature")

    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        _log_webhook("stripe", "", "", "invalid_json")
        raise ValidationFailed("failed to parse webhook body json") from e

    try:
        event = parse_event(payload)
    except EventParseError as e:
        event_type = payload.get("type", "") if isinstance(payload, dict) else ""
        _log_webhook("stripe", event_type, payload.get("id", "") if isinstance(payload, dict) else "", "rejected")
        raise ValidationFailed(str(e)) from e

    outcome = services.payment_reconciler.apply(event)
    _log_webhook("stripe", event.event_type, event.event_id, outcome.value)
    return JSONResponse({"status": outcome.value}, status_code=200)


def handle_didit_webhook(request: Request, body: bytes) -> JSONResponse:
    services = request.app.state.services
    settings = services.settings

    if not verify_signature(
        settings.didit_webhook_secret,
        request.headers.get(DIDIT_SIGNATURE_HEADER),
        body,
        request.headers.get(DIDIT_TIMESTAMP_HEADER),
        now=int(time.time()),
        max_skew_seconds=settings.webhook_max_skew_seconds,
    ):
        _log_webhook("didit", "", "", "signature_failed")
        raise AuthenticationFailed("invalid signature")

    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        _log_webhook("didit", "", "", "invalid_json")
        return JSONResponse(_ACK, status_code=200)

    session_id = payload.get("session_id", "") if isinstance(payload, dict) else ""
    webhook_type = payload.get("webhook_type", "") if isinstance(payload, dict) else ""
    try:
        outcome = services.identity_reconciler.handle(payload).value
    except Exception:
        # Verified deliveries are always acknowledged.
        logger.exception("Didit webhook processing failed for session %s", session_id or "-")
        outcome = "error"
    _log_webhook("didit", str(webhook_type), str(session_id), outcome)
    return JSONResponse(_ACK, status_code=200)


def register_webhook_routes(app: FastAPI) -> None:
    """Register webhook endpoint routes on the FastAPI app.

    Call this BEFORE install_security_middleware() so the webhook routes
    can be exempted from rate limiting.
    """

    @app.post("/payments/webhook")
    def payments_webhook(request: Request, body: bytes = Depends(raw_body)):
        """Receive Stripe webhooks (signature-verified)."""
        return handle_stripe_webhook(request, body)

    @app.post("/verify/webhook")
    def verify_webhook(request: Request, body: bytes = Depends(raw_body)):
        """Receive Didit webhooks (signature-verified, always acknowledged)."""
        return handle_didit_webhook(request, body)

    logger.info("Webhook routes registered: /payments/webhook, /verify/webhook")
