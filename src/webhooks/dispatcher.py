"""Webhook event parsing — normalises provider envelopes into typed events.

Maps Stripe event types to local payment transitions. The map is
exhaustive: an event type not listed is rejected.

Security contract:
- Only called after the raw body's signature has been verified
- Field values taken from the payload are type-checked, never trusted as-is
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from src.store.models import PaymentStatus

logger = logging.getLogger(__name__)


class EventParseError(ValueError):
    """The envelope is malformed or its event type is unhandled."""


class MissingCorrelation(EventParseError):
    """The event does not carry a payment_id in its metadata."""


@dataclass(frozen=True)
class PaymentEvent:
    """Normalised Stripe event ready for reconciliation."""

    event_id: str
    event_type: str
    payment_id: str
    target_status: PaymentStatus
    payment_intent_id: str


# Stripe event type -> target payment status
_STRIPE_EVENT_MAP: dict[str, PaymentStatus] = {
    "checkout.session.completed": PaymentStatus.PAID,
    "payment_intent.succeeded": PaymentStatus.PAID,
    "payment_intent.payment_failed": PaymentStatus.FAILED,
}

HANDLED_EVENT_TYPES = frozenset(_STRIPE_EVENT_MAP)


def _as_str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _intent_id(event_type: str, obj: dict[str, Any]) -> str:
    """Payment-intent id for the event's object.

    Checkout sessions reference the intent (as an id or an expanded
    object); intent events carry it as their own id.
    """
    if event_type == "checkout.session.completed":
        intent = obj.get("payment_intent")
        if isinstance(intent, dict):
            return _as_str(intent.get("id"))
        return _as_str(intent)
    return _as_str(obj.get("id"))


def parse_event(payload: Any) -> PaymentEvent:
    """Parse a decoded Stripe event envelope into a PaymentEvent.

    Args:
        payload: JSON-decoded webhook body

    Returns:
        PaymentEvent with the correlation id and target status

    Raises:
        EventParseError: envelope malformed or event type unhandled
        MissingCorrelation: metadata.payment_id absent
    """
    if not isinstance(payload, dict):
        raise EventParseError("event envelope must be an object")

    event_type = _as_str(payload.get("type"))
    target = _STRIPE_EVENT_MAP.get(event_type)
    if target is None:
        raise EventParseError(f"unhandled event type: {event_type or 'unknown'}")

    data = payload.get("data")
    obj = data.get("object") if isinstance(data, dict) else None
    if not isinstance(obj, dict):
        raise EventParseError(f"invalid {event_type} payload")

    metadata = obj.get("metadata")
    payment_id = _as_str(metadata.get("payment_id")) if isinstance(metadata, dict) else ""
    if not payment_id:
        raise MissingCorrelation("missing payment metadata")

    return PaymentEvent(
        event_id=_as_str(payload.get("id")),
        event_type=event_type,
        payment_id=payment_id,
        target_status=target,
        payment_intent_id=_intent_id(event_type, obj),
    )
