"""Tests for Stripe event parsing."""

from __future__ import annotations

import pytest

from src.store.models import PaymentStatus
from src.webhooks.dispatcher import (
    HANDLED_EVENT_TYPES,
    EventParseError,
    MissingCorrelation,
    parse_event,
)


def _event(event_type: str, obj: dict, event_id: str = "evt_1") -> dict:
    return {"id": event_id, "type": event_type, "data": {"object": obj}}


class TestParseEvent:
    """Envelope -> PaymentEvent."""

    def test_checkout_completed_maps_to_paid(self):
        event = parse_event(_event(
            "checkout.session.completed",
            {"id": "cs_1", "payment_intent": "pi_1", "metadata": {"payment_id": "pay1"}},
        ))
        assert event.payment_id == "pay1"
        assert event.target_status == PaymentStatus.PAID
        assert event.payment_intent_id == "pi_1"
        assert event.event_id == "evt_1"

    def test_checkout_completed_with_expanded_intent(self):
        event = parse_event(_event(
            "checkout.session.completed",
            {"id": "cs_1", "payment_intent": {"id": "pi_9"}, "metadata": {"payment_id": "pay1"}},
        ))
        assert event.payment_intent_id == "pi_9"

    def test_checkout_completed_without_intent(self):
        event = parse_event(_event(
            "checkout.session.completed",
            {"id": "cs_1", "payment_intent": None, "metadata": {"payment_id": "pay1"}},
        ))
        assert event.payment_intent_id == ""

    def test_intent_succeeded_maps_to_paid(self):
        event = parse_event(_event(
            "payment_intent.succeeded",
            {"id": "pi_2", "metadata": {"payment_id": "pay2"}},
        ))
        assert event.target_status == PaymentStatus.PAID
        assert event.payment_intent_id == "pi_2"

    def test_intent_failed_maps_to_failed(self):
        event = parse_event(_event(
            "payment_intent.payment_failed",
            {"id": "pi_3", "metadata": {"payment_id": "pay3"}},
        ))
        assert event.target_status == PaymentStatus.FAILED

    def test_handled_types(self):
        assert HANDLED_EVENT_TYPES == {
            "checkout.session.completed",
            "payment_intent.succeeded",
            "payment_intent.payment_failed",
        }


class TestParseEventRejects:
    """Malformed or uncorrelated envelopes."""

    def test_unhandled_event_type(self):
        with pytest.raises(EventParseError, match="unhandled event type"):
            parse_event(_event("charge.refunded", {"metadata": {"payment_id": "p"}}))

    def test_not_an_object(self):
        with pytest.raises(EventParseError):
            parse_event(["checkout.session.completed"])

    def test_missing_data_object(self):
        with pytest.raises(EventParseError):
            parse_event({"id": "evt", "type": "payment_intent.succeeded", "data": {}})

    def test_missing_metadata(self):
        with pytest.raises(MissingCorrelation):
            parse_event(_event("payment_intent.succeeded", {"id": "pi_1"}))

    def test_empty_payment_id(self):
        with pytest.raises(MissingCorrelation):
            parse_event(_event("payment_intent.succeeded", {"id": "pi_1", "metadata": {"payment_id": ""}}))

    def test_non_string_payment_id(self):
        with pytest.raises(MissingCorrelation):
            parse_event(_event("payment_intent.succeeded", {"id": "pi_1", "metadata": {"payment_id": 42}}))

    def test_missing_correlation_is_a_parse_error(self):
        assert issubclass(MissingCorrelation, EventParseError)
