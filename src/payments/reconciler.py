"""Payment event reconciler — idempotent Payment status transitions.

Rules:
- Stored status already equals the target -> no-op (no write); redelivery is safe
- Transitions are allowed only out of ``created``; a delivery that would
  reverse a terminal status (paid <-> failed) is logged and ignored
- Unknown or soft-deleted payment id -> NotFound (404). Never swallowed: it
  means the correlation metadata and the store disagree
- Store failures surface as 500 so Stripe re-delivers
"""

from __future__ import annotations

import logging
from enum import Enum

from src.errors import NotFound, PersistenceFailure
from src.store.base import RecordNotFound, RecordStore, StoreError
from src.store.models import PAYMENTS, Payment, PaymentStatus
from src.webhooks.dispatcher import PaymentEvent

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.CREATED: frozenset({PaymentStatus.PAID, PaymentStatus.FAILED}),
    PaymentStatus.PAID: frozenset(),
    PaymentStatus.FAILED: frozenset(),
}


class Outcome(str, Enum):
    APPLIED = "applied"
    NOOP = "noop"
    IGNORED = "ignored"


class PaymentEventReconciler:
    """Applies parsed Stripe events to Payment records."""

    def __init__(self, store: RecordStore):
        self._store = store

    def apply(self, event: PaymentEvent) -> Outcome:
        return self.transition(event.payment_id, event.target_status, event.payment_intent_id)

    def transition(self, payment_id: str, target: PaymentStatus, payment_intent_id: str = "") -> Outcome:
        try:
            payment = Payment.from_record(self._store.get(PAYMENTS, payment_id))
        except RecordNotFound as e:
            raise NotFound("payment not found") from e
        except StoreError as e:
            raise PersistenceFailure("failed to load payment") from e
        if payment.is_deleted:
            raise NotFound("payment not found")

        current = PaymentStatus(payment.status)
        if current == target:
            logger.info("Payment %s already %s, no-op", payment_id, target.value)
            return Outcome.NOOP
        if target not in ALLOWED_TRANSITIONS[current]:
            logger.warning(
                "Payment %s: ignoring %s -> %s (terminal status)",
                payment_id,
                current.value,
                target.value,
            )
            return Outcome.IGNORED

        changes = {"status": target.value}
        if payment_intent_id:
            changes["stripe_payment_intent_id"] = payment_intent_id
        try:
            self._store.update(PAYMENTS, payment_id, changes)
        except StoreError as e:
            raise PersistenceFailure("failed to update payment") from e

        logger.info("Payment %s: %s -> %s", payment_id, current.value, target.value)
        return Outcome.APPLIED
