"""Checkout orchestrator — a two-step saga with a named compensation.

Step ordering is the failure-compensation contract:
1. record: persist a Payment(status=created) with empty provider fields
2. open: ask Stripe for a hosted checkout session, carrying the payment id
   as correlation metadata
3a. compensate: on provider failure mark the Payment failed (best-effort,
    logged, never retried) and surface an upstream error
3b. confirm: on success store the session id on the Payment

Exactly one Payment per call; at most one provider session per success.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from src.errors import (
    NotFound,
    PermissionDenied,
    PersistenceFailure,
    UpstreamFailure,
    ValidationFailed,
)
from src.payments.fees import format_percent, normalize_currency, platform_fee
from src.payments.stripe_provider import (
    CheckoutRequest,
    CheckoutSession,
    PaymentProviderError,
)
from src.store.base import RecordNotFound, RecordStore, StoreError
from src.store.models import (
    PAYMENTS,
    PROJECTS,
    USERS,
    Payment,
    PaymentStatus,
    Project,
    Role,
    User,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutInput:
    project_id: str
    freelancer_id: str
    amount: int
    currency: str | None = None


@dataclass(frozen=True)
class CheckoutResult:
    checkout_url: str
    payment_id: str


class CheckoutSaga:
    """The individual, independently testable steps of one checkout."""

    def __init__(self, store: RecordStore, provider):
        self._store = store
        self._provider = provider

    def record(self, client: User, freelancer: User, project: Project, amount: int, currency: str) -> Payment:
        payment = Payment(
            client_id=client.id,
            freelancer_id=freelancer.id,
            project_id=project.id,
            amount=amount,
            currency=currency,
            status=PaymentStatus.CREATED.value,
            created_at=Payment.now(),
        )
        data = payment.to_record()
        data.pop("id")
        try:
            return Payment.from_record(self._store.insert(PAYMENTS, data))
        except StoreError as e:
            raise PersistenceFailure("failed to create payment record") from e

    def open(self, payment: Payment, project: Project, fee_percent: float, fee_amount: int) -> CheckoutSession:
        metadata = {
            "payment_id": payment.id,
            "client_id": payment.client_id,
            "freelancer_id": payment.freelancer_id,
            "project_id": project.id,
            "platform_fee_percent": format_percent(fee_percent),
            "platform_fee_amount": str(fee_amount),
            "currency": payment.currency,
            "amount": str(payment.amount),
        }
        return self._provider.create_checkout_session(
            CheckoutRequest(
                product_name=project.title,
                amount=payment.amount,
                currency=payment.currency,
                metadata=metadata,
                payment_id=payment.id,
            )
        )

    def compensate(self, payment: Payment) -> bool:
        """Mark the payment failed. Returns False if that write itself failed."""
        try:
            self._store.update(PAYMENTS, payment.id, {"status": PaymentStatus.FAILED.value})
        except StoreError:
            logger.exception("Compensation failed: payment %s left in status %s", payment.id, payment.status)
            return False
        logger.info("Payment %s compensated to failed", payment.id)
        return True

    def confirm(self, payment: Payment, session: CheckoutSession) -> Payment:
        try:
            record = self._store.update(PAYMENTS, payment.id, {"stripe_checkout_session_id": session.id})
        except StoreError as e:
            raise PersistenceFailure("failed to update payment record") from e
        return Payment.from_record(record)


class CheckoutOrchestrator:
    """Validates a checkout request and runs the saga."""

    def __init__(self, store: RecordStore, provider, fee_percent: float):
        self._store = store
        self._fee_percent = fee_percent
        self.saga = CheckoutSaga(store, provider)

    def create_checkout(self, principal: User, request: CheckoutInput) -> CheckoutResult:
        if not principal.has_role(Role.CLIENT):
            raise PermissionDenied("only clients can create checkout sessions")
        if request.amount <= 0:
            raise ValidationFailed("amount must be positive (in minor units)")
        if not request.project_id or not request.freelancer_id:
            raise ValidationFailed("project_id and freelancer_id are required")
        try:
            currency = normalize_currency(request.currency)
        except ValueError as e:
            raise ValidationFailed(str(e)) from e

        project = self._load(PROJECTS, request.project_id, Project, "project not found")
        if project.is_deleted or project.client_id != principal.id:
            raise PermissionDenied("not allowed to pay for this project")

        freelancer = self._load(USERS, request.freelancer_id, User, "freelancer not found")
        if freelancer.is_deleted or not freelancer.has_role(Role.FREELANCER):
            raise ValidationFailed("invalid freelancer")

        fee = platform_fee(request.amount, self._fee_percent)
        payment = self.saga.record(principal, freelancer, project, request.amount, currency)

        try:
            session = self.saga.open(payment, project, self._fee_percent, fee)
        except PaymentProviderError as e:
            logger.warning("Checkout session failed for payment %s: %s", payment.id, e)
            self.saga.compensate(payment)
            raise UpstreamFailure("failed to create checkout session") from e

        payment = self.saga.confirm(payment, session)
        logger.info(
            "Checkout opened: payment=%s project=%s amount=%d %s fee=%d",
            payment.id,
            project.id,
            payment.amount,
            currency,
            fee,
        )
        return CheckoutResult(checkout_url=session.url, payment_id=payment.id)

    def _load(self, collection: str, record_id: str, entity, message: str):
        try:
            return entity.from_record(self._store.get(collection, record_id))
        except RecordNotFound as e:
            raise NotFound(message) from e
        except StoreError as e:
            raise PersistenceFailure(f"failed to load {collection}") from e
