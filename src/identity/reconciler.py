"""Identity verification: session start and webhook reconciliation.

Policy:
- Every signature-verified delivery is acknowledged, whatever happens next;
  unknown sessions and malformed payloads are logged only
- The stored session id is the idempotency key; an update whose
  (status, reason, session id) equals the stored triple is not written
- A store failure is logged and still acknowledged
"""

from __future__ import annotations

import logging
from contextlib import nullcontext
from dataclasses import dataclass
from enum import Enum
from typing import Any

from src.errors import PersistenceFailure, UpstreamFailure
from src.identity.didit_client import IdentityProviderError, VerificationSession
from src.locks import LockTimeout, LockUnavailable
from src.store.base import StoreError
from src.store.models import USERS, User, VerificationStatus

logger = logging.getLogger(__name__)

WEBHOOK_PATH = "/verify/webhook"

# Didit status (lower-cased) -> stored verification status
_STATUS_ALIASES: dict[str, VerificationStatus] = {
    "approved": VerificationStatus.APPROVED,
    "declined": VerificationStatus.REJECTED,
    "rejected": VerificationStatus.REJECTED,
    "pending": VerificationStatus.PENDING,
    "not started": VerificationStatus.PENDING,
    "in progress": VerificationStatus.PENDING,
    "in review": VerificationStatus.PENDING,
    "resubmitted": VerificationStatus.PENDING,
}


def normalize_status(value: str) -> VerificationStatus | None:
    """Map a provider status onto pending/approved/rejected (None if unknown)."""
    return _STATUS_ALIASES.get(" ".join(value.lower().replace("_", " ").split()))


class Outcome(str, Enum):
    APPLIED = "applied"
    NOOP = "noop"
    UNMATCHED = "unmatched"
    IGNORED = "ignored"
    FAILED = "failed"


@dataclass(frozen=True)
class IdentityWebhookPayload:
    session_id: str
    status: str
    webhook_type: str
    reason: str = ""

    @classmethod
    def from_payload(cls, payload: Any) -> IdentityWebhookPayload:
        if not isinstance(payload, dict):
            return cls("", "", "")

        def text(key: str) -> str:
            value = payload.get(key)
            return value.strip() if isinstance(value, str) else ""

        return cls(
            session_id=text("session_id"),
            status=text("status"),
            webhook_type=text("webhook_type"),
            reason=text("reason"),
        )

    @property
    def is_complete(self) -> bool:
        return bool(self.session_id and self.status and self.webhook_type)


class IdentityVerificationReconciler:
    """Applies Didit webhook deliveries to user verification state."""

    def __init__(self, store, locks=None):
        self._store = store
        self._locks = locks

    def handle(self, payload: Any) -> Outcome:
        """Reconcile one decoded delivery. Never raises for delivery problems."""
        event = IdentityWebhookPayload.from_payload(payload)
        outcome = self._handle(event)
        logger.info(
            "Didit webhook processed session=%s type=%s status=%s outcome=%s",
            event.session_id or "-",
            event.webhook_type or "-",
            event.status or "-",
            outcome.value,
        )
        return outcome

    def _handle(self, event: IdentityWebhookPayload) -> Outcome:
        if not event.is_complete:
            return Outcome.IGNORED
        status = normalize_status(event.status)
        if status is None:
            logger.warning("Didit webhook with unrecognised status %r", event.status)
            return Outcome.IGNORED

        guard = self._locks.hold(f"verification:{event.session_id}") if self._locks else nullcontext()
        try:
            with guard:
                return self._apply(event, status)
        except LockTimeout:
            logger.warning("Didit webhook for session %s skipped: lock busy", event.session_id)
            return Outcome.FAILED
        except LockUnavailable:
            logger.error("Didit webhook for session %s skipped: lock backend unavailable", event.session_id)
            return Outcome.FAILED

    def _apply(self, event: IdentityWebhookPayload, status: VerificationStatus) -> Outcome:
        try:
            record = self._store.find_first(USERS, didit_session_id=event.session_id)
        except StoreError:
            logger.exception("Didit webhook: user lookup failed for session %s", event.session_id)
            return Outcome.FAILED
        if record is None:
            return Outcome.UNMATCHED

        user = User.from_record(record)
        if (
            user.verification_status == status.value
            and user.verification_reason == (event.reason or user.verification_reason)
            and user.didit_session_id == event.session_id
        ):
            return Outcome.NOOP

        changes = {"verification_status": status.value}
        if event.reason:
            changes["verification_reason"] = event.reason
        try:
            self._store.update(USERS, user.id, changes)
        except StoreError:
            logger.exception("Didit webhook: failed to save verification for user %s", user.id)
            return Outcome.FAILED
        return Outcome.APPLIED


class VerificationStarter:
    """Opens a Didit session for a user and records it as pending."""

    def __init__(self, store, client, workflow_id: str, callback_base_url: str):
        self._store = store
        self._client = client
        self._workflow_id = workflow_id
        self._callback_url = callback_base_url.rstrip("/") + WEBHOOK_PATH

    def start(self, user: User) -> VerificationSession:
        try:
            session = self._client.create_session(
                workflow_id=self._workflow_id,
                vendor_data=user.id,
                callback=self._callback_url,
            )
        except IdentityProviderError as e:
            raise UpstreamFailure("failed to create didit verification session") from e

        try:
            self._store.update(
                USERS,
                user.id,
                {
                    "didit_session_id": session.session_id,
                    "verification_status": VerificationStatus.PENDING.value,
                    "verification_reason": "",
                },
            )
        except StoreError as e:
            raise PersistenceFailure("failed to save didit verification status") from e
        return session
