"""Test helpers: settings factory, webhook signing, fake providers, seeding."""

from __future__ import annotations

import hashlib
import hmac
import threading
import time

from src.chat.stream_client import MessagingProviderError
from src.config import Settings
from src.identity.didit_client import IdentityProviderError, VerificationSession
from src.payments.stripe_provider import CheckoutSession, PaymentProviderError
from src.store.models import (
    PROJECTS,
    PROPOSALS,
    USERS,
    Project,
    Proposal,
    Role,
    User,
)

JWT_SECRET = "test-jwt-secret"
STRIPE_WEBHOOK_SECRET = "whsec_test_secret"
DIDIT_WEBHOOK_SECRET = "didit-test-secret"


def make_settings(**overrides) -> Settings:
    values = {
        "stripe_secret_key": "sk_test_123",
        "stripe_webhook_secret": STRIPE_WEBHOOK_SECRET,
        "stripe_platform_fee_percent": 10,
        "stripe_success_url": "https://app.example.com/payments/success",
        "stripe_cancel_url": "https://app.example.com/payments/cancel",
        "didit_api_key": "didit-key",
        "didit_workflow_id": "wf_123",
        "didit_webhook_secret": DIDIT_WEBHOOK_SECRET,
        "didit_callback_base_url": "https://api.example.com",
        "stream_api_key": "stream-key",
        "stream_api_secret": "stream-secret",
        "jwt_secret": JWT_SECRET,
        "rate_limit": "1000/minute",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


# ── Signing helpers ───────────────────────────────────────────────────────


def stripe_signature_header(body: bytes, secret: str = STRIPE_WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Stripe-Signature header value (t=...,v1=...) for ``body``."""
    ts = int(time.time()) if timestamp is None else timestamp
    signed = f"{ts}.".encode() + body
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


def didit_headers(body: bytes, secret: str = DIDIT_WEBHOOK_SECRET, timestamp: int | None = None) -> dict[str, str]:
    ts = int(time.time()) if timestamp is None else timestamp
    digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return {
        "X-Timestamp": str(ts),
        "X-Signature-V2": digest,
        "Content-Type": "application/json",
    }


# ── Fake providers ────────────────────────────────────────────────────────


class FakeCheckoutProvider:
    """Stands in for StripeCheckoutProvider."""

    def __init__(self):
        self.requests = []
        self.fail = False

    def create_checkout_session(self, request):
        self.requests.append(request)
        if self.fail:
            raise PaymentProviderError("stripe checkout session failed: APIConnectionError")
        n = len(self.requests)
        return CheckoutSession(id=f"cs_test_{n}", url=f"https://checkout.stripe.com/c/pay/cs_test_{n}")


class FakeIdentityClient:
    """Stands in for DiditClient."""

    def __init__(self):
        self.calls = []
        self.fail = False

    def create_session(self, workflow_id, vendor_data, callback):
        self.calls.append({"workflow_id": workflow_id, "vendor_data": vendor_data, "callback": callback})
        if self.fail:
            raise IdentityProviderError("didit api error: status=500")
        n = len(self.calls)
        return VerificationSession(session_id=f"sess_{n}", verification_url=f"https://verify.didit.me/session/sess_{n}")


class FakeMessaging:
    """Stands in for StreamMessaging. ``delay`` widens race windows."""

    def __init__(self, delay: float = 0.0):
        self.upserted = []
        self.channels = []
        self.fail = False
        self.delay = delay
        self._lock = threading.Lock()

    def upsert_users(self, *user_ids):
        if self.fail:
            raise MessagingProviderError("stream upsert_users failed: 503")
        with self._lock:
            self.upserted.append(user_ids)

    def create_channel(self, channel_id, created_by, members):
        if self.delay:
            time.sleep(self.delay)
        with self._lock:
            self.channels.append({"id": channel_id, "created_by": created_by, "members": list(members)})

    def create_token(self, user_id):
        return f"stream-token-{user_id}"


# ── Seed helpers ──────────────────────────────────────────────────────────


def seed(store, collection: str, entity) -> dict:
    return store.insert(collection, entity.to_record())


def seed_user(store, user_id: str, role: Role, **fields) -> User:
    user = User(id=user_id, name=fields.pop("name", user_id.title()), email=f"{user_id}@example.com", role=role.value, **fields)
    return User.from_record(seed(store, USERS, user))


def seed_project(store, project_id: str, client_id: str, **fields) -> Project:
    project = Project(id=project_id, title=fields.pop("title", "Landing page redesign"), client_id=client_id, **fields)
    return Project.from_record(seed(store, PROJECTS, project))


def seed_proposal(store, proposal_id: str, project_id: str, client_id: str, freelancer_id: str, **fields) -> Proposal:
    proposal = Proposal(
        id=proposal_id,
        project_id=project_id,
        client_id=client_id,
        freelancer_id=freelancer_id,
        message=fields.pop("message", "I can do this"),
        **fields,
    )
    return Proposal.from_record(seed(store, PROPOSALS, proposal))
