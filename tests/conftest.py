"""Shared fixtures for the reconciliation service test suite.

- settings: fully populated Settings, no .env lookup
- store: fresh MemoryRecordStore per test
- fake providers for Stripe, Didit and Stream (no network)
- app / client: the full route table built by create_app()
- make_auth_header: Bearer header factory for a user id
- seeded users, project and proposal
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from src.config import Settings
from src.locks import LocalLocks
from src.security.auth import create_token
from src.serve import create_app
from src.store.memory import MemoryRecordStore
from src.store.models import Project, Proposal, Role, User
from tests.helpers import (
    JWT_SECRET,
    FakeCheckoutProvider,
    FakeIdentityClient,
    FakeMessaging,
    make_settings,
    seed_project,
    seed_proposal,
    seed_user,
)


# ── Fixtures ──────────────────────────────────────────────────────────────


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def store() -> MemoryRecordStore:
    return MemoryRecordStore()


@pytest.fixture
def locks() -> LocalLocks:
    return LocalLocks(wait_seconds=5)


@pytest.fixture
def payments() -> FakeCheckoutProvider:
    return FakeCheckoutProvider()


@pytest.fixture
def identity() -> FakeIdentityClient:
    return FakeIdentityClient()


@pytest.fixture
def messaging() -> FakeMessaging:
    return FakeMessaging()


@pytest.fixture
def app(settings, store, payments, identity, messaging, locks):
    return create_app(settings, store=store, payments=payments, identity=identity, chat=messaging, locks=locks)


@pytest.fixture
def client(app):
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c


@pytest.fixture
def make_auth_header():
    """Factory for auth headers: make_auth_header(user_id, expires_in=3600)."""

    def _make(user_id: str, expires_in: int = 3600, secret: str = JWT_SECRET) -> dict[str, str]:
        meta = create_token(user_id, secret, expires_in=expires_in)
        return {"Authorization": f"Bearer {meta.token}"}

    return _make


@pytest.fixture
def client_user(store) -> User:
    return seed_user(store, "client1", Role.CLIENT, name="Carla Client")


@pytest.fixture
def freelancer_user(store) -> User:
    return seed_user(store, "free1", Role.FREELANCER, name="Fred Freelancer")


@pytest.fixture
def project(store, client_user) -> Project:
    return seed_project(store, "proj1", client_user.id)


@pytest.fixture
def proposal(store, project, client_user, freelancer_user) -> Proposal:
    return seed_proposal(store, "prop1", project.id, client_user.id, freelancer_user.id)
