"""FastAPI application factory and entrypoint.

create_app() wires every collaborator once:

    settings -> store (Postgres or in-memory) -> locks (Redis or local)
             -> Stripe / Didit / Stream providers
             -> checkout orchestrator, payment + identity reconcilers,
                acceptance orchestrator (subscribed to proposal updates)

Providers and the store can be injected, which is how the test suite runs
the full route table without network access.
"""

from __future__ import annotations

import logging
import os

from fastapi import FastAPI

from src.api.chat import router as chat_router
from src.api.checkout import router as checkout_router
from src.api.deps import Services
from src.api.health import router as health_router
from src.api.proposals import router as proposals_router
from src.api.verification import router as verification_router
from src.chat.acceptance import ProposalAcceptanceOrchestrator, register_acceptance_hook
from src.chat.stream_client import StreamMessaging
from src.config import Settings, load_settings
from src.errors import install_error_handlers
from src.identity.didit_client import DiditClient
from src.identity.reconciler import IdentityVerificationReconciler, VerificationStarter
from src.locks import LocalLocks, RedisLocks
from src.payments.checkout import CheckoutOrchestrator
from src.payments.reconciler import PaymentEventReconciler
from src.payments.stripe_provider import StripeCheckoutProvider
from src.security.middleware import install_security_middleware
from src.store.base import RecordStore
from src.store.memory import MemoryRecordStore
from src.store.postgres import PostgresRecordStore
from src.webhooks.handlers import register_webhook_routes

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=_LOG_FORMAT)


def _build_store(settings: Settings) -> RecordStore:
    if settings.database_url:
        store = PostgresRecordStore(settings.database_url)
        store.init_schema()
        return store
    logger.warning("DATABASE_URL not set, using in-memory record store (data is not persisted)")
    return MemoryRecordStore()


def _build_locks(settings: Settings):
    if settings.redis_url:
        return RedisLocks.from_url(settings.redis_url)
    return LocalLocks()


def create_app(
    settings: Settings | None = None,
    *,
    store: RecordStore | None = None,
    payments=None,
    identity=None,
    chat=None,
    locks=None,
) -> FastAPI:
    """Build the application. Raises ConfigError on bad configuration."""
    settings = settings or load_settings()
    store = store if store is not None else _build_store(settings)
    locks = locks if locks is not None else _build_locks(settings)
    payments = payments or StripeCheckoutProvider.from_settings(settings)
    identity = identity or DiditClient.from_settings(settings)
    chat = chat or StreamMessaging.from_settings(settings)

    acceptance = ProposalAcceptanceOrchestrator(store, chat, locks)
    register_acceptance_hook(store, acceptance)

    services = Services(
        settings=settings,
        store=store,
        locks=locks,
        checkout=CheckoutOrchestrator(store, payments, settings.stripe_platform_fee_percent),
        payment_reconciler=PaymentEventReconciler(store),
        verification=VerificationStarter(
            store,
            identity,
            settings.didit_workflow_id,
            settings.didit_callback_base_url,
        ),
        identity_reconciler=IdentityVerificationReconciler(store, locks),
        messaging=chat,
        acceptance=acceptance,
    )

    app = FastAPI(title="Marketplace Reconciliation Service")
    app.state.services = services
    app.state.store = store

    for router in (health_router, checkout_router, verification_router, chat_router, proposals_router):
        app.include_router(router)
    register_webhook_routes(app)

    install_error_handlers(app)
    install_security_middleware(app, settings.jwt_secret, settings.rate_limit)

    logger.info(
        "App ready: store=%s locks=%s fee=%s%%",
        type(store).__name__,
        type(locks).__name__,
        settings.stripe_platform_fee_percent,
    )
    return app


def main() -> None:
    import uvicorn

    settings = load_settings()
    configure_logging(settings.log_level)
    port = int(os.environ.get("PORT", "8080"))
    uvicorn.run("src.serve:create_app", factory=True, host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
