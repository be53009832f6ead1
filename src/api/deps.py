"""Service container shared by every route.

Built once by ``create_app`` and stored on ``app.state.services``; routes
reach collaborators only through here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi import Request

from src.chat.acceptance import ProposalAcceptanceOrchestrator
from src.config import Settings
from src.identity.reconciler import IdentityVerificationReconciler, VerificationStarter
from src.payments.checkout import CheckoutOrchestrator
from src.payments.reconciler import PaymentEventReconciler
from src.store.base import RecordStore


@dataclass
class Services:
    settings: Settings
    store: RecordStore
    locks: Any
    checkout: CheckoutOrchestrator
    payment_reconciler: PaymentEventReconciler
    verification: VerificationStarter
    identity_reconciler: IdentityVerificationReconciler
    messaging: Any
    acceptance: ProposalAcceptanceOrchestrator


def get_services(request: Request) -> Services:
    return request.app.state.services
