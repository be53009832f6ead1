"""Checkout API route — opens a hosted Stripe checkout for a project."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from src.api.deps import Services, get_services
from src.payments.checkout import CheckoutInput
from src.security.auth import current_user
from src.store.models import User

router = APIRouter(tags=["payments"])


class CheckoutBody(BaseModel):
    project_id: str = ""
    freelancer_id: str = ""
    amount: int
    currency: str | None = None


@router.post("/checkout")
def create_checkout(
    body: CheckoutBody,
    user: User = Depends(current_user),
    services: Services = Depends(get_services),
):
    """Create a Payment and a checkout session for the calling client."""
    result = services.checkout.create_checkout(
        user,
        CheckoutInput(
            project_id=body.project_id.strip(),
            freelancer_id=body.freelancer_id.strip(),
            amount=body.amount,
            currency=body.currency,
        ),
    )
    return {"checkout_url": result.checkout_url, "payment_id": result.payment_id}
