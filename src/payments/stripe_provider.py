"""Stripe checkout provider.

Wraps stripe.StripeClient so the checkout saga depends on a small
interface (create_checkout_session) instead of the SDK. The client is
built once at startup; there is no module-level stripe.api_key.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import stripe

logger = logging.getLogger(__name__)


class PaymentProviderError(Exception):
    """Opening a checkout session failed at the provider."""


@dataclass(frozen=True)
class CheckoutSession:
    id: str
    url: str


@dataclass(frozen=True)
class CheckoutRequest:
    """Everything the provider needs to open one hosted checkout."""

    product_name: str
    amount: int
    currency: str
    metadata: dict[str, str]
    payment_id: str


class StripeCheckoutProvider:
    """Creates hosted Stripe Checkout sessions."""

    def __init__(
        self,
        client: stripe.StripeClient,
        success_url: str,
        cancel_url: str,
    ):
        self._client = client
        self._success_url = success_url
        self._cancel_url = cancel_url

    @classmethod
    def from_settings(cls, settings) -> StripeCheckoutProvider:
        client = stripe.StripeClient(
            api_key=settings.stripe_secret_key,
            http_client=stripe.RequestsClient(timeout=settings.provider_timeout_seconds),
            max_network_retries=0,
        )
        return cls(client, settings.stripe_success_url, settings.stripe_cancel_url)

    def create_checkout_session(self, request: CheckoutRequest) -> CheckoutSession:
        params = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "success_url": self._success_url,
            "cancel_url": self._cancel_url,
            "line_items": [
                {
                    "price_data": {
                        "currency": request.currency,
                        "unit_amount": request.amount,
                        "product_data": {"name": request.product_name or "Project payment"},
                    },
                    "quantity": 1,
                }
            ],
            "metadata": request.metadata,
            "payment_intent_data": {"metadata": {"payment_id": request.payment_id}},
        }
        try:
            session = self._client.checkout.sessions.create(params=params)
        except stripe.StripeError as e:
            raise PaymentProviderError(f"stripe checkout session failed: {type(e).__name__}") from e

        if not session.id or not session.url:
            raise PaymentProviderError("stripe checkout session missing id or url")

        logger.info("Stripe checkout session created: %s (payment=%s)", session.id, request.payment_id)
        return CheckoutSession(id=session.id, url=session.url)
