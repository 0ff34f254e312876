"""Payment gateway collaborator.

The engine only needs one operation from the gateway: open a hosted
checkout and hand back its session id and redirect URL. The gateway
later reports success out of band (the client lands on the success
redirect and posts the session id to ``/payment/success``).

``StripeGateway`` is the production implementation. Tests supply their
own object with the same ``create_checkout`` signature.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Protocol

import stripe

from .config import STRIPE_SECRET_KEY
from .errors import UpstreamFailure

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutSession:
    session_id: str
    url: str


class PaymentGateway(Protocol):
    def create_checkout(
        self,
        amount: int,
        currency: str,
        customer_email: str,
        success_url: str,
        cancel_url: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> CheckoutSession:
        ...


class StripeGateway:
    """One-off payments through Stripe Checkout."""

    def __init__(self, api_key: str = STRIPE_SECRET_KEY):
        self.api_key = api_key

    def create_checkout(
        self,
        amount: int,
        currency: str,
        customer_email: str,
        success_url: str,
        cancel_url: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> CheckoutSession:
        if not self.api_key:
            raise UpstreamFailure("Stripe not configured. Set STRIPE_SECRET_KEY env var.")

        product = "CityFix Boost" if metadata and metadata.get("kind") == "boost" else "CityFix Premium"
        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                mode="payment",
                payment_method_types=["card"],
                customer_email=customer_email,
                line_items=[
                    {
                        "price_data": {
                            "currency": currency,
                            "unit_amount": amount,
                            "product_data": {"name": product},
                        },
                        "quantity": 1,
                    }
                ],
                metadata=metadata or {},
                success_url=success_url,
                cancel_url=cancel_url,
            )
        except stripe.StripeError as exc:
            log.error("Stripe checkout failed for %s: %s", customer_email, exc)
            raise UpstreamFailure("Payment gateway unavailable") from exc

        log.info("Checkout session %s opened for %s", session.id, customer_email)
        return CheckoutSession(session_id=session.id, url=session.url)
