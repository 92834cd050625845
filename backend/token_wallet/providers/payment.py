"""
Stripe Checkout provider for token pack purchases.

Features:
- Checkout session creation tagged with our intent id (client_reference_id)
- Webhook signature verification
- Sync SDK calls run off the event loop

Required Environment Variables:
- STRIPE_SECRET_KEY
- STRIPE_WEBHOOK_SECRET
"""

import asyncio
import json
import logging
import os
from typing import Dict, Any, Optional

import stripe

from ..config import PAYMENT_CURRENCY
from ..errors import PaymentProviderError, PaymentSignatureError
from ..models import ProviderIntent

logger = logging.getLogger(__name__)


class StripePaymentProvider:
    """Stripe service for token pack checkouts."""

    def __init__(
        self,
        secret_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        currency: str = PAYMENT_CURRENCY
    ):
        self.secret_key = secret_key or os.environ.get("STRIPE_SECRET_KEY", "")
        self.webhook_secret = webhook_secret or os.environ.get("STRIPE_WEBHOOK_SECRET", "")
        self.currency = currency

    async def create_intent(
        self,
        amount_minor_units: int,
        success_redirect: str,
        cancel_redirect: str,
        *,
        reference: str,
        metadata: Dict[str, str],
        description: str
    ) -> ProviderIntent:
        """
        Create a Stripe Checkout session.

        Args:
            amount_minor_units: Price in cents
            success_redirect: Where the browser lands after paying
            cancel_redirect: Where the browser lands after cancelling
            reference: Our intent id, echoed back on the webhook
            metadata: Extra values echoed back on the webhook
            description: Line item name shown on the checkout page
        """
        if not self.secret_key:
            raise PaymentProviderError("STRIPE_SECRET_KEY not configured")

        try:
            session = await asyncio.to_thread(
                stripe.checkout.Session.create,
                api_key=self.secret_key,
                mode="payment",
                payment_method_types=["card"],
                line_items=[{
                    "price_data": {
                        "currency": self.currency,
                        "product_data": {"name": description},
                        "unit_amount": amount_minor_units,
                    },
                    "quantity": 1,
                }],
                client_reference_id=reference,
                metadata=metadata,
                success_url=success_redirect,
                cancel_url=cancel_redirect,
                idempotency_key=reference,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe checkout creation failed for intent {reference}: {e}")
            raise PaymentProviderError(f"Failed to create checkout session: {e}")

        return ProviderIntent(provider_intent_id=session.id, redirect_url=session.url)

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """Verify a webhook payload and return the event as a plain dict."""
        if not self.webhook_secret:
            raise PaymentProviderError("Stripe webhook not configured")
        if not signature:
            raise PaymentSignatureError("Missing Stripe-Signature header")

        try:
            stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except ValueError as e:
            logger.error(f"Invalid payload: {e}")
            raise PaymentSignatureError("Invalid payload")
        except stripe.SignatureVerificationError as e:
            logger.error(f"Invalid signature: {e}")
            raise PaymentSignatureError()

        return json.loads(payload)
