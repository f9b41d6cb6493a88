"""
Thin wrapper around the Stripe SDK calls the billing code needs.
"""
import json
import logging
from typing import Any, Dict, Optional

import stripe

from ..core.config import settings

logger = logging.getLogger(__name__)

# Initialize Stripe
stripe.api_key = settings.stripe_secret_key


class StripeNotConfiguredError(Exception):
    """Raised when a Stripe call is attempted without credentials."""


class StripeGateway:
    """Payment provider operations used by the reconciler and checkout."""

    def __init__(self, webhook_secret: Optional[str] = None):
        self._webhook_secret = webhook_secret

    @property
    def webhook_secret(self) -> str:
        secret = self._webhook_secret or settings.stripe_webhook_secret
        if not secret:
            raise StripeNotConfiguredError("Stripe webhook secret is not configured")
        return secret

    @staticmethod
    def _require_api_key() -> None:
        if not stripe.api_key:
            raise StripeNotConfiguredError("Stripe is not configured")

    def construct_event(self, payload: bytes, signature: str) -> Dict[str, Any]:
        """
        Verify the signature and parse the event into a plain dict.

        Raises ValueError for an unparsable payload and
        stripe.SignatureVerificationError for a bad signature.
        """
        stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        return json.loads(payload)

    def retrieve_subscription(self, subscription_id: str) -> Dict[str, Any]:
        self._require_api_key()
        return stripe.Subscription.retrieve(subscription_id)

    def create_customer(self, email: str, user_id: str) -> str:
        """Create a customer and return its id."""
        self._require_api_key()
        customer = stripe.Customer.create(
            email=email,
            metadata={"userId": user_id},
        )
        return customer.id

    def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
    ) -> Dict[str, str]:
        self._require_api_key()
        session = stripe.checkout.Session.create(
            customer=customer_id,
            line_items=[
                {
                    "price": price_id,
                    "quantity": 1,
                }
            ],
            mode="subscription",
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata,
        )
        return {"session_id": session.id, "url": session.url}


def first_price_id(subscription: Dict[str, Any]) -> Optional[str]:
    """Price id of the first subscription item, if any."""
    try:
        return subscription["items"]["data"][0]["price"]["id"]
    except (KeyError, IndexError, TypeError):
        return None


# Global Stripe gateway instance
stripe_gateway = StripeGateway()
