"""
Stripe webhook reconciliation.

Maps verified Stripe events onto the subscription fields of a user row:

- ``checkout.session.completed``: tier from the subscription price, plus
  subscription and customer ids
- ``customer.subscription.updated``: tier from the current price, plus
  subscription id
- ``customer.subscription.deleted``: back to free, subscription id cleared

Every mutation is an overwrite with values derived only from the event, so
a redelivered event leaves the row unchanged. Out-of-order delivery is not
detected; optional de-duplication by event id is available through
``STRIPE_DEDUPLICATE_EVENTS``. The ``banned`` flag is never written here.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional

import stripe

from ..core.config import settings
from ..core.exceptions import (
    BadRequestError,
    NotFoundError,
    SmartPromptsError,
    UpstreamError,
)
from ..core.tier_limits import Tier
from ..schemas.users import UserAccount
from .stripe_gateway import StripeGateway, StripeNotConfiguredError, first_price_id, stripe_gateway
from .user_store import UserStore, user_store

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
SUBSCRIPTION_UPDATED = "customer.subscription.updated"
SUBSCRIPTION_DELETED = "customer.subscription.deleted"

# Checked in this order; empty ids never match
PRICE_TIER_ORDER = (Tier.PRO, Tier.ENTERPRISE, Tier.LIFETIME, Tier.FREE)
PAID_TIERS = (Tier.PRO, Tier.ENTERPRISE, Tier.LIFETIME)


class PriceConfigurationError(SmartPromptsError):
    """No paid Stripe price id is configured."""
    default_message = "Stripe price IDs are not configured"


def tier_from_price_id(price_id: Optional[str], price_ids: Mapping[str, str]) -> Tier:
    """
    Map a Stripe price id onto a tier.

    Raises:
        PriceConfigurationError: none of the paid price ids is configured.
        BadRequestError: the price id matches no configured price.
    """
    if not any(price_ids.get(tier.value) for tier in PAID_TIERS):
        raise PriceConfigurationError()

    if price_id:
        for tier in PRICE_TIER_ORDER:
            configured = price_ids.get(tier.value)
            if configured and configured == price_id:
                return tier

    raise BadRequestError(f"Unrecognized Stripe price ID: {price_id}")


@dataclass
class WebhookResult:
    status: str
    message: str


class SubscriptionReconciler:
    """Applies Stripe webhook events to user rows."""

    def __init__(
        self,
        store: UserStore,
        gateway: StripeGateway,
        price_ids: Optional[Mapping[str, str]] = None,
        protected_tiers: Optional[Iterable[str]] = None,
        deduplicate_events: Optional[bool] = None,
    ):
        self.store = store
        self.gateway = gateway
        self._price_ids = price_ids
        self._protected_tiers = protected_tiers
        self._deduplicate_events = deduplicate_events

    @property
    def price_ids(self) -> Mapping[str, str]:
        return self._price_ids if self._price_ids is not None else settings.stripe_price_ids

    @property
    def protected_tiers(self) -> frozenset:
        tiers = self._protected_tiers
        if tiers is None:
            tiers = settings.billing_protected_tiers
        return frozenset(tiers)

    @property
    def deduplicate_events(self) -> bool:
        if self._deduplicate_events is None:
            return settings.stripe_deduplicate_events
        return self._deduplicate_events

    def tier_for_price(self, price_id: Optional[str]) -> Tier:
        return tier_from_price_id(price_id, self.price_ids)

    def verify_event(self, payload: bytes, signature: Optional[str]):
        """Check the webhook signature. Nothing is processed before this passes."""
        if not signature:
            raise BadRequestError("Missing stripe-signature header")

        try:
            return self.gateway.construct_event(payload, signature)
        except StripeNotConfiguredError as e:
            logger.error(f"Webhook received but Stripe is not configured: {e}")
            raise SmartPromptsError("Stripe is not configured") from e
        except ValueError as e:
            logger.warning(f"Webhook payload could not be parsed: {e}")
            raise BadRequestError("Invalid payload") from e
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Webhook signature verification failed: {e}")
            raise BadRequestError("Invalid signature") from e

    async def handle_event(self, event: Mapping[str, Any]) -> WebhookResult:
        """Dispatch a verified event by type."""
        event_type = event["type"]
        event_id = event.get("id")
        handler = {
            CHECKOUT_COMPLETED: self._handle_checkout_completed,
            SUBSCRIPTION_UPDATED: self._handle_subscription_updated,
            SUBSCRIPTION_DELETED: self._handle_subscription_deleted,
        }.get(event_type)

        if handler is None:
            logger.info(f"Unhandled event type: {event_type}")
            return WebhookResult(status="ignored", message=f"Unhandled event type: {event_type}")

        if self.deduplicate_events and event_id and await self.store.has_processed_event(event_id):
            logger.info(f"Skipping already processed event {event_id} ({event_type})")
            return WebhookResult(status="duplicate", message=f"Event {event_id} already processed")

        result = await handler(event["data"]["object"])

        if self.deduplicate_events and event_id:
            await self.store.record_processed_event(event_id, event_type)
        return result

    def _is_protected(self, user: UserAccount) -> bool:
        return user.subscription_tier in self.protected_tiers

    async def _apply(self, user_id: str, fields: Dict[str, Any]) -> UserAccount:
        user = await self.store.update_user(user_id, fields)
        if user is None:
            raise NotFoundError(f"User not found: {user_id}")
        return user

    async def _find_by_customer(self, customer_id: Optional[str]) -> UserAccount:
        if not customer_id:
            raise BadRequestError("Subscription has no customer reference")
        user = await self.store.get_user_by_customer_id(customer_id)
        if user is None:
            logger.error(f"User not found for customer: {customer_id}")
            raise NotFoundError(f"User not found for customer: {customer_id}")
        return user

    async def _handle_checkout_completed(self, session: Mapping[str, Any]) -> WebhookResult:
        metadata = session.get("metadata") or {}
        user_id = metadata.get("userId")
        if not user_id:
            logger.error("No userId in session metadata")
            raise BadRequestError("No userId in session metadata")

        subscription_id = session.get("subscription")
        if not subscription_id:
            raise BadRequestError("Checkout session has no subscription")

        try:
            subscription = self.gateway.retrieve_subscription(subscription_id)
        except (stripe.StripeError, StripeNotConfiguredError) as e:
            logger.error(f"Failed to retrieve subscription {subscription_id}: {e}")
            raise UpstreamError(f"retrieve subscription {subscription_id}: {e}") from e

        tier = self.tier_for_price(first_price_id(subscription))
        fields = {
            "subscription_tier": tier.value,
            "stripe_subscription_id": subscription_id,
            "stripe_customer_id": session.get("customer"),
        }

        current = await self.store.get_user(user_id)
        if current is None:
            raise NotFoundError(f"User not found: {user_id}")
        if self._is_protected(current):
            del fields["subscription_tier"]
            await self._apply(user_id, fields)
            logger.info(f"Checkout completed for user {user_id}; kept protected tier {current.subscription_tier}")
            return WebhookResult(status="success", message=f"Tier {current.subscription_tier} preserved for user {user_id}")

        await self._apply(user_id, fields)
        logger.info(f"Subscription created for user {user_id}: {tier.value}")
        return WebhookResult(status="success", message=f"User {user_id} subscribed to {tier.value}")

    async def _handle_subscription_updated(self, subscription: Mapping[str, Any]) -> WebhookResult:
        user = await self._find_by_customer(subscription.get("customer"))
        tier = self.tier_for_price(first_price_id(subscription))

        if self._is_protected(user):
            await self._apply(user.id, {"stripe_subscription_id": subscription.get("id")})
            logger.info(f"Subscription updated for user {user.id}; kept protected tier {user.subscription_tier}")
            return WebhookResult(status="skipped", message=f"Tier {user.subscription_tier} is not managed by billing")

        await self._apply(user.id, {
            "subscription_tier": tier.value,
            "stripe_subscription_id": subscription.get("id"),
        })
        logger.info(f"Subscription updated for user {user.id}: {tier.value}")
        return WebhookResult(status="success", message=f"User {user.id} moved to {tier.value}")

    async def _handle_subscription_deleted(self, subscription: Mapping[str, Any]) -> WebhookResult:
        user = await self._find_by_customer(subscription.get("customer"))

        if self._is_protected(user):
            await self._apply(user.id, {"stripe_subscription_id": None})
            logger.info(f"Subscription cancelled for user {user.id}; kept protected tier {user.subscription_tier}")
            return WebhookResult(status="skipped", message=f"Tier {user.subscription_tier} is not managed by billing")

        await self._apply(user.id, {
            "subscription_tier": Tier.FREE.value,
            "stripe_subscription_id": None,
        })
        logger.info(f"Subscription cancelled for user {user.id}")
        return WebhookResult(status="success", message=f"User {user.id} downgraded to free")

    async def create_checkout_session(self, user: UserAccount, price_id: str, tier: str) -> Dict[str, str]:
        """
        Start a subscription checkout for ``user``.

        The Stripe customer is created on first checkout and its id stored on
        the user row. The session metadata carries ``userId`` so the
        completion webhook can find the user.
        """
        mapped = self.tier_for_price(price_id)
        if mapped.value != tier:
            raise BadRequestError(f"Price {price_id} does not belong to tier {tier}")

        try:
            customer_id = user.stripe_customer_id
            if not customer_id:
                customer_id = self.gateway.create_customer(user.email, user.id)
                await self._apply(user.id, {"stripe_customer_id": customer_id})

            return self.gateway.create_checkout_session(
                customer_id=customer_id,
                price_id=price_id,
                success_url=f"{settings.app_url}/dashboard?success=true",
                cancel_url=f"{settings.app_url}/pricing?canceled=true",
                metadata={"userId": user.id, "tier": mapped.value},
            )
        except (stripe.StripeError, StripeNotConfiguredError) as e:
            logger.error(f"Checkout error for user {user.id}: {e}")
            raise UpstreamError(f"checkout for {user.id}: {e}", message="Failed to create checkout session") from e


# Global reconciler instance
subscription_reconciler = SubscriptionReconciler(user_store, stripe_gateway)
