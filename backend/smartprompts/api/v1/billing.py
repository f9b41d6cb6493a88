"""
Billing API endpoints for Stripe integration.
Handles checkout and webhooks.
"""
from typing import Optional
from fastapi import APIRouter, Depends, Header, Request

from ...core.dependencies import get_current_user_account, get_subscription_reconciler
from ...schemas.billing import (
    CheckoutSessionRequest,
    CheckoutSessionResponse,
    WebhookResponse,
)
from ...schemas.users import UserAccount
from ...services.subscription_reconciler import SubscriptionReconciler

router = APIRouter()


@router.post("/checkout", response_model=CheckoutSessionResponse)
async def create_checkout_session(
    payload: CheckoutSessionRequest,
    user: UserAccount = Depends(get_current_user_account),
    reconciler: SubscriptionReconciler = Depends(get_subscription_reconciler),
):
    """
    Create a Stripe Checkout session for a subscription upgrade.
    """
    session = await reconciler.create_checkout_session(user, payload.price_id, payload.tier)
    return CheckoutSessionResponse(session_id=session["session_id"], url=session["url"])


@router.post("/webhook", response_model=WebhookResponse)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    reconciler: SubscriptionReconciler = Depends(get_subscription_reconciler),
):
    """
    Handle Stripe webhook events.

    Returns 200 for handled and ignored events, 400 for bad signatures or
    missing references, 404 when the referenced user does not exist and 500
    on store failures so that Stripe retries.
    """
    payload = await request.body()
    event = reconciler.verify_event(payload, stripe_signature)
    result = await reconciler.handle_event(event)
    return WebhookResponse(status=result.status, message=result.message)
