"""
Pydantic schemas for billing endpoints.
"""

from datetime import datetime
from pydantic import BaseModel, Field


class CheckoutSessionRequest(BaseModel):
    """Request to create a checkout session."""
    price_id: str = Field(..., min_length=1, alias="priceId")
    tier: str = Field(..., min_length=1)

    model_config = {"populate_by_name": True}


class CheckoutSessionResponse(BaseModel):
    """Response with checkout session URL."""
    session_id: str = Field(..., serialization_alias="sessionId")
    url: str


class WebhookResponse(BaseModel):
    """Response from webhook processing."""
    received: bool = True
    status: str
    message: str


class UsageStatsResponse(BaseModel):
    """Current user's usage for the dashboard."""
    used: int
    remaining: int
    limit: int
    reset_at: datetime = Field(..., serialization_alias="resetAt")
    tier: str
