"""
Schemas for rows of the ``users`` table.
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from ..core.tier_limits import Tier


class UserAccount(BaseModel):
    """A user row as stored in Supabase."""
    model_config = ConfigDict(extra="ignore", use_enum_values=True)

    id: str
    email: str = ""
    subscription_tier: Tier = Tier.FREE
    usage_count: int = Field(default=0, ge=0)
    usage_reset_at: datetime
    banned: bool = False
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_admin(self) -> bool:
        return self.subscription_tier == Tier.ADMIN.value
