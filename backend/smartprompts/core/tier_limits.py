"""
Tier configuration for the usage paywall.
Defines monthly optimization quotas per subscription tier.
"""

from enum import Enum
from datetime import timedelta

from .config import settings


class Tier(str, Enum):
    """Subscription tiers. LIFETIME and ADMIN are granted outside of normal billing."""
    FREE = "free"
    PRO = "pro"
    ENTERPRISE = "enterprise"
    LIFETIME = "lifetime"
    ADMIN = "admin"


UNLIMITED = -1

# Monthly optimization quota per tier (-1 = unlimited)
USAGE_LIMITS = {
    Tier.FREE: 10,
    Tier.PRO: 1000,
    Tier.ENTERPRISE: UNLIMITED,
    Tier.LIFETIME: UNLIMITED,
    Tier.ADMIN: UNLIMITED,
}


def get_usage_limit(tier: str) -> int:
    """Get the monthly limit for a tier. Unknown tiers get the free quota."""
    try:
        return USAGE_LIMITS[Tier(tier)]
    except ValueError:
        return USAGE_LIMITS[Tier.FREE]


def is_unlimited(limit: int) -> bool:
    return limit == UNLIMITED


def usage_window() -> timedelta:
    """Length of one accounting window."""
    return timedelta(days=settings.usage_window_days)
