"""
Monthly usage accounting.

Each user has ``usage_count`` and ``usage_reset_at``. When a quota check
observes that the window has ended, it rolls the window over (count back to
zero, new end ``now + window``) before answering, so ``check_quota`` can
write to the store.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from ..core.exceptions import NotFoundError
from ..core.tier_limits import get_usage_limit, is_unlimited, usage_window, UNLIMITED
from ..schemas.users import UserAccount
from .user_store import UserStore, user_store

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class QuotaCheck:
    allowed: bool
    remaining: int
    limit: int
    reset_at: datetime


@dataclass
class UsageStats:
    used: int
    remaining: int
    limit: int
    reset_at: datetime
    tier: str


class UsageService:
    """Quota checks and usage counting against the user store."""

    def __init__(
        self,
        store: UserStore,
        clock: Callable[[], datetime] = utcnow,
        window: Optional[timedelta] = None,
    ):
        self.store = store
        self._clock = clock
        self._window = window

    @property
    def window(self) -> timedelta:
        return self._window if self._window is not None else usage_window()

    def new_reset_at(self) -> datetime:
        """End of a window starting now."""
        return self._clock() + self.window

    async def _require_user(self, user_id: str) -> UserAccount:
        user = await self.store.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def check_quota(self, user_id: str, tier: str) -> QuotaCheck:
        """
        Decide whether ``user_id`` may consume one more unit this window.

        Raises NotFoundError if the user row is missing; store failures
        propagate as UpstreamError.
        """
        user = await self._require_user(user_id)
        limit = get_usage_limit(tier)
        now = self._clock()
        reset_at = _as_utc(user.usage_reset_at)

        if now > reset_at:
            new_reset_at = now + self.window
            applied = await self.store.reset_usage_window(user_id, user.usage_reset_at, new_reset_at)
            if applied:
                logger.info(f"Usage window rolled over for user {user_id}, next reset {new_reset_at.isoformat()}")
                return QuotaCheck(
                    allowed=True,
                    remaining=limit,
                    limit=limit,
                    reset_at=new_reset_at,
                )

            # Another request rolled the window first; use its result
            logger.debug(f"Usage window for user {user_id} already rolled over by a concurrent request")
            user = await self._require_user(user_id)
            reset_at = _as_utc(user.usage_reset_at)

        return self._evaluate(user.usage_count, limit, reset_at)

    @staticmethod
    def _evaluate(usage_count: int, limit: int, reset_at: datetime) -> QuotaCheck:
        if is_unlimited(limit):
            return QuotaCheck(allowed=True, remaining=UNLIMITED, limit=limit, reset_at=reset_at)

        return QuotaCheck(
            allowed=usage_count < limit,
            remaining=max(0, limit - usage_count),
            limit=limit,
            reset_at=reset_at,
        )

    async def increment_usage(self, user_id: str) -> None:
        """Add one to the user's usage counter (atomic at the store)."""
        await self.store.increment_usage(user_id)

    async def get_usage_stats(self, user_id: str) -> UsageStats:
        """Read-only usage summary. An ended window is reported as fresh."""
        user = await self._require_user(user_id)
        limit = get_usage_limit(user.subscription_tier)
        now = self._clock()
        reset_at = _as_utc(user.usage_reset_at)

        used = user.usage_count
        if now > reset_at:
            used = 0
            reset_at = now + self.window

        remaining = UNLIMITED if is_unlimited(limit) else max(0, limit - used)
        return UsageStats(
            used=used,
            remaining=remaining,
            limit=limit,
            reset_at=reset_at,
            tier=user.subscription_tier,
        )

    async def reset_usage(self, user_id: str) -> UserAccount:
        """Zero the counter and start a fresh window (admin action)."""
        user = await self.store.update_user(user_id, {
            "usage_count": 0,
            "usage_reset_at": self.new_reset_at().isoformat(),
        })
        if user is None:
            raise NotFoundError("User not found")
        logger.info(f"Usage reset for user {user_id}")
        return user


# Global usage service instance
usage_service = UsageService(user_store)
