"""
Access to the ``users`` table in Supabase.

Every write that has to be race-free is done by the database itself:
usage increments go through the ``increment_usage`` function, window
rollover is a conditional update on the previously observed
``usage_reset_at``, and user creation is an ``ON CONFLICT DO NOTHING`` upsert.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..core.exceptions import UpstreamError
from ..core.supabase_client import supabase_client
from ..core.tier_limits import Tier
from ..schemas.users import UserAccount

logger = logging.getLogger(__name__)

USERS_TABLE = "users"
EVENTS_TABLE = "stripe_events"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class UserStore:
    """Supabase-backed user store."""

    def __init__(self, client=None):
        self._client = client

    @property
    def supabase(self):
        # Resolved lazily so importing the module never opens a connection
        if self._client is None:
            self._client = supabase_client.service_client
        return self._client

    def _table(self):
        return self.supabase.table(USERS_TABLE)

    @staticmethod
    def _first(rows: Optional[List[Dict[str, Any]]]) -> Optional[UserAccount]:
        if rows:
            return UserAccount(**rows[0])
        return None

    async def get_user(self, user_id: str) -> Optional[UserAccount]:
        """Point read by id. Returns None if the row does not exist."""
        try:
            # .limit(1) instead of .single() so a missing row is not an exception
            result = self._table().select("*").eq("id", user_id).limit(1).execute()
        except Exception as e:
            logger.error(f"Failed to read user {user_id}: {e}")
            raise UpstreamError(f"read user {user_id}: {e}") from e
        return self._first(result.data)

    async def get_user_by_customer_id(self, customer_id: str) -> Optional[UserAccount]:
        """Point read by Stripe customer id."""
        try:
            result = self._table().select("*").eq(
                "stripe_customer_id", customer_id
            ).limit(1).execute()
        except Exception as e:
            logger.error(f"Failed to read user for customer {customer_id}: {e}")
            raise UpstreamError(f"read customer {customer_id}: {e}") from e
        return self._first(result.data)

    async def insert_user_if_absent(
        self,
        user_id: str,
        email: str,
        usage_reset_at: datetime,
    ) -> UserAccount:
        """
        Create the user row with free-tier defaults unless it already exists.

        An existing row (tier, usage, billing ids, ban flag) is never touched.
        """
        row = {
            "id": user_id,
            "email": email,
            "subscription_tier": Tier.FREE.value,
            "usage_count": 0,
            "usage_reset_at": usage_reset_at.isoformat(),
            "banned": False,
            "updated_at": _now_iso(),
        }
        try:
            self._table().upsert(
                row, on_conflict="id", ignore_duplicates=True
            ).execute()
        except Exception as e:
            logger.error(f"Failed to upsert user {user_id}: {e}")
            raise UpstreamError(f"upsert user {user_id}: {e}") from e

        user = await self.get_user(user_id)
        if user is None:
            raise UpstreamError(f"user {user_id} missing after upsert")
        return user

    async def update_user(self, user_id: str, fields: Dict[str, Any]) -> Optional[UserAccount]:
        """Update fields on one row. Returns the updated row or None if absent."""
        values = dict(fields)
        values["updated_at"] = _now_iso()
        try:
            result = self._table().update(values).eq("id", user_id).execute()
        except Exception as e:
            logger.error(f"Failed to update user {user_id}: {e}")
            raise UpstreamError(f"update user {user_id}: {e}") from e
        return self._first(result.data)

    async def reset_usage_window(
        self,
        user_id: str,
        expected_reset_at: datetime,
        new_reset_at: datetime,
    ) -> bool:
        """
        Compare-and-set rollover of the usage window.

        Only applies if ``usage_reset_at`` still equals ``expected_reset_at``.
        Returns True when this call performed the reset.
        """
        try:
            result = self._table().update({
                "usage_count": 0,
                "usage_reset_at": new_reset_at.isoformat(),
                "updated_at": _now_iso(),
            }).eq("id", user_id).eq(
                "usage_reset_at", expected_reset_at.isoformat()
            ).execute()
        except Exception as e:
            logger.error(f"Failed to reset usage for user {user_id}: {e}")
            raise UpstreamError(f"reset usage {user_id}: {e}") from e
        return bool(result.data)

    async def increment_usage(self, user_id: str) -> None:
        """Atomically add one to ``usage_count`` via the database function."""
        try:
            self.supabase.rpc("increment_usage", {"user_id": user_id}).execute()
        except Exception as e:
            raise UpstreamError(f"increment usage {user_id}: {e}") from e

    async def list_users(self, limit: int = 50, offset: int = 0) -> List[UserAccount]:
        try:
            result = self._table().select("*").order(
                "created_at", desc=True
            ).range(offset, offset + limit - 1).execute()
        except Exception as e:
            logger.error(f"Failed to list users: {e}")
            raise UpstreamError(f"list users: {e}") from e
        return [UserAccount(**row) for row in (result.data or [])]

    async def has_processed_event(self, event_id: str) -> bool:
        try:
            result = self.supabase.table(EVENTS_TABLE).select(
                "event_id"
            ).eq("event_id", event_id).limit(1).execute()
        except Exception as e:
            logger.error(f"Failed to look up webhook event {event_id}: {e}")
            raise UpstreamError(f"read event {event_id}: {e}") from e
        return bool(result.data)

    async def record_processed_event(self, event_id: str, event_type: str) -> None:
        try:
            self.supabase.table(EVENTS_TABLE).upsert({
                "event_id": event_id,
                "event_type": event_type,
                "processed_at": _now_iso(),
            }, on_conflict="event_id", ignore_duplicates=True).execute()
        except Exception as e:
            logger.error(f"Failed to record webhook event {event_id}: {e}")
            raise UpstreamError(f"record event {event_id}: {e}") from e


# Global user store instance
user_store = UserStore()
