"""
Administrative user management: tier changes, bans and usage resets.
"""
import logging
from typing import List

from ..core.exceptions import BadRequestError, ForbiddenError, NotFoundError
from ..core.tier_limits import Tier
from ..schemas.users import UserAccount
from .usage_service import UsageService, usage_service
from .user_store import UserStore, user_store

logger = logging.getLogger(__name__)


class AdminService:
    """Operations reserved for users on the admin tier."""

    def __init__(self, store: UserStore, usage: UsageService):
        self.store = store
        self.usage = usage

    async def _update(self, user_id: str, fields: dict) -> UserAccount:
        user = await self.store.update_user(user_id, fields)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def ban_user(self, admin: UserAccount, user_id: str) -> UserAccount:
        user = await self._update(user_id, {"banned": True})
        logger.info(f"Admin {admin.id} banned user {user_id}")
        return user

    async def unban_user(self, admin: UserAccount, user_id: str) -> UserAccount:
        user = await self._update(user_id, {"banned": False})
        logger.info(f"Admin {admin.id} unbanned user {user_id}")
        return user

    async def reset_usage(self, admin: UserAccount, user_id: str) -> UserAccount:
        user = await self.usage.reset_usage(user_id)
        logger.info(f"Admin {admin.id} reset usage for user {user_id}")
        return user

    async def update_tier(self, admin: UserAccount, user_id: str, tier: str) -> UserAccount:
        """
        Set a user's tier.

        An admin cannot move themselves off the admin tier; another admin
        has to do it.
        """
        try:
            tier = Tier(tier).value
        except ValueError as e:
            raise BadRequestError(f"Unknown tier: {tier}") from e
        if admin.id == user_id and tier != Tier.ADMIN.value:
            raise ForbiddenError(
                "Cannot change your own admin status. Have another admin modify your tier."
            )

        user = await self._update(user_id, {"subscription_tier": tier})
        logger.info(f"Admin {admin.id} set tier of user {user_id} to {tier}")
        return user

    async def list_users(self, limit: int = 50, offset: int = 0) -> List[UserAccount]:
        return await self.store.list_users(limit=limit, offset=offset)


# Global admin service instance
admin_service = AdminService(user_store, usage_service)
