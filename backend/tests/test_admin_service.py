"""
Tests for admin user management.
"""
from datetime import timedelta

import pytest

from smartprompts.core.exceptions import BadRequestError, ForbiddenError, NotFoundError
from smartprompts.services.admin_service import AdminService
from smartprompts.services.usage_service import UsageService


@pytest.fixture
def service(store, clock):
    return AdminService(store, UsageService(store, clock=clock, window=timedelta(days=30)))


@pytest.fixture
def admin(store):
    return store.add_user(subscription_tier="admin")


class TestUpdateTier:

    @pytest.mark.asyncio
    async def test_admin_cannot_demote_themselves(self, service, store, admin):
        with pytest.raises(ForbiddenError, match="Cannot change your own admin status"):
            await service.update_tier(admin, admin.id, "pro")

        assert store.users[admin.id].subscription_tier == "admin"
        assert store.update_calls == []

    @pytest.mark.asyncio
    async def test_admin_keeping_own_tier_is_allowed(self, service, store, admin):
        user = await service.update_tier(admin, admin.id, "admin")
        assert user.subscription_tier == "admin"

    @pytest.mark.asyncio
    async def test_admin_can_demote_another_admin(self, service, store, admin):
        other = store.add_user(subscription_tier="admin")

        user = await service.update_tier(admin, other.id, "free")

        assert user.subscription_tier == "free"
        assert store.users[other.id].subscription_tier == "free"

    @pytest.mark.asyncio
    async def test_unknown_tier_is_rejected(self, service, store, admin):
        target = store.add_user()
        with pytest.raises(BadRequestError, match="Unknown tier: platinum"):
            await service.update_tier(admin, target.id, "platinum")

        assert store.update_calls == []

    @pytest.mark.asyncio
    async def test_unknown_user(self, service, admin):
        with pytest.raises(NotFoundError):
            await service.update_tier(admin, "ghost", "pro")


class TestBanAndReset:

    @pytest.mark.asyncio
    async def test_ban_and_unban(self, service, store, admin):
        target = store.add_user(subscription_tier="pro", usage_count=4)

        banned = await service.ban_user(admin, target.id)
        assert banned.banned is True
        assert banned.subscription_tier == "pro"
        assert banned.usage_count == 4

        unbanned = await service.unban_user(admin, target.id)
        assert unbanned.banned is False

    @pytest.mark.asyncio
    async def test_ban_unknown_user(self, service, admin):
        with pytest.raises(NotFoundError):
            await service.ban_user(admin, "ghost")

    @pytest.mark.asyncio
    async def test_reset_usage(self, service, store, admin, clock):
        target = store.add_user(usage_count=10)

        user = await service.reset_usage(admin, target.id)

        assert user.usage_count == 0
        assert user.usage_reset_at == clock.now + timedelta(days=30)

    @pytest.mark.asyncio
    async def test_list_users(self, service, store, admin):
        store.add_user()
        store.add_user()

        users = await service.list_users(limit=2)

        assert len(users) == 2
