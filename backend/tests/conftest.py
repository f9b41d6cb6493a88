"""
Shared fixtures.

Settings are read at import time, so the environment is prepared here
before any ``smartprompts`` module is imported.
"""
import os

os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-service-role-key")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-with-enough-length-0123456789")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("STRIPE_PRICE_ID_PRO", "price_pro")
os.environ.setdefault("STRIPE_PRICE_ID_ENTERPRISE", "price_enterprise")
os.environ.setdefault("STRIPE_PRICE_ID_LIFETIME", "price_lifetime")

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from smartprompts.core.exceptions import UpstreamError
from smartprompts.schemas.auth import Principal
from smartprompts.schemas.users import UserAccount
from smartprompts.services.user_store import UserStore

PRICE_IDS = {
    "free": "",
    "pro": "price_pro",
    "enterprise": "price_enterprise",
    "lifetime": "price_lifetime",
}


class FrozenClock:
    """Manually advanced UTC clock."""

    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeUserStore(UserStore):
    """
    In-memory stand-in for the Supabase user store.

    Mirrors the store's guarantees: conditional window reset, increment done
    by the store, insert that never overwrites.
    """

    def __init__(self):
        super().__init__(client=object())
        self.users: Dict[str, UserAccount] = {}
        self.events: Dict[str, str] = {}
        self.fail_reads = False
        self.fail_updates = False
        self.fail_increment = False
        self.increment_calls = 0
        self.reset_calls = 0
        self.update_calls: List[Dict[str, Any]] = []
        # Called inside reset_usage_window before the comparison, to simulate
        # a concurrent request winning the race
        self.before_reset = None

    def add_user(self, user_id: Optional[str] = None, **fields) -> UserAccount:
        user_id = user_id or str(uuid.uuid4())
        values = {
            "id": user_id,
            "email": f"{user_id[:8]}@example.com",
            "usage_reset_at": datetime(2026, 3, 20, tzinfo=timezone.utc),
        }
        values.update(fields)
        self.users[user_id] = UserAccount(**values)
        return self.users[user_id]

    def _copy(self, user: Optional[UserAccount]) -> Optional[UserAccount]:
        return user.model_copy() if user is not None else None

    def _write(self, user_id: str, fields: Dict[str, Any]) -> UserAccount:
        merged = {**self.users[user_id].model_dump(), **fields}
        self.users[user_id] = UserAccount(**merged)
        return self.users[user_id]

    async def get_user(self, user_id: str) -> Optional[UserAccount]:
        if self.fail_reads:
            raise UpstreamError("store unreachable")
        return self._copy(self.users.get(user_id))

    async def get_user_by_customer_id(self, customer_id: str) -> Optional[UserAccount]:
        if self.fail_reads:
            raise UpstreamError("store unreachable")
        for user in self.users.values():
            if user.stripe_customer_id == customer_id:
                return self._copy(user)
        return None

    async def insert_user_if_absent(self, user_id: str, email: str, usage_reset_at: datetime) -> UserAccount:
        if user_id not in self.users:
            self.add_user(user_id, email=email, usage_reset_at=usage_reset_at)
        return self._copy(self.users[user_id])

    async def update_user(self, user_id: str, fields: Dict[str, Any]) -> Optional[UserAccount]:
        if self.fail_updates:
            raise UpstreamError("store unreachable")
        self.update_calls.append({"user_id": user_id, **fields})
        if user_id not in self.users:
            return None
        return self._copy(self._write(user_id, fields))

    async def reset_usage_window(self, user_id: str, expected_reset_at: datetime, new_reset_at: datetime) -> bool:
        if self.before_reset is not None:
            hook, self.before_reset = self.before_reset, None
            hook()
        user = self.users.get(user_id)
        if user is None or user.usage_reset_at != expected_reset_at:
            return False
        self.reset_calls += 1
        self._write(user_id, {"usage_count": 0, "usage_reset_at": new_reset_at})
        return True

    async def increment_usage(self, user_id: str) -> None:
        if self.fail_increment:
            raise UpstreamError("increment_usage rpc failed")
        self.increment_calls += 1
        user = self.users[user_id]
        self._write(user_id, {"usage_count": user.usage_count + 1})

    async def list_users(self, limit: int = 50, offset: int = 0) -> List[UserAccount]:
        ordered = list(self.users.values())[::-1]
        return [self._copy(u) for u in ordered[offset:offset + limit]]

    async def has_processed_event(self, event_id: str) -> bool:
        return event_id in self.events

    async def record_processed_event(self, event_id: str, event_type: str) -> None:
        self.events[event_id] = event_type


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def store():
    return FakeUserStore()


@pytest.fixture
def principal():
    return Principal(id=str(uuid.uuid4()), email="writer@example.com")
