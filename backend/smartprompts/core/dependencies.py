"""
FastAPI dependencies for authentication, authorization and service lookup.

Supabase session tokens are accepted from the ``Authorization: Bearer``
header or the ``sb-access-token`` cookie.
"""
from typing import Optional
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from .exceptions import ForbiddenError, NotFoundError, UnauthorizedError
from .security import principal_from_token
from ..schemas.auth import Principal
from ..schemas.users import UserAccount
from ..services.admin_service import AdminService, admin_service
from ..services.optimize_service import OptimizeService, optimize_service
from ..services.subscription_reconciler import SubscriptionReconciler, subscription_reconciler
from ..services.usage_service import UsageService, usage_service
from ..services.user_store import UserStore, user_store


# HTTP Bearer token scheme
security = HTTPBearer(auto_error=False)

SESSION_COOKIE = "sb-access-token"


async def get_optional_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[Principal]:
    """
    Resolve the authenticated principal, or None for anonymous requests.

    An invalid token is treated the same as no token.
    """
    token = credentials.credentials if credentials else request.cookies.get(SESSION_COOKIE)
    if not token:
        return None
    return principal_from_token(token)


async def get_current_principal(
    principal: Optional[Principal] = Depends(get_optional_principal),
) -> Principal:
    """Dependency that requires an authenticated principal (401 otherwise)."""
    if principal is None:
        raise UnauthorizedError()
    return principal


def get_user_store() -> UserStore:
    return user_store


def get_usage_service() -> UsageService:
    return usage_service


def get_optimize_service() -> OptimizeService:
    return optimize_service


def get_subscription_reconciler() -> SubscriptionReconciler:
    return subscription_reconciler


def get_admin_service() -> AdminService:
    return admin_service


async def get_current_user_account(
    principal: Principal = Depends(get_current_principal),
    store: UserStore = Depends(get_user_store),
) -> UserAccount:
    """The stored row of the authenticated user (404 if never created)."""
    user = await store.get_user(principal.id)
    if user is None:
        raise NotFoundError("User not found")
    return user


async def require_admin(
    user: UserAccount = Depends(get_current_user_account),
) -> UserAccount:
    """Dependency restricting a route to users on the admin tier."""
    if not user.is_admin:
        raise ForbiddenError("Forbidden - Admin access required")
    return user
