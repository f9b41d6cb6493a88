"""
Admin endpoints for user management.
"""
from fastapi import APIRouter, Depends, Query

from ...core.dependencies import get_admin_service, require_admin
from ...schemas.admin import (
    AdminActionResponse,
    UpdateTierRequest,
    UserIdRequest,
    UserListResponse,
)
from ...schemas.users import UserAccount
from ...services.admin_service import AdminService

router = APIRouter(prefix="/admin", tags=["admin"])


def _row(user: UserAccount) -> dict:
    return user.model_dump(mode="json")


@router.get("/users", response_model=UserListResponse)
async def list_users(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    admin: UserAccount = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    users = await service.list_users(limit=limit, offset=offset)
    return UserListResponse(users=[_row(u) for u in users], count=len(users))


@router.post("/ban", response_model=AdminActionResponse)
async def ban_user(
    payload: UserIdRequest,
    admin: UserAccount = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    user = await service.ban_user(admin, str(payload.user_id))
    return AdminActionResponse(data=_row(user))


@router.post("/unban", response_model=AdminActionResponse)
async def unban_user(
    payload: UserIdRequest,
    admin: UserAccount = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    user = await service.unban_user(admin, str(payload.user_id))
    return AdminActionResponse(data=_row(user))


@router.post("/reset-usage", response_model=AdminActionResponse)
async def reset_usage(
    payload: UserIdRequest,
    admin: UserAccount = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    user = await service.reset_usage(admin, str(payload.user_id))
    return AdminActionResponse(data=_row(user))


@router.post("/update-tier", response_model=AdminActionResponse)
async def update_tier(
    payload: UpdateTierRequest,
    admin: UserAccount = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    """Change a user's tier. Admins cannot demote themselves."""
    user = await service.update_tier(admin, str(payload.user_id), payload.tier.value)
    return AdminActionResponse(data=_row(user))
