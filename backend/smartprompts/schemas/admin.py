"""
Schemas for admin endpoints.
"""
from typing import Any, Dict, List
from uuid import UUID
from pydantic import BaseModel, Field

from ..core.tier_limits import Tier


class UserIdRequest(BaseModel):
    """Target of a ban, unban or usage reset."""
    user_id: UUID = Field(..., alias="userId")

    model_config = {"populate_by_name": True}


class UpdateTierRequest(BaseModel):
    user_id: UUID = Field(..., alias="userId")
    tier: Tier

    model_config = {"populate_by_name": True}


class AdminActionResponse(BaseModel):
    success: bool = True
    data: Dict[str, Any]


class UserListResponse(BaseModel):
    users: List[Dict[str, Any]]
    count: int
