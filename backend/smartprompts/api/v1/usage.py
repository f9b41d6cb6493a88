"""
Usage statistics for the signed-in user.
"""
from fastapi import APIRouter, Depends

from ...core.dependencies import get_current_principal, get_usage_service
from ...schemas.auth import Principal
from ...schemas.billing import UsageStatsResponse
from ...services.usage_service import UsageService

router = APIRouter(prefix="/usage", tags=["usage"])


@router.get("", response_model=UsageStatsResponse)
async def get_usage(
    principal: Principal = Depends(get_current_principal),
    service: UsageService = Depends(get_usage_service),
):
    """Current window usage, limit and reset time."""
    stats = await service.get_usage_stats(principal.id)
    return UsageStatsResponse(
        used=stats.used,
        remaining=stats.remaining,
        limit=stats.limit,
        reset_at=stats.reset_at,
        tier=stats.tier,
    )
