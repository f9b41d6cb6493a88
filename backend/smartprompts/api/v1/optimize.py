"""
Prompt optimization endpoint.
"""
import json
from typing import Optional
from fastapi import APIRouter, Depends, Request

from ...core.dependencies import get_optional_principal, get_optimize_service
from ...schemas.auth import Principal
from ...schemas.optimize import OptimizeResponse
from ...services.optimize_service import OptimizeService

router = APIRouter(tags=["optimize"])


@router.post("/optimize", response_model=OptimizeResponse)
async def optimize_prompt(
    request: Request,
    principal: Optional[Principal] = Depends(get_optional_principal),
    service: OptimizeService = Depends(get_optimize_service),
):
    """
    Optimize a prompt for the authenticated user.

    The body is validated only after the ban, rate limit and quota checks,
    so a malformed body from an over-quota user still gets the quota error.

    **Rate Limit**: per user, `OPTIMIZE_RATE_LIMIT` requests per
    `OPTIMIZE_RATE_WINDOW_SECONDS` (10 per 60 seconds by default)
    """
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        body = None
    return await service.optimize(principal, body)
