"""
Optimize request orchestration.

Order of checks for one request, stopping at the first failure:

1. authenticated principal            -> 401
2. ensure the user row exists
3. banned                             -> 403
4. per-user rate limit                -> 429
5. monthly quota                      -> 403
6. payload validation                 -> 400
7. completion call                    -> 500 (generic message)
8. usage increment (failure is logged, never returned)
9. result plus usage snapshot
"""
import logging
from typing import Any, Optional

from pydantic import ValidationError

from ..core.config import settings
from ..core.exceptions import (
    BadRequestError,
    ForbiddenError,
    RateLimitedError,
    UnauthorizedError,
    UpstreamError,
)
from ..core.tier_limits import is_unlimited
from ..schemas.auth import Principal
from ..schemas.optimize import OptimizeRequest, OptimizeResponse, UsageSnapshot
from ..schemas.users import UserAccount
from .completion_service import CompletionError, PromptOptimizer, prompt_optimizer
from .rate_limiter import InMemoryRateLimiter, RateLimiter
from .usage_service import UsageService, usage_service
from .user_store import UserStore, user_store

logger = logging.getLogger(__name__)

RATE_LIMIT_OPERATION = "optimize"


class OptimizeService:
    """Runs the optimize pipeline for one request."""

    def __init__(
        self,
        store: UserStore,
        usage: UsageService,
        rate_limiter: RateLimiter,
        optimizer: PromptOptimizer,
        rate_limit: Optional[int] = None,
        rate_window_seconds: Optional[float] = None,
    ):
        self.store = store
        self.usage = usage
        self.rate_limiter = rate_limiter
        self.optimizer = optimizer
        self.rate_limit = rate_limit if rate_limit is not None else settings.optimize_rate_limit
        self.rate_window_seconds = (
            rate_window_seconds if rate_window_seconds is not None else settings.optimize_rate_window_seconds
        )

    async def ensure_user(self, principal: Principal) -> UserAccount:
        """Create the user row on first sight; an existing row is returned as is."""
        return await self.store.insert_user_if_absent(
            principal.id,
            principal.email,
            self.usage.new_reset_at(),
        )

    async def optimize(self, principal: Optional[Principal], body: Any) -> OptimizeResponse:
        if principal is None:
            raise UnauthorizedError()

        user = await self.ensure_user(principal)

        if user.banned:
            logger.info(f"Rejected optimize request from banned user {user.id}")
            raise ForbiddenError("Account banned - Please contact support")

        rate = self.rate_limiter.check(
            f"{RATE_LIMIT_OPERATION}:{user.id}",
            self.rate_limit,
            self.rate_window_seconds,
        )
        if not rate.allowed:
            raise RateLimitedError(rate)

        quota = await self.usage.check_quota(user.id, user.subscription_tier)
        if not quota.allowed:
            raise ForbiddenError(
                "Usage limit reached",
                extra={
                    "limit": quota.limit,
                    "remaining": quota.remaining,
                    "resetAt": quota.reset_at.isoformat(),
                    "tier": user.subscription_tier,
                },
            )

        try:
            request = OptimizeRequest.model_validate(body)
        except ValidationError as e:
            raise BadRequestError(
                "Invalid request data",
                extra={"details": e.errors(include_url=False, include_context=False)},
            ) from e

        try:
            result = await self.optimizer.optimize_prompt(
                prompt=request.prompt,
                model=request.model,
                context=request.context,
            )
        except CompletionError as e:
            logger.error(f"Optimize failed for user {user.id}: {e}")
            raise UpstreamError(str(e)) from e

        try:
            await self.usage.increment_usage(user.id)
        except Exception as e:
            # The user already has their result
            logger.error(f"Failed to increment usage for user {user.id} (non-blocking): {e}")

        remaining = quota.remaining if is_unlimited(quota.limit) else max(0, quota.remaining - 1)
        return OptimizeResponse(
            data=result,
            usage=UsageSnapshot(
                remaining=remaining,
                limit=quota.limit,
                reset_at=quota.reset_at,
                tier=user.subscription_tier,
            ),
        )


# Process-wide limiter shared by all requests handled by this worker
rate_limiter = InMemoryRateLimiter(sweep_probability=settings.rate_limit_sweep_probability)

# Global optimize service instance
optimize_service = OptimizeService(user_store, usage_service, rate_limiter, prompt_optimizer)
