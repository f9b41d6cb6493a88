"""
Application error taxonomy.

Services raise these; the handler registered in ``main.py`` turns them into
JSON responses of the form ``{"error": message, **extra}``.
"""
import math
from typing import Any, Dict, Optional

from fastapi import status


class SmartPromptsError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.message = message or self.default_message
        self.extra = extra or {}
        self.headers = headers
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, **self.extra}


class BadRequestError(SmartPromptsError):
    """Malformed payload, unverifiable webhook, unknown price id."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Bad request"


class UnauthorizedError(SmartPromptsError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized - Please log in"


class ForbiddenError(SmartPromptsError):
    """Banned account, exhausted quota, admin self-demotion."""
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Forbidden"


class NotFoundError(SmartPromptsError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class RateLimitedError(SmartPromptsError):
    """Raised when the request throttle rejects a call."""
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Rate limit exceeded"

    def __init__(self, result, message: Optional[str] = None):
        self.result = result
        retry_after = max(0, math.ceil(result.reset_in))
        super().__init__(
            message,
            extra={
                "limit": result.limit,
                "remaining": result.remaining,
                "reset": result.reset_at_ms,
            },
            headers={
                "X-RateLimit-Limit": str(result.limit),
                "X-RateLimit-Remaining": str(result.remaining),
                "X-RateLimit-Reset": str(result.reset_at_ms),
                "Retry-After": str(retry_after),
            },
        )


class UpstreamError(SmartPromptsError):
    """
    Store or completion API failure.

    ``detail`` is kept for logs only; callers always see the generic message.
    """
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, detail: str = "", message: Optional[str] = None):
        self.detail = detail
        super().__init__(message)
