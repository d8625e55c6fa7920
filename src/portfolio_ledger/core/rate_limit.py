"""Rate limiting configuration using slowapi."""

import re

from fastapi import Request
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from portfolio_ledger.core.config import settings

_UNIT_SECONDS = {"second": 1, "minute": 60, "hour": 3600, "day": 86400}


def retry_after_seconds(limit_detail: str) -> int:
    """Window length in seconds from a slowapi detail such as ``"5 per 1 minute"``."""
    match = re.search(r"\d+\s+per\s+(\d+)\s+(second|minute|hour|day)", limit_detail)
    if not match:
        return 60
    return int(match.group(1)) * _UNIT_SECONDS[match.group(2)]


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """
    Return 429 in the application's error format with a ``Retry-After`` header.

    Args:
        request: The incoming request
        exc: The RateLimitExceeded exception

    Returns:
        JSONResponse with error details and retry_after
    """
    retry_after = retry_after_seconds(str(exc.detail))

    response = JSONResponse(
        status_code=429,
        content={
            "success": False,
            "detail": f"Rate limit exceeded: {exc.detail}",
            "error_code": "RATE_LIMITED",
            "retry_after": retry_after,
        },
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


# Each endpoint sets its own limit
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],
    enabled=settings.RATE_LIMIT_ENABLED,
    headers_enabled=False,
)
