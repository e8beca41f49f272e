"""
Rate Limiting Middleware

Provides rate limiting for API endpoints to prevent abuse.
Uses slowapi for rate limiting implementation.

The limiter is built by ``create_limiter`` and installed on ``app.state`` by
the application factory; the lifespan resets its counters on shutdown. Route
modules decorate endpoints with the shared ``limiter`` instance.
"""
from typing import Optional

from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware  # noqa: F401  re-exported for main
from fastapi import Request, Response
from fastapi.responses import JSONResponse
import logging

from app.config import Settings, get_settings

logger = logging.getLogger(__name__)


def create_limiter(settings: Optional[Settings] = None) -> Limiter:
    """
    Build a limiter from settings.

    In-memory storage counts per process; point ``rate_limit_storage_uri`` at
    Redis when running several workers.
    """
    settings = settings or get_settings()
    return Limiter(
        key_func=get_remote_address,
        default_limits=[settings.rate_limit_default],
        storage_uri=settings.rate_limit_storage_uri,
        enabled=settings.rate_limit_enabled,
    )


limiter = create_limiter()


def login_limit() -> str:
    return get_settings().rate_limit_login


def recovery_limit() -> str:
    return get_settings().rate_limit_recovery


async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """
    Custom handler for rate limit exceeded errors

    Args:
        request: The FastAPI request
        exc: The RateLimitExceeded exception

    Returns:
        JSONResponse with 429 status code
    """
    logger.warning(
        f"Rate limit exceeded for {get_remote_address(request)} on {request.url.path}"
    )

    retry_after = getattr(exc, "retry_after", None) or 60
    return JSONResponse(
        status_code=429,
        content={
            "error": "RATE_LIMIT_EXCEEDED",
            "message": f"Too many requests. Limit: {exc.detail}",
            "path": request.url.path,
            "retry_after": retry_after,
        },
        headers={"Retry-After": str(retry_after)},
    )
