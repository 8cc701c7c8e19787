"""
Rate limiting for money-moving endpoints using slowapi.

Terminals retry timed-out settle calls; the limiter caps runaway retry loops
while the settle guard keeps each retry from double-recording revenue.
"""

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from shared.config.logging import get_logger
from shared.config.settings import settings

logger = get_logger(__name__)

# Keyed by client IP; one terminal per IP in a typical store network
limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """JSON 429 response naming the limit that was hit."""
    logger.warning(
        "Rate limit exceeded",
        path=request.url.path,
        client=get_remote_address(request),
        limit=str(exc.detail),
    )
    return JSONResponse(
        status_code=429,
        content={"detail": "Too many requests. Try again shortly.", "limit": str(exc.detail)},
        headers={"Retry-After": "60"},
    )
