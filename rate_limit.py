"""Per-client request rate limits (keyed by remote address)."""

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
import logging

from config import settings
from schemas import error_body

log = logging.getLogger(__name__)

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
    enabled=settings.RATE_LIMIT_ENABLED,
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    # must stay sync, SlowAPIMiddleware calls it without awaiting
    log.warning(f"Rate limit hit by {get_remote_address(request)} on {request.method} {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=429,
        content=error_body("Too many requests, please try again later."),
    )
