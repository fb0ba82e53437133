"""
Per-client budget for starting harvests.

Each harvest fans out into one feed request plus up to ten requests per
post against the blog platform, so a handful of clients can get the
server's address blocked. Every route that starts a harvest draws on one
shared per-IP budget of RATE_LIMIT_PER_MINUTE; single-post and registry
routes are not limited.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from .config import config

logger = logging.getLogger(__name__)

HARVEST_SCOPE = "harvest"


def rate_limit_disabled() -> bool:
    return config.RATE_LIMIT_PER_MINUTE <= 0


def get_rate_limit() -> str:
    """Harvest budget per client, as a slowapi limit string."""
    return f"{max(config.RATE_LIMIT_PER_MINUTE, 1)}/minute"


limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")

# Shared by the streaming, one-shot and batch harvest routes
harvest_limit = limiter.shared_limit(
    get_rate_limit(),
    scope=HARVEST_SCOPE,
    exempt_when=rate_limit_disabled,
)


def _retry_after(exc: RateLimitExceeded) -> int:
    item = getattr(getattr(exc, "limit", None), "limit", None)
    return item.get_expiry() if item is not None else 60


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Refuse a new harvest until the client's window resets."""
    retry_after = _retry_after(exc)
    logger.warning(f"Harvest budget exhausted for {get_remote_address(request)} ({exc.detail})")
    return JSONResponse(
        status_code=429,
        content={
            "detail": f"Too many harvests started ({exc.detail}). Try again in {retry_after} seconds.",
            "retry_after": retry_after,
        },
        headers={"Retry-After": str(retry_after)},
    )


def setup_rate_limiting(app):
    """Attach the limiter and its 429 handler to the app."""
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
