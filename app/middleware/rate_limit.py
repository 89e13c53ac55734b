"""
Rate limiting for EvenTotem.

Totems poll the public feed on a fixed interval. Several terminals usually
sit behind one kiosk gateway, so the totem limit is keyed by the original
client address from X-Forwarded-For when the gateway provides it.
"""

import logging

from fastapi import Request
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from core.config import get_settings

logger = logging.getLogger(__name__)

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["1000/minute"],
    storage_uri="memory://",
    strategy="fixed-window"
)


def totem_client_key(request: Request) -> str:
    """First hop of X-Forwarded-For, falling back to the socket peer."""
    forwarded = request.headers.get("X-Forwarded-For", "")
    first_hop = forwarded.split(",")[0].strip()
    if first_hop:
        return f"totem:{first_hop}"
    return f"totem:{get_remote_address(request)}"


def totem_rate_limit() -> str:
    """Limit applied to GET /totem/events, read from TOTEM_RATE_LIMIT."""
    return get_settings().TOTEM_RATE_LIMIT


def setup_rate_limiting(app):
    """Attach the shared limiter and its 429 handler to the application."""
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    logger.info(f"Rate limiting enabled, totem feed limited to {totem_rate_limit()}")
