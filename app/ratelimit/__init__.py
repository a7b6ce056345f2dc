"""Folio rate limiting package.

    from app.ratelimit import RateLimit, RateLimitStore, RateLimitResult
"""

from app.ratelimit.dependency import (
    RateLimit,
    check_rate_limit_status,
    client_ip,
    reset_rate_limit,
)
from app.ratelimit.protocol import (
    NullRateLimitStore,
    RateLimitResult,
    RateLimitStore,
)

__all__ = [
    "NullRateLimitStore",
    "RateLimit",
    "RateLimitResult",
    "RateLimitStore",
    "check_rate_limit_status",
    "client_ip",
    "reset_rate_limit",
]
