"""Rate limit route dependency.

Usage (per route or per router):

    @router.post("/ai/improve-text", dependencies=[Depends(RateLimit("ai"))])

Per request:
  1. rate_limit.enabled is false → no check, no headers.
  2. key = "{prefix}:{scope}:{identifier}:{path}"
       scope=user, identifier=user id   when the policy is per-user and an identity resolves
       scope=ip,   identifier=client IP otherwise (X-Forwarded-For first entry,
                                        then X-Real-IP, else "unknown")
  3. store.check(key, max_requests, window_seconds)
  4. denied  → RateLimitExceeded (429 + Retry-After + X-RateLimit-*)
     allowed → X-RateLimit-* headers are added to the handler's response.
               The result is also kept on request.state.rate_limit so the
               error boundary attaches the same headers to error responses.
"""

from __future__ import annotations

import time
from typing import Optional

from fastapi import Depends, Request, Response

from app.auth.guard import current_identity
from app.config import Config, RateLimitPolicy
from app.errors import RateLimitExceeded
from app.ratelimit.protocol import RateLimitResult, RateLimitStore
from app.utils.logger import get_logger

logger = get_logger(__name__)

UNKNOWN_IP = "unknown"


def client_ip(request: Request) -> str:
    """Client IP from proxy headers; "unknown" when neither header is present."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()
    return UNKNOWN_IP


def build_key(
    request: Request,
    prefix: str,
    policy: RateLimitPolicy,
    user_id: Optional[str],
) -> str:
    if policy.per_user and user_id:
        return f"{prefix}:user:{user_id}:{request.url.path}"
    return f"{prefix}:ip:{client_ip(request)}:{request.url.path}"


def _state(request: Request) -> tuple[Config, RateLimitStore]:
    return request.app.state.config, request.app.state.rate_limit_store


def limit_exceeded_headers(result: RateLimitResult, now: Optional[float] = None) -> dict[str, str]:
    headers = result.headers()
    headers["X-RateLimit-Remaining"] = "0"
    headers["Retry-After"] = str(result.retry_after(now))
    return headers


class RateLimit:
    """FastAPI dependency enforcing the policy of one route class."""

    def __init__(self, route_class: str) -> None:
        self.route_class = route_class

    async def __call__(
        self,
        request: Request,
        response: Response,
        user_id: Optional[str] = Depends(current_identity),
    ) -> None:
        config, store = _state(request)
        if not config.rate_limit.enabled:
            return

        policy = config.rate_limit.policy(self.route_class)
        key = build_key(request, config.rate_limit.key_prefix, policy, user_id)
        result = await store.check(key, policy.max_requests, policy.window_seconds)

        if not result.allowed:
            logger.warning(
                "rate_limit_exceeded",
                route_class=self.route_class,
                key=key,
                limit=result.limit,
                reset_at=result.reset_at,
            )
            raise RateLimitExceeded(limit_exceeded_headers(result, time.time()))

        request.state.rate_limit = result
        response.headers.update(result.headers())


# ─── Utilities ────────────────────────────────────────────────────────────────


async def check_rate_limit_status(
    request: Request, route_class: str, user_id: Optional[str] = None
) -> RateLimitResult:
    """Peek at the caller's counter for this route without counting a hit."""
    config, store = _state(request)
    policy = config.rate_limit.policy(route_class)
    key = build_key(request, config.rate_limit.key_prefix, policy, user_id)
    return await store.peek(key, policy.max_requests)


async def reset_rate_limit(
    request: Request, route_class: str, user_id: Optional[str] = None
) -> None:
    """Forget the caller's counter for this route."""
    config, store = _state(request)
    policy = config.rate_limit.policy(route_class)
    await store.reset(build_key(request, config.rate_limit.key_prefix, policy, user_id))
