"""RateLimitStore Protocol + RateLimitResult dataclass.

Layout:
    protocol.py   — RateLimitStore Protocol + RateLimitResult + NullRateLimitStore
    memory.py     — InMemoryRateLimitStore (limits MemoryStorage, self-expiring)
    upstash.py    — UpstashRateLimitStore (Upstash Redis REST, fail-open)
    factory.py    — create_rate_limit_store() — backend selection by env vars
    dependency.py — RateLimit route dependency, header helpers, peek/reset utilities

All stores implement the same fixed-window algorithm: the first hit in a
window creates ``count=1, reset_at=now+window``; later hits increment.
``allowed = count <= max_requests``. A client can therefore burst up to
``2 × max_requests`` across a window boundary.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from app.utils.logger import get_logger

logger = get_logger(__name__)


# ─── RateLimitResult ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a check or peek.

    reset_at is an absolute unix timestamp in seconds (float).
    """

    allowed: bool
    remaining: int
    reset_at: float
    limit: int

    def retry_after(self, now: float | None = None) -> int:
        """Whole seconds until the window resets, never negative."""
        current = time.time() if now is None else now
        return max(0, math.ceil(self.reset_at - current))

    def headers(self) -> dict[str, str]:
        """X-RateLimit-* headers describing this result."""
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_at)),
        }


def permissive_result(max_requests: int, now: float | None = None) -> RateLimitResult:
    """Result used for fresh keys on peek and for fail-open paths."""
    return RateLimitResult(
        allowed=True,
        remaining=max_requests,
        reset_at=time.time() if now is None else now,
        limit=max_requests,
    )


# ─── RateLimitStore Protocol ──────────────────────────────────────────────────


@runtime_checkable
class RateLimitStore(Protocol):
    """Pluggable fixed-window counter store.

    Implementations: InMemoryRateLimitStore (default), UpstashRateLimitStore.
    Selection via create_rate_limit_store() factory (ratelimit/factory.py).
    """

    async def check(self, key: str, max_requests: int, window_seconds: int) -> RateLimitResult:
        """Count one hit against ``key`` and report whether it is allowed."""
        ...

    async def peek(self, key: str, max_requests: int) -> RateLimitResult:
        """Report the current state of ``key`` without counting a hit."""
        ...

    async def reset(self, key: str) -> None:
        """Forget the counter for ``key``."""
        ...

    async def clear(self) -> None:
        """Forget every counter held by this store."""
        ...

    async def size(self) -> int:
        """Number of live counters (approximate for remote stores)."""
        ...

    async def close(self) -> None:
        """Release connections. Called during graceful shutdown."""
        ...


# ─── NullRateLimitStore ───────────────────────────────────────────────────────


class NullRateLimitStore:
    """Store that allows everything. Used when rate limiting is disabled."""

    async def check(self, key: str, max_requests: int, window_seconds: int) -> RateLimitResult:
        return permissive_result(max_requests)

    async def peek(self, key: str, max_requests: int) -> RateLimitResult:
        return permissive_result(max_requests)

    async def reset(self, key: str) -> None:
        return None

    async def clear(self) -> None:
        return None

    async def size(self) -> int:
        return 0

    async def close(self) -> None:
        logger.debug("null_rate_limit_store_closed")


# ─── Protocol compliance assertion ────────────────────────────────────────────
assert isinstance(NullRateLimitStore(), RateLimitStore), (
    "NullRateLimitStore does not satisfy RateLimitStore protocol — implementation error"
)
