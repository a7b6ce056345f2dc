"""InMemoryRateLimitStore — per-process fixed-window counters on ``limits``.

Counters live in ``limits.aio.storage.MemoryStorage`` and are driven by
``FixedWindowRateLimiter`` (the engine behind slowapi). MemoryStorage expires
keys on its own, so no sweeper task is needed.

Not shared across server instances: each process enforces its own limits.
"""

from __future__ import annotations

import time

from limits import RateLimitItemPerSecond
from limits.aio.storage import MemoryStorage
from limits.aio.strategies import FixedWindowRateLimiter

from app.ratelimit.protocol import RateLimitResult, RateLimitStore
from app.utils.logger import get_logger

logger = get_logger(__name__)

_NAMESPACE = "folio"


class _CounterItem(RateLimitItemPerSecond):
    """Window of ``multiples`` seconds whose storage key is the counter key alone.

    The stock key also encodes amount and window, which would make a peek or
    reset (given only the key) miss the counter a check created.
    """

    def key_for(self, *identifiers: str) -> str:  # type: ignore[override]
        return "/".join([self.namespace, *identifiers])


def _item(max_requests: int, window_seconds: int = 1) -> _CounterItem:
    return _CounterItem(max_requests, window_seconds, namespace=_NAMESPACE)


class InMemoryRateLimitStore:
    """Fixed-window store over limits' async memory storage."""

    def __init__(self) -> None:
        self._storage = MemoryStorage()
        self._limiter = FixedWindowRateLimiter(self._storage)

    async def _result(self, item: _CounterItem, key: str, allowed: bool) -> RateLimitResult:
        stats = await self._limiter.get_window_stats(item, key)
        return RateLimitResult(
            allowed=allowed,
            remaining=stats.remaining,
            reset_at=float(stats.reset_time),
            limit=item.amount,
        )

    async def check(self, key: str, max_requests: int, window_seconds: int) -> RateLimitResult:
        item = _item(max_requests, window_seconds)
        allowed = await self._limiter.hit(item, key)
        return await self._result(item, key, allowed)

    async def peek(self, key: str, max_requests: int) -> RateLimitResult:
        # A missing or expired key reports remaining=max and reset_at=now
        item = _item(max_requests)
        allowed = await self._limiter.test(item, key)
        return await self._result(item, key, allowed)

    async def reset(self, key: str) -> None:
        await self._limiter.clear(_item(1), key)

    async def clear(self) -> None:
        await self._storage.reset()

    async def size(self) -> int:
        now = time.time()
        return sum(1 for expiry in self._storage.expirations.values() if expiry > now)

    async def close(self) -> None:
        await self._storage.reset()
        logger.debug("memory_rate_limit_store_closed")


assert isinstance(InMemoryRateLimitStore(), RateLimitStore)
