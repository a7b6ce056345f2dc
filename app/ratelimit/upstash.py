"""UpstashRateLimitStore — fixed-window counters in Upstash Redis over REST.

Each ``check`` sends ``INCR`` + ``PTTL`` in one ``/multi-exec`` transaction,
so concurrent requests never lose an update. The expiry is set with
``PEXPIRE`` only when the TTL came back unset (-1), i.e. on the first hit
of a window.

Failure policy is fail-open: any transport error, non-2xx status or
malformed reply yields an allowed result with ``remaining = max_requests``;
``reset`` and ``clear`` become no-ops and ``size`` reports 0. The first
failure of an outage is logged at WARNING; the flag resets on the next
success so a later outage is logged again.

Environment (read by ratelimit/factory.py):
  UPSTASH_REDIS_REST_URL   — e.g. https://eu1-xxx.upstash.io
  UPSTASH_REDIS_REST_TOKEN — REST token (Bearer)
"""

from __future__ import annotations

import time
from typing import Any, Optional

import httpx

from app.ratelimit.protocol import RateLimitResult, permissive_result
from app.utils.logger import get_logger

logger = get_logger(__name__)

_UPSTASH_TIMEOUT_S = 2.0
_SCAN_BATCH = 100


class UpstashError(Exception):
    """Upstash replied with an error or an unexpected payload."""


_STORE_ERRORS = (httpx.HTTPError, UpstashError, ValueError, TypeError, IndexError, KeyError)


class UpstashRateLimitStore:
    """Rate limit store backed by the Upstash Redis REST API."""

    def __init__(
        self,
        url: str,
        token: str,
        key_prefix: str = "rl",
        client: Optional[httpx.AsyncClient] = None,
        timeout_s: float = _UPSTASH_TIMEOUT_S,
    ) -> None:
        self._url = url.rstrip("/")
        self._key_prefix = key_prefix
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_s)
        self._headers = {"Authorization": f"Bearer {token}"}
        self._failing = False

    # ── Transport ─────────────────────────────────────────────────────────────

    async def _post(self, path: str, payload: Any) -> Any:
        response = await self._client.post(
            f"{self._url}{path}", json=payload, headers=self._headers
        )
        response.raise_for_status()
        return response.json()

    async def _command(self, *args: Any) -> Any:
        reply = await self._post("", list(args))
        if not isinstance(reply, dict) or "error" in reply:
            raise UpstashError(f"command {args[0]} failed: {reply!r}")
        return reply.get("result")

    async def _batch(self, path: str, commands: list[list[Any]]) -> list[Any]:
        reply = await self._post(path, commands)
        if not isinstance(reply, list) or len(reply) != len(commands):
            raise UpstashError(f"unexpected reply from {path}: {reply!r}")
        results = []
        for item in reply:
            if not isinstance(item, dict) or "error" in item:
                raise UpstashError(f"command failed in {path}: {item!r}")
            results.append(item.get("result"))
        return results

    def _unavailable(self, operation: str, key: Optional[str], exc: Exception) -> None:
        if not self._failing:
            self._failing = True
            logger.warning(
                "rate_limit_store_unavailable",
                backend="upstash",
                operation=operation,
                key=key,
                error=str(exc),
                error_type=type(exc).__name__,
                policy="fail_open",
            )

    def _fail_open(self, operation: str, key: str, exc: Exception, max_requests: int) -> RateLimitResult:
        self._unavailable(operation, key, exc)
        return permissive_result(max_requests)

    def _recovered(self) -> None:
        if self._failing:
            self._failing = False
            logger.info("rate_limit_store_recovered", backend="upstash")

    # ── RateLimitStore Protocol Methods ───────────────────────────────────────

    async def check(self, key: str, max_requests: int, window_seconds: int) -> RateLimitResult:
        window_ms = window_seconds * 1000
        try:
            count_raw, ttl_raw = await self._batch(
                "/multi-exec", [["INCR", key], ["PTTL", key]]
            )
            count = int(count_raw)
            ttl_ms = int(ttl_raw)
            if ttl_ms == -1:
                await self._command("PEXPIRE", key, window_ms)
                ttl_ms = window_ms
        except _STORE_ERRORS as exc:
            return self._fail_open("check", key, exc, max_requests)

        self._recovered()
        now = time.time()
        reset_at = now + (ttl_ms / 1000 if ttl_ms > 0 else window_seconds)
        return RateLimitResult(
            allowed=count <= max_requests,
            remaining=max(0, max_requests - count),
            reset_at=reset_at,
            limit=max_requests,
        )

    async def peek(self, key: str, max_requests: int) -> RateLimitResult:
        try:
            count_raw, ttl_raw = await self._batch("/pipeline", [["GET", key], ["PTTL", key]])
            count = int(count_raw) if count_raw is not None else 0
            ttl_ms = int(ttl_raw)
        except _STORE_ERRORS as exc:
            return self._fail_open("peek", key, exc, max_requests)

        self._recovered()
        now = time.time()
        if count == 0 or ttl_ms == -2:
            return permissive_result(max_requests, now=now)
        return RateLimitResult(
            allowed=count < max_requests,
            remaining=max(0, max_requests - count),
            reset_at=now + max(ttl_ms, 0) / 1000,
            limit=max_requests,
        )

    # reset, clear and size follow the same fail-open policy: an outage is
    # logged once and the call returns as if the store were empty.

    async def reset(self, key: str) -> None:
        try:
            await self._command("DEL", key)
        except _STORE_ERRORS as exc:
            self._unavailable("reset", key, exc)
            return
        self._recovered()

    async def clear(self) -> None:
        try:
            keys = await self._scan_keys()
            # DEL accepts many keys; chunk to keep request bodies small
            for start in range(0, len(keys), _SCAN_BATCH):
                await self._command("DEL", *keys[start:start + _SCAN_BATCH])
        except _STORE_ERRORS as exc:
            self._unavailable("clear", None, exc)
            return
        self._recovered()
        logger.info("rate_limit_store_cleared", backend="upstash", keys=len(keys))

    async def size(self) -> int:
        """Count counters under ``<key_prefix>:*`` with SCAN.

        Keys outside the prefix that share the database are not counted.
        """
        try:
            keys = await self._scan_keys()
        except _STORE_ERRORS as exc:
            self._unavailable("size", None, exc)
            return 0
        self._recovered()
        return len(keys)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _scan_keys(self) -> list[str]:
        keys: list[str] = []
        cursor = "0"
        while True:
            result = await self._command(
                "SCAN", cursor, "MATCH", f"{self._key_prefix}:*", "COUNT", _SCAN_BATCH
            )
            cursor, batch = str(result[0]), result[1]
            keys.extend(batch)
            if cursor == "0":
                return keys
