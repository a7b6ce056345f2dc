"""Rate limit store factory — backend selection.

Backend selection:
  1. rate_limit.enabled is false                       → NullRateLimitStore
  2. UPSTASH_REDIS_REST_URL + UPSTASH_REDIS_REST_TOKEN → UpstashRateLimitStore
  3. Otherwise                                         → InMemoryRateLimitStore

The in-memory store only limits per process. In production that means
N instances allow N × max_requests, so selecting it there logs a warning.
"""

from __future__ import annotations

import os

from app.config import Config
from app.ratelimit.protocol import NullRateLimitStore, RateLimitStore
from app.utils.logger import get_logger

logger = get_logger(__name__)

_ENV_UPSTASH_URL = "UPSTASH_REDIS_REST_URL"
_ENV_UPSTASH_TOKEN = "UPSTASH_REDIS_REST_TOKEN"


def create_rate_limit_store(config: Config) -> RateLimitStore:
    """Create the rate limit store for this process."""
    if not config.rate_limit.enabled:
        logger.info("rate_limit_store_selected", backend="NullRateLimitStore", reason="disabled")
        return NullRateLimitStore()

    url = os.getenv(_ENV_UPSTASH_URL)
    token = os.getenv(_ENV_UPSTASH_TOKEN)
    if url and token:
        from app.ratelimit.upstash import UpstashRateLimitStore

        logger.info(
            "rate_limit_store_selected",
            backend="UpstashRateLimitStore",
            upstash_host=url.split("//")[-1].split("/")[0],
        )
        return UpstashRateLimitStore(url=url, token=token, key_prefix=config.rate_limit.key_prefix)

    from app.ratelimit.memory import InMemoryRateLimitStore

    if config.server.environment == "production":
        logger.warning(
            "rate_limit_store_in_memory_in_production",
            message="Rate limits are per process. Set UPSTASH_REDIS_REST_URL and "
                    "UPSTASH_REDIS_REST_TOKEN to share limits across instances.",
        )
    logger.info("rate_limit_store_selected", backend="InMemoryRateLimitStore")
    return InMemoryRateLimitStore()
