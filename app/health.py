"""Health endpoint.

  GET /health — 503 until startup completes, then 200 with the storage status

Response body (200):
    {
      "status": "ok" | "degraded",
      "storage": "healthy" | "error",
      "storage_backend": "LocalSQLiteRepository" | "SupabaseRepository",
      "rate_limit_store": "InMemoryRateLimitStore" | "UpstashRateLimitStore" | ...,
      "ai": "configured" | "unconfigured" | "disabled",
      "environment": "development" | "production" | "test"
    }
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request

from app.ai.provider import NullCompletionProvider
from app.config import Config

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    if not getattr(request.app.state, "ready", False):
        raise HTTPException(status_code=503, detail="Folio is starting up")

    config: Config = request.app.state.config
    repository = request.app.state.repository
    storage_ok = await repository.health_check()

    if not config.features.ai_enabled:
        ai_status = "disabled"
    elif isinstance(request.app.state.completion_provider, NullCompletionProvider):
        ai_status = "unconfigured"
    else:
        ai_status = "configured"

    return {
        "status": "ok" if storage_ok else "degraded",
        "storage": "healthy" if storage_ok else "error",
        "storage_backend": type(repository).__name__,
        "rate_limit_store": type(request.app.state.rate_limit_store).__name__,
        "ai": ai_status,
        "environment": config.server.environment,
    }
