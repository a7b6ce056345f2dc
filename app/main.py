"""Folio FastAPI application factory + lifespan lifecycle.

This module implements:
  - create_app() — testable application factory
  - lifespan — @asynccontextmanager startup/shutdown sequence
  - app = create_app() — module-level instance for uvicorn

Startup sequence:
  1. load_config()                → app.state.config
  2. create_repository()          → app.state.repository
  3. create_rate_limit_store()    → app.state.rate_limit_store
  4. create_session_resolver()    → app.state.session_resolver
  5. create_completion_provider() → app.state.completion_provider
  6. app.state.ready = True

Shutdown runs in reverse: ready=False → close provider → close rate limit
store → close repository.

Routes live under /api/v1; /health stays at the root for probes.
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.ai.provider import create_completion_provider
from app.ai.router import router as ai_router
from app.auth.router import router as auth_router
from app.auth.sessions import create_session_resolver
from app.catalog.router import router as catalog_router
from app.certifications.router import router as certifications_router
from app.config import Config, load_config
from app.errors import register_error_handlers
from app.health import router as health_router
from app.middleware import REQUEST_ID_HEADER, RequestContextMiddleware
from app.portfolios.router import public_router as public_portfolio_router
from app.portfolios.router import router as portfolios_router
from app.ratelimit.factory import create_rate_limit_store
from app.sections.router import router as sections_router
from app.storage.factory import create_repository
from app.tags.router import router as tags_router
from app.utils.logger import configure_logging, get_logger

# ─── Logging Setup ────────────────────────────────────────────────────────────
# Configured at import time, before anything else logs.
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if not DEBUG else "DEBUG")
JSON_LOGS = os.getenv("JSON_LOGS", "true").lower() == "true"

configure_logging(log_level=LOG_LEVEL, json_output=JSON_LOGS)
logger = get_logger(__name__)

API_PREFIX = "/api/v1"


# ─── Lifespan ─────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info("folio_starting")

    # load_config() raises SystemExit on a bad file, before ready is ever set
    config: Config = load_config()
    app.state.config = config
    logger.info(
        "config_loaded",
        path=config.path,
        environment=config.server.environment,
        rate_limit_enabled=config.rate_limit.enabled,
        ai_enabled=config.features.ai_enabled,
    )

    repository = await create_repository(config)
    app.state.repository = repository

    rate_limit_store = create_rate_limit_store(config)
    app.state.rate_limit_store = rate_limit_store

    app.state.session_resolver = await create_session_resolver()
    completion_provider = create_completion_provider(config.ai)
    app.state.completion_provider = completion_provider

    app.state.ready = True
    logger.info("folio_ready", host=config.server.host, port=config.server.port)

    yield

    logger.info("folio_shutting_down")
    app.state.ready = False

    await completion_provider.close()
    await rate_limit_store.close()
    await repository.close()
    logger.info("folio_shutdown_complete")


# ─── Application Factory ──────────────────────────────────────────────────────


def _cors_origins() -> list[str]:
    # CORS is wired before the lifespan loads config, so read the env directly
    raw = os.getenv("ALLOWED_ORIGINS", "")
    origins = [o.strip() for o in raw.split(",") if o.strip()]
    return origins or ["*"]


def create_app() -> FastAPI:
    """Create and configure the Folio FastAPI application.

    Unit tests call this directly and populate ``app.state`` themselves
    instead of running the lifespan.
    """
    # Swagger UI and ReDoc only with DEBUG=true
    _debug = os.getenv("DEBUG", "false").lower() == "true"

    application = FastAPI(
        title="Folio",
        description="Portfolio builder API: portfolios, sections, certifications, tags and AI writing help",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if _debug else None,
        redoc_url="/redoc" if _debug else None,
        openapi_url="/openapi.json" if _debug else None,
    )

    application.state.ready = False

    origins = _cors_origins()
    application.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        # Credentials cannot be combined with a wildcard origin
        allow_credentials=origins != ["*"],
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=[
            REQUEST_ID_HEADER,
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
            "Retry-After",
        ],
    )
    # Added last so it is the outermost user middleware; handled errors are
    # logged inside it, unexpected 500s read the id from request.state
    application.add_middleware(RequestContextMiddleware)

    register_error_handlers(application)

    application.include_router(health_router)
    for router in (
        auth_router,
        portfolios_router,
        public_portfolio_router,
        sections_router,
        certifications_router,
        tags_router,
        catalog_router,
        ai_router,
    ):
        application.include_router(router, prefix=API_PREFIX)

    return application


app = create_app()
