"""Root test configuration for Folio.

Fixtures:
  isolate_env          — autouse; strips backend/provider env vars so every test
                         runs on local defaults, and keeps auth enforcement on
  repository           — LocalSQLiteRepository on a private in-memory database
  app                  — create_app() with app.state wired by hand (no lifespan)
  client               — httpx.AsyncClient over ASGITransport for ``app``

Identity: the ``app`` fixture overrides current_identity so a request acts
as the user named in the X-Test-User header (anonymous without it). The
rate limiter and the auth guard both read that override.
"""

from __future__ import annotations

from typing import AsyncIterator, Optional

import pytest
import pytest_asyncio
from fastapi import FastAPI, Request
from httpx import ASGITransport, AsyncClient

from app.ai.provider import CompletionProvider, NullCompletionProvider
from app.auth.guard import current_identity
from app.auth.sessions import NullSessionResolver
from app.config import Config
from app.main import create_app
from app.ratelimit.memory import InMemoryRateLimitStore
from app.storage.sqlite_backend import LocalSQLiteRepository

TEST_USER_HEADER = "X-Test-User"

_ISOLATED_ENV = (
    "FOLIO_CONFIG",
    "FOLIO_DB_PATH",
    "FOLIO_ENV",
    "FOLIO_PORT",
    "ALLOWED_ORIGINS",
    "SUPABASE_URL",
    "SUPABASE_KEY",
    "SUPABASE_ANON_KEY",
    "UPSTASH_REDIS_REST_URL",
    "UPSTASH_REDIS_REST_TOKEN",
    "GROQ_API_KEY",
    "GROQ_MODEL",
    "RATE_LIMIT_ENABLED",
    "FEATURE_AI_ENABLED",
    "FEATURE_PUBLIC_PORTFOLIOS",
)


@pytest.fixture(autouse=True)
def isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ISOLATED_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("FOLIO_AUTH_REQUIRED", "true")


@pytest_asyncio.fixture
async def repository() -> AsyncIterator[LocalSQLiteRepository]:
    repo = LocalSQLiteRepository(db_path=":memory:")
    await repo.initialize()
    yield repo
    await repo.close()


@pytest.fixture
def config() -> Config:
    cfg = Config.defaults()
    cfg.server.environment = "test"
    return cfg


@pytest.fixture
def rate_limit_store() -> InMemoryRateLimitStore:
    return InMemoryRateLimitStore()


@pytest.fixture
def completion_provider() -> CompletionProvider:
    """Unconfigured provider; AI tests replace it with a scripted fake."""
    return NullCompletionProvider()


async def _identity_from_header(request: Request) -> Optional[str]:
    return request.headers.get(TEST_USER_HEADER) or None


@pytest.fixture
def app(
    config: Config,
    repository: LocalSQLiteRepository,
    rate_limit_store: InMemoryRateLimitStore,
    completion_provider: CompletionProvider,
) -> FastAPI:
    application = create_app()
    application.state.config = config
    application.state.repository = repository
    application.state.rate_limit_store = rate_limit_store
    application.state.session_resolver = NullSessionResolver()
    application.state.completion_provider = completion_provider
    application.state.ready = True
    application.dependency_overrides[current_identity] = _identity_from_header
    return application


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)  # type: ignore[arg-type]
    async with AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
