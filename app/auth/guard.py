"""Auth guard dependencies.

Provides:
  current_identity() — resolve the caller's user id (or None) from the request
  require_auth()     — AuthContext(user_id, db); raises AuthError(401) when anonymous
  optional_auth()    — OptionalAuthContext(user_id | None, db); never fails

Token extraction precedence:
  1. Authorization: Bearer <access token>
  2. Session cookie (auth.session_cookie, default "sb-access-token")

Auth control:
  - FOLIO_AUTH_REQUIRED=true  → tokens are validated (default)
  - FOLIO_AUTH_REQUIRED=false → every request resolves to user_id='anonymous'
                                (local development only)

The owner of every stored row comes from these dependencies. Client-supplied
owner ids are never read.

With the Supabase backend and SUPABASE_ANON_KEY set, ``db`` is a repository
bound to the caller's access token (see caller_repository()), so Postgres
row-level security applies as well.
"""

from __future__ import annotations

import os
import re
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from fastapi import Depends, Request

from app.constants import ANONYMOUS_USER_ID, SESSION_COOKIE_NAME
from app.errors import AuthError
from app.storage.protocol import CallerScopedRepository, Repository
from app.utils.logger import get_logger

logger = get_logger(__name__)

_BEARER_RE = re.compile(r"^Bearer\s+(\S+)$", re.IGNORECASE)


@dataclass(frozen=True)
class AuthContext:
    user_id: str
    db: Repository


@dataclass(frozen=True)
class OptionalAuthContext:
    user_id: Optional[str]
    db: Repository


def _is_auth_required() -> bool:
    """Read FOLIO_AUTH_REQUIRED per request so tests can flip it with monkeypatch."""
    return os.environ.get("FOLIO_AUTH_REQUIRED", "true").lower() == "true"


def extract_token(request: Request) -> Optional[str]:
    """Return the access token from the Authorization header or the session cookie."""
    authorization = request.headers.get("authorization", "")
    match = _BEARER_RE.match(authorization.strip())
    if match:
        return match.group(1)

    config = getattr(request.app.state, "config", None)
    cookie_name = config.auth.session_cookie if config is not None else SESSION_COOKIE_NAME
    return request.cookies.get(cookie_name) or None


async def current_identity(request: Request) -> Optional[str]:
    """Resolve the caller's user id, or None when there is no valid session.

    FastAPI caches this per request, so the rate limiter and the auth guard
    share one resolution.
    """
    if not _is_auth_required():
        return ANONYMOUS_USER_ID

    token = extract_token(request)
    if token is None:
        return None
    return await request.app.state.session_resolver.resolve(token)


@asynccontextmanager
async def caller_repository(request: Request, user_id: Optional[str]) -> AsyncIterator[Repository]:
    """Yield the repository a request's queries should go through.

    A signed-in caller on a CallerScopedRepository gets a repository bound to
    their access token, closed when the request ends. Everything else shares
    app.state.repository.
    """
    shared: Repository = request.app.state.repository
    scoped: Optional[Repository] = None
    if user_id is not None and isinstance(shared, CallerScopedRepository):
        token = extract_token(request)
        if token is not None:
            scoped = shared.for_token(token)

    if scoped is None:
        yield shared
        return
    try:
        yield scoped
    finally:
        await scoped.close()


async def require_auth(
    request: Request,
    user_id: Optional[str] = Depends(current_identity),
) -> AsyncIterator[AuthContext]:
    if user_id is None:
        raise AuthError("Unauthorized")
    async with caller_repository(request, user_id) as db:
        yield AuthContext(user_id=user_id, db=db)


async def optional_auth(
    request: Request,
    user_id: Optional[str] = Depends(current_identity),
) -> AsyncIterator[OptionalAuthContext]:
    async with caller_repository(request, user_id) as db:
        yield OptionalAuthContext(user_id=user_id, db=db)
