"""Session resolvers — turn an access token into a user id.

  SupabaseSessionResolver — validates the token with Supabase Auth
                            (``client.auth.get_user(token)``)
  NullSessionResolver     — resolves nothing; used when Supabase is not
                            configured (every authenticated route returns 401
                            unless FOLIO_AUTH_REQUIRED=false)

Selection via create_session_resolver(), by the same SUPABASE_URL /
SUPABASE_KEY pair the storage factory uses.
"""

from __future__ import annotations

import asyncio
import os
from typing import Any, Optional, Protocol, runtime_checkable

from app.utils.logger import get_logger

logger = get_logger(__name__)

_SUPABASE_TIMEOUT_S = 5.0


@runtime_checkable
class SessionResolver(Protocol):
    async def resolve(self, token: str) -> Optional[str]:
        """Return the user id owning ``token``, or None when it is not a valid session."""
        ...


class NullSessionResolver:
    async def resolve(self, token: str) -> Optional[str]:
        return None


assert isinstance(NullSessionResolver(), SessionResolver), (
    "NullSessionResolver does not satisfy SessionResolver protocol — implementation error"
)


class SupabaseSessionResolver:
    """Validate access tokens against Supabase Auth.

    Any failure (expired token, network error, timeout) resolves to None:
    the caller is simply unauthenticated, and the guard answers 401.
    """

    def __init__(self, client: Any, timeout_s: float = _SUPABASE_TIMEOUT_S) -> None:
        self._client = client
        self._timeout_s = timeout_s

    async def resolve(self, token: str) -> Optional[str]:
        try:
            response = await asyncio.wait_for(
                self._client.auth.get_user(token), timeout=self._timeout_s
            )
        except Exception as exc:
            logger.info(
                "session_rejected",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return None

        user = getattr(response, "user", None) if response is not None else None
        return getattr(user, "id", None) if user is not None else None


async def create_session_resolver() -> SessionResolver:
    """Pick the session resolver from SUPABASE_URL / SUPABASE_KEY."""
    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SUPABASE_KEY")
    if not (url and key):
        logger.info("session_resolver_selected", resolver="NullSessionResolver")
        return NullSessionResolver()

    from supabase import create_async_client

    client = await asyncio.wait_for(create_async_client(url, key), timeout=_SUPABASE_TIMEOUT_S)
    logger.info("session_resolver_selected", resolver="SupabaseSessionResolver")
    return SupabaseSessionResolver(client)
