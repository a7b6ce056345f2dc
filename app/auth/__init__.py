"""Folio auth package.

Public API:
  - current_identity()        — resolve the caller's user id (FastAPI dependency)
  - require_auth()            — AuthContext or 401 (FastAPI dependency)
  - optional_auth()           — OptionalAuthContext, never fails (FastAPI dependency)
  - create_session_resolver() — pick Supabase or null session validation
"""

from __future__ import annotations

from app.auth.guard import (
    AuthContext,
    OptionalAuthContext,
    current_identity,
    optional_auth,
    require_auth,
)
from app.auth.sessions import (
    NullSessionResolver,
    SessionResolver,
    SupabaseSessionResolver,
    create_session_resolver,
)

__all__ = [
    "AuthContext",
    "OptionalAuthContext",
    "current_identity",
    "optional_auth",
    "require_auth",
    "NullSessionResolver",
    "SessionResolver",
    "SupabaseSessionResolver",
    "create_session_resolver",
]
