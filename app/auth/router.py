"""Session endpoint ("auth" rate limit class).

  GET /auth/session — {user_id} for the current session; 401 without one

The user id always comes from the validated session, never from the client.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.auth.guard import AuthContext, require_auth
from app.ratelimit import RateLimit

router = APIRouter(tags=["auth"], dependencies=[Depends(RateLimit("auth"))])


@router.get("/auth/session")
async def get_session(auth: AuthContext = Depends(require_auth)) -> dict:
    return {"user_id": auth.user_id}
