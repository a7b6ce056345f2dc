"""Tag endpoints ("api" rate limit class, auth required).

  GET    /tags
  POST   /tags          — 409 on a duplicate name
  PATCH  /tags/{id}
  DELETE /tags/{id}     — also removes the tag from every certification
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from app.auth.guard import AuthContext, require_auth
from app.ratelimit import RateLimit
from app.tags.service import TagService
from app.validation import validate_body, validate_params
from app.validation.schemas import IdParams, TagCreate, TagUpdate

router = APIRouter(tags=["tags"], dependencies=[Depends(RateLimit("api"))])


@router.get("/tags")
async def list_tags(auth: AuthContext = Depends(require_auth)) -> dict:
    return {"tags": await TagService(auth.db).list_for_user(auth.user_id)}


@router.post("/tags", status_code=201)
async def create_tag(request: Request, auth: AuthContext = Depends(require_auth)) -> dict:
    body = await validate_body(request, TagCreate)
    return {"tag": await TagService(auth.db).create(auth.user_id, body)}


@router.patch("/tags/{tag_id}")
async def update_tag(tag_id: str, request: Request, auth: AuthContext = Depends(require_auth)) -> dict:
    tid = validate_params({"id": tag_id}, IdParams).id
    body = await validate_body(request, TagUpdate)
    return {"tag": await TagService(auth.db).update(auth.user_id, tid, body)}


@router.delete("/tags/{tag_id}")
async def delete_tag(tag_id: str, auth: AuthContext = Depends(require_auth)) -> dict:
    tid = validate_params({"id": tag_id}, IdParams).id
    await TagService(auth.db).delete(auth.user_id, tid)
    return {"success": True}
