"""Certification endpoints ("api" rate limit class, auth required).

  GET    /certifications              — ?is_public=&limit=&offset= → {data, count}, tags embedded;
                                         count is the total before limit/offset
  POST   /certifications              — create (optional tag_ids)
  GET    /certifications/{id}
  PATCH  /certifications/{id}         — certification_type and owner fields are immutable;
                                         tag_ids replaces the whole link set
  DELETE /certifications/{id}         — soft delete, tag links removed
  POST   /certification-tags          — assign; 201 when created, 200 when already linked
  DELETE /certification-tags          — remove; 200 whether or not the link existed
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from app.auth.guard import AuthContext, require_auth
from app.certifications.service import CertificationService
from app.ratelimit import RateLimit
from app.validation import validate_body, validate_params, validate_query
from app.validation.schemas import (
    CertificationCreate,
    CertificationTagLink,
    CertificationUpdate,
    IdParams,
    ListQuery,
)

router = APIRouter(tags=["certifications"], dependencies=[Depends(RateLimit("api"))])


def _certification_id(value: str) -> str:
    return validate_params({"id": value}, IdParams).id


@router.get("/certifications")
async def list_certifications(request: Request, auth: AuthContext = Depends(require_auth)) -> dict:
    query = validate_query(request, ListQuery)
    service = CertificationService(auth.db)
    certifications = await service.list_for_user(auth.user_id, query)
    return {"data": certifications, "count": await service.count_for_user(auth.user_id, query)}


@router.post("/certifications", status_code=201)
async def create_certification(request: Request, auth: AuthContext = Depends(require_auth)) -> dict:
    body = await validate_body(request, CertificationCreate)
    return {"data": await CertificationService(auth.db).create(auth.user_id, body)}


@router.get("/certifications/{certification_id}")
async def get_certification(certification_id: str, auth: AuthContext = Depends(require_auth)) -> dict:
    cid = _certification_id(certification_id)
    return {"data": await CertificationService(auth.db).get(auth.user_id, cid)}


@router.patch("/certifications/{certification_id}")
async def update_certification(
    certification_id: str, request: Request, auth: AuthContext = Depends(require_auth)
) -> dict:
    cid = _certification_id(certification_id)
    body = await validate_body(request, CertificationUpdate)
    return {"data": await CertificationService(auth.db).update(auth.user_id, cid, body)}


@router.delete("/certifications/{certification_id}")
async def delete_certification(
    certification_id: str, auth: AuthContext = Depends(require_auth)
) -> dict:
    await CertificationService(auth.db).delete(auth.user_id, _certification_id(certification_id))
    return {"success": True}


# ─── Certification tags ───────────────────────────────────────────────────────


@router.post("/certification-tags")
async def assign_certification_tag(
    request: Request, response: Response, auth: AuthContext = Depends(require_auth)
) -> dict:
    link = await validate_body(request, CertificationTagLink)
    created = await CertificationService(auth.db).assign_tag(auth.user_id, link)
    response.status_code = 201 if created else 200
    return {"success": True, "created": created}


@router.delete("/certification-tags")
async def remove_certification_tag(
    request: Request, auth: AuthContext = Depends(require_auth)
) -> dict:
    link = await validate_body(request, CertificationTagLink)
    await CertificationService(auth.db).remove_tag(auth.user_id, link)
    return {"success": True}
