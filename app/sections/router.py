"""Section endpoints ("api" rate limit class, auth required).

  POST   /portfolio-sections          — append a section to a portfolio
  PATCH  /portfolio-sections/reorder  — {portfolio_id, section_ids} → sections sorted by order
  PATCH  /portfolio-sections/{id}     — update title / content / settings / visibility
  DELETE /portfolio-sections/{id}     — delete and close the gap (idempotent)

The reorder route is declared before /{id} so "reorder" is never taken for an id.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from app.auth.guard import AuthContext, require_auth
from app.ratelimit import RateLimit
from app.sections.service import SectionService
from app.validation import validate_body, validate_params
from app.validation.schemas import IdParams, SectionCreate, SectionReorder, SectionUpdate

router = APIRouter(tags=["sections"], dependencies=[Depends(RateLimit("api"))])


@router.post("/portfolio-sections", status_code=201)
async def create_section(request: Request, auth: AuthContext = Depends(require_auth)) -> dict:
    body = await validate_body(request, SectionCreate)
    section = await SectionService(auth.db).create(auth.user_id, body)
    return {"section": section}


@router.patch("/portfolio-sections/reorder")
async def reorder_sections(request: Request, auth: AuthContext = Depends(require_auth)) -> dict:
    body = await validate_body(request, SectionReorder)
    sections = await SectionService(auth.db).reorder(auth.user_id, body)
    return {"success": True, "sections": sections}


@router.patch("/portfolio-sections/{section_id}")
async def update_section(
    section_id: str, request: Request, auth: AuthContext = Depends(require_auth)
) -> dict:
    sid = validate_params({"id": section_id}, IdParams).id
    body = await validate_body(request, SectionUpdate)
    section = await SectionService(auth.db).update(auth.user_id, sid, body)
    return {"section": section}


@router.delete("/portfolio-sections/{section_id}")
async def delete_section(section_id: str, auth: AuthContext = Depends(require_auth)) -> dict:
    sid = validate_params({"id": section_id}, IdParams).id
    deleted = await SectionService(auth.db).delete(auth.user_id, sid)
    return {"success": True, "deleted": deleted}
