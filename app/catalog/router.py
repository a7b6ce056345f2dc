"""Read-only catalog endpoints.

    GET /templates        GET /templates/{template_id}
    GET /themes           GET /themes/{theme_id}

Unknown ids are a 404 here. Portfolios referencing an unknown id still
render with the default (see registry.resolve_*).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.catalog.registry import get_template, get_theme, list_templates, list_themes
from app.errors import not_found
from app.ratelimit import RateLimit

router = APIRouter(tags=["catalog"], dependencies=[Depends(RateLimit("public"))])


@router.get("/templates")
async def templates() -> dict:
    return {"data": [t.to_dict() for t in list_templates()]}


@router.get("/templates/{template_id}")
async def template_detail(template_id: str) -> dict:
    template = get_template(template_id)
    if template is None:
        raise not_found("Template")
    return {"data": template.to_dict()}


@router.get("/themes")
async def themes() -> dict:
    return {"data": [t.to_dict() for t in list_themes()]}


@router.get("/themes/{theme_id}")
async def theme_detail(theme_id: str) -> dict:
    theme = get_theme(theme_id)
    if theme is None:
        raise not_found("Theme")
    return {"data": theme.to_dict()}
