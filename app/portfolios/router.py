"""Portfolio endpoints.

Owner routes (auth required, "api" rate limit class):
  GET    /portfolios                      — list the caller's portfolios (newest first)
  POST   /portfolios                      — create (slug generated from the title)
  GET    /portfolios/{id}                 — one portfolio with its sections
  PATCH  /portfolios/{id}                 — update metadata
  DELETE /portfolios/{id}                 — soft delete
  GET    /portfolios/{id}/sections        — sections in display order
  POST   /portfolios/{id}/public-link     — issue a new share token
  DELETE /portfolios/{id}/public-link     — revoke the share token
  PATCH  /portfolios/{id}/template        — switch template (unknown id → 400)
  PATCH  /portfolios/{id}/theme           — switch theme (unknown id → 400)

Public route (no auth, "public" rate limit class):
  GET    /public/portfolios/{token}
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from app.auth.guard import AuthContext, require_auth
from app.errors import ApiError
from app.portfolios.public import get_public_portfolio
from app.portfolios.service import PortfolioService
from app.ratelimit import RateLimit
from app.sections.ordering import SectionOrdering
from app.validation import validate_body, validate_params, validate_query
from app.validation.schemas import (
    IdParams,
    ListQuery,
    PortfolioCreate,
    PortfolioUpdate,
    TemplateUpdate,
    ThemeUpdate,
    TokenParams,
)

router = APIRouter(tags=["portfolios"], dependencies=[Depends(RateLimit("api"))])
public_router = APIRouter(tags=["public"], dependencies=[Depends(RateLimit("public"))])


def _portfolio_id(value: str) -> str:
    return validate_params({"id": value}, IdParams).id


# ─── Collection ───────────────────────────────────────────────────────────────


@router.get("/portfolios")
async def list_portfolios(request: Request, auth: AuthContext = Depends(require_auth)) -> dict:
    query = validate_query(request, ListQuery)
    portfolios = await PortfolioService(auth.db).list_for_user(auth.user_id, query)
    return {"portfolios": portfolios}


@router.post("/portfolios", status_code=201)
async def create_portfolio(request: Request, auth: AuthContext = Depends(require_auth)) -> dict:
    body = await validate_body(request, PortfolioCreate)
    portfolio = await PortfolioService(auth.db).create(auth.user_id, body)
    return {"portfolio": portfolio}


# ─── Item ─────────────────────────────────────────────────────────────────────


@router.get("/portfolios/{portfolio_id}")
async def get_portfolio(portfolio_id: str, auth: AuthContext = Depends(require_auth)) -> dict:
    pid = _portfolio_id(portfolio_id)
    portfolio = await PortfolioService(auth.db).get(auth.user_id, pid)
    sections = await SectionOrdering(auth.db).list_sections(pid)
    return {"portfolio": {**portfolio, "sections": sections}}


@router.patch("/portfolios/{portfolio_id}")
async def update_portfolio(
    portfolio_id: str, request: Request, auth: AuthContext = Depends(require_auth)
) -> dict:
    pid = _portfolio_id(portfolio_id)
    body = await validate_body(request, PortfolioUpdate)
    portfolio = await PortfolioService(auth.db).update(auth.user_id, pid, body)
    return {"portfolio": portfolio}


@router.delete("/portfolios/{portfolio_id}")
async def delete_portfolio(portfolio_id: str, auth: AuthContext = Depends(require_auth)) -> dict:
    await PortfolioService(auth.db).delete(auth.user_id, _portfolio_id(portfolio_id))
    return {"success": True}


@router.get("/portfolios/{portfolio_id}/sections")
async def list_portfolio_sections(
    portfolio_id: str, auth: AuthContext = Depends(require_auth)
) -> dict:
    pid = _portfolio_id(portfolio_id)
    await PortfolioService(auth.db).get(auth.user_id, pid)
    return {"sections": await SectionOrdering(auth.db).list_sections(pid)}


# ─── Sharing & presentation ───────────────────────────────────────────────────


@router.post("/portfolios/{portfolio_id}/public-link")
async def create_public_link(portfolio_id: str, auth: AuthContext = Depends(require_auth)) -> dict:
    portfolio = await PortfolioService(auth.db).create_public_link(
        auth.user_id, _portfolio_id(portfolio_id)
    )
    return {"portfolio": portfolio, "public_url": f"/p/{portfolio['public_link_token']}"}


@router.delete("/portfolios/{portfolio_id}/public-link")
async def revoke_public_link(portfolio_id: str, auth: AuthContext = Depends(require_auth)) -> dict:
    portfolio = await PortfolioService(auth.db).revoke_public_link(
        auth.user_id, _portfolio_id(portfolio_id)
    )
    return {"success": True, "portfolio": portfolio}


@router.patch("/portfolios/{portfolio_id}/template")
async def update_template(
    portfolio_id: str, request: Request, auth: AuthContext = Depends(require_auth)
) -> dict:
    pid = _portfolio_id(portfolio_id)
    body = await validate_body(request, TemplateUpdate)
    portfolio = await PortfolioService(auth.db).set_template(auth.user_id, pid, body.template)
    return {"portfolio": portfolio}


@router.patch("/portfolios/{portfolio_id}/theme")
async def update_theme(
    portfolio_id: str, request: Request, auth: AuthContext = Depends(require_auth)
) -> dict:
    pid = _portfolio_id(portfolio_id)
    body = await validate_body(request, ThemeUpdate)
    portfolio = await PortfolioService(auth.db).set_theme(auth.user_id, pid, body.theme)
    return {"portfolio": portfolio}


# ─── Public view ──────────────────────────────────────────────────────────────


@public_router.get("/public/portfolios/{token}")
async def public_portfolio(token: str, request: Request) -> dict:
    if not request.app.state.config.features.public_portfolios:
        raise ApiError("Public portfolios are disabled", status=503, code="feature_disabled")
    params = validate_params({"token": token}, TokenParams)
    return await get_public_portfolio(request.app.state.repository, params.token)
