"""AI endpoints ("ai" rate limit class, auth required).

  POST /ai/improve-text                   — {improved}
  POST /ai/generate-summary               — {summary}
  POST /ai/suggest-tags                   — {tags: [{label, confidence}]}
  POST /ai/generate-experience-bullets    — {bullets}
  POST /ai/generate-portfolio-from-resume — {sections, suggestedTemplate, suggestedTheme}
  POST /ai/analyze-portfolio              — {score, subscores, recommendations}
  POST /ai/optimize-portfolio-for-job     — {updatedSections, suggestedSkills, jobInsights}
  POST /ai/recommend-template-theme       — {recommendedTemplate, recommendedTheme, ...}
  POST /ai/rewrite-portfolio              — {sections: [{id, type, updatedContent}]}
  POST /ai/generate-portfolio-summary     — {summary}

All routes answer 503 (code "ai_disabled") while the ai_enabled feature
flag is off. Provider outages never produce a 5xx; the abilities degrade.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from app.ai import agents
from app.ai.abilities import generate_experience_bullets, generate_summary, improve_text, suggest_tags
from app.ai.provider import CompletionProvider
from app.auth.guard import AuthContext, require_auth
from app.errors import ApiError
from app.ratelimit import RateLimit
from app.validation import validate_body
from app.validation.schemas import (
    ExperienceBulletsRequest,
    GenerateFromResumeRequest,
    GenerateSummaryRequest,
    ImproveTextRequest,
    OptimizeForJobRequest,
    PortfolioSummaryRequest,
    PortfolioTargetRequest,
    RewritePortfolioRequest,
    SuggestTagsRequest,
)


async def require_ai_enabled(request: Request) -> None:
    if not request.app.state.config.features.ai_enabled:
        raise ApiError("AI features are disabled", status=503, code="ai_disabled")


router = APIRouter(
    prefix="/ai",
    tags=["ai"],
    dependencies=[Depends(RateLimit("ai")), Depends(require_ai_enabled)],
)


def _provider(request: Request) -> CompletionProvider:
    return request.app.state.completion_provider


# ─── Abilities ────────────────────────────────────────────────────────────────


@router.post("/improve-text")
async def improve_text_route(request: Request, auth: AuthContext = Depends(require_auth)) -> dict:
    body = await validate_body(request, ImproveTextRequest)
    return {"improved": await improve_text(_provider(request), body.text, body.tone)}


@router.post("/generate-summary")
async def generate_summary_route(request: Request, auth: AuthContext = Depends(require_auth)) -> dict:
    body = await validate_body(request, GenerateSummaryRequest)
    summary = await generate_summary(
        _provider(request),
        certifications_text=body.certifications_text,
        experience_text=body.experience_text,
        skills_text=body.skills_text,
        max_words=body.max_words,
    )
    return {"summary": summary}


@router.post("/suggest-tags")
async def suggest_tags_route(request: Request, auth: AuthContext = Depends(require_auth)) -> dict:
    body = await validate_body(request, SuggestTagsRequest)
    tags = await suggest_tags(_provider(request), body.text, body.max_tags)
    return {"tags": [tag.to_dict() for tag in tags]}


@router.post("/generate-experience-bullets")
async def experience_bullets_route(request: Request, auth: AuthContext = Depends(require_auth)) -> dict:
    body = await validate_body(request, ExperienceBulletsRequest)
    return {"bullets": await generate_experience_bullets(_provider(request), body.description)}


# ─── Agents ───────────────────────────────────────────────────────────────────


@router.post("/generate-portfolio-from-resume")
async def portfolio_from_resume_route(request: Request, auth: AuthContext = Depends(require_auth)) -> dict:
    body = await validate_body(request, GenerateFromResumeRequest)
    return await agents.generate_portfolio_from_resume(_provider(request), body.resume_text)


@router.post("/analyze-portfolio")
async def analyze_portfolio_route(request: Request, auth: AuthContext = Depends(require_auth)) -> dict:
    body = await validate_body(request, PortfolioTargetRequest, allow_empty=True)
    return await agents.analyze_portfolio(auth.db, _provider(request), auth.user_id, body.portfolio_id)


@router.post("/optimize-portfolio-for-job")
async def optimize_for_job_route(request: Request, auth: AuthContext = Depends(require_auth)) -> dict:
    body = await validate_body(request, OptimizeForJobRequest)
    return await agents.optimize_portfolio_for_job(
        auth.db, _provider(request), auth.user_id, body.portfolio_id, body.job_description
    )


@router.post("/recommend-template-theme")
async def recommend_template_theme_route(request: Request, auth: AuthContext = Depends(require_auth)) -> dict:
    body = await validate_body(request, PortfolioTargetRequest, allow_empty=True)
    return await agents.recommend_template_and_theme(
        auth.db, _provider(request), auth.user_id, body.portfolio_id
    )


@router.post("/rewrite-portfolio")
async def rewrite_portfolio_route(request: Request, auth: AuthContext = Depends(require_auth)) -> dict:
    body = await validate_body(request, RewritePortfolioRequest)
    return await agents.rewrite_portfolio(auth.db, _provider(request), auth.user_id, body.portfolio_id, body.tone)


@router.post("/generate-portfolio-summary")
async def portfolio_summary_route(request: Request, auth: AuthContext = Depends(require_auth)) -> dict:
    body = await validate_body(request, PortfolioSummaryRequest, allow_empty=True)
    return await agents.generate_portfolio_summary(
        auth.db, _provider(request), auth.user_id, body.portfolio_id, body.max_words
    )
