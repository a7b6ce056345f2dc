"""Integration tests for the /ai routes with a scripted completion provider.

  - ai_enabled=false → 503 ai_disabled; anonymous → 401; bad bodies → 400
  - provider outages degrade (original text, heuristics, empty results), never 5xx
  - agents read the caller's portfolio (named or most recent) and never write
  - résumé import builds ordered section drafts plus template/theme suggestions
"""

from __future__ import annotations

import json
from typing import Any, Union

import pytest
from fastapi import FastAPI
from httpx import AsyncClient

from app.ai.agents import DEFAULT_RATIONALE, SUBSCORE_KEYS
from app.ai.provider import CompletionError, CompletionRequest, CompletionResult
from app.config import Config

ALICE = "11111111-1111-4111-8111-111111111111"
BOB = "22222222-2222-4222-8222-222222222222"

JOB_DESCRIPTION = (
    "We are hiring a senior backend engineer to run Python services on Kubernetes "
    "and mentor a small team."
)
RESUME = (
    "Jane Doe\n"
    "Senior Engineer at Acme since 2019, building APIs in Python and Go.\n"
    "Engineer at Beta from 2016 to 2019.\n"
    "Certified Kubernetes Administrator (CNCF).\n"
    "BSc Computer Science, MIT."
)


def _as(user_id: str) -> dict[str, str]:
    return {"X-Test-User": user_id}


class ScriptedProvider:
    """Replays canned replies in order; raises CompletionError once they run out."""

    def __init__(self, *replies: Union[str, dict, Exception]) -> None:
        self._replies = list(replies)
        self.requests: list[CompletionRequest] = []

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        self.requests.append(request)
        if not self._replies:
            raise CompletionError("script exhausted")
        reply = self._replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        text = json.dumps(reply) if isinstance(reply, dict) else reply
        return CompletionResult(text=text)

    async def close(self) -> None:
        return None


# ─── Helpers ──────────────────────────────────────────────────────────────────


def _script(app: FastAPI, *replies: Union[str, dict, Exception]) -> ScriptedProvider:
    provider = ScriptedProvider(*replies)
    app.state.completion_provider = provider
    return provider


async def _portfolio(client: AsyncClient, *sections: tuple[str, dict[str, Any]], user: str = ALICE) -> dict[str, Any]:
    response = await client.post("/api/v1/portfolios", json={"title": "Main"}, headers=_as(user))
    portfolio = response.json()["portfolio"]
    for section_type, content in sections:
        created = await client.post(
            "/api/v1/portfolio-sections",
            json={"portfolio_id": portfolio["id"], "section_type": section_type, "content": content},
            headers=_as(user),
        )
        assert created.status_code == 201, created.text
    return portfolio


async def _ai(client: AsyncClient, route: str, body: dict[str, Any] | None = None, user: str = ALICE) -> Any:
    return await client.post(f"/api/v1/ai/{route}", json=body if body is not None else {}, headers=_as(user))


# ─── Gatekeeping ──────────────────────────────────────────────────────────────


class TestGatekeeping:
    @pytest.mark.asyncio
    async def test_feature_flag_off_is_503(self, client: AsyncClient, config: Config) -> None:
        config.features.ai_enabled = False
        response = await _ai(client, "improve-text", {"text": "hello", "tone": "concise"})
        assert response.status_code == 503
        assert response.json()["code"] == "ai_disabled"

    @pytest.mark.asyncio
    async def test_anonymous_is_401(self, client: AsyncClient) -> None:
        response = await client.post("/api/v1/ai/improve-text", json={"text": "hello", "tone": "concise"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_ai_rate_limit_class(self, client: AsyncClient) -> None:
        response = await _ai(client, "improve-text", {"text": "hello", "tone": "concise"})
        assert response.headers["X-RateLimit-Limit"] == "20"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "route,body",
        [
            ("improve-text", {"text": ""}),
            ("improve-text", {"text": "x", "tone": "pirate"}),
            ("suggest-tags", {"text": "x", "maxTags": 0}),
            ("generate-experience-bullets", {"description": "   "}),
            ("generate-portfolio-from-resume", {"resumeText": "too short"}),
            ("optimize-portfolio-for-job", {"jobDescription": "short"}),
            ("rewrite-portfolio", {}),
            ("analyze-portfolio", {"portfolioId": "nope"}),
        ],
    )
    async def test_invalid_bodies_are_400(self, client: AsyncClient, route: str, body: dict) -> None:
        response = await _ai(client, route, body)
        assert response.status_code == 400
        assert response.json()["code"] == "validation_error"


# ─── Abilities ────────────────────────────────────────────────────────────────


class TestAbilityRoutes:
    @pytest.mark.asyncio
    async def test_improve_text_degrades_to_original(self, client: AsyncClient) -> None:
        response = await _ai(client, "improve-text", {"text": "i fixed bugs", "tone": "formal"})
        assert response.status_code == 200
        assert response.json() == {"improved": "i fixed bugs"}

    @pytest.mark.asyncio
    async def test_improve_text(self, client: AsyncClient, app: FastAPI) -> None:
        _script(app, "Resolved critical defects.")
        response = await _ai(client, "improve-text", {"text": "i fixed bugs", "tone": "concise"})
        assert response.json() == {"improved": "Resolved critical defects."}

    @pytest.mark.asyncio
    async def test_generate_summary_camel_case(self, client: AsyncClient, app: FastAPI) -> None:
        provider = _script(app, "I ship reliable software.")
        response = await _ai(client, "generate-summary", {"skillsText": "Python", "maxWords": 60})
        assert response.json() == {"summary": "I ship reliable software."}
        assert "maximum 60 words" in provider.requests[0].user_prompt

    @pytest.mark.asyncio
    async def test_suggest_tags(self, client: AsyncClient, app: FastAPI) -> None:
        _script(app, {"tags": [{"label": "Python", "confidence": 0.92}, {"label": "API"}]})
        response = await _ai(client, "suggest-tags", {"text": "python api developer", "max_tags": 3})
        assert response.json() == {"tags": [{"label": "Python", "confidence": 0.92}]}

    @pytest.mark.asyncio
    async def test_suggest_tags_unparseable(self, client: AsyncClient, app: FastAPI) -> None:
        _script(app, "I think Python is a good tag")
        response = await _ai(client, "suggest-tags", {"text": "python"})
        assert response.status_code == 200
        assert response.json() == {"tags": []}

    @pytest.mark.asyncio
    async def test_experience_bullets(self, client: AsyncClient, app: FastAPI) -> None:
        _script(app, '```json\n{"bullets": ["Built APIs", "Cut latency 40%"]}\n```')
        response = await _ai(client, "generate-experience-bullets", {"description": "built apis, made them fast"})
        assert response.json() == {"bullets": ["Built APIs", "Cut latency 40%"]}


# ─── Résumé import ────────────────────────────────────────────────────────────


class TestResumeImport:
    @pytest.mark.asyncio
    async def test_sections_are_drafted_in_order(self, client: AsyncClient, app: FastAPI) -> None:
        extraction = {
            "summary": "Engineer with eight years of backend experience.",
            "experience": [
                {"role": "Senior Engineer", "company": "Acme", "startDate": "2019", "endDate": None,
                 "description": "Built APIs"},
                {"role": "Engineer", "company": "Beta", "startDate": 2016, "endDate": "2019",
                 "description": "Wrote services"},
            ],
            "certifications": [{"title": "CKA", "issuer": "CNCF"}, {"title": "", "issuer": "x"}],
            "skills": ["Python", "Go", "  "],
            "education": [{"degree": "BSc Computer Science", "institution": "MIT"}],
            "hobbies": ["chess"],
        }
        _script(app, extraction, "Backend engineer who ships reliable APIs.")

        response = await _ai(client, "generate-portfolio-from-resume", {"resumeText": RESUME})
        body = response.json()
        sections = body["sections"]

        assert response.status_code == 200
        assert [s["section_type"] for s in sections] == [
            "summary", "skills", "work_experience", "certifications", "custom",
        ]
        assert [s["display_order"] for s in sections] == [1, 2, 3, 4, 5]
        assert sections[0]["content"] == {"text": "Backend engineer who ships reliable APIs."}
        assert sections[1]["content"] == {"skills": ["Python", "Go"]}
        assert sections[2]["content"]["jobs"][1]["startDate"] == "2016"
        assert sections[3]["content"]["certifications"] == [{"title": "CKA", "issuer": "CNCF"}]
        assert sections[4]["title"] == "Education"
        assert body["suggestedTemplate"] == "professional"
        assert body["suggestedTheme"] == "light-blue"

    @pytest.mark.asyncio
    async def test_summary_falls_back_to_extracted(self, client: AsyncClient, app: FastAPI) -> None:
        _script(app, {"summary": "Extracted summary."}, CompletionError("down"))
        body = (await _ai(client, "generate-portfolio-from-resume", {"resume_text": RESUME})).json()
        assert body["sections"] == [
            {"section_type": "summary", "title": "Professional Summary",
             "content": {"text": "Extracted summary."}, "display_order": 1},
        ]

    @pytest.mark.asyncio
    async def test_provider_down_gives_empty_draft(self, client: AsyncClient) -> None:
        response = await _ai(client, "generate-portfolio-from-resume", {"resumeText": RESUME})
        assert response.status_code == 200
        assert response.json() == {
            "sections": [],
            "suggestedTemplate": "modern-minimal",
            "suggestedTheme": "light-blue",
        }

    @pytest.mark.asyncio
    async def test_nothing_is_stored(self, client: AsyncClient, app: FastAPI) -> None:
        _script(app, {"summary": "x", "skills": ["Python"]}, "y")
        await _ai(client, "generate-portfolio-from-resume", {"resumeText": RESUME})
        assert await app.state.repository.count("portfolio_sections", {}) == 0


# ─── Analysis ─────────────────────────────────────────────────────────────────


class TestAnalyzePortfolio:
    @pytest.mark.asyncio
    async def test_no_portfolio_is_404(self, client: AsyncClient) -> None:
        response = await client.post("/api/v1/ai/analyze-portfolio", headers=_as(ALICE))
        assert response.status_code == 404
        assert response.json()["error"] == "No portfolio found. Please create a portfolio first."

    @pytest.mark.asyncio
    async def test_no_sections_is_400(self, client: AsyncClient) -> None:
        await _portfolio(client)
        response = await _ai(client, "analyze-portfolio")
        assert response.status_code == 400
        assert response.json()["code"] == "no_sections"

    @pytest.mark.asyncio
    async def test_foreign_portfolio_is_404(self, client: AsyncClient) -> None:
        portfolio = await _portfolio(client, ("summary", {"text": "hello"}))
        response = await _ai(client, "analyze-portfolio", {"portfolioId": portfolio["id"]}, user=BOB)
        assert response.status_code == 404
        assert response.json()["error"] == "Portfolio not found"

    @pytest.mark.asyncio
    async def test_ai_scores_are_clamped(self, client: AsyncClient, app: FastAPI) -> None:
        portfolio = await _portfolio(
            client,
            ("summary", {"text": "I build APIs."}),
            ("skills", {"skills": ["Python"]}),
        )
        sections = (await client.get(
            f"/api/v1/portfolios/{portfolio['id']}/sections", headers=_as(ALICE)
        )).json()["sections"]
        _script(app, {
            "score": 140,
            "subscores": {"clarity": 85.4, "technicalDepth": -5, "seniority": "high"},
            "recommendations": [
                {"title": "Tighten your summary", "description": "Lead with impact.",
                 "suggestedRewrite": "I design and ship APIs."},
                {"title": "", "description": "dropped"},
                "dropped",
            ],
        })

        body = (await _ai(client, "analyze-portfolio")).json()

        assert body["score"] == 100
        assert set(body["subscores"]) == set(SUBSCORE_KEYS)
        assert body["subscores"]["clarity"] == 85
        assert body["subscores"]["technicalDepth"] == 0
        assert 0 <= body["subscores"]["seniority"] <= 100
        assert body["recommendations"] == [
            {
                "title": "Tighten your summary",
                "description": "Lead with impact.",
                "suggestedRewrite": "I design and ship APIs.",
                "sectionId": sections[0]["id"],
                "sectionType": "summary",
            }
        ]

    @pytest.mark.asyncio
    async def test_heuristics_when_provider_is_down(self, client: AsyncClient) -> None:
        await _portfolio(client, ("skills", {"skills": ["Python", "Go"]}))
        body = (await _ai(client, "analyze-portfolio")).json()

        assert set(body["subscores"]) == set(SUBSCORE_KEYS)
        assert body["score"] == round(sum(body["subscores"].values()) / len(SUBSCORE_KEYS))
        titles = [r["title"] for r in body["recommendations"]]
        assert "Add a Professional Summary" in titles
        assert "Expand Your Skills Section" in titles

    @pytest.mark.asyncio
    async def test_most_recent_portfolio_is_used(self, client: AsyncClient, app: FastAPI) -> None:
        await _portfolio(client)
        await _portfolio(client, ("summary", {"text": "latest"}))
        provider = _script(app, "not json")
        response = await _ai(client, "analyze-portfolio")
        assert response.status_code == 200
        assert "latest" in provider.requests[0].user_prompt


# ─── Job optimisation ─────────────────────────────────────────────────────────


JOB_INSIGHTS = {
    "requiredSkills": ["Python", "Kubernetes"],
    "responsibilities": ["Run services"],
    "keywords": ["backend"],
    "senioritySignals": ["senior"],
}


class TestOptimizeForJob:
    @pytest.mark.asyncio
    async def test_without_portfolio_suggests_required_skills(self, client: AsyncClient, app: FastAPI) -> None:
        _script(app, JOB_INSIGHTS)
        body = (await _ai(client, "optimize-portfolio-for-job", {"jobDescription": JOB_DESCRIPTION})).json()
        assert body == {
            "updatedSections": [],
            "suggestedSkills": ["Python", "Kubernetes"],
            "jobInsights": JOB_INSIGHTS,
        }

    @pytest.mark.asyncio
    async def test_rewrites_with_job_context(self, client: AsyncClient, app: FastAPI) -> None:
        await _portfolio(
            client,
            ("summary", {"text": "i write python"}),
            ("skills", {"skills": ["python"]}),
        )
        provider = _script(app, JOB_INSIGHTS, "Senior Python engineer.", "Python")

        body = (await _ai(client, "optimize-portfolio-for-job", {"job_description": JOB_DESCRIPTION})).json()

        updates = {u["type"]: u["updatedContent"] for u in body["updatedSections"]}
        assert updates["summary"] == {"text": "Senior Python engineer."}
        assert updates["skills"] == {"skills": ["Python"]}
        assert body["suggestedSkills"] == ["Kubernetes"]
        summary_prompt = provider.requests[1].user_prompt
        assert "senior style" in summary_prompt
        assert "requires: Python, Kubernetes" in summary_prompt
        assert "Additional guidance" not in provider.requests[2].user_prompt

    @pytest.mark.asyncio
    async def test_provider_down_keeps_content(self, client: AsyncClient) -> None:
        await _portfolio(client, ("summary", {"text": "unchanged"}))
        body = (await _ai(client, "optimize-portfolio-for-job", {"jobDescription": JOB_DESCRIPTION})).json()
        assert body["updatedSections"][0]["updatedContent"] == {"text": "unchanged"}
        assert body["suggestedSkills"] == []
        assert body["jobInsights"]["requiredSkills"] == []


# ─── Recommendation ───────────────────────────────────────────────────────────


class TestRecommendTemplateTheme:
    @pytest.mark.asyncio
    async def test_heuristic_recommendation(self, client: AsyncClient) -> None:
        jobs = [{"role": "Software Engineer", "company": c, "description": "Built api services"} for c in "ABC"]
        await _portfolio(
            client,
            ("work_experience", {"jobs": jobs}),
            ("summary", {"text": "Software developer"}),
        )
        body = (await _ai(client, "recommend-template-theme")).json()
        assert body == {
            "recommendedTemplate": "timeline",
            "recommendedTheme": "dark-slate",
            "recommendedSectionOrder": ["work_experience", "summary"],
            "rationale": DEFAULT_RATIONALE,
        }

    @pytest.mark.asyncio
    async def test_ai_recommendation_is_mapped_to_catalog(self, client: AsyncClient, app: FastAPI) -> None:
        await _portfolio(client, ("summary", {"text": "Designer"}), ("skills", {"skills": ["Figma"]}))
        _script(app, {
            "recommendedTemplate": "grid",
            "recommendedTheme": "creative",
            "recommendedSectionOrder": ["skills", "projects", "summary"],
            "rationale": "  Visual work first.  ",
        })
        body = (await _ai(client, "recommend-template-theme")).json()
        assert body == {
            "recommendedTemplate": "grid-showcase",
            "recommendedTheme": "warm-sunset",
            "recommendedSectionOrder": ["skills", "summary"],
            "rationale": "Visual work first.",
        }


# ─── Rewrite & portfolio summary ──────────────────────────────────────────────


class TestRewritePortfolio:
    @pytest.mark.asyncio
    async def test_rewrite_suggestions_are_not_saved(self, client: AsyncClient, app: FastAPI) -> None:
        portfolio = await _portfolio(
            client,
            ("summary", {"text": "i build api"}),
            ("skills", {"skills": ["python", "go"]}),
            ("certifications", {"certifications": [{"title": "CKA"}]}),
        )
        _script(app, "I build APIs.", "- Python\n- Go")

        body = (await _ai(client, "rewrite-portfolio", {"tone": "technical"})).json()

        assert [(s["type"], s["updatedContent"]) for s in body["sections"]] == [
            ("summary", {"text": "I build APIs."}),
            ("skills", {"skills": ["Python", "Go"]}),
        ]
        stored = (await client.get(
            f"/api/v1/portfolios/{portfolio['id']}/sections", headers=_as(ALICE)
        )).json()["sections"]
        assert stored[0]["content"] == {"text": "i build api"}

    @pytest.mark.asyncio
    async def test_no_portfolio_gives_empty_list(self, client: AsyncClient) -> None:
        response = await _ai(client, "rewrite-portfolio", {"tone": "casual"})
        assert response.json() == {"sections": []}


class TestPortfolioSummary:
    @pytest.mark.asyncio
    async def test_uses_certifications_and_sections(self, client: AsyncClient, app: FastAPI) -> None:
        await client.post(
            "/api/v1/certifications",
            json={"title": "CKA", "issuing_organization": "CNCF", "certification_type": "manual"},
            headers=_as(ALICE),
        )
        await _portfolio(
            client,
            ("work_experience", {"jobs": [{"role": "SRE", "company": "Acme", "description": "Ran clusters"}]}),
            ("skills", {"skills": ["Kubernetes"]}),
        )
        provider = _script(app, "Reliability engineer.")

        response = await client.post("/api/v1/ai/generate-portfolio-summary", headers=_as(ALICE))

        assert response.json() == {"summary": "Reliability engineer."}
        prompt = provider.requests[0].user_prompt
        assert "CKA – CNCF" in prompt
        assert "SRE at Acme: Ran clusters" in prompt
        assert "SKILLS:\nKubernetes" in prompt
        assert "maximum 120 words" in prompt

    @pytest.mark.asyncio
    async def test_provider_down_gives_empty_summary(self, client: AsyncClient) -> None:
        response = await _ai(client, "generate-portfolio-summary", {"maxWords": 60})
        assert response.status_code == 200
        assert response.json() == {"summary": ""}
