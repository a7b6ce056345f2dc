"""AI agents — abilities composed with the caller's stored portfolio.

    generate_portfolio_from_resume(provider, resume_text)
    analyze_portfolio(repo, provider, user_id, portfolio_id)
    optimize_portfolio_for_job(repo, provider, user_id, portfolio_id, job_description)
    recommend_template_and_theme(repo, provider, user_id, portfolio_id)
    rewrite_portfolio(repo, provider, user_id, portfolio_id, tone)
    generate_portfolio_summary(repo, provider, user_id, portfolio_id, max_words)

The target portfolio is ``portfolio_id`` when given (404 if it is not the
caller's), else the caller's most recently updated one. Provider failures
never surface: each agent falls back to heuristics or returns what it has.
Nothing here writes to storage; results are suggestions the client applies
through the section endpoints.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Optional, assert_never

import pydantic
from pydantic import BaseModel, ConfigDict, field_validator

from app.ai.abilities import complete_json, generate_summary, improve_text
from app.ai.provider import CompletionProvider, CompletionRequest
from app.catalog.registry import template_for_layout, theme_for_style
from app.errors import ApiError
from app.portfolios.service import PortfolioService
from app.sections.content import (
    CertificationEntry,
    CertificationsContent,
    CustomContent,
    Job,
    ProjectsContent,
    SectionContent,
    SectionType,
    SkillsContent,
    SummaryContent,
    WorkExperienceContent,
    content_text,
    dump_content,
    parse_content,
)
from app.sections.ordering import SectionOrdering
from app.storage.protocol import Repository
from app.utils.logger import get_logger

logger = get_logger(__name__)

_PASSIVE_RE = re.compile(r"\b(was|were|been|being)\b", re.IGNORECASE)
_ACTIVE_RE = re.compile(r"\b(led|managed|developed|created|designed|implemented)\b", re.IGNORECASE)
_WEAK_RE = re.compile(r"\b(helped|assisted|worked on|involved in)\b", re.IGNORECASE)
_STRONG_RE = re.compile(r"\b(achieved|delivered|improved|optimized|increased|reduced)\b", re.IGNORECASE)

_SENIORITY_RES: dict[str, re.Pattern[str]] = {
    "junior": re.compile(r"\b(junior|entry|associate|assistant)\b", re.IGNORECASE),
    "mid": re.compile(r"\b(mid|intermediate|regular)\b", re.IGNORECASE),
    "senior": re.compile(
        r"\b(senior|lead|principal|staff|architect|director|manager|head)\b", re.IGNORECASE
    ),
}

_INDUSTRY_RES: dict[str, re.Pattern[str]] = {
    "tech": re.compile(r"\b(software|developer|engineer|programming|code|api|database)\b", re.IGNORECASE),
    "creative": re.compile(r"\b(design|creative|ux|ui|graphic|visual|art)\b", re.IGNORECASE),
    "business": re.compile(
        r"\b(business|management|strategy|consulting|sales|marketing)\b", re.IGNORECASE
    ),
    "data": re.compile(r"\b(data|analytics|machine learning|ai|statistics|sql)\b", re.IGNORECASE),
}

_BULLET_PREFIX_RE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s*")

SUBSCORE_KEYS = (
    "clarity",
    "technicalDepth",
    "seniority",
    "atsAlignment",
    "completeness",
    "toneConsistency",
)

DEFAULT_RATIONALE = (
    "Based on your content profile, we recommend a layout that highlights your strengths."
)

_SECTION_TITLES: dict[str, str] = {
    SectionType.SUMMARY.value: "Professional Summary",
    SectionType.SKILLS.value: "Skills",
    SectionType.WORK_EXPERIENCE.value: "Work Experience",
    SectionType.CERTIFICATIONS.value: "Certifications",
}


# ─── Loading ──────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class LoadedSection:
    id: str
    section_type: str
    title: Optional[str]
    content: SectionContent


@dataclass
class PortfolioSnapshot:
    portfolio: dict[str, Any]
    sections: list[LoadedSection] = field(default_factory=list)

    def of_type(self, cls: type) -> list[Any]:
        return [s.content for s in self.sections if isinstance(s.content, cls)]

    def first(self, section_type: SectionType) -> Optional[LoadedSection]:
        return next((s for s in self.sections if s.section_type == section_type.value), None)

    @property
    def skills(self) -> list[str]:
        return [skill for c in self.of_type(SkillsContent) for skill in c.skills if skill.strip()]

    @property
    def experience_count(self) -> int:
        # A work-experience section without structured jobs still counts once
        return sum(len(c.jobs) or (1 if c.description.strip() else 0) for c in self.of_type(WorkExperienceContent))

    @property
    def text(self) -> str:
        return "\n".join(content_text(s.content) for s in self.sections)


async def load_portfolio(
    repository: Repository, user_id: str, portfolio_id: Optional[str]
) -> Optional[PortfolioSnapshot]:
    portfolio = await PortfolioService(repository).resolve(user_id, portfolio_id)
    if portfolio is None:
        return None

    snapshot = PortfolioSnapshot(portfolio=portfolio)
    for row in await SectionOrdering(repository).list_sections(portfolio["id"]):
        try:
            content = parse_content(row["section_type"], row.get("content"))
        except pydantic.ValidationError:
            logger.warning("section_content_unreadable", section_id=row["id"])
            continue
        snapshot.sections.append(
            LoadedSection(
                id=row["id"],
                section_type=row["section_type"],
                title=row.get("title"),
                content=content,
            )
        )
    return snapshot


async def _require_content(
    repository: Repository, user_id: str, portfolio_id: Optional[str]
) -> PortfolioSnapshot:
    snapshot = await load_portfolio(repository, user_id, portfolio_id)
    if snapshot is None:
        raise ApiError(
            "No portfolio found. Please create a portfolio first.", status=404, code="not_found"
        )
    if not snapshot.sections:
        raise ApiError(
            "No sections found. Please add some content to your portfolio first.",
            status=400,
            code="no_sections",
        )
    return snapshot


# ─── Rewriting ────────────────────────────────────────────────────────────────


def _split_lines(text: str) -> list[str]:
    items = []
    for line in text.splitlines():
        item = _BULLET_PREFIX_RE.sub("", line).strip()
        if item:
            items.append(item)
    return items


async def rewrite_content(
    provider: CompletionProvider,
    content: SectionContent,
    tone: str,
    context: Optional[str] = None,
) -> Optional[SectionContent]:
    """Rewritten copy of ``content``; None when the variant has no prose to rewrite."""
    if isinstance(content, (SummaryContent, CustomContent)):
        if not content.text.strip():
            return None
        text = await improve_text(provider, content.text, tone, context)
        return content.model_copy(update={"text": text})
    if isinstance(content, SkillsContent):
        if not content.skills:
            return None
        # Skill names are rewritten as a list; job context would only add noise
        improved = await improve_text(provider, "\n".join(content.skills), tone)
        return content.model_copy(update={"skills": _split_lines(improved) or content.skills})
    if isinstance(content, WorkExperienceContent):
        if not content.description.strip() and not content.jobs:
            return None
        description = content.description
        if description.strip():
            description = await improve_text(provider, description, tone, context)
        jobs = []
        for job in content.jobs:
            if job.description.strip():
                job = job.model_copy(
                    update={"description": await improve_text(provider, job.description, tone, context)}
                )
            jobs.append(job)
        return content.model_copy(update={"description": description, "jobs": jobs})
    if isinstance(content, ProjectsContent):
        if not any(item.description.strip() for item in content.items):
            return None
        items = []
        for item in content.items:
            if item.description.strip():
                item = item.model_copy(
                    update={"description": await improve_text(provider, item.description, tone, context)}
                )
            items.append(item)
        return content.model_copy(update={"items": items})
    if isinstance(content, CertificationsContent):
        # Titles and issuers are facts, not prose
        return None
    assert_never(content)


def _section_update(section: LoadedSection, content: SectionContent) -> dict[str, Any]:
    return {"id": section.id, "type": section.section_type, "updatedContent": dump_content(content)}


async def rewrite_portfolio(
    repository: Repository,
    provider: CompletionProvider,
    user_id: str,
    portfolio_id: Optional[str],
    tone: str,
) -> dict[str, Any]:
    snapshot = await load_portfolio(repository, user_id, portfolio_id)
    if snapshot is None:
        return {"sections": []}

    updates = []
    for section in snapshot.sections:
        rewritten = await rewrite_content(provider, section.content, tone)
        if rewritten is not None:
            updates.append(_section_update(section, rewritten))
    logger.info("portfolio_rewritten", portfolio_id=snapshot.portfolio["id"], tone=tone, sections=len(updates))
    return {"sections": updates}


# ─── Résumé import ────────────────────────────────────────────────────────────


class _Lenient(BaseModel):
    """Model output shapes: unknown keys ignored, nulls read as the field default."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @field_validator("*", mode="before")
    @classmethod
    def _null_is_default(cls, value: Any, info: Any) -> Any:
        if value is None:
            return cls.model_fields[info.field_name].get_default(call_default_factory=True)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class _ResumeJob(_Lenient):
    role: str = ""
    company: str = ""
    startDate: str = ""
    endDate: str = ""
    description: str = ""


class _ResumeCertification(_Lenient):
    title: str = ""
    issuer: str = ""


class _ResumeEducation(_Lenient):
    degree: str = ""
    institution: str = ""


class ResumeData(_Lenient):
    summary: str = ""
    experience: list[_ResumeJob] = []
    certifications: list[_ResumeCertification] = []
    skills: list[str] = []
    education: list[_ResumeEducation] = []

    @field_validator("skills", mode="before")
    @classmethod
    def _string_skills(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [str(v) for v in value if isinstance(v, (str, int, float)) and not isinstance(v, bool)]
        return value


_RESUME_SYSTEM_PROMPT = (
    "You extract structured data from resumes.\n"
    "Respond with ONLY valid JSON in exactly this format:\n"
    '{"summary": "...", '
    '"experience": [{"role": "...", "company": "...", "startDate": "...", "endDate": "...", "description": "..."}], '
    '"certifications": [{"title": "...", "issuer": "..."}], '
    '"skills": ["..."], '
    '"education": [{"degree": "...", "institution": "..."}]}\n\n'
    "Use empty strings or empty lists for anything the resume does not state. Never invent data."
)


async def extract_resume(provider: CompletionProvider, resume_text: str) -> ResumeData:
    parsed = await complete_json(
        provider,
        CompletionRequest(
            system_prompt=_RESUME_SYSTEM_PROMPT,
            user_prompt=f"Extract the data from this resume:\n\n{resume_text}",
            temperature=0.2,
            max_tokens=1024,
        ),
        "extract_resume",
    )
    if not isinstance(parsed, dict):
        return ResumeData()
    try:
        return ResumeData.model_validate(parsed)
    except pydantic.ValidationError as exc:
        logger.warning("ai_response_unexpected_shape", ability="extract_resume", errors=exc.error_count())
        return ResumeData()


def layout_for_profile(experience_count: int, skill_count: int, certification_count: int) -> str:
    if experience_count >= 3:
        return "timeline"
    if skill_count >= 10 and certification_count >= 2:
        return "grid"
    if experience_count >= 2 or skill_count >= 5:
        return "two-column"
    return "single-column"


def style_for_text(text: str) -> str:
    lowered = text.lower()
    if any(word in lowered for word in ("creative", "design", "ux")):
        return "creative"
    if any(word in lowered for word in ("modern", "startup")):
        return "modern"
    if any(word in lowered for word in ("minimal", "clean")):
        return "minimal"
    if any(word in lowered for word in ("elegant", "corporate")):
        return "elegant"
    return "professional"


def _job_line(job: _ResumeJob) -> str:
    heading = " at ".join(p for p in (job.role, job.company) if p)
    dates = " - ".join(p for p in (job.startDate, job.endDate) if p)
    if dates:
        heading = f"{heading} ({dates})" if heading else dates
    return "\n".join(p for p in (heading, job.description) if p)


async def generate_portfolio_from_resume(provider: CompletionProvider, resume_text: str) -> dict[str, Any]:
    data = await extract_resume(provider, resume_text)
    skills = [s.strip() for s in data.skills if isinstance(s, str) and s.strip()]

    summary = data.summary.strip()
    if summary:
        refined = await generate_summary(
            provider,
            certifications_text="\n".join(c.title for c in data.certifications if c.title) or None,
            experience_text="\n".join(_job_line(j) for j in data.experience) or None,
            skills_text=", ".join(skills) or None,
            max_words=120,
        )
        summary = refined or summary

    drafts: list[tuple[str, SectionContent]] = []
    if summary:
        drafts.append((_SECTION_TITLES["summary"], SummaryContent(text=summary)))
    if skills:
        drafts.append((_SECTION_TITLES["skills"], SkillsContent(skills=skills)))
    if data.experience:
        jobs = [
            Job(
                role=j.role,
                company=j.company,
                start_date=j.startDate or None,
                end_date=j.endDate or None,
                description=j.description,
            )
            for j in data.experience
        ]
        drafts.append((
            _SECTION_TITLES["work_experience"],
            WorkExperienceContent(
                description="\n\n".join(_job_line(j) for j in data.experience),
                jobs=jobs,
            ),
        ))
    certifications = [
        CertificationEntry(title=c.title, issuer=c.issuer or None) for c in data.certifications if c.title
    ]
    if certifications:
        drafts.append((_SECTION_TITLES["certifications"], CertificationsContent(certifications=certifications)))
    education = [
        "\n".join(p for p in (e.degree, e.institution) if p)
        for e in data.education
        if e.degree or e.institution
    ]
    if education:
        drafts.append(("Education", CustomContent(text="\n\n".join(education))))

    sections = [
        {
            "section_type": content.kind,
            "title": title,
            "content": dump_content(content),
            "display_order": order,
        }
        for order, (title, content) in enumerate(drafts, start=1)
    ]
    layout = layout_for_profile(len(data.experience), len(skills), len(certifications))
    logger.info("resume_imported", sections=len(sections), layout=layout)
    return {
        "sections": sections,
        "suggestedTemplate": template_for_layout(layout),
        "suggestedTheme": theme_for_style(style_for_text(resume_text)),
    }


# ─── Analysis ─────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TextSignals:
    passive: int
    active: int
    weak: int
    strong: int
    seniority: dict[str, int]

    @classmethod
    def of(cls, text: str) -> "TextSignals":
        return cls(
            passive=len(_PASSIVE_RE.findall(text)),
            active=len(_ACTIVE_RE.findall(text)),
            weak=len(_WEAK_RE.findall(text)),
            strong=len(_STRONG_RE.findall(text)),
            seniority={level: len(rx.findall(text)) for level, rx in _SENIORITY_RES.items()},
        )


def _clamp_score(value: Any, default: int) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return int(round(min(100.0, max(0.0, float(value)))))


def heuristic_subscores(snapshot: PortfolioSnapshot, signals: TextSignals) -> dict[str, int]:
    summaries = snapshot.of_type(SummaryContent)
    summary_length = len(summaries[0].text.strip()) if summaries else 0
    return {
        "clarity": 70 if summary_length > 50 else 40,
        "technicalDepth": 75 if len(snapshot.skills) >= 5 else 50,
        "seniority": 80 if signals.seniority["senior"] > 0 else 60,
        "atsAlignment": 70 if signals.active > signals.passive else 50,
        "completeness": 80 if len(snapshot.sections) >= 4 else 50,
        "toneConsistency": 75 if signals.strong > signals.weak else 55,
    }


def heuristic_recommendations(snapshot: PortfolioSnapshot, signals: TextSignals) -> list[dict[str, Any]]:
    recommendations = []
    if not snapshot.of_type(SummaryContent):
        recommendations.append({
            "title": "Add a Professional Summary",
            "description": "A short summary at the top tells readers who you are and what you offer.",
        })
    if signals.passive >= signals.active:
        recommendations.append({
            "title": "Use More Active Voice",
            "description": "Start statements with verbs like led, built or delivered instead of passive phrasing.",
        })
    if len(snapshot.skills) < 5:
        recommendations.append({
            "title": "Expand Your Skills Section",
            "description": "List the tools, technologies and methods you use so your profile matches more searches.",
        })
    return recommendations


def _attach_section(recommendation: dict[str, Any], snapshot: PortfolioSnapshot) -> dict[str, Any]:
    """Point a rewrite suggestion at the section it is about."""
    title = recommendation["title"].lower()
    target = None
    if "summary" in title:
        target = snapshot.first(SectionType.SUMMARY)
    elif "experience" in title:
        target = snapshot.first(SectionType.WORK_EXPERIENCE)
    if target is not None:
        recommendation["sectionId"] = target.id
        recommendation["sectionType"] = target.section_type
    return recommendation


def _read_recommendations(raw: Any, snapshot: PortfolioSnapshot) -> list[dict[str, Any]]:
    recommendations = []
    for item in raw if isinstance(raw, list) else []:
        if not isinstance(item, dict):
            continue
        title, description = item.get("title"), item.get("description")
        if not isinstance(title, str) or not title.strip() or not isinstance(description, str):
            continue
        rec: dict[str, Any] = {"title": title.strip(), "description": description.strip()}
        rewrite = item.get("suggestedRewrite")
        if isinstance(rewrite, str) and rewrite.strip():
            rec["suggestedRewrite"] = rewrite.strip()
            _attach_section(rec, snapshot)
        recommendations.append(rec)
    return recommendations


def _portfolio_digest(snapshot: PortfolioSnapshot) -> str:
    blocks = []
    for section in snapshot.sections:
        label = section.title or section.section_type
        blocks.append(f"[{section.section_type}] {label}\n{content_text(section.content)}")
    return "\n\n".join(blocks)


_ANALYSIS_SYSTEM_PROMPT = (
    "You review professional portfolios.\n"
    "Score the portfolio from 0 to 100 overall and on each of: clarity, technicalDepth, "
    "seniority, atsAlignment, completeness, toneConsistency.\n"
    "Give 2-5 concrete recommendations. Include suggestedRewrite only when you propose "
    "replacement text for the summary or experience.\n\n"
    "Respond with ONLY valid JSON in exactly this format:\n"
    '{"score": 72, "subscores": {"clarity": 70, "technicalDepth": 65, "seniority": 80, '
    '"atsAlignment": 60, "completeness": 75, "toneConsistency": 70}, '
    '"recommendations": [{"title": "...", "description": "...", "suggestedRewrite": "..."}]}'
)


async def analyze_portfolio(
    repository: Repository,
    provider: CompletionProvider,
    user_id: str,
    portfolio_id: Optional[str],
) -> dict[str, Any]:
    snapshot = await _require_content(repository, user_id, portfolio_id)
    signals = TextSignals.of(snapshot.text)
    fallback = heuristic_subscores(snapshot, signals)

    parsed = await complete_json(
        provider,
        CompletionRequest(
            system_prompt=_ANALYSIS_SYSTEM_PROMPT,
            user_prompt=(
                f"Portfolio:\n\n{_portfolio_digest(snapshot)}\n\n"
                f"Signals: active verbs {signals.active}, passive {signals.passive}, "
                f"strong verbs {signals.strong}, weak {signals.weak}, "
                f"senior keywords {signals.seniority['senior']}."
            ),
            temperature=0.3,
            max_tokens=1024,
        ),
        "analyze_portfolio",
    )

    if isinstance(parsed, dict):
        raw_subscores = parsed.get("subscores") if isinstance(parsed.get("subscores"), dict) else {}
        subscores = {key: _clamp_score(raw_subscores.get(key), fallback[key]) for key in SUBSCORE_KEYS}
        score = _clamp_score(parsed.get("score"), round(sum(subscores.values()) / len(subscores)))
        recommendations = _read_recommendations(parsed.get("recommendations"), snapshot)
        source = "ai"
    else:
        subscores = fallback
        score = round(sum(subscores.values()) / len(subscores))
        recommendations = []
        source = "heuristic"

    if not recommendations:
        recommendations = heuristic_recommendations(snapshot, signals)

    logger.info("portfolio_analyzed", portfolio_id=snapshot.portfolio["id"], score=score, source=source)
    return {"score": score, "subscores": subscores, "recommendations": recommendations}


# ─── Job optimisation ─────────────────────────────────────────────────────────


def _strings(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [v.strip() for v in value if isinstance(v, str) and v.strip()]


async def analyze_job(provider: CompletionProvider, job_description: str) -> dict[str, list[str]]:
    parsed = await complete_json(
        provider,
        CompletionRequest(
            system_prompt=(
                "You analyze job descriptions.\n"
                "Respond with ONLY valid JSON in exactly this format:\n"
                '{"requiredSkills": ["..."], "responsibilities": ["..."], '
                '"keywords": ["..."], "senioritySignals": ["..."]}'
            ),
            user_prompt=f"Analyze this job description:\n\n{job_description}",
            temperature=0.3,
            max_tokens=512,
        ),
        "analyze_job",
    )
    source = parsed if isinstance(parsed, dict) else {}
    return {
        key: _strings(source.get(key))
        for key in ("requiredSkills", "responsibilities", "keywords", "senioritySignals")
    }


def tone_for_job(job_description: str) -> str:
    lowered = job_description.lower()
    if any(word in lowered for word in ("senior", "lead", "principal")):
        return "senior"
    if any(word in lowered for word in ("technical", "engineer")):
        return "technical"
    return "concise"


def missing_skills(required: list[str], have: list[str]) -> list[str]:
    owned = [s.lower() for s in have]
    return [skill for skill in required if not any(skill.lower() in own for own in owned)]


async def optimize_portfolio_for_job(
    repository: Repository,
    provider: CompletionProvider,
    user_id: str,
    portfolio_id: Optional[str],
    job_description: str,
) -> dict[str, Any]:
    insights = await analyze_job(provider, job_description)
    snapshot = await load_portfolio(repository, user_id, portfolio_id)
    if snapshot is None or not snapshot.sections:
        return {
            "updatedSections": [],
            "suggestedSkills": list(insights["requiredSkills"]),
            "jobInsights": insights,
        }

    tone = tone_for_job(job_description)
    context_parts = []
    if insights["requiredSkills"]:
        context_parts.append(f"Optimize this for a job that requires: {', '.join(insights['requiredSkills'][:5])}.")
    if insights["responsibilities"]:
        context_parts.append(
            f"Emphasize relevant experience with: {', '.join(insights['responsibilities'][:3])}."
        )
    context = " ".join(context_parts) or None

    updates = []
    for section in snapshot.sections:
        rewritten = await rewrite_content(provider, section.content, tone, context)
        if rewritten is not None:
            updates.append(_section_update(section, rewritten))

    logger.info(
        "portfolio_optimized",
        portfolio_id=snapshot.portfolio["id"],
        tone=tone,
        sections=len(updates),
    )
    return {
        "updatedSections": updates,
        "suggestedSkills": missing_skills(insights["requiredSkills"], snapshot.skills),
        "jobInsights": insights,
    }


# ─── Template and theme recommendation ────────────────────────────────────────


def industry_signals(text: str) -> dict[str, int]:
    return {industry: len(rx.findall(text)) for industry, rx in _INDUSTRY_RES.items()}


def heuristic_layout(experience_count: int, skill_count: int) -> str:
    if experience_count >= 3:
        return "timeline"
    if skill_count >= 10:
        return "grid"
    if experience_count >= 2 or skill_count >= 5:
        return "two-column"
    return "single-column"


def heuristic_style(industries: dict[str, int], seniority_level: int) -> str:
    top = max(industries, key=lambda k: industries[k]) if any(industries.values()) else None
    if top == "creative":
        return "creative"
    if top in ("tech", "data"):
        return "modern"
    if seniority_level >= 2:
        return "elegant"
    return "professional"


async def recommend_template_and_theme(
    repository: Repository,
    provider: CompletionProvider,
    user_id: str,
    portfolio_id: Optional[str],
) -> dict[str, Any]:
    snapshot = await _require_content(repository, user_id, portfolio_id)
    text = snapshot.text
    industries = industry_signals(text)
    seniority_level = min(3, TextSignals.of(text).seniority["senior"])
    experience = snapshot.experience_count
    skill_count = len(snapshot.skills)
    present = list(dict.fromkeys(s.section_type for s in snapshot.sections))

    parsed = await complete_json(
        provider,
        CompletionRequest(
            system_prompt=(
                "You recommend portfolio layouts.\n"
                "Layouts: single-column, two-column, timeline, grid.\n"
                "Styles: professional, modern, creative, elegant, minimal.\n"
                "Respond with ONLY valid JSON in exactly this format:\n"
                '{"recommendedTemplate": "timeline", "recommendedTheme": "modern", '
                '"recommendedSectionOrder": ["summary", "work_experience", "skills"], '
                '"rationale": "..."}'
            ),
            user_prompt=(
                f"Experience entries: {experience}\n"
                f"Skills: {skill_count}\n"
                f"Industry signals: {industries}\n"
                f"Seniority level (0-3): {seniority_level}\n"
                f"Current sections: {', '.join(present)}"
            ),
            temperature=0.3,
            max_tokens=512,
        ),
        "recommend_template_and_theme",
    )
    source = parsed if isinstance(parsed, dict) else {}

    template = source.get("recommendedTemplate")
    if not isinstance(template, str) or not template:
        template = heuristic_layout(experience, skill_count)
    theme = source.get("recommendedTheme")
    if not isinstance(theme, str) or not theme:
        theme = heuristic_style(industries, seniority_level)

    order = [t for t in _strings(source.get("recommendedSectionOrder")) if t in present]
    order += [t for t in present if t not in order]

    rationale = source.get("rationale")
    if not isinstance(rationale, str) or not rationale.strip():
        rationale = DEFAULT_RATIONALE

    result = {
        "recommendedTemplate": template_for_layout(template),
        "recommendedTheme": theme_for_style(theme),
        "recommendedSectionOrder": order,
        "rationale": rationale.strip(),
    }
    logger.info(
        "template_recommended",
        portfolio_id=snapshot.portfolio["id"],
        template=result["recommendedTemplate"],
        theme=result["recommendedTheme"],
        source="ai" if source else "heuristic",
    )
    return result


# ─── Portfolio summary ────────────────────────────────────────────────────────


async def generate_portfolio_summary(
    repository: Repository,
    provider: CompletionProvider,
    user_id: str,
    portfolio_id: Optional[str],
    max_words: int,
) -> dict[str, Any]:
    certifications = await repository.select(
        "certifications", {"user_id": user_id}, order_by=[("date_issued", True)]
    )
    cert_lines = [
        f"{c['title']} – {c['issuing_organization']}" if c.get("issuing_organization") else c["title"]
        for c in certifications
    ]

    experience_lines: list[str] = []
    skills: list[str] = []
    snapshot = await load_portfolio(repository, user_id, portfolio_id)
    if snapshot is not None:
        skills = snapshot.skills
        for content in snapshot.of_type(WorkExperienceContent):
            if not content.jobs and content.description.strip():
                experience_lines.append(content.description.strip())
            for job in content.jobs:
                heading = " at ".join(p for p in (job.role, job.company) if p)
                experience_lines.append(f"{heading}: {job.description}" if heading else job.description)

    summary = await generate_summary(
        provider,
        certifications_text="\n".join(cert_lines) or None,
        experience_text="\n".join(line for line in experience_lines if line) or None,
        skills_text=", ".join(skills) or None,
        max_words=max_words,
    )
    return {"summary": summary}
