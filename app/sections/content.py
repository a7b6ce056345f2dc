"""Section content — one payload shape per section type.

The stored ``content`` column is a JSON object whose shape depends on the
row's ``section_type``. Here it is a tagged union keyed by that type:

    summary          SummaryContent          {text}
    skills           SkillsContent           {skills: [str]}
    work_experience  WorkExperienceContent   {description, tags, jobs: [Job]}
    projects         ProjectsContent         {items: [Project]}
    certifications   CertificationsContent   {certifications: [CertificationEntry]}
    custom           CustomContent           {text}

parse_content() validates a raw dict against the variant for a type;
dump_content() returns the dict to store. Every helper that branches on the
variant ends in assert_never so adding a type fails loudly at each site.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union, assert_never

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class SectionType(str, Enum):
    SUMMARY = "summary"
    SKILLS = "skills"
    WORK_EXPERIENCE = "work_experience"
    PROJECTS = "projects"
    CERTIFICATIONS = "certifications"
    CUSTOM = "custom"


SECTION_TYPES: tuple[str, ...] = tuple(t.value for t in SectionType)


class _Content(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


# ─── Variant payloads ─────────────────────────────────────────────────────────


class SummaryContent(_Content):
    kind: Literal["summary"] = "summary"
    text: str = ""


class SkillsContent(_Content):
    kind: Literal["skills"] = "skills"
    skills: list[str] = Field(default_factory=list)


class Job(_Content):
    role: str = ""
    company: str = ""
    start_date: Optional[str] = Field(default=None, alias="startDate")
    end_date: Optional[str] = Field(default=None, alias="endDate")
    description: str = ""


class WorkExperienceContent(_Content):
    kind: Literal["work_experience"] = "work_experience"
    description: str = ""
    tags: list[str] = Field(default_factory=list)
    jobs: list[Job] = Field(default_factory=list)


class Project(_Content):
    title: str = ""
    description: str = ""
    technologies: list[str] = Field(default_factory=list)
    url: Optional[str] = None


class ProjectsContent(_Content):
    kind: Literal["projects"] = "projects"
    items: list[Project] = Field(default_factory=list)


class CertificationEntry(_Content):
    """A certification shown in a section.

    ``id`` links a stored certification; entries without one are free text
    (for example extracted from a résumé).
    """

    id: Optional[str] = None
    title: str = ""
    issuer: Optional[str] = None


class CertificationsContent(_Content):
    kind: Literal["certifications"] = "certifications"
    certifications: list[CertificationEntry] = Field(default_factory=list)


class CustomContent(_Content):
    kind: Literal["custom"] = "custom"
    text: str = ""


SectionContent = Annotated[
    Union[
        SummaryContent,
        SkillsContent,
        WorkExperienceContent,
        ProjectsContent,
        CertificationsContent,
        CustomContent,
    ],
    Field(discriminator="kind"),
]

_ADAPTER: TypeAdapter[Any] = TypeAdapter(SectionContent)


# ─── Parse / dump ─────────────────────────────────────────────────────────────


def parse_content(section_type: str, raw: Optional[dict[str, Any]]) -> SectionContent:
    """Validate ``raw`` against the variant for ``section_type``.

    Raises pydantic.ValidationError on a shape mismatch or unknown type.
    """
    payload = dict(raw or {})
    payload["kind"] = section_type
    return _ADAPTER.validate_python(payload)


def dump_content(content: SectionContent) -> dict[str, Any]:
    return content.model_dump(mode="json", exclude={"kind"}, by_alias=True, exclude_none=True)


def empty_content(section_type: str) -> SectionContent:
    return parse_content(section_type, {})


# ─── Exhaustive helpers ───────────────────────────────────────────────────────


def content_text(content: SectionContent) -> str:
    """Flatten a section's content into plain text (prompt building, word counts)."""
    if isinstance(content, (SummaryContent, CustomContent)):
        return content.text
    if isinstance(content, SkillsContent):
        return ", ".join(content.skills)
    if isinstance(content, WorkExperienceContent):
        parts = [content.description] if content.description else []
        for job in content.jobs:
            heading = " at ".join(p for p in (job.role, job.company) if p)
            parts.append(f"{heading}: {job.description}" if heading else job.description)
        return "\n".join(p for p in parts if p)
    if isinstance(content, ProjectsContent):
        return "\n".join(
            f"{item.title}: {item.description}" if item.description else item.title
            for item in content.items
        )
    if isinstance(content, CertificationsContent):
        return ", ".join(
            f"{c.title} – {c.issuer}" if c.issuer else c.title for c in content.certifications
        )
    assert_never(content)


def is_presentable(content: SectionContent) -> bool:
    """True when the section has anything worth showing on a public page."""
    if isinstance(content, (SummaryContent, CustomContent)):
        return bool(content.text.strip())
    if isinstance(content, SkillsContent):
        return any(s.strip() for s in content.skills)
    if isinstance(content, WorkExperienceContent):
        return bool(content.description.strip()) or bool(content.jobs)
    if isinstance(content, ProjectsContent):
        return bool(content.items)
    if isinstance(content, CertificationsContent):
        return bool(content.certifications)
    assert_never(content)
