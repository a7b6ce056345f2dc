"""Request schemas (pydantic v2).

Grouped by entity:
  portfolio       PortfolioCreate, PortfolioUpdate, TemplateUpdate, ThemeUpdate
  section         SectionCreate, SectionUpdate, SectionReorder
  certification   CertificationCreate, CertificationUpdate
  tag             TagCreate, TagUpdate, CertificationTagLink
  listing         ListQuery
  params          IdParams, TokenParams
  ai              ImproveTextRequest, GenerateSummaryRequest, SuggestTagsRequest,
                  ExperienceBulletsRequest, GenerateFromResumeRequest,
                  OptimizeForJobRequest, RewritePortfolioRequest, PortfolioTargetRequest

Update schemas declare their immutable fields and reject them with a
per-field issue when a client sends one. ``changes()`` returns only the
fields the client actually set.

AI request fields accept both camelCase (``maxWords``) and snake_case
(``max_words``) keys.
"""

from __future__ import annotations

import re
import uuid
from typing import Annotated, Any, ClassVar, Literal, Optional

from pydantic import (
    AfterValidator,
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)

from app.constants import (
    AI_DEFAULT_TAGS,
    AI_JOB_DESCRIPTION_MAX,
    AI_JOB_DESCRIPTION_MIN,
    AI_MAX_TAGS,
    AI_RESUME_MAX,
    AI_RESUME_MIN,
    AI_SUMMARY_DEFAULT_WORDS,
    AI_SUMMARY_MAX_WORDS,
    AI_SUMMARY_MIN_WORDS,
    AI_TEXT_MAX,
    CERT_CREDENTIAL_ID_MAX,
    CERT_DESCRIPTION_MAX,
    CERT_ORG_MAX,
    CERT_TITLE_MAX,
    LIST_LIMIT_DEFAULT,
    LIST_LIMIT_MAX,
    PORTFOLIO_DESCRIPTION_MAX,
    PORTFOLIO_TITLE_MAX,
    SECTION_TITLE_MAX,
    SLUG_MAX,
    TAG_NAME_MAX,
)

# ─── Field types ──────────────────────────────────────────────────────────────

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_URL_RE = re.compile(r"^https?://[^\s/$.?#].[^\s]*$", re.IGNORECASE)
_SLUG_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"
_HEX_COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"


def _check_uuid(value: str) -> str:
    try:
        return str(uuid.UUID(value))
    except (ValueError, AttributeError, TypeError):
        raise ValueError("Invalid ID format") from None


def _check_date(value: Optional[str]) -> Optional[str]:
    if value is not None and not _DATE_RE.match(value):
        raise ValueError("Invalid date format (YYYY-MM-DD)")
    return value


def _blank_to_none(value: Any) -> Any:
    return None if value == "" else value


def _check_url(value: Optional[str]) -> Optional[str]:
    if value is not None and not _URL_RE.match(value):
        raise ValueError("Invalid URL")
    return value


UUIDStr = Annotated[str, AfterValidator(_check_uuid)]
DateStr = Annotated[Optional[str], AfterValidator(_check_date)]
UrlStr = Annotated[Optional[str], BeforeValidator(_blank_to_none), AfterValidator(_check_url)]

SectionTypeName = Literal["summary", "skills", "work_experience", "projects", "certifications", "custom"]
CertificationType = Literal["pdf", "image", "external_link", "manual"]
Tone = Literal["concise", "formal", "casual", "senior", "technical"]


class _Schema(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class _UpdateSchema(_Schema):
    """Partial update. Subclasses list fields a client may never change."""

    IMMUTABLE_FIELDS: ClassVar[frozenset[str]] = frozenset()

    @field_validator("*", mode="before")
    @classmethod
    def _reject_immutable(cls, value: Any, info: ValidationInfo) -> Any:
        if info.field_name in cls.IMMUTABLE_FIELDS:
            raise ValueError("Field is immutable and cannot be updated")
        return value

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude=set(self.IMMUTABLE_FIELDS))


# ─── Portfolio ────────────────────────────────────────────────────────────────


class PortfolioCreate(_Schema):
    title: str = Field(min_length=1, max_length=PORTFOLIO_TITLE_MAX)
    description: Optional[str] = Field(default=None, max_length=PORTFOLIO_DESCRIPTION_MAX)
    is_public: bool = False
    template: Optional[str] = None
    theme: Optional[str] = None
    slug: Optional[str] = Field(default=None, max_length=SLUG_MAX, pattern=_SLUG_PATTERN)


class PortfolioUpdate(_UpdateSchema):
    IMMUTABLE_FIELDS: ClassVar[frozenset[str]] = frozenset(
        {"id", "user_id", "public_link_token", "is_deleted", "created_at", "updated_at"}
    )

    title: Optional[str] = Field(default=None, min_length=1, max_length=PORTFOLIO_TITLE_MAX)
    description: Optional[str] = Field(default=None, max_length=PORTFOLIO_DESCRIPTION_MAX)
    is_public: Optional[bool] = None
    template: Optional[str] = None
    theme: Optional[str] = None
    slug: Optional[str] = Field(default=None, max_length=SLUG_MAX, pattern=_SLUG_PATTERN)

    id: Any = None
    user_id: Any = None
    public_link_token: Any = None
    is_deleted: Any = None
    created_at: Any = None
    updated_at: Any = None


class TemplateUpdate(_Schema):
    template: str = Field(min_length=1)


class ThemeUpdate(_Schema):
    theme: str = Field(min_length=1)


# ─── Section ──────────────────────────────────────────────────────────────────


class SectionCreate(_Schema):
    portfolio_id: UUIDStr
    section_type: SectionTypeName
    title: Optional[str] = Field(default=None, max_length=SECTION_TITLE_MAX)
    content: Optional[dict[str, Any]] = None
    settings: Optional[dict[str, Any]] = None
    is_visible: bool = True


class SectionUpdate(_UpdateSchema):
    IMMUTABLE_FIELDS: ClassVar[frozenset[str]] = frozenset(
        {"id", "portfolio_id", "section_type", "display_order", "created_at", "updated_at"}
    )

    title: Optional[str] = Field(default=None, max_length=SECTION_TITLE_MAX)
    content: Optional[dict[str, Any]] = None
    settings: Optional[dict[str, Any]] = None
    is_visible: Optional[bool] = None

    id: Any = None
    portfolio_id: Any = None
    section_type: Any = None
    display_order: Any = None
    created_at: Any = None
    updated_at: Any = None


class SectionReorder(_Schema):
    portfolio_id: UUIDStr
    section_ids: list[UUIDStr]


# ─── Certification ────────────────────────────────────────────────────────────


def certification_type_issue(
    certification_type: Optional[str],
    file_path: Optional[str],
    external_url: Optional[str],
) -> Optional[tuple[str, str]]:
    """Return (field, message) when the type's required reference is missing."""
    if certification_type in ("pdf", "image") and not file_path:
        return "file_path", f"file_path is required for {certification_type} certifications"
    if certification_type == "external_link" and not external_url:
        return "external_url", "external_url is required for external_link certifications"
    return None


class CertificationCreate(_Schema):
    title: str = Field(min_length=1, max_length=CERT_TITLE_MAX)
    issuing_organization: str = Field(min_length=1, max_length=CERT_ORG_MAX)
    certification_type: CertificationType
    date_issued: DateStr = None
    expiration_date: DateStr = None
    credential_id: Optional[str] = Field(default=None, max_length=CERT_CREDENTIAL_ID_MAX)
    verification_url: UrlStr = None
    description: Optional[str] = Field(default=None, max_length=CERT_DESCRIPTION_MAX)
    is_public: bool = True
    external_url: UrlStr = None
    file_path: Optional[str] = None
    file_type: Optional[str] = None
    tag_ids: Optional[list[UUIDStr]] = None

    @model_validator(mode="after")
    def _require_type_reference(self) -> "CertificationCreate":
        issue = certification_type_issue(self.certification_type, self.file_path, self.external_url)
        if issue is not None:
            raise ValueError(issue[1])
        return self


class CertificationUpdate(_UpdateSchema):
    IMMUTABLE_FIELDS: ClassVar[frozenset[str]] = frozenset(
        {"certification_type", "user_id", "id", "is_deleted", "created_at", "updated_at"}
    )

    title: Optional[str] = Field(default=None, min_length=1, max_length=CERT_TITLE_MAX)
    issuing_organization: Optional[str] = Field(default=None, min_length=1, max_length=CERT_ORG_MAX)
    date_issued: DateStr = None
    expiration_date: DateStr = None
    credential_id: Optional[str] = Field(default=None, max_length=CERT_CREDENTIAL_ID_MAX)
    verification_url: UrlStr = None
    description: Optional[str] = Field(default=None, max_length=CERT_DESCRIPTION_MAX)
    is_public: Optional[bool] = None
    external_url: UrlStr = None
    file_path: Optional[str] = None
    file_type: Optional[str] = None
    tag_ids: Optional[list[UUIDStr]] = None

    certification_type: Any = None
    user_id: Any = None
    id: Any = None
    is_deleted: Any = None
    created_at: Any = None
    updated_at: Any = None


# ─── Tag ──────────────────────────────────────────────────────────────────────


class TagCreate(_Schema):
    name: str = Field(min_length=1, max_length=TAG_NAME_MAX)
    color: Optional[str] = Field(default=None, pattern=_HEX_COLOR_PATTERN)


class TagUpdate(_UpdateSchema):
    IMMUTABLE_FIELDS: ClassVar[frozenset[str]] = frozenset({"id", "user_id", "created_at"})

    name: Optional[str] = Field(default=None, min_length=1, max_length=TAG_NAME_MAX)
    color: Optional[str] = Field(default=None, pattern=_HEX_COLOR_PATTERN)

    id: Any = None
    user_id: Any = None
    created_at: Any = None


class CertificationTagLink(_Schema):
    certification_id: UUIDStr
    tag_id: UUIDStr


# ─── Listing / params ─────────────────────────────────────────────────────────


class ListQuery(_Schema):
    # Strict: query strings are coerced before validation, never by pydantic
    model_config = ConfigDict(extra="ignore", strict=True)

    is_public: Optional[bool] = None
    limit: int = Field(default=LIST_LIMIT_DEFAULT, ge=1, le=LIST_LIMIT_MAX)
    offset: int = Field(default=0, ge=0)


class IdParams(_Schema):
    id: UUIDStr


class TokenParams(_Schema):
    token: str = Field(min_length=8, max_length=64, pattern=r"^[A-Za-z0-9_-]+$")


# ─── AI ───────────────────────────────────────────────────────────────────────


def _alias(camel: str, snake: str) -> AliasChoices:
    return AliasChoices(camel, snake)


class ImproveTextRequest(_Schema):
    text: str = Field(min_length=1, max_length=AI_TEXT_MAX)
    tone: Tone


class GenerateSummaryRequest(_Schema):
    certifications_text: Optional[str] = Field(
        default=None,
        max_length=AI_TEXT_MAX,
        validation_alias=_alias("certificationsText", "certifications_text"),
    )
    experience_text: Optional[str] = Field(
        default=None,
        max_length=AI_TEXT_MAX,
        validation_alias=_alias("experienceText", "experience_text"),
    )
    skills_text: Optional[str] = Field(
        default=None,
        max_length=AI_TEXT_MAX,
        validation_alias=_alias("skillsText", "skills_text"),
    )
    max_words: int = Field(
        default=AI_SUMMARY_DEFAULT_WORDS,
        ge=AI_SUMMARY_MIN_WORDS,
        le=AI_SUMMARY_MAX_WORDS,
        validation_alias=_alias("maxWords", "max_words"),
    )


class SuggestTagsRequest(_Schema):
    text: str = Field(min_length=1, max_length=AI_TEXT_MAX)
    max_tags: int = Field(
        default=AI_DEFAULT_TAGS,
        ge=1,
        le=AI_MAX_TAGS,
        validation_alias=_alias("maxTags", "max_tags"),
    )


class ExperienceBulletsRequest(_Schema):
    description: str = Field(max_length=AI_TEXT_MAX)

    @field_validator("description")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Description is required")
        return value


class GenerateFromResumeRequest(_Schema):
    resume_text: str = Field(
        min_length=AI_RESUME_MIN,
        max_length=AI_RESUME_MAX,
        validation_alias=_alias("resumeText", "resume_text"),
    )


class PortfolioTargetRequest(_Schema):
    """Body for agents that act on one portfolio (the most recent when omitted)."""

    portfolio_id: Optional[UUIDStr] = Field(
        default=None, validation_alias=_alias("portfolioId", "portfolio_id")
    )


class OptimizeForJobRequest(PortfolioTargetRequest):
    job_description: str = Field(
        min_length=AI_JOB_DESCRIPTION_MIN,
        max_length=AI_JOB_DESCRIPTION_MAX,
        validation_alias=_alias("jobDescription", "job_description"),
    )


class RewritePortfolioRequest(PortfolioTargetRequest):
    tone: Tone


class PortfolioSummaryRequest(PortfolioTargetRequest):
    max_words: int = Field(
        default=120,
        ge=AI_SUMMARY_MIN_WORDS,
        le=AI_SUMMARY_MAX_WORDS,
        validation_alias=_alias("maxWords", "max_words"),
    )
