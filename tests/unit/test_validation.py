"""Unit tests for request validation (app/validation).

  - every violation is reported in one pass (2 missing + 1 wrong type → 3 issues)
  - update schemas reject immutable fields per field
  - certification type rule: pdf/image need file_path, external_link needs external_url
  - ids must be UUIDs; query strings are coerced before strict validation
  - AI requests accept camelCase and snake_case keys
"""

from __future__ import annotations

import pytest

from app.errors import ValidationError
from app.validation import coerce_query_params, validate, validate_params
from app.validation.schemas import (
    CertificationCreate,
    CertificationUpdate,
    GenerateSummaryRequest,
    IdParams,
    ListQuery,
    OptimizeForJobRequest,
    PortfolioCreate,
    PortfolioUpdate,
    SectionCreate,
    SectionReorder,
    SectionUpdate,
    SuggestTagsRequest,
    TagCreate,
    TokenParams,
)

PORTFOLIO_ID = "33333333-3333-4333-8333-333333333333"


def _paths(exc: ValidationError) -> list[str]:
    return sorted(issue.path for issue in exc.issues)


class TestAggregation:
    def test_two_missing_and_one_wrong_type_give_three_issues(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate({"is_visible": "sometimes"}, SectionCreate)

        exc = exc_info.value
        assert exc.status == 400
        assert exc.code == "validation_error"
        assert len(exc.issues) == 3
        assert _paths(exc) == ["is_visible", "portfolio_id", "section_type"]

    def test_message_lists_each_issue(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate({}, TagCreate)
        assert str(exc_info.value) == "Validation failed: name: Field required"

    def test_nested_list_paths(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate({"portfolio_id": PORTFOLIO_ID, "section_ids": [PORTFOLIO_ID, "nope"]}, SectionReorder)
        assert _paths(exc_info.value) == ["section_ids.1"]
        assert exc_info.value.issues[0].message == "Invalid ID format"

    def test_valid_payload_passes(self) -> None:
        body = validate({"title": "My work", "slug": "my-work"}, PortfolioCreate)
        assert body.is_public is False
        assert body.slug == "my-work"

    @pytest.mark.parametrize("slug", ["My Work", "-lead", "trail-", "a--b"])
    def test_bad_slugs(self, slug: str) -> None:
        with pytest.raises(ValidationError):
            validate({"title": "t", "slug": slug}, PortfolioCreate)


class TestImmutableFields:
    def test_portfolio_update_rejects_owner_and_token(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate({"title": "ok", "user_id": "x", "public_link_token": "abc"}, PortfolioUpdate)
        assert _paths(exc_info.value) == ["public_link_token", "user_id"]
        assert all(i.message == "Field is immutable and cannot be updated" for i in exc_info.value.issues)

    def test_section_update_rejects_order_and_type(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate({"display_order": 3, "section_type": "custom"}, SectionUpdate)
        assert _paths(exc_info.value) == ["display_order", "section_type"]

    def test_certification_type_is_immutable(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate({"certification_type": "manual"}, CertificationUpdate)
        assert _paths(exc_info.value) == ["certification_type"]

    def test_changes_only_contains_sent_fields(self) -> None:
        update = validate({"description": None, "is_public": True}, PortfolioUpdate)
        assert update.changes() == {"description": None, "is_public": True}


class TestCertificationRules:
    def _base(self, **extra: object) -> dict:
        return {"title": "CKA", "issuing_organization": "CNCF", **extra}

    @pytest.mark.parametrize("cert_type", ["pdf", "image"])
    def test_file_types_need_file_path(self, cert_type: str) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate(self._base(certification_type=cert_type), CertificationCreate)
        assert "file_path is required" in str(exc_info.value)

    def test_external_link_needs_url(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate(self._base(certification_type="external_link"), CertificationCreate)
        assert "external_url is required" in str(exc_info.value)

    def test_manual_needs_nothing(self) -> None:
        body = validate(self._base(certification_type="manual"), CertificationCreate)
        assert body.is_public is True

    def test_blank_url_is_none_and_bad_date_rejected(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate(
                self._base(certification_type="manual", verification_url="", date_issued="01/02/2024"),
                CertificationCreate,
            )
        assert _paths(exc_info.value) == ["date_issued"]

    def test_bad_url_rejected(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate(
                self._base(certification_type="external_link", external_url="ftp://nope"),
                CertificationCreate,
            )
        assert "external_url" in _paths(exc_info.value)


class TestParamsAndQuery:
    def test_id_is_normalised(self) -> None:
        assert validate_params({"id": PORTFOLIO_ID.upper()}, IdParams).id == PORTFOLIO_ID

    def test_bad_id_is_400(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_params({"id": "42"}, IdParams)
        assert exc_info.value.issues[0].message == "Invalid ID format"

    @pytest.mark.parametrize("token", ["short", "has space in it", "x" * 65])
    def test_bad_tokens(self, token: str) -> None:
        with pytest.raises(ValidationError):
            validate_params({"token": token}, TokenParams)

    def test_query_coercion(self) -> None:
        coerced = coerce_query_params({"limit": "10", "offset": "0", "is_public": "true", "q": "x1"})
        assert coerced == {"limit": 10, "offset": 0, "is_public": True, "q": "x1"}
        query = validate(coerced, ListQuery)
        assert (query.limit, query.offset, query.is_public) == (10, 0, True)

    def test_query_bounds(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate(coerce_query_params({"limit": "0", "offset": "-1"}), ListQuery)
        assert _paths(exc_info.value) == ["limit", "offset"]

    def test_query_is_strict(self) -> None:
        with pytest.raises(ValidationError):
            validate({"limit": "ten"}, ListQuery)


class TestAiRequests:
    def test_camel_and_snake_case(self) -> None:
        camel = validate({"skillsText": "Python", "maxWords": 80}, GenerateSummaryRequest)
        snake = validate({"skills_text": "Python", "max_words": 80}, GenerateSummaryRequest)
        assert camel.max_words == snake.max_words == 80
        assert camel.skills_text == snake.skills_text == "Python"

    def test_defaults_and_bounds(self) -> None:
        assert validate({"text": "python dev"}, SuggestTagsRequest).max_tags == 5
        with pytest.raises(ValidationError):
            validate({"text": "python dev", "maxTags": 21}, SuggestTagsRequest)

    def test_job_description_minimum(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate({"jobDescription": "too short"}, OptimizeForJobRequest)
        issues = exc_info.value.issues
        assert len(issues) == 1
        assert issues[0].path in ("jobDescription", "job_description")
