"""Section operations for the owner of the parent portfolio.

Content is validated against the variant for the section's type before it
is stored; a section's type never changes after creation.
"""

from __future__ import annotations

from typing import Any, Optional

import pydantic

from app.errors import ApiError, Issue, ValidationError, issues_from_pydantic, not_found
from app.portfolios.service import PortfolioService
from app.sections.content import dump_content, parse_content
from app.sections.ordering import SectionOrdering
from app.storage.protocol import Repository
from app.utils.logger import get_logger
from app.validation.schemas import SectionCreate, SectionReorder, SectionUpdate

logger = get_logger(__name__)

_TABLE = "portfolio_sections"


def validated_content(section_type: str, raw: Optional[dict[str, Any]]) -> dict[str, Any]:
    """Validate raw content for a section type; issues are reported under ``content.``."""
    try:
        return dump_content(parse_content(section_type, raw))
    except pydantic.ValidationError as exc:
        issues: list[Issue] = []
        for issue in issues_from_pydantic(exc.errors()):
            # Union errors are located under the variant tag first
            path = issue.path.removeprefix(section_type).lstrip(".")
            issues.append(Issue(f"content.{path}" if path else "content", issue.message))
        raise ValidationError(issues) from exc


class SectionService:
    def __init__(self, repository: Repository) -> None:
        self._repo = repository
        self._portfolios = PortfolioService(repository)
        self._ordering = SectionOrdering(repository)

    async def _owned_section(self, user_id: str, section_id: str) -> Optional[dict[str, Any]]:
        rows = await self._repo.select(_TABLE, {"id": section_id})
        if not rows:
            return None
        section = rows[0]
        owners = await self._repo.select(
            "portfolios", {"id": section["portfolio_id"], "user_id": user_id}
        )
        return section if owners else None

    async def create(self, user_id: str, body: SectionCreate) -> dict[str, Any]:
        await self._portfolios.get(user_id, body.portfolio_id)
        values = {
            "section_type": body.section_type,
            "title": body.title,
            "content": validated_content(body.section_type, body.content),
            "settings": body.settings or {},
            "is_visible": body.is_visible,
        }
        return await self._ordering.append(body.portfolio_id, values)

    async def update(self, user_id: str, section_id: str, body: SectionUpdate) -> dict[str, Any]:
        changes = body.changes()
        if not changes:
            raise ApiError("No valid fields to update", status=400, code="no_fields")

        section = await self._owned_section(user_id, section_id)
        if section is None:
            raise not_found("Section")

        if "content" in changes:
            changes["content"] = validated_content(section["section_type"], changes["content"])
        if "settings" in changes and changes["settings"] is None:
            changes["settings"] = {}
        if "is_visible" in changes and changes["is_visible"] is None:
            del changes["is_visible"]
            if not changes:
                raise ApiError("No valid fields to update", status=400, code="no_fields")

        rows = await self._repo.update(_TABLE, {"id": section_id}, changes)
        if not rows:
            raise not_found("Section")
        logger.info("section_updated", section_id=section_id, fields=sorted(changes))
        return rows[0]

    async def delete(self, user_id: str, section_id: str) -> bool:
        """Remove a section and compact the orders behind it.

        A missing section (already deleted, or someone else's) is a no-op.
        """
        section = await self._owned_section(user_id, section_id)
        if section is None:
            return False
        return await self._ordering.delete(section["portfolio_id"], section_id)

    async def reorder(self, user_id: str, body: SectionReorder) -> list[dict[str, Any]]:
        await self._portfolios.get(user_id, body.portfolio_id)
        return await self._ordering.reorder(body.portfolio_id, body.section_ids)
