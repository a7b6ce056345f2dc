"""Anonymous read-only view of a shared portfolio.

A portfolio is visible through its link token only while it is public and
not deleted. The view carries:
  - the portfolio's presentational fields (no owner id, no token)
  - its visible, non-empty sections in display order
  - the resolved template and theme (catalog defaults for unknown ids)

Certification sections only show the owner's public, non-deleted
certifications. Entries that link a stored certification are refreshed from
it; free-text entries are shown as written.
"""

from __future__ import annotations

from typing import Any

import pydantic

from app.catalog.registry import resolve_template, resolve_theme
from app.errors import ApiError
from app.sections.content import (
    CertificationEntry,
    CertificationsContent,
    dump_content,
    is_presentable,
    parse_content,
)
from app.storage.protocol import Repository
from app.utils.logger import get_logger

logger = get_logger(__name__)

_PUBLIC_PORTFOLIO_FIELDS = ("id", "title", "slug", "description", "template", "theme", "updated_at")
_PUBLIC_SECTION_FIELDS = ("id", "section_type", "title", "settings", "display_order")


async def _public_certifications(
    repo: Repository, owner_id: str, content: CertificationsContent
) -> CertificationsContent:
    linked_ids = [entry.id for entry in content.certifications if entry.id]
    public: dict[str, dict[str, Any]] = {}
    if linked_ids:
        rows = await repo.select(
            "certifications",
            {"user_id": owner_id, "id": linked_ids, "is_public": True},
        )
        public = {row["id"]: row for row in rows}

    entries: list[CertificationEntry] = []
    for entry in content.certifications:
        if entry.id is None:
            entries.append(entry)
        elif entry.id in public:
            cert = public[entry.id]
            entries.append(
                CertificationEntry(id=entry.id, title=cert["title"], issuer=cert["issuing_organization"])
            )
    return CertificationsContent(certifications=entries)


async def get_public_portfolio(repo: Repository, token: str) -> dict[str, Any]:
    rows = await repo.select("portfolios", {"public_link_token": token, "is_public": True})
    if not rows:
        raise ApiError("Portfolio not found", status=404, code="not_found")
    portfolio = rows[0]

    section_rows = await repo.select(
        "portfolio_sections",
        {"portfolio_id": portfolio["id"], "is_visible": True},
        order_by=[("display_order", False)],
    )

    sections: list[dict[str, Any]] = []
    for row in section_rows:
        try:
            content = parse_content(row["section_type"], row.get("content"))
        except pydantic.ValidationError as exc:
            logger.warning(
                "public_section_unreadable",
                section_id=row["id"],
                section_type=row["section_type"],
                errors=exc.error_count(),
            )
            continue
        if isinstance(content, CertificationsContent):
            content = await _public_certifications(repo, portfolio["user_id"], content)
        if not is_presentable(content):
            continue
        section = {field: row.get(field) for field in _PUBLIC_SECTION_FIELDS}
        section["content"] = dump_content(content)
        sections.append(section)

    logger.info("public_portfolio_viewed", portfolio_id=portfolio["id"], sections=len(sections))
    return {
        "portfolio": {field: portfolio.get(field) for field in _PUBLIC_PORTFOLIO_FIELDS},
        "sections": sections,
        "template": resolve_template(portfolio.get("template")).to_dict(),
        "theme": resolve_theme(portfolio.get("theme")).to_dict(),
    }
