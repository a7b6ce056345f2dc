"""Portfolio operations, always scoped to the calling user.

A portfolio owned by someone else is reported exactly like a missing one
(404), so callers cannot discover other users' ids.
"""

from __future__ import annotations

import re
import secrets
from typing import Any, Optional

from app.catalog.registry import get_template, get_theme
from app.constants import DEFAULT_TEMPLATE_ID, DEFAULT_THEME_ID, SLUG_MAX
from app.errors import ApiError, Issue, ValidationError, not_found
from app.storage.protocol import Repository, UniqueViolation
from app.utils.logger import get_logger
from app.validation.schemas import ListQuery, PortfolioCreate, PortfolioUpdate

logger = get_logger(__name__)

_TABLE = "portfolios"
_SLUG_STRIP_RE = re.compile(r"[^a-z0-9]+")
_SLUG_ATTEMPTS = 50
_PUBLIC_LINK_BYTES = 16


def slugify(title: str) -> str:
    slug = _SLUG_STRIP_RE.sub("-", title.lower()).strip("-")
    return slug[:SLUG_MAX].rstrip("-") or "portfolio"


def _slug_candidate(base: str, n: int) -> str:
    if n == 1:
        return base
    suffix = f"-{n}"
    return base[: SLUG_MAX - len(suffix)].rstrip("-") + suffix


def _check_catalog_ids(template: Optional[str], theme: Optional[str]) -> None:
    issues: list[Issue] = []
    if template is not None and get_template(template) is None:
        issues.append(Issue("template", f"Unknown template: {template}"))
    if theme is not None and get_theme(theme) is None:
        issues.append(Issue("theme", f"Unknown theme: {theme}"))
    if issues:
        raise ValidationError(issues)


def _slug_taken(slug: str) -> ApiError:
    return ApiError(f"Slug '{slug}' is already in use", status=409, code="slug_taken")


class PortfolioService:
    def __init__(self, repository: Repository) -> None:
        self._repo = repository

    # ── Reads ─────────────────────────────────────────────────────────────────

    async def list_for_user(self, user_id: str, query: ListQuery) -> list[dict[str, Any]]:
        where: dict[str, Any] = {"user_id": user_id}
        if query.is_public is not None:
            where["is_public"] = query.is_public
        return await self._repo.select(
            _TABLE,
            where,
            order_by=[("updated_at", True)],
            limit=query.limit,
            offset=query.offset,
        )

    async def get(self, user_id: str, portfolio_id: str) -> dict[str, Any]:
        rows = await self._repo.select(_TABLE, {"id": portfolio_id, "user_id": user_id})
        if not rows:
            raise not_found("Portfolio")
        return rows[0]

    async def most_recent(self, user_id: str) -> Optional[dict[str, Any]]:
        rows = await self._repo.select(
            _TABLE, {"user_id": user_id}, order_by=[("updated_at", True)], limit=1
        )
        return rows[0] if rows else None

    async def resolve(self, user_id: str, portfolio_id: Optional[str]) -> Optional[dict[str, Any]]:
        """The named portfolio, else the caller's most recently updated one."""
        if portfolio_id is not None:
            return await self.get(user_id, portfolio_id)
        return await self.most_recent(user_id)

    # ── Writes ────────────────────────────────────────────────────────────────

    async def create(self, user_id: str, body: PortfolioCreate) -> dict[str, Any]:
        _check_catalog_ids(body.template, body.theme)
        values = {
            "user_id": user_id,
            "title": body.title,
            "description": body.description,
            "is_public": body.is_public,
            "template": body.template or DEFAULT_TEMPLATE_ID,
            "theme": body.theme or DEFAULT_THEME_ID,
        }

        if body.slug is not None:
            try:
                row = await self._repo.insert(_TABLE, {**values, "slug": body.slug})
            except UniqueViolation as exc:
                raise _slug_taken(body.slug) from exc
            logger.info("portfolio_created", portfolio_id=row["id"], slug=row["slug"])
            return row

        base = slugify(body.title)
        for n in range(1, _SLUG_ATTEMPTS + 1):
            slug = _slug_candidate(base, n)
            try:
                row = await self._repo.insert(_TABLE, {**values, "slug": slug})
            except UniqueViolation:
                continue
            logger.info("portfolio_created", portfolio_id=row["id"], slug=slug)
            return row

        raise _slug_taken(base)

    async def _update(self, user_id: str, portfolio_id: str, values: dict[str, Any]) -> dict[str, Any]:
        rows = await self._repo.update(_TABLE, {"id": portfolio_id, "user_id": user_id}, values)
        if not rows:
            raise not_found("Portfolio")
        return rows[0]

    async def update(self, user_id: str, portfolio_id: str, body: PortfolioUpdate) -> dict[str, Any]:
        changes = body.changes()
        if not changes:
            raise ApiError("No valid fields to update", status=400, code="no_fields")
        # NOT NULL columns: an explicit null means "leave as is"
        for column in ("title", "is_public", "template", "theme", "slug"):
            if column in changes and changes[column] is None:
                del changes[column]
        if not changes:
            raise ApiError("No valid fields to update", status=400, code="no_fields")

        _check_catalog_ids(changes.get("template"), changes.get("theme"))
        try:
            row = await self._update(user_id, portfolio_id, changes)
        except UniqueViolation as exc:
            raise _slug_taken(str(changes.get("slug"))) from exc
        logger.info("portfolio_updated", portfolio_id=portfolio_id, fields=sorted(changes))
        return row

    async def set_template(self, user_id: str, portfolio_id: str, template: str) -> dict[str, Any]:
        _check_catalog_ids(template, None)
        return await self._update(user_id, portfolio_id, {"template": template})

    async def set_theme(self, user_id: str, portfolio_id: str, theme: str) -> dict[str, Any]:
        _check_catalog_ids(None, theme)
        return await self._update(user_id, portfolio_id, {"theme": theme})

    async def delete(self, user_id: str, portfolio_id: str) -> None:
        """Soft delete: the row stays, every default read skips it."""
        await self._update(user_id, portfolio_id, {"is_deleted": True})
        logger.info("portfolio_deleted", portfolio_id=portfolio_id)

    async def create_public_link(self, user_id: str, portfolio_id: str) -> dict[str, Any]:
        token = secrets.token_urlsafe(_PUBLIC_LINK_BYTES)
        row = await self._update(user_id, portfolio_id, {"public_link_token": token})
        logger.info("public_link_created", portfolio_id=portfolio_id)
        return row

    async def revoke_public_link(self, user_id: str, portfolio_id: str) -> dict[str, Any]:
        row = await self._update(user_id, portfolio_id, {"public_link_token": None})
        logger.info("public_link_revoked", portfolio_id=portfolio_id)
        return row
