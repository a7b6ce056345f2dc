"""Certification and certification-tag operations.

Reads embed each certification's tags::

    {..., "tags": [{"id", "name", "color"}, ...]}

Deleting a certification is a soft delete; its tag links are removed at the
same time so tag listings never point at hidden certifications.
"""

from __future__ import annotations

from typing import Any, Optional

from app.errors import ApiError, Issue, ValidationError, not_found
from app.storage.protocol import Repository, UniqueViolation
from app.utils.logger import get_logger
from app.validation.schemas import (
    CertificationCreate,
    CertificationTagLink,
    CertificationUpdate,
    ListQuery,
    certification_type_issue,
)

logger = get_logger(__name__)

_TABLE = "certifications"
_LINKS = "certification_tags"
_TAG_FIELDS = ("id", "name", "color")


class CertificationService:
    def __init__(self, repository: Repository) -> None:
        self._repo = repository

    # ── Tag embedding ─────────────────────────────────────────────────────────

    async def _with_tags(self, user_id: str, certifications: list[dict[str, Any]]) -> list[dict[str, Any]]:
        if not certifications:
            return []
        links = await self._repo.select(
            _LINKS, {"certification_id": [c["id"] for c in certifications]}
        )
        tags: dict[str, dict[str, Any]] = {}
        if links:
            rows = await self._repo.select(
                "tags",
                {"id": sorted({link["tag_id"] for link in links}), "user_id": user_id},
                order_by=[("name", False)],
            )
            tags = {row["id"]: {field: row.get(field) for field in _TAG_FIELDS} for row in rows}

        by_cert: dict[str, list[str]] = {}
        for link in links:
            by_cert.setdefault(link["certification_id"], []).append(link["tag_id"])
        return [
            {
                **cert,
                "tags": sorted(
                    (tags[tag_id] for tag_id in by_cert.get(cert["id"], []) if tag_id in tags),
                    key=lambda tag: tag["name"],
                ),
            }
            for cert in certifications
        ]

    async def _owned(self, user_id: str, certification_id: str) -> Optional[dict[str, Any]]:
        rows = await self._repo.select(_TABLE, {"id": certification_id, "user_id": user_id})
        return rows[0] if rows else None

    async def _check_tags(self, user_id: str, tag_ids: list[str]) -> None:
        if not tag_ids:
            return
        rows = await self._repo.select("tags", {"id": tag_ids, "user_id": user_id})
        missing = set(tag_ids) - {row["id"] for row in rows}
        if missing:
            raise ValidationError([Issue("tag_ids", f"Unknown tag id(s): {', '.join(sorted(missing))}")])

    async def _replace_tags(self, certification_id: str, tag_ids: list[str]) -> None:
        links = await self._repo.select(_LINKS, {"certification_id": certification_id})
        current = {link["tag_id"] for link in links}
        desired = set(tag_ids)
        stale = sorted(current - desired)
        if stale:
            await self._repo.delete(_LINKS, {"certification_id": certification_id, "tag_id": stale})
        for tag_id in sorted(desired - current):
            try:
                await self._repo.insert(_LINKS, {"certification_id": certification_id, "tag_id": tag_id})
            except UniqueViolation:
                continue

    # ── Reads ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _list_where(user_id: str, query: ListQuery) -> dict[str, Any]:
        where: dict[str, Any] = {"user_id": user_id}
        if query.is_public is not None:
            where["is_public"] = query.is_public
        return where

    async def list_for_user(self, user_id: str, query: ListQuery) -> list[dict[str, Any]]:
        rows = await self._repo.select(
            _TABLE,
            self._list_where(user_id, query),
            order_by=[("date_issued", True), ("created_at", True)],
            limit=query.limit,
            offset=query.offset,
        )
        return await self._with_tags(user_id, rows)

    async def count_for_user(self, user_id: str, query: ListQuery) -> int:
        """Total matching certifications; limit and offset do not apply."""
        return await self._repo.count(_TABLE, self._list_where(user_id, query))

    async def get(self, user_id: str, certification_id: str) -> dict[str, Any]:
        cert = await self._owned(user_id, certification_id)
        if cert is None:
            raise not_found("Certification")
        return (await self._with_tags(user_id, [cert]))[0]

    # ── Writes ────────────────────────────────────────────────────────────────

    async def create(self, user_id: str, body: CertificationCreate) -> dict[str, Any]:
        tag_ids = body.tag_ids or []
        await self._check_tags(user_id, tag_ids)
        values = body.model_dump(exclude={"tag_ids"})
        cert = await self._repo.insert(_TABLE, {**values, "user_id": user_id})
        if tag_ids:
            await self._replace_tags(cert["id"], tag_ids)
        logger.info("certification_created", certification_id=cert["id"], tags=len(tag_ids))
        return (await self._with_tags(user_id, [cert]))[0]

    async def update(
        self, user_id: str, certification_id: str, body: CertificationUpdate
    ) -> dict[str, Any]:
        changes = body.changes()
        tag_ids: Optional[list[str]] = changes.pop("tag_ids", None)
        if "is_public" in changes and changes["is_public"] is None:
            del changes["is_public"]
        for column in ("title", "issuing_organization"):
            if column in changes and changes[column] is None:
                del changes[column]
        if not changes and tag_ids is None:
            raise ApiError("No valid fields to update", status=400, code="no_fields")

        cert = await self._owned(user_id, certification_id)
        if cert is None:
            raise not_found("Certification")

        merged = {**cert, **changes}
        issue = certification_type_issue(
            cert["certification_type"], merged.get("file_path"), merged.get("external_url")
        )
        if issue is not None:
            raise ValidationError([Issue(*issue)])

        if tag_ids is not None:
            await self._check_tags(user_id, tag_ids)
        if changes:
            rows = await self._repo.update(_TABLE, {"id": certification_id, "user_id": user_id}, changes)
            if not rows:
                raise not_found("Certification")
            cert = rows[0]
        if tag_ids is not None:
            await self._replace_tags(certification_id, tag_ids)

        logger.info(
            "certification_updated",
            certification_id=certification_id,
            fields=sorted(changes),
            tags_replaced=tag_ids is not None,
        )
        return (await self._with_tags(user_id, [cert]))[0]

    async def delete(self, user_id: str, certification_id: str) -> None:
        rows = await self._repo.update(
            _TABLE, {"id": certification_id, "user_id": user_id}, {"is_deleted": True}
        )
        if not rows:
            raise not_found("Certification")
        await self._repo.delete(_LINKS, {"certification_id": certification_id})
        logger.info("certification_deleted", certification_id=certification_id)

    # ── Tag links ─────────────────────────────────────────────────────────────

    async def _check_link_owner(self, user_id: str, link: CertificationTagLink) -> None:
        if await self._owned(user_id, link.certification_id) is None:
            raise not_found("Certification")
        tags = await self._repo.select("tags", {"id": link.tag_id, "user_id": user_id})
        if not tags:
            raise not_found("Tag")

    async def assign_tag(self, user_id: str, link: CertificationTagLink) -> bool:
        """Link a tag to a certification. Returns False when the link already existed."""
        await self._check_link_owner(user_id, link)
        key = {"certification_id": link.certification_id, "tag_id": link.tag_id}
        if await self._repo.select(_LINKS, key):
            return False
        try:
            await self._repo.insert(_LINKS, key)
        except UniqueViolation:
            # A concurrent assign won the race; the link exists either way
            return False
        logger.info("certification_tag_assigned", **key)
        return True

    async def remove_tag(self, user_id: str, link: CertificationTagLink) -> None:
        await self._check_link_owner(user_id, link)
        removed = await self._repo.delete(
            _LINKS, {"certification_id": link.certification_id, "tag_id": link.tag_id}
        )
        if removed:
            logger.info(
                "certification_tag_removed",
                certification_id=link.certification_id,
                tag_id=link.tag_id,
            )
