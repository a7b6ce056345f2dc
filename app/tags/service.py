"""Tag operations. Names are unique per owner (a clash is a 409)."""

from __future__ import annotations

from typing import Any

from app.errors import ApiError, not_found
from app.storage.protocol import Repository, UniqueViolation
from app.utils.logger import get_logger
from app.validation.schemas import TagCreate, TagUpdate

logger = get_logger(__name__)

_TABLE = "tags"


def _duplicate(name: Any) -> ApiError:
    return ApiError(f"A tag named '{name}' already exists", status=409, code="duplicate_tag")


class TagService:
    def __init__(self, repository: Repository) -> None:
        self._repo = repository

    async def list_for_user(self, user_id: str) -> list[dict[str, Any]]:
        return await self._repo.select(_TABLE, {"user_id": user_id}, order_by=[("name", False)])

    async def create(self, user_id: str, body: TagCreate) -> dict[str, Any]:
        try:
            tag = await self._repo.insert(
                _TABLE, {"user_id": user_id, "name": body.name, "color": body.color}
            )
        except UniqueViolation as exc:
            raise _duplicate(body.name) from exc
        logger.info("tag_created", tag_id=tag["id"])
        return tag

    async def update(self, user_id: str, tag_id: str, body: TagUpdate) -> dict[str, Any]:
        changes = body.changes()
        if "name" in changes and changes["name"] is None:
            del changes["name"]
        if not changes:
            raise ApiError("No valid fields to update", status=400, code="no_fields")
        try:
            rows = await self._repo.update(_TABLE, {"id": tag_id, "user_id": user_id}, changes)
        except UniqueViolation as exc:
            raise _duplicate(changes.get("name")) from exc
        if not rows:
            raise not_found("Tag")
        return rows[0]

    async def delete(self, user_id: str, tag_id: str) -> None:
        """Physical delete; every certification link to the tag goes with it."""
        if not await self._repo.select(_TABLE, {"id": tag_id, "user_id": user_id}):
            raise not_found("Tag")
        await self._repo.delete("certification_tags", {"tag_id": tag_id})
        await self._repo.delete(_TABLE, {"id": tag_id, "user_id": user_id})
        logger.info("tag_deleted", tag_id=tag_id)
