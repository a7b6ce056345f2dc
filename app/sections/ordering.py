"""SectionOrdering — keeps each portfolio's display_order dense (1..N).

    append(portfolio_id, values)      → new row at max + 1 (1 when empty)
    reorder(portfolio_id, section_ids) → rows sorted by their new order
    delete(portfolio_id, section_id)   → True if a row was removed

Invariant after every committed call: the portfolio's orders are exactly
{1..N}. The repository enforces UNIQUE(portfolio_id, display_order) and
runs reorder and delete-with-compaction atomically. Append computes
max + 1 outside any transaction, so two concurrent appends can collide on
the unique constraint; the loser re-reads the max and retries.

Ownership of the portfolio is checked by the caller before any of these run.
"""

from __future__ import annotations

from typing import Any

from app.constants import SECTION_APPEND_ATTEMPTS
from app.errors import ApiError, Issue, ValidationError
from app.storage.protocol import Repository, StorageError, UniqueViolation
from app.utils.logger import get_logger

logger = get_logger(__name__)

_TABLE = "portfolio_sections"


class SectionOrdering:
    def __init__(self, repository: Repository, attempts: int = SECTION_APPEND_ATTEMPTS) -> None:
        self._repo = repository
        self._attempts = attempts

    async def list_sections(self, portfolio_id: str) -> list[dict[str, Any]]:
        return await self._repo.select(
            _TABLE, {"portfolio_id": portfolio_id}, order_by=[("display_order", False)]
        )

    async def _next_order(self, portfolio_id: str) -> int:
        rows = await self._repo.select(
            _TABLE,
            {"portfolio_id": portfolio_id},
            order_by=[("display_order", True)],
            limit=1,
        )
        return int(rows[0]["display_order"]) + 1 if rows else 1

    async def append(self, portfolio_id: str, values: dict[str, Any]) -> dict[str, Any]:
        """Insert a section after the last one."""
        for attempt in range(1, self._attempts + 1):
            order = await self._next_order(portfolio_id)
            try:
                row = await self._repo.insert(
                    _TABLE, {**values, "portfolio_id": portfolio_id, "display_order": order}
                )
            except UniqueViolation:
                logger.warning(
                    "section_append_conflict",
                    portfolio_id=portfolio_id,
                    display_order=order,
                    attempt=attempt,
                )
                continue
            logger.info("section_appended", portfolio_id=portfolio_id, section_id=row["id"], display_order=order)
            return row

        raise ApiError(
            "Could not place the section; please retry",
            status=409,
            code="order_conflict",
        )

    async def reorder(self, portfolio_id: str, section_ids: list[str]) -> list[dict[str, Any]]:
        """Set display_order = position + 1 for every section, all or nothing.

        ``section_ids`` must name each of the portfolio's sections exactly
        once. Anything else is rejected before any row changes.
        """
        if len(set(section_ids)) != len(section_ids):
            raise ValidationError([Issue("section_ids", "Duplicate section ids")])

        current = await self.list_sections(portfolio_id)
        current_ids = [row["id"] for row in current]
        if set(section_ids) != set(current_ids):
            raise ValidationError([
                Issue("section_ids", "Section ids must match the portfolio's sections exactly")
            ])

        if section_ids == current_ids:
            return current

        try:
            rows = await self._repo.apply_section_order(portfolio_id, section_ids)
        except StorageError as exc:
            logger.error("section_reorder_failed", portfolio_id=portfolio_id, error=str(exc))
            raise ApiError("Failed to reorder sections", status=500, code="reorder_failed") from exc

        logger.info("section_reordered", portfolio_id=portfolio_id, count=len(rows))
        return rows

    async def delete(self, portfolio_id: str, section_id: str) -> bool:
        """Delete a section and shift every later one up by one. Idempotent."""
        removed = await self._repo.delete_section_and_compact(portfolio_id, section_id)
        if removed:
            logger.info("section_deleted", portfolio_id=portfolio_id, section_id=section_id)
        return removed
