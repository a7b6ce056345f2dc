"""Unit tests for SectionOrdering (app/sections/ordering.py).

  - append onto an empty portfolio gives 1, then max + 1; N appends give [1..N]
  - delete of order 2 in [1,2,3,4] gives [1,2,3] with relative order kept
  - reorder is all or nothing; same order is a no-op; missing/foreign/duplicate ids → 400
  - a concurrent append that loses the unique race retries, then gives up with 409
"""

from __future__ import annotations

from typing import Any

import pytest

from app.errors import ApiError, ValidationError
from app.sections.ordering import SectionOrdering
from app.storage.protocol import UniqueViolation
from app.storage.sqlite_backend import LocalSQLiteRepository

USER = "11111111-1111-4111-8111-111111111111"

# ─── Helpers ──────────────────────────────────────────────────────────────────


async def _portfolio(repo: LocalSQLiteRepository, slug: str = "main") -> str:
    row = await repo.insert("portfolios", {"user_id": USER, "title": slug, "slug": slug})
    return row["id"]


async def _append(ordering: SectionOrdering, portfolio_id: str, title: str) -> dict[str, Any]:
    return await ordering.append(
        portfolio_id, {"section_type": "custom", "title": title, "content": {"text": title}}
    )


async def _titles_and_orders(ordering: SectionOrdering, portfolio_id: str) -> list[tuple[str, int]]:
    return [(row["title"], row["display_order"]) for row in await ordering.list_sections(portfolio_id)]


class RacingRepository(LocalSQLiteRepository):
    """Raises UniqueViolation on the first ``losses`` section inserts."""

    def __init__(self, losses: int) -> None:
        super().__init__(db_path=":memory:")
        self.losses = losses
        self.attempts = 0

    async def insert(self, table: str, values: dict[str, Any]) -> dict[str, Any]:
        if table == "portfolio_sections":
            self.attempts += 1
            if self.attempts <= self.losses:
                raise UniqueViolation("UNIQUE constraint failed: portfolio_sections.display_order")
        return await super().insert(table, values)


# ─── Append ───────────────────────────────────────────────────────────────────


class TestAppend:
    async def test_first_section_gets_order_one(self, repository: LocalSQLiteRepository) -> None:
        ordering = SectionOrdering(repository)
        pid = await _portfolio(repository)
        row = await _append(ordering, pid, "A")
        assert row["display_order"] == 1

    async def test_n_appends_are_dense(self, repository: LocalSQLiteRepository) -> None:
        ordering = SectionOrdering(repository)
        pid = await _portfolio(repository)
        for title in "ABCDE":
            await _append(ordering, pid, title)
        assert [order for _, order in await _titles_and_orders(ordering, pid)] == [1, 2, 3, 4, 5]

    async def test_portfolios_are_numbered_independently(self, repository: LocalSQLiteRepository) -> None:
        ordering = SectionOrdering(repository)
        first = await _portfolio(repository, "first")
        second = await _portfolio(repository, "second")
        await _append(ordering, first, "A")
        await _append(ordering, first, "B")
        row = await _append(ordering, second, "X")
        assert row["display_order"] == 1

    async def test_append_after_delete_continues_from_max(self, repository: LocalSQLiteRepository) -> None:
        ordering = SectionOrdering(repository)
        pid = await _portfolio(repository)
        rows = [await _append(ordering, pid, t) for t in "ABC"]
        await ordering.delete(pid, rows[0]["id"])
        row = await _append(ordering, pid, "D")
        assert row["display_order"] == 3

    async def test_lost_race_is_retried(self) -> None:
        repo = RacingRepository(losses=1)
        await repo.initialize()
        try:
            ordering = SectionOrdering(repo)
            pid = await _portfolio(repo)
            row = await _append(ordering, pid, "A")
            assert row["display_order"] == 1
            assert repo.attempts == 2
        finally:
            await repo.close()

    async def test_gives_up_after_attempts(self) -> None:
        repo = RacingRepository(losses=10)
        await repo.initialize()
        try:
            ordering = SectionOrdering(repo, attempts=3)
            pid = await _portfolio(repo)
            with pytest.raises(ApiError) as exc_info:
                await _append(ordering, pid, "A")
            assert exc_info.value.status == 409
            assert exc_info.value.code == "order_conflict"
            assert repo.attempts == 3
        finally:
            await repo.close()


# ─── Delete ───────────────────────────────────────────────────────────────────


class TestDelete:
    async def test_delete_middle_compacts(self, repository: LocalSQLiteRepository) -> None:
        ordering = SectionOrdering(repository)
        pid = await _portfolio(repository)
        rows = [await _append(ordering, pid, t) for t in "ABCD"]

        assert await ordering.delete(pid, rows[1]["id"]) is True
        assert await _titles_and_orders(ordering, pid) == [("A", 1), ("C", 2), ("D", 3)]

    async def test_delete_is_idempotent(self, repository: LocalSQLiteRepository) -> None:
        ordering = SectionOrdering(repository)
        pid = await _portfolio(repository)
        rows = [await _append(ordering, pid, t) for t in "AB"]

        assert await ordering.delete(pid, rows[0]["id"]) is True
        assert await ordering.delete(pid, rows[0]["id"]) is False
        assert await _titles_and_orders(ordering, pid) == [("B", 1)]


# ─── Reorder ──────────────────────────────────────────────────────────────────


class TestReorder:
    async def test_new_order_is_applied(self, repository: LocalSQLiteRepository) -> None:
        ordering = SectionOrdering(repository)
        pid = await _portfolio(repository)
        a, b, c = [await _append(ordering, pid, t) for t in "ABC"]

        rows = await ordering.reorder(pid, [c["id"], a["id"], b["id"]])
        assert [(r["title"], r["display_order"]) for r in rows] == [("C", 1), ("A", 2), ("B", 3)]

    async def test_same_order_is_a_no_op(self, repository: LocalSQLiteRepository) -> None:
        ordering = SectionOrdering(repository)
        pid = await _portfolio(repository)
        rows = [await _append(ordering, pid, t) for t in "AB"]

        result = await ordering.reorder(pid, [r["id"] for r in rows])
        assert [r["updated_at"] for r in result] == [r["updated_at"] for r in rows]

    async def test_missing_id_is_rejected(self, repository: LocalSQLiteRepository) -> None:
        ordering = SectionOrdering(repository)
        pid = await _portfolio(repository)
        a, b, c = [await _append(ordering, pid, t) for t in "ABC"]

        with pytest.raises(ValidationError) as exc_info:
            await ordering.reorder(pid, [c["id"], a["id"]])
        assert exc_info.value.status == 400
        assert await _titles_and_orders(ordering, pid) == [("A", 1), ("B", 2), ("C", 3)]

    async def test_foreign_id_is_rejected(self, repository: LocalSQLiteRepository) -> None:
        ordering = SectionOrdering(repository)
        pid = await _portfolio(repository, "mine")
        other = await _portfolio(repository, "other")
        a, b = [await _append(ordering, pid, t) for t in "AB"]
        foreign = await _append(ordering, other, "X")

        with pytest.raises(ValidationError):
            await ordering.reorder(pid, [b["id"], foreign["id"]])
        assert await _titles_and_orders(ordering, pid) == [("A", 1), ("B", 2)]

    async def test_duplicate_ids_are_rejected(self, repository: LocalSQLiteRepository) -> None:
        ordering = SectionOrdering(repository)
        pid = await _portfolio(repository)
        a, b = [await _append(ordering, pid, t) for t in "AB"]

        with pytest.raises(ValidationError) as exc_info:
            await ordering.reorder(pid, [a["id"], a["id"], b["id"]])
        assert "Duplicate" in str(exc_info.value)

    async def test_reorder_then_delete_keeps_relative_order(
        self, repository: LocalSQLiteRepository
    ) -> None:
        ordering = SectionOrdering(repository)
        pid = await _portfolio(repository)
        a, b, c, d = [await _append(ordering, pid, t) for t in "ABCD"]

        await ordering.reorder(pid, [d["id"], c["id"], b["id"], a["id"]])
        await ordering.delete(pid, c["id"])
        assert await _titles_and_orders(ordering, pid) == [("D", 1), ("B", 2), ("A", 3)]
