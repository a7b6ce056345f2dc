"""Repository Protocol, table metadata and storage errors.

Layout:
    protocol.py         — Repository + CallerScopedRepository Protocols, table metadata,
                          StorageError/UniqueViolation
    sqlite_backend.py   — LocalSQLiteRepository (aiosqlite, WAL, transactions)
    supabase_backend.py — SupabaseRepository (PostgREST + SQL functions, 5s timeout)
    factory.py          — create_repository() — backend selection by env vars

Filters are equality maps: ``{"user_id": uid, "id": pid}``. A list value
means IN, None means IS NULL.

Soft delete is applied here, once: for tables in SOFT_DELETE_TABLES every
select/count/update gets ``is_deleted = false`` unless the caller passes
``include_deleted=True`` or filters on ``is_deleted`` explicitly.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional, Protocol, runtime_checkable

# ─── Table metadata ───────────────────────────────────────────────────────────

TABLE_COLUMNS: dict[str, frozenset[str]] = {
    "portfolios": frozenset({
        "id", "user_id", "title", "slug", "description", "template", "theme",
        "is_public", "public_link_token", "is_deleted", "created_at", "updated_at",
    }),
    "portfolio_sections": frozenset({
        "id", "portfolio_id", "section_type", "title", "content", "settings",
        "display_order", "is_visible", "created_at", "updated_at",
    }),
    "certifications": frozenset({
        "id", "user_id", "title", "issuing_organization", "certification_type",
        "date_issued", "expiration_date", "credential_id", "verification_url",
        "file_path", "file_type", "external_url", "description", "is_public",
        "is_deleted", "created_at", "updated_at",
    }),
    "tags": frozenset({"id", "user_id", "name", "color", "created_at"}),
    "certification_tags": frozenset({"certification_id", "tag_id", "created_at"}),
}

SOFT_DELETE_TABLES: frozenset[str] = frozenset({"portfolios", "certifications"})

# Tables whose rows carry an updated_at column maintained by the repository
TIMESTAMPED_TABLES: frozenset[str] = frozenset({"portfolios", "portfolio_sections", "certifications"})

# Tables keyed by a generated uuid "id" column
ID_TABLES: frozenset[str] = frozenset({"portfolios", "portfolio_sections", "certifications", "tags"})

JSON_COLUMNS: dict[str, frozenset[str]] = {
    "portfolio_sections": frozenset({"content", "settings"}),
}

BOOL_COLUMNS: dict[str, frozenset[str]] = {
    "portfolios": frozenset({"is_public", "is_deleted"}),
    "portfolio_sections": frozenset({"is_visible"}),
    "certifications": frozenset({"is_public", "is_deleted"}),
}

# (column, descending)
OrderBy = list[tuple[str, bool]]
Where = dict[str, Any]


# ─── Errors ───────────────────────────────────────────────────────────────────


class StorageError(Exception):
    """A storage operation failed."""


class UniqueViolation(StorageError):
    """An insert or update collided with a unique constraint."""

    def __init__(self, message: str, constraint: Optional[str] = None) -> None:
        super().__init__(message)
        self.constraint = constraint


# ─── Helpers shared by backends ───────────────────────────────────────────────


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def scoped_where(table: str, where: Where, include_deleted: bool) -> Where:
    """Apply the soft-delete default filter."""
    if table in SOFT_DELETE_TABLES and not include_deleted and "is_deleted" not in where:
        return {**where, "is_deleted": False}
    return where


def check_columns(table: str, columns: Any) -> None:
    """Raise StorageError on unknown tables or columns."""
    known = TABLE_COLUMNS.get(table)
    if known is None:
        raise StorageError(f"unknown table: {table}")
    unknown = set(columns) - known
    if unknown:
        raise StorageError(f"unknown column(s) for {table}: {sorted(unknown)}")


# ─── Repository Protocol ──────────────────────────────────────────────────────


@runtime_checkable
class Repository(Protocol):
    """Pluggable relational storage.

    Implementations: LocalSQLiteRepository (default), SupabaseRepository.
    Selection via create_repository() factory (storage/factory.py).

    Ownership scoping is the caller's job: services always include
    ``user_id`` (or check the parent portfolio) in ``where``.
    """

    async def initialize(self) -> None:
        ...

    async def close(self) -> None:
        ...

    async def health_check(self) -> bool:
        """Returns True if the backend is operational. Must not raise."""
        ...

    async def select(
        self,
        table: str,
        where: Where,
        *,
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
        offset: int = 0,
        include_deleted: bool = False,
    ) -> list[dict[str, Any]]:
        ...

    async def count(self, table: str, where: Where, *, include_deleted: bool = False) -> int:
        ...

    async def insert(self, table: str, values: dict[str, Any]) -> dict[str, Any]:
        """Insert one row and return it as stored (id and timestamps filled in)."""
        ...

    async def update(
        self,
        table: str,
        where: Where,
        values: dict[str, Any],
        *,
        include_deleted: bool = False,
    ) -> list[dict[str, Any]]:
        """Update matching rows, maintain updated_at, return the updated rows."""
        ...

    async def delete(self, table: str, where: Where) -> int:
        """Physically delete matching rows. Returns the number removed."""
        ...

    async def apply_section_order(
        self, portfolio_id: str, ordered_ids: list[str]
    ) -> list[dict[str, Any]]:
        """Atomically set display_order = position + 1 for every section.

        ``ordered_ids`` must be exactly the portfolio's section ids. Either
        every row is updated or none is. Returns the sections sorted by order.
        """
        ...

    async def delete_section_and_compact(self, portfolio_id: str, section_id: str) -> bool:
        """Atomically delete a section and close the gap it leaves.

        Returns False (and changes nothing) if the section does not exist.
        """
        ...


@runtime_checkable
class CallerScopedRepository(Protocol):
    """A repository that can run one request's queries as the calling user.

    Implemented by SupabaseRepository: the returned repository sends the
    caller's access token, so row-level security applies on top of the
    ``user_id`` filters services already add. The caller closes it.
    """

    def for_token(self, access_token: str) -> Optional[Repository]:
        """Return a repository bound to ``access_token``, or None when unsupported."""
        ...
