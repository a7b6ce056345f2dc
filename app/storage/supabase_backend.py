"""SupabaseRepository — async PostgREST storage via the supabase client.

All calls are wrapped in asyncio.wait_for with a 5-second timeout. Unlike
fire-and-forget logging, storage failures matter to the caller: every
error propagates as StorageError (UniqueViolation for Postgres 23505) and
the request fails through the normal error boundary.

Multi-row order changes run server-side in one transaction through the SQL
functions shipped in supabase/schema.sql:
  reorder_portfolio_sections(p_portfolio_id uuid, p_section_ids uuid[])
  delete_portfolio_section(p_portfolio_id uuid, p_section_id uuid) → boolean

Environment:
  SUPABASE_URL       — project URL
  SUPABASE_KEY       — service role key; used at startup, for /health and for
                       the token-gated public view
  SUPABASE_ANON_KEY  — anon key; authenticated requests run through
                       for_token() with it and the caller's access token, so
                       the RLS policies in supabase/schema.sql apply
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

from postgrest import AsyncPostgrestClient
from postgrest.constants import DEFAULT_POSTGREST_CLIENT_HEADERS
from postgrest.exceptions import APIError
from supabase import create_async_client

from app.storage.protocol import (
    TIMESTAMPED_TABLES,
    OrderBy,
    Repository,
    StorageError,
    UniqueViolation,
    Where,
    check_columns,
    scoped_where,
    utc_now_iso,
)
from app.utils.logger import get_logger

logger = get_logger(__name__)

_SUPABASE_TIMEOUT_S = 5.0

_PG_UNIQUE_VIOLATION = "23505"


def _apply_filters(query: Any, where: Where) -> Any:
    for column, value in where.items():
        if value is None:
            query = query.is_(column, "null")
        elif isinstance(value, (list, tuple, set, frozenset)):
            query = query.in_(column, list(value))
        else:
            query = query.eq(column, value)
    return query


class SupabaseRepository:
    """Repository backed by Supabase (PostgREST).

    Usage:
        repo = SupabaseRepository(url="https://...", key="service-role-key")
        await repo.initialize()
        rows = await repo.select("portfolios", {"user_id": uid})
        await repo.close()

    ``client`` may be injected (tests pass a mock with the fluent query API).
    """

    def __init__(
        self,
        url: str,
        key: str,
        timeout_s: float = _SUPABASE_TIMEOUT_S,
        client: Optional[Any] = None,
        anon_key: Optional[str] = None,
    ) -> None:
        self._url = url
        self._key = key
        self._anon_key = anon_key
        self._timeout_s = timeout_s
        self._client: Optional[Any] = client
        self._session: Optional[AsyncPostgrestClient] = None

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        if self._client is not None:
            return
        self._client = await asyncio.wait_for(
            create_async_client(self._url, self._key),
            timeout=self._timeout_s,
        )
        logger.info("supabase_repository_initialized", timeout_s=self._timeout_s)

    async def close(self) -> None:
        if self._session is not None:
            await self._session.aclose()
            self._session = None
        self._client = None
        logger.debug("supabase_repository_closed")

    def for_token(self, access_token: str) -> Optional["SupabaseRepository"]:
        """Return a repository whose queries run as the owner of ``access_token``.

        PostgREST receives the anon key plus the caller's JWT, the same pair
        the supabase client sends for a signed-in user. Returns None without
        an anon key. The returned repository owns an HTTP session; close it
        when the request ends.
        """
        if not self._anon_key:
            return None
        session = AsyncPostgrestClient(
            f"{self._url.rstrip('/')}/rest/v1",
            headers={**DEFAULT_POSTGREST_CLIENT_HEADERS, "apikey": self._anon_key},
            timeout=self._timeout_s,
        )
        session.auth(access_token)
        scoped = SupabaseRepository(
            self._url, self._anon_key, timeout_s=self._timeout_s, client=session
        )
        scoped._session = session
        return scoped

    async def health_check(self) -> bool:
        if self._client is None:
            return False
        try:
            await self._execute(self._client.table("tags").select("id").limit(1))
            return True
        except StorageError:
            return False

    # ── Execution ─────────────────────────────────────────────────────────────

    @property
    def _db(self) -> Any:
        if self._client is None:
            raise StorageError("Supabase client not initialized — call initialize() first")
        return self._client

    async def _execute(self, query: Any) -> Any:
        try:
            return await asyncio.wait_for(query.execute(), timeout=self._timeout_s)
        except asyncio.TimeoutError as exc:
            raise StorageError(f"Supabase request timed out after {self._timeout_s}s") from exc
        except APIError as exc:
            if exc.code == _PG_UNIQUE_VIOLATION:
                raise UniqueViolation(exc.message or "unique violation", constraint=exc.details) from exc
            raise StorageError(exc.message or str(exc)) from exc

    # ── Repository Protocol Methods ───────────────────────────────────────────

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
        scoped = scoped_where(table, where, include_deleted)
        check_columns(table, scoped.keys())
        query = _apply_filters(self._db.table(table).select("*"), scoped)
        for column, descending in order_by or []:
            query = query.order(column, desc=descending)
        if limit is not None:
            query = query.range(offset, offset + limit - 1)
        response = await self._execute(query)
        return list(response.data or [])

    async def count(self, table: str, where: Where, *, include_deleted: bool = False) -> int:
        scoped = scoped_where(table, where, include_deleted)
        check_columns(table, scoped.keys())
        query = _apply_filters(self._db.table(table).select("*", count="exact"), scoped)
        response = await self._execute(query.limit(1))
        return int(response.count or 0)

    async def insert(self, table: str, values: dict[str, Any]) -> dict[str, Any]:
        check_columns(table, values.keys())
        response = await self._execute(self._db.table(table).insert(values))
        if not response.data:
            raise StorageError(f"insert into {table} returned no row")
        return response.data[0]

    async def update(
        self,
        table: str,
        where: Where,
        values: dict[str, Any],
        *,
        include_deleted: bool = False,
    ) -> list[dict[str, Any]]:
        record = dict(values)
        if table in TIMESTAMPED_TABLES:
            record["updated_at"] = utc_now_iso()
        scoped = scoped_where(table, where, include_deleted)
        check_columns(table, [*record.keys(), *scoped.keys()])
        query = _apply_filters(self._db.table(table).update(record), scoped)
        response = await self._execute(query)
        return list(response.data or [])

    async def delete(self, table: str, where: Where) -> int:
        if not where:
            raise StorageError("refusing to delete without a filter")
        check_columns(table, where.keys())
        response = await self._execute(_apply_filters(self._db.table(table).delete(), where))
        return len(response.data or [])

    async def apply_section_order(
        self, portfolio_id: str, ordered_ids: list[str]
    ) -> list[dict[str, Any]]:
        await self._execute(
            self._db.rpc(
                "reorder_portfolio_sections",
                {"p_portfolio_id": portfolio_id, "p_section_ids": ordered_ids},
            )
        )
        return await self.select(
            "portfolio_sections",
            {"portfolio_id": portfolio_id},
            order_by=[("display_order", False)],
        )

    async def delete_section_and_compact(self, portfolio_id: str, section_id: str) -> bool:
        response = await self._execute(
            self._db.rpc(
                "delete_portfolio_section",
                {"p_portfolio_id": portfolio_id, "p_section_id": section_id},
            )
        )
        return bool(response.data)


# ─── Protocol compliance assertion ────────────────────────────────────────────
assert isinstance(SupabaseRepository("https://example.supabase.co", "key"), Repository), (
    "SupabaseRepository does not satisfy Repository protocol — implementation error"
)
