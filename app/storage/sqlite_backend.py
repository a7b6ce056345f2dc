"""LocalSQLiteRepository — aiosqlite-based async storage.

Features:
  - Single long-lived connection opened in initialize(), closed in close()
  - WAL mode (file databases) and foreign keys with ON DELETE CASCADE
  - Schema version guard: PRAGMA user_version=1 — RuntimeError on mismatch
  - Autocommit connection (isolation_level=None); multi-statement operations
    run inside explicit BEGIN IMMEDIATE … COMMIT with ROLLBACK on error
  - All operations serialised by an asyncio.Lock on the one connection
  - UNIQUE(portfolio_id, display_order) enforced by the schema; multi-row
    order changes negate orders first so the constraint holds at every
    statement

``db_path=":memory:"`` gives a private in-memory database (used in tests).
"""

from __future__ import annotations

import asyncio
import json
import os
import sqlite3
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import aiosqlite

from app.storage.protocol import (
    BOOL_COLUMNS,
    ID_TABLES,
    JSON_COLUMNS,
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

# ─── Schema DDL ───────────────────────────────────────────────────────────────

_CREATE_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS portfolios (
    id                  TEXT PRIMARY KEY,
    user_id             TEXT NOT NULL,
    title               TEXT NOT NULL,
    slug                TEXT NOT NULL,
    description         TEXT,
    template            TEXT NOT NULL DEFAULT 'modern-minimal',
    theme               TEXT NOT NULL DEFAULT 'light-blue',
    is_public           INTEGER NOT NULL DEFAULT 0,
    public_link_token   TEXT UNIQUE,
    is_deleted          INTEGER NOT NULL DEFAULT 0,
    created_at          TEXT NOT NULL,
    updated_at          TEXT NOT NULL,
    UNIQUE (user_id, slug)
);

CREATE INDEX IF NOT EXISTS idx_portfolios_user_updated
    ON portfolios(user_id, updated_at DESC);

CREATE TABLE IF NOT EXISTS portfolio_sections (
    id              TEXT PRIMARY KEY,
    portfolio_id    TEXT NOT NULL REFERENCES portfolios(id) ON DELETE CASCADE,
    section_type    TEXT NOT NULL CHECK (section_type IN (
                        'summary', 'skills', 'work_experience',
                        'projects', 'certifications', 'custom')),
    title           TEXT,
    content         TEXT NOT NULL DEFAULT '{}',
    settings        TEXT NOT NULL DEFAULT '{}',
    display_order   INTEGER NOT NULL,
    is_visible      INTEGER NOT NULL DEFAULT 1,
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL,
    UNIQUE (portfolio_id, display_order)
);

CREATE TABLE IF NOT EXISTS certifications (
    id                      TEXT PRIMARY KEY,
    user_id                 TEXT NOT NULL,
    title                   TEXT NOT NULL,
    issuing_organization    TEXT NOT NULL,
    certification_type      TEXT NOT NULL CHECK (certification_type IN (
                                'pdf', 'image', 'external_link', 'manual')),
    date_issued             TEXT,
    expiration_date         TEXT,
    credential_id           TEXT,
    verification_url        TEXT,
    file_path               TEXT,
    file_type               TEXT,
    external_url            TEXT,
    description             TEXT,
    is_public               INTEGER NOT NULL DEFAULT 0,
    is_deleted              INTEGER NOT NULL DEFAULT 0,
    created_at              TEXT NOT NULL,
    updated_at              TEXT NOT NULL,
    CHECK (
        (certification_type IN ('pdf', 'image') AND file_path IS NOT NULL)
        OR (certification_type = 'external_link' AND external_url IS NOT NULL)
        OR certification_type = 'manual'
    )
);

CREATE INDEX IF NOT EXISTS idx_certifications_user
    ON certifications(user_id, date_issued DESC);

CREATE TABLE IF NOT EXISTS tags (
    id          TEXT PRIMARY KEY,
    user_id     TEXT NOT NULL,
    name        TEXT NOT NULL,
    color       TEXT,
    created_at  TEXT NOT NULL,
    UNIQUE (user_id, name)
);

CREATE TABLE IF NOT EXISTS certification_tags (
    certification_id    TEXT NOT NULL REFERENCES certifications(id) ON DELETE CASCADE,
    tag_id              TEXT NOT NULL REFERENCES tags(id) ON DELETE CASCADE,
    created_at          TEXT NOT NULL,
    PRIMARY KEY (certification_id, tag_id)
);
"""

_SCHEMA_VERSION = 1


# ─── Row conversion ───────────────────────────────────────────────────────────


def _to_db(table: str, values: dict[str, Any]) -> dict[str, Any]:
    json_cols = JSON_COLUMNS.get(table, frozenset())
    bool_cols = BOOL_COLUMNS.get(table, frozenset())
    converted: dict[str, Any] = {}
    for column, value in values.items():
        if column in json_cols and value is not None:
            converted[column] = json.dumps(value)
        elif column in bool_cols and value is not None:
            converted[column] = int(bool(value))
        else:
            converted[column] = value
    return converted


def _from_db(table: str, row: aiosqlite.Row) -> dict[str, Any]:
    json_cols = JSON_COLUMNS.get(table, frozenset())
    bool_cols = BOOL_COLUMNS.get(table, frozenset())
    record = dict(row)
    for column in json_cols:
        raw = record.get(column)
        record[column] = json.loads(raw) if raw else {}
    for column in bool_cols:
        if record.get(column) is not None:
            record[column] = bool(record[column])
    return record


def _where_sql(table: str, where: Where) -> tuple[str, list[Any]]:
    """Build a parameterized WHERE clause. Column names are whitelisted."""
    check_columns(table, where.keys())
    db_where = _to_db(table, where)
    conditions: list[str] = []
    params: list[Any] = []
    for column, value in db_where.items():
        if value is None:
            conditions.append(f"{column} IS NULL")
        elif isinstance(value, (list, tuple, set, frozenset)):
            items = list(value)
            if not items:
                conditions.append("0")
                continue
            conditions.append(f"{column} IN ({','.join('?' for _ in items)})")
            params.extend(items)
        else:
            conditions.append(f"{column} = ?")
            params.append(value)
    if not conditions:
        return "", params
    return " WHERE " + " AND ".join(conditions), params


def _map_integrity_error(exc: sqlite3.IntegrityError) -> StorageError:
    message = str(exc)
    if "UNIQUE" in message or "PRIMARY KEY" in message:
        return UniqueViolation(message, constraint=message.split(":", 1)[-1].strip())
    return StorageError(message)


# ─── LocalSQLiteRepository ────────────────────────────────────────────────────


class LocalSQLiteRepository:
    """Async SQLite repository using aiosqlite exclusively.

    Default path: ~/.folio/folio.db
    Override via: FOLIO_DB_PATH environment variable (see storage/factory.py)
    """

    def __init__(self, db_path: str = "~/.folio/folio.db") -> None:
        self._db_path: str = db_path if db_path == ":memory:" else os.path.expanduser(db_path)
        self._db: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Open the connection, enable WAL and foreign keys, create/verify schema.

        Raises:
            RuntimeError: If PRAGMA user_version is neither 0 nor 1.
        """
        if self._db_path != ":memory:":
            parent_dir = os.path.dirname(self._db_path)
            if parent_dir:
                os.makedirs(parent_dir, exist_ok=True)

        self._db = await aiosqlite.connect(self._db_path, isolation_level=None)
        self._db.row_factory = aiosqlite.Row

        if self._db_path != ":memory:":
            await self._db.execute("PRAGMA journal_mode=WAL;")
        await self._db.execute("PRAGMA foreign_keys=ON;")

        cursor = await self._db.execute("PRAGMA user_version;")
        row = await cursor.fetchone()
        current_version: int = row[0] if row else 0

        if current_version == 0:
            await self._db.executescript(_CREATE_SCHEMA_SQL)
            await self._db.execute(f"PRAGMA user_version = {_SCHEMA_VERSION};")
            logger.info("db_schema_created", db_path=self._db_path, schema_version=_SCHEMA_VERSION)
        elif current_version == _SCHEMA_VERSION:
            logger.info("db_schema_ok", db_path=self._db_path, schema_version=current_version)
        else:
            await self._db.close()
            self._db = None
            raise RuntimeError(
                f"Unsupported database schema version: {current_version}. "
                f"Delete {self._db_path} to reset or point FOLIO_DB_PATH elsewhere."
            )

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None
            logger.debug("db_closed", db_path=self._db_path)

    async def health_check(self) -> bool:
        try:
            assert self._db is not None
            await self._db.execute("SELECT 1")
            return True
        except Exception:
            return False

    @property
    def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise StorageError("Database not initialized — call initialize() first")
        return self._db

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """BEGIN IMMEDIATE … COMMIT, ROLLBACK on any error. Caller holds the lock."""
        conn = self._conn
        await conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            await conn.execute("ROLLBACK")
            raise
        await conn.execute("COMMIT")

    async def _fetch(
        self, conn: aiosqlite.Connection, sql: str, params: list[Any]
    ) -> list[aiosqlite.Row]:
        cursor = await conn.execute(sql, params)
        return list(await cursor.fetchall())

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
        async with self._lock:
            return await self._select(
                self._conn, table, where,
                order_by=order_by, limit=limit, offset=offset, include_deleted=include_deleted,
            )

    async def _select(
        self,
        conn: aiosqlite.Connection,
        table: str,
        where: Where,
        *,
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
        offset: int = 0,
        include_deleted: bool = False,
    ) -> list[dict[str, Any]]:
        clause, params = _where_sql(table, scoped_where(table, where, include_deleted))
        sql = f"SELECT * FROM {table}{clause}"
        if order_by:
            check_columns(table, [column for column, _ in order_by])
            sql += " ORDER BY " + ", ".join(
                f"{column} {'DESC' if descending else 'ASC'}" for column, descending in order_by
            )
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            params.extend([int(limit), int(offset)])
        elif offset:
            sql += " LIMIT -1 OFFSET ?"
            params.append(int(offset))
        rows = await self._fetch(conn, sql, params)
        return [_from_db(table, row) for row in rows]

    async def count(self, table: str, where: Where, *, include_deleted: bool = False) -> int:
        clause, params = _where_sql(table, scoped_where(table, where, include_deleted))
        async with self._lock:
            rows = await self._fetch(self._conn, f"SELECT COUNT(*) FROM {table}{clause}", params)
        return int(rows[0][0]) if rows else 0

    async def insert(self, table: str, values: dict[str, Any]) -> dict[str, Any]:
        check_columns(table, values.keys())
        now = utc_now_iso()
        record = dict(values)
        if table in ID_TABLES:
            record.setdefault("id", str(uuid.uuid4()))
        record.setdefault("created_at", now)
        if table in TIMESTAMPED_TABLES:
            record.setdefault("updated_at", now)

        db_values = _to_db(table, record)
        columns = list(db_values)
        sql = (
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)})"
        )
        async with self._lock:
            try:
                await self._conn.execute(sql, [db_values[c] for c in columns])
            except sqlite3.IntegrityError as exc:
                raise _map_integrity_error(exc) from exc

            if table in ID_TABLES:
                key = {"id": record["id"]}
            else:
                key = {"certification_id": record["certification_id"], "tag_id": record["tag_id"]}
            rows = await self._select(self._conn, table, key, include_deleted=True)
        return rows[0]

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
        check_columns(table, record.keys())
        db_values = _to_db(table, record)
        set_sql = ", ".join(f"{column} = ?" for column in db_values)

        async with self._lock:
            async with self._transaction() as conn:
                # Resolve ids first: the update may change a filtered column
                # (e.g. is_deleted), so re-selecting by the original filter would miss rows.
                matched = await self._select(conn, table, where, include_deleted=include_deleted)
                if not matched:
                    return []
                if table in ID_TABLES:
                    ids = [row["id"] for row in matched]
                    key: Where = {"id": ids}
                else:
                    key = scoped_where(table, where, include_deleted)
                clause, params = _where_sql(table, key)
                try:
                    await conn.execute(
                        f"UPDATE {table} SET {set_sql}{clause}",
                        [*db_values.values(), *params],
                    )
                except sqlite3.IntegrityError as exc:
                    raise _map_integrity_error(exc) from exc
                if table not in ID_TABLES:
                    return await self._select(conn, table, {**where, **values}, include_deleted=True)
                return await self._select(conn, table, key, include_deleted=True)

    async def delete(self, table: str, where: Where) -> int:
        clause, params = _where_sql(table, where)
        if not clause:
            raise StorageError("refusing to delete without a filter")
        async with self._lock:
            cursor = await self._conn.execute(f"DELETE FROM {table}{clause}", params)
        return int(cursor.rowcount or 0)

    async def apply_section_order(
        self, portfolio_id: str, ordered_ids: list[str]
    ) -> list[dict[str, Any]]:
        now = utc_now_iso()
        async with self._lock:
            async with self._transaction() as conn:
                rows = await self._fetch(
                    conn,
                    "SELECT id FROM portfolio_sections WHERE portfolio_id = ?",
                    [portfolio_id],
                )
                existing = {row["id"] for row in rows}
                if existing != set(ordered_ids) or len(existing) != len(ordered_ids):
                    raise StorageError("section set changed during reorder")

                # Phase 1: move every order out of the positive range
                await conn.execute(
                    "UPDATE portfolio_sections SET display_order = -display_order "
                    "WHERE portfolio_id = ?",
                    [portfolio_id],
                )
                # Phase 2: assign the final dense sequence
                await conn.executemany(
                    "UPDATE portfolio_sections SET display_order = ?, updated_at = ? "
                    "WHERE id = ? AND portfolio_id = ?",
                    [
                        (position + 1, now, section_id, portfolio_id)
                        for position, section_id in enumerate(ordered_ids)
                    ],
                )
                return await self._select(
                    conn,
                    "portfolio_sections",
                    {"portfolio_id": portfolio_id},
                    order_by=[("display_order", False)],
                )

    async def delete_section_and_compact(self, portfolio_id: str, section_id: str) -> bool:
        async with self._lock:
            async with self._transaction() as conn:
                rows = await self._fetch(
                    conn,
                    "SELECT display_order FROM portfolio_sections "
                    "WHERE id = ? AND portfolio_id = ?",
                    [section_id, portfolio_id],
                )
                if not rows:
                    return False
                removed_order = rows[0]["display_order"]

                await conn.execute(
                    "DELETE FROM portfolio_sections WHERE id = ? AND portfolio_id = ?",
                    [section_id, portfolio_id],
                )
                await conn.execute(
                    "UPDATE portfolio_sections SET display_order = -(display_order - 1) "
                    "WHERE portfolio_id = ? AND display_order > ?",
                    [portfolio_id, removed_order],
                )
                await conn.execute(
                    "UPDATE portfolio_sections SET display_order = -display_order, updated_at = ? "
                    "WHERE portfolio_id = ? AND display_order < 0",
                    [utc_now_iso(), portfolio_id],
                )
                return True


# ─── Protocol compliance assertion ────────────────────────────────────────────
assert isinstance(LocalSQLiteRepository(":memory:"), Repository), (
    "LocalSQLiteRepository does not satisfy Repository protocol — implementation error"
)
