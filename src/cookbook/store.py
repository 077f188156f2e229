"""SQLite-backed copy of the cookbook tables for local use and tests."""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from collections.abc import Iterable, Mapping, Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from cookbook.normalize import parse_timestamp
from cookbook.repository import UNIQUE_VIOLATION, Row, StoreError

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS profiles (
    id               TEXT PRIMARY KEY,
    username         TEXT UNIQUE,
    full_name        TEXT,
    avatar_url       TEXT,
    bio              TEXT,
    background_image TEXT,
    created_at       TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS posts (
    id           TEXT PRIMARY KEY,
    author       TEXT,
    text         TEXT NOT NULL DEFAULT '',
    category     TEXT,
    sub_category TEXT,
    model_name   TEXT,
    media_urls   TEXT NOT NULL DEFAULT '[]',
    created_at   TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS follows (
    id           TEXT PRIMARY KEY,
    follower_id  TEXT NOT NULL,
    following_id TEXT NOT NULL,
    created_at   TEXT NOT NULL,
    UNIQUE (follower_id, following_id)
);
CREATE TABLE IF NOT EXISTS post_likes (
    id         TEXT PRIMARY KEY,
    post_id    TEXT NOT NULL,
    user_id    TEXT NOT NULL,
    created_at TEXT NOT NULL,
    UNIQUE (post_id, user_id)
);
CREATE TABLE IF NOT EXISTS post_comments (
    id         TEXT PRIMARY KEY,
    post_id    TEXT NOT NULL,
    user_id    TEXT NOT NULL,
    text       TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS post_saves (
    id         TEXT PRIMARY KEY,
    post_id    TEXT NOT NULL,
    user_id    TEXT NOT NULL,
    created_at TEXT NOT NULL,
    UNIQUE (post_id, user_id)
);
CREATE TABLE IF NOT EXISTS tags (
    id         TEXT PRIMARY KEY,
    name       TEXT NOT NULL UNIQUE,
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS post_tags (
    id         TEXT PRIMARY KEY,
    post_id    TEXT NOT NULL,
    tag_id     TEXT NOT NULL,
    created_at TEXT NOT NULL,
    UNIQUE (post_id, tag_id)
);
CREATE TABLE IF NOT EXISTS notifications (
    id         TEXT PRIMARY KEY,
    user_id    TEXT NOT NULL,
    actor_id   TEXT,
    type       TEXT NOT NULL,
    payload    TEXT NOT NULL DEFAULT '{}',
    is_read    INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS waitlist (
    id         TEXT PRIMARY KEY,
    email      TEXT NOT NULL UNIQUE,
    full_name  TEXT,
    created_at TEXT NOT NULL
);
"""

_JSON_COLUMNS: dict[str, set[str]] = {
    "posts": {"media_urls"},
    "notifications": {"payload"},
}
_BOOL_COLUMNS: dict[str, set[str]] = {"notifications": {"is_read"}}


def _now() -> str:
    return datetime.now(UTC).isoformat(timespec="microseconds")


def _iso(value: Any) -> Any:
    """Re-emit timestamps in one format so text ordering is chronological."""
    parsed = parse_timestamp(value)
    if parsed is None:
        return value
    return parsed.astimezone(UTC).isoformat(timespec="microseconds")


class SQLiteStore:
    """Local implementation of :class:`cookbook.repository.Repository`."""

    def __init__(self, db_path: Path) -> None:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db_path = db_path
        self._columns: dict[str, list[str]] = {}
        self._init_db()

    # ── public ──────────────────────────────────────────────────────────

    def select(
        self,
        table: str,
        *,
        columns: str = "*",
        eq: Mapping[str, Any] | None = None,
        in_: tuple[str, Sequence[Any]] | None = None,
        order: str | None = None,
        desc: bool = True,
        limit: int | None = None,
    ) -> list[Row]:
        wanted = self._select_list(table, columns)
        if in_ is not None and not in_[1]:
            return []
        where, params = self._where(table, eq, in_)
        sql = f"SELECT {', '.join(wanted)} FROM {table}{where}"
        if order:
            self._check_column(table, order)
            sql += f" ORDER BY {order} {'DESC' if desc else 'ASC'}"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))
        return [self._decode(table, row) for row in self._fetch(sql, params)]

    def count(self, table: str, *, eq: Mapping[str, Any] | None = None) -> int:
        self._check_table(table)
        where, params = self._where(table, eq, None)
        rows = self._fetch(f"SELECT COUNT(*) AS n FROM {table}{where}", params)
        return int(rows[0]["n"])

    def insert(self, table: str, rows: Iterable[Mapping[str, Any]]) -> list[Row]:
        self._check_table(table)
        prepared = [self._encode(table, dict(row)) for row in rows]
        if not prepared:
            return []
        con = self._connect()
        try:
            for row in prepared:
                cols = list(row)
                placeholders = ", ".join("?" for _ in cols)
                con.execute(
                    f"INSERT INTO {table} ({', '.join(cols)}) VALUES ({placeholders})",
                    [row[c] for c in cols],
                )
            con.commit()
        except sqlite3.IntegrityError as exc:
            con.rollback()
            code = UNIQUE_VIOLATION if "UNIQUE" in str(exc) else None
            raise StoreError(f"Insert into {table} failed: {exc}", code=code) from exc
        except sqlite3.Error as exc:
            con.rollback()
            raise StoreError(f"Insert into {table} failed: {exc}") from exc
        finally:
            con.close()
        return self.select(table, in_=("id", [row["id"] for row in prepared]), order="created_at", desc=False)

    def update(
        self, table: str, values: Mapping[str, Any], *, eq: Mapping[str, Any]
    ) -> list[Row]:
        self._check_table(table)
        encoded = self._encode(table, dict(values), fill_defaults=False)
        if not encoded:
            return []
        matching = self.select(table, columns="id", eq=eq)
        if not matching:
            return []
        ids = [row["id"] for row in matching]
        assignments = ", ".join(f"{col} = ?" for col in encoded)
        placeholders = ", ".join("?" for _ in ids)
        self._execute(
            f"UPDATE {table} SET {assignments} WHERE id IN ({placeholders})",
            [*encoded.values(), *ids],
        )
        return self.select(table, in_=("id", ids))

    def delete(self, table: str, *, eq: Mapping[str, Any]) -> int:
        self._check_table(table)
        where, params = self._where(table, eq, None)
        if not where:
            raise StoreError(f"Refusing to delete from {table} without a filter")
        return self._execute(f"DELETE FROM {table}{where}", params)

    # ── private ─────────────────────────────────────────────────────────

    def _connect(self) -> sqlite3.Connection:
        con = sqlite3.connect(str(self._db_path))
        con.row_factory = sqlite3.Row
        return con

    def _init_db(self) -> None:
        con = self._connect()
        try:
            con.executescript(_SCHEMA)
            tables = [r["name"] for r in con.execute("SELECT name FROM sqlite_master WHERE type = 'table'")]
            for name in tables:
                self._columns[name] = [r["name"] for r in con.execute(f"PRAGMA table_info({name})")]
        finally:
            con.close()

    def _fetch(self, sql: str, params: Sequence[Any]) -> list[sqlite3.Row]:
        con = self._connect()
        try:
            return con.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"Query failed: {exc}") from exc
        finally:
            con.close()

    def _execute(self, sql: str, params: Sequence[Any]) -> int:
        con = self._connect()
        try:
            cur = con.execute(sql, params)
            con.commit()
            return cur.rowcount
        except sqlite3.Error as exc:
            raise StoreError(f"Statement failed: {exc}") from exc
        finally:
            con.close()

    def _check_table(self, table: str) -> None:
        if table not in self._columns:
            raise StoreError(f"Unknown table: {table}")

    def _check_column(self, table: str, column: str) -> None:
        self._check_table(table)
        if column not in self._columns[table]:
            raise StoreError(f"Unknown column {table}.{column}")

    def _select_list(self, table: str, columns: str) -> list[str]:
        self._check_table(table)
        if columns.strip() == "*":
            return list(self._columns[table])
        wanted = [c.strip() for c in columns.split(",") if c.strip()]
        for col in wanted:
            self._check_column(table, col)
        return wanted

    def _where(
        self,
        table: str,
        eq: Mapping[str, Any] | None,
        in_: tuple[str, Sequence[Any]] | None,
    ) -> tuple[str, list[Any]]:
        clauses: list[str] = []
        params: list[Any] = []
        for col, value in (eq or {}).items():
            self._check_column(table, col)
            if value is None:
                clauses.append(f"{col} IS NULL")
            else:
                clauses.append(f"{col} = ?")
                params.append(self._encode_value(table, col, value))
        if in_ is not None:
            col, values = in_
            self._check_column(table, col)
            clauses.append(f"{col} IN ({', '.join('?' for _ in values)})")
            params.extend(values)
        return (" WHERE " + " AND ".join(clauses) if clauses else ""), params

    def _encode_value(self, table: str, col: str, value: Any) -> Any:
        if col in _JSON_COLUMNS.get(table, set()):
            return json.dumps(value)
        if col in _BOOL_COLUMNS.get(table, set()):
            return int(bool(value))
        if col == "created_at":
            return _iso(value)
        return value

    def _encode(self, table: str, row: dict[str, Any], fill_defaults: bool = True) -> dict[str, Any]:
        for col in row:
            self._check_column(table, col)
        if fill_defaults:
            row.setdefault("id", uuid.uuid4().hex)
            row["id"] = str(row["id"])
            if row.get("created_at") is None:
                row["created_at"] = _now()
        return {col: self._encode_value(table, col, value) for col, value in row.items()}

    @staticmethod
    def _decode(table: str, row: sqlite3.Row) -> Row:
        out = dict(row)
        for col in _JSON_COLUMNS.get(table, set()) & out.keys():
            try:
                out[col] = json.loads(out[col]) if out[col] is not None else None
            except json.JSONDecodeError:
                logger.warning("Bad JSON in %s.%s for id=%s", table, col, out.get("id"))
                out[col] = None
        for col in _BOOL_COLUMNS.get(table, set()) & out.keys():
            out[col] = bool(out[col])
        return out
