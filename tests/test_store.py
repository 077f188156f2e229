"""Tests for the SQLite-backed repository."""

from pathlib import Path

import pytest

from cookbook.repository import StoreError
from cookbook.store import SQLiteStore


def _make(tmp_path: Path) -> SQLiteStore:
    return SQLiteStore(tmp_path / "db" / "cookbook.sqlite3")


class TestInsertSelect:
    def test_insert_fills_id_and_timestamp(self, tmp_path: Path) -> None:
        store = _make(tmp_path)
        [row] = store.insert("posts", [{"author": "u1", "text": "hi", "media_urls": ["a.png"]}])
        assert row["id"]
        assert row["created_at"]
        assert row["media_urls"] == ["a.png"]

    def test_filters_order_and_limit(self, tmp_path: Path) -> None:
        store = _make(tmp_path)
        store.insert(
            "posts",
            [
                {"id": "p1", "author": "a", "created_at": "2024-01-01T00:00:00Z"},
                {"id": "p2", "author": "b", "created_at": "2024-01-02T00:00:00+00:00"},
                {"id": "p3", "author": "a", "created_at": "2024-01-03T00:00:00Z"},
            ],
        )
        newest = store.select("posts", columns="id", order="created_at", limit=2)
        assert [r["id"] for r in newest] == ["p3", "p2"]
        by_a = store.select("posts", columns="id", eq={"author": "a"}, order="created_at", desc=False)
        assert [r["id"] for r in by_a] == ["p1", "p3"]
        assert store.select("posts", in_=("id", [])) == []
        assert {r["id"] for r in store.select("posts", in_=("id", ["p1", "p2"]))} == {"p1", "p2"}

    def test_json_and_bool_columns(self, tmp_path: Path) -> None:
        store = _make(tmp_path)
        store.insert("notifications", [{"user_id": "u1", "type": "like", "payload": {"targetId": "p1"}}])
        [row] = store.select("notifications", eq={"is_read": False})
        assert row["payload"] == {"targetId": "p1"}
        assert row["is_read"] is False


class TestCountUpdateDelete:
    def test_count(self, tmp_path: Path) -> None:
        store = _make(tmp_path)
        store.insert("follows", [{"follower_id": "a", "following_id": "b"}, {"follower_id": "c", "following_id": "b"}])
        assert store.count("follows", eq={"following_id": "b"}) == 2
        assert store.count("follows", eq={"follower_id": "b"}) == 0

    def test_update_returns_changed_rows(self, tmp_path: Path) -> None:
        store = _make(tmp_path)
        store.insert("notifications", [{"user_id": "u1", "type": "like"}, {"user_id": "u2", "type": "like"}])
        updated = store.update("notifications", {"is_read": True}, eq={"user_id": "u1"})
        assert len(updated) == 1
        assert updated[0]["is_read"] is True
        assert store.count("notifications", eq={"is_read": False}) == 1

    def test_delete_requires_filter(self, tmp_path: Path) -> None:
        store = _make(tmp_path)
        with pytest.raises(StoreError):
            store.delete("posts", eq={})

    def test_delete(self, tmp_path: Path) -> None:
        store = _make(tmp_path)
        store.insert("tags", [{"id": "t1", "name": "food"}])
        assert store.delete("tags", eq={"id": "t1"}) == 1
        assert store.select("tags") == []


class TestErrors:
    def test_unique_violation_code(self, tmp_path: Path) -> None:
        store = _make(tmp_path)
        store.insert("tags", [{"name": "food"}])
        with pytest.raises(StoreError) as excinfo:
            store.insert("tags", [{"name": "food"}])
        assert excinfo.value.is_duplicate

    def test_unknown_table_and_column(self, tmp_path: Path) -> None:
        store = _make(tmp_path)
        with pytest.raises(StoreError):
            store.select("users")
        with pytest.raises(StoreError):
            store.select("posts", eq={"author; DROP TABLE posts": "x"})
