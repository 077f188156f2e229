"""Row-level data access interface shared by the storage backends."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any, Protocol

Row = dict[str, Any]

TABLES: tuple[str, ...] = (
    "posts",
    "profiles",
    "follows",
    "post_likes",
    "post_comments",
    "post_saves",
    "tags",
    "post_tags",
    "notifications",
    "waitlist",
)

# PostgreSQL unique_violation, reused by every backend
UNIQUE_VIOLATION = "23505"


class StoreError(Exception):
    """Raised when a backend query fails."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code

    @property
    def is_duplicate(self) -> bool:
        return self.code == UNIQUE_VIOLATION or "duplicate" in str(self).lower()


class Repository(Protocol):
    """Table access used by :mod:`cookbook.service`.

    ``eq`` maps column → value (all must match); ``in_`` is a single
    ``(column, values)`` membership filter. Rows are plain dicts.
    """

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
    ) -> list[Row]: ...

    def count(self, table: str, *, eq: Mapping[str, Any] | None = None) -> int: ...

    def insert(self, table: str, rows: Iterable[Mapping[str, Any]]) -> list[Row]: ...

    def update(
        self, table: str, values: Mapping[str, Any], *, eq: Mapping[str, Any]
    ) -> list[Row]: ...

    def delete(self, table: str, *, eq: Mapping[str, Any]) -> int: ...
