"""Load the demo fixture (``config/seed.yml``) into a repository."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from cookbook.repository import TABLES, Repository, Row, StoreError

logger = logging.getLogger(__name__)

# Parents before children so foreign ids resolve on a real Postgres backend
SEED_ORDER: tuple[str, ...] = (
    "profiles",
    "posts",
    "follows",
    "tags",
    "post_tags",
    "post_likes",
    "post_comments",
    "post_saves",
    "notifications",
    "waitlist",
)


def load_seed(path: Path) -> dict[str, list[Row]]:
    """Parse a seed file into ``table -> rows``.

    Top-level keys must be table names; unknown keys raise ``ValueError``.
    """
    with open(path, encoding="utf-8") as fh:
        raw: Any = yaml.safe_load(fh) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Seed file {path} must contain a mapping of table -> rows")

    unknown = sorted(set(raw) - set(TABLES))
    if unknown:
        raise ValueError(f"Unknown tables in {path}: {', '.join(unknown)}")

    fixture: dict[str, list[Row]] = {}
    for table, rows in raw.items():
        if rows is None:
            continue
        if not isinstance(rows, list) or not all(isinstance(r, dict) for r in rows):
            raise ValueError(f"Seed table '{table}' must be a list of mappings")
        fixture[table] = [dict(r) for r in rows]
    return fixture


def seed_store(repo: Repository, fixture: dict[str, list[Row]]) -> dict[str, int]:
    """Insert fixture rows table by table; returns rows inserted per table.

    Rows that already exist (unique violation) are skipped so seeding twice
    is harmless.
    """
    inserted: dict[str, int] = {}
    for table in SEED_ORDER:
        rows = fixture.get(table) or []
        added = 0
        for row in rows:
            try:
                added += len(repo.insert(table, [row]))
            except StoreError as exc:
                if not exc.is_duplicate:
                    raise
                logger.debug("Skipping existing %s row %s", table, row.get("id"))
        inserted[table] = added
        if rows:
            logger.info("Seeded %s: %d/%d rows", table, added, len(rows))
    return inserted
