"""Centralised configuration loaded from environment variables and dotenv."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# ── Paths ──────────────────────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parents[2]
DB_PATH: Path = Path(
    os.getenv("COOKBOOK_DB_PATH", str(PROJECT_ROOT / "var" / "cookbook.sqlite3"))
)
SEED_FILE: Path = PROJECT_ROOT / "config" / "seed.yml"

# ── Hosted backend (Supabase) ──────────────────────────────────────────────
SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
SUPABASE_ANON_KEY: str = os.getenv("SUPABASE_ANON_KEY", "")
SUPABASE_ACCESS_TOKEN: str = os.getenv("SUPABASE_ACCESS_TOKEN", "")
HTTP_TIMEOUT: float = float(os.getenv("COOKBOOK_HTTP_TIMEOUT", "30"))

# ── Feed / notifications ───────────────────────────────────────────────────
FEED_LIMIT: int = int(os.getenv("COOKBOOK_FEED_LIMIT", "50"))
NOTIFICATION_LIMIT: int = int(os.getenv("COOKBOOK_NOTIFICATION_LIMIT", "50"))
FETCH_WORKERS: int = int(os.getenv("COOKBOOK_FETCH_WORKERS", "8"))

# ── Display ────────────────────────────────────────────────────────────────
LOCALE: str = os.getenv("COOKBOOK_LOCALE", "en_US")
TIME_FORMAT: str = os.getenv("COOKBOOK_TIME_FORMAT", "long")  # long | short | narrow

LOG_LEVEL: str = os.getenv("COOKBOOK_LOG_LEVEL", "INFO")


def supabase_enabled() -> bool:
    """True when the hosted backend is configured."""
    return bool(SUPABASE_URL and SUPABASE_ANON_KEY)
