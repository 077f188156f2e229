"""CLI entry-point: ``python -m cookbook feed --viewer <id>`` and friends."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from cookbook import config, service
from cookbook.models import Result
from cookbook.repository import Repository
from cookbook.seed import load_seed, seed_store
from cookbook.store import SQLiteStore
from cookbook.supabase_client import SupabaseClient

logger = logging.getLogger(__name__)


def open_repository() -> Repository:
    """Hosted Supabase when configured, otherwise the local SQLite file."""
    if config.supabase_enabled():
        logger.info("Using Supabase backend at %s", config.SUPABASE_URL)
        return SupabaseClient(
            config.SUPABASE_URL,
            config.SUPABASE_ANON_KEY,
            access_token=config.SUPABASE_ACCESS_TOKEN or None,
            timeout=config.HTTP_TIMEOUT,
        )
    logger.info("Using SQLite store at %s", config.DB_PATH)
    return SQLiteStore(config.DB_PATH)


def _emit(result: Result) -> None:
    print(json.dumps(result.model_dump(mode="json", by_alias=True), indent=2, ensure_ascii=False))
    if not result.ok:
        logger.error("Command failed: %s", result.error)
        sys.exit(1)


def _seed(repo: Repository, path: Path) -> None:
    if not path.exists():
        logger.error("Seed file not found: %s", path)
        sys.exit(1)
    counts = seed_store(repo, load_seed(path))
    logger.info("Seeded %d rows in total", sum(counts.values()))
    print(json.dumps(counts, indent=2))


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="cookbook",
        description="Feed and notification views over the AI Cookbook tables.",
    )
    sub = parser.add_subparsers(dest="command")

    # ── seed ───────────────────────────────────────────────────────────
    seed_parser = sub.add_parser("seed", help="Load demo rows into the backend.")
    seed_parser.add_argument(
        "--file",
        type=Path,
        default=config.SEED_FILE,
        help=f"YAML fixture to load (default: {config.SEED_FILE.name}).",
    )

    # ── feed ───────────────────────────────────────────────────────────
    feed_parser = sub.add_parser("feed", help="Print a viewer's home feed as JSON.")
    feed_parser.add_argument("--viewer", required=True, help="Viewer account id.")
    feed_parser.add_argument("--limit", type=int, default=config.FEED_LIMIT)

    # ── notifications ──────────────────────────────────────────────────
    notif_parser = sub.add_parser("notifications", help="Print a viewer's notifications.")
    notif_parser.add_argument("--viewer", required=True, help="Viewer account id.")
    notif_parser.add_argument("--email", help="Viewer email, used as a fallback actor name.")
    notif_parser.add_argument("--unread", action="store_true", help="Only unread ones.")
    notif_parser.add_argument("--limit", type=int, default=config.NOTIFICATION_LIMIT)

    # ── read ───────────────────────────────────────────────────────────
    read_parser = sub.add_parser("read", help="Mark notifications as read.")
    read_parser.add_argument("--viewer", required=True, help="Viewer account id.")
    target = read_parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--id", dest="notification_id", help="A single notification id.")
    target.add_argument("--all", action="store_true", help="Every unread notification.")

    # ── profile ────────────────────────────────────────────────────────
    profile_parser = sub.add_parser("profile", help="Print a profile page.")
    profile_parser.add_argument("--viewer", required=True, help="Viewer account id.")
    profile_parser.add_argument("--username", required=True)

    # ── post ───────────────────────────────────────────────────────────
    post_parser = sub.add_parser("post", help="Print a single post.")
    post_parser.add_argument("--viewer", required=True, help="Viewer account id.")
    post_parser.add_argument("--id", dest="post_id", required=True, help="Post id.")

    # ── tags ───────────────────────────────────────────────────────────
    tags_parser = sub.add_parser("tags", help="Top explore tags, or search by name.")
    tags_parser.add_argument("--query", help="Substring to search tag names for.")

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    repo = open_repository()

    if args.command == "seed":
        _seed(repo, args.file)
        return
    if args.command == "tags":
        if args.query:
            _emit(service.search_tags(repo, args.query))
        else:
            _emit(service.explore_tags(repo))
        return

    viewer = service.resolve_viewer(repo, args.viewer, email=getattr(args, "email", None))
    if args.command == "feed":
        _emit(service.load_home_feed(repo, viewer, limit=args.limit))
    elif args.command == "notifications":
        _emit(
            service.load_notifications(
                repo, viewer, limit=args.limit, unread_only=args.unread
            )
        )
    elif args.command == "read":
        if args.all:
            _emit(service.mark_all_notifications_read(repo, viewer))
        else:
            _emit(service.mark_notification_read(repo, viewer, args.notification_id))
    elif args.command == "profile":
        _emit(service.load_profile_page(repo, viewer, args.username))
    elif args.command == "post":
        _emit(service.load_post(repo, viewer, args.post_id))


if __name__ == "__main__":
    main()
