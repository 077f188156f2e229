"""Request-level orchestration: fetch rows through a repository, then shape them.

Every public function takes the repository explicitly and returns a result
model; backend failures come back as ``ok=False`` with an ``error`` message
instead of propagating.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from cookbook import config
from cookbook.explore import MODEL_CATEGORIES, aggregate_tag_photos, model_category, rank_tags
from cookbook.feed import assemble_feed, count_by_post, feed_author_ids
from cookbook.models import (
    AuthorCounts,
    CollectionsResult,
    CountResult,
    ExploreTag,
    ExploreTagsResult,
    FeedPost,
    FeedResult,
    FollowState,
    ModelSearchResult,
    NotificationActor,
    NotificationsResult,
    PostResult,
    PostStats,
    Profile,
    ProfileResult,
    ProfileSettingsResult,
    ProfileSummary,
    Result,
    SinglePostResult,
    ToggleResult,
    Viewer,
    WaitlistEntry,
)
from cookbook.normalize import (
    normalize_actor_row,
    normalize_notification_row,
    normalize_post_row,
    normalize_profile_row,
    parse_timestamp,
)
from cookbook.notifications import (
    BabelRelativeTimeFormatter,
    RelativeTimeFormatter,
    map_notification,
    unread_count,
    utcnow,
)
from cookbook.repository import Repository, Row, StoreError

logger = logging.getLogger(__name__)

_MENTION_RE = re.compile(r"(?<![\w@])@([A-Za-z0-9_]{2,30})\b")
_SNIPPET_LEN = 80
_EPOCH = datetime.min.replace(tzinfo=UTC)


def default_formatter() -> RelativeTimeFormatter:
    return BabelRelativeTimeFormatter(locale=config.LOCALE, style=config.TIME_FORMAT)


def _name_of(viewer: Viewer) -> str:
    return viewer.display_name or viewer.email or "Someone"


def _newest_first(rows: Iterable[Row]) -> list[Row]:
    return sorted(
        rows, key=lambda r: parse_timestamp(r.get("created_at")) or _EPOCH, reverse=True
    )


# ── lookups ─────────────────────────────────────────────────────────────────


def resolve_viewer(repo: Repository, viewer_id: str, *, email: str | None = None) -> Viewer:
    """Build a :class:`Viewer` from the account's profile row, if any."""
    try:
        rows = repo.select("profiles", eq={"id": viewer_id}, limit=1)
    except StoreError:
        logger.exception("Could not load profile for viewer %s", viewer_id)
        rows = []
    profile = normalize_profile_row(rows[0]) if rows else None
    return Viewer(
        id=viewer_id,
        display_name=(profile.full_name or profile.username) if profile else None,
        email=email,
        avatar_url=profile.avatar_url if profile else None,
    )


def _load_profiles(repo: Repository, ids: Sequence[str]) -> dict[str, Profile]:
    rows = repo.select(
        "profiles",
        columns="id,username,full_name,avatar_url,bio",
        in_=("id", list(ids)),
    )
    profiles = (normalize_profile_row(r) for r in rows)
    return {p.id: p for p in profiles if p.id}


def _following_ids(repo: Repository, viewer_id: str) -> set[str]:
    rows = repo.select("follows", columns="following_id", eq={"follower_id": viewer_id})
    return {str(r["following_id"]) for r in rows if r.get("following_id")}


def _author_counts(
    repo: Repository, author_ids: Sequence[str], workers: int | None = None
) -> dict[str, AuthorCounts]:
    """Post/follower/following totals per author; queries run in parallel."""
    if not author_ids:
        return {}
    with ThreadPoolExecutor(max_workers=workers or config.FETCH_WORKERS) as pool:
        futures = {
            a: (
                pool.submit(repo.count, "posts", eq={"author": a}),
                pool.submit(repo.count, "follows", eq={"following_id": a}),
                pool.submit(repo.count, "follows", eq={"follower_id": a}),
            )
            for a in author_ids
        }
        return {
            a: AuthorCounts(posts=p.result(), followers=f.result(), following=g.result())
            for a, (p, f, g) in futures.items()
        }


def _engagement(
    repo: Repository, post_ids: list[str], viewer_id: str
) -> tuple[dict[str, PostStats], set[str], set[str]]:
    likes = repo.select("post_likes", columns="post_id,user_id", in_=("post_id", post_ids))
    comments = repo.select("post_comments", columns="post_id", in_=("post_id", post_ids))
    saves = repo.select(
        "post_saves", columns="post_id", eq={"user_id": viewer_id}, in_=("post_id", post_ids)
    )
    like_totals = count_by_post(likes)
    comment_totals = count_by_post(comments)
    stats = {
        pid: PostStats(likes=like_totals.get(pid, 0), comments=comment_totals.get(pid, 0))
        for pid in post_ids
    }
    liked = {str(r["post_id"]) for r in likes if str(r.get("user_id")) == viewer_id}
    saved = {str(r["post_id"]) for r in saves}
    return stats, liked, saved


def _post_tags(repo: Repository, post_ids: list[str]) -> dict[str, list[str]]:
    links = repo.select("post_tags", columns="post_id,tag_id", in_=("post_id", post_ids))
    tag_ids = sorted({str(link["tag_id"]) for link in links})
    names = {
        str(r["id"]): str(r["name"])
        for r in repo.select("tags", columns="id,name", in_=("id", tag_ids))
    }
    by_post: dict[str, list[str]] = {}
    for link in links:
        name = names.get(str(link["tag_id"]))
        if name:
            by_post.setdefault(str(link["post_id"]), []).append(name)
    return by_post


def _build_feed(
    repo: Repository, viewer: Viewer, post_rows: list[Row], *, keep_order: bool = False
) -> list[FeedPost]:
    """Enrich rows into feed posts; ``keep_order`` skips the followed-first partition."""
    posts = [normalize_post_row(r) for r in post_rows]
    post_ids = [p.id for p in posts if p.id]
    authors = feed_author_ids(posts)

    profiles = _load_profiles(repo, authors)
    followed = set() if keep_order else _following_ids(repo, viewer.id)
    stats, liked, saved = _engagement(repo, post_ids, viewer.id)
    tags = _post_tags(repo, post_ids)
    counts = _author_counts(repo, authors)

    return assemble_feed(
        posts,
        profiles,
        followed,
        viewer,
        counts=counts,
        stats=stats,
        tags=tags,
        liked_ids=liked,
        saved_ids=saved,
    )


# ── feeds ───────────────────────────────────────────────────────────────────


def load_home_feed(
    repo: Repository, viewer: Viewer, *, limit: int = config.FEED_LIMIT
) -> FeedResult:
    """Recent posts, followed authors first."""
    try:
        rows = repo.select("posts", order="created_at", limit=limit)
        feed = _build_feed(repo, viewer, rows)
    except StoreError as exc:
        logger.exception("Failed to load home feed for %s", viewer.id)
        return FeedResult(ok=False, error=str(exc))
    logger.info("Home feed for %s: %d posts", viewer.id, len(feed))
    return FeedResult(posts=feed)


def load_profile_page(repo: Repository, viewer: Viewer, username: str) -> ProfileResult:
    try:
        rows = repo.select("profiles", eq={"username": username.strip()}, limit=1)
        if not rows:
            return ProfileResult(ok=False, error="Profile not found")
        profile = normalize_profile_row(rows[0])
        summary = ProfileSummary(
            profile=profile,
            followers=repo.count("follows", eq={"following_id": profile.id}),
            following=repo.count("follows", eq={"follower_id": profile.id}),
            posts_count=repo.count("posts", eq={"author": profile.id}),
            is_following=repo.count(
                "follows", eq={"follower_id": viewer.id, "following_id": profile.id}
            )
            > 0,
            is_self=profile.id == viewer.id,
        )
        post_rows = repo.select("posts", eq={"author": profile.id}, order="created_at")
        posts = _build_feed(repo, viewer, post_rows)
    except StoreError as exc:
        logger.exception("Failed to load profile %s", username)
        return ProfileResult(ok=False, error=str(exc))
    return ProfileResult(summary=summary, posts=posts)


def load_tag_feed(
    repo: Repository, viewer: Viewer, tag_name: str, *, limit: int = config.FEED_LIMIT
) -> FeedResult:
    try:
        tags = repo.select("tags", columns="id", eq={"name": tag_name.strip()}, limit=1)
        if not tags:
            return FeedResult()
        links = repo.select(
            "post_tags",
            columns="post_id",
            eq={"tag_id": tags[0]["id"]},
            order="created_at",
            limit=limit,
        )
        post_ids = [str(link["post_id"]) for link in links]
        rows = _newest_first(repo.select("posts", in_=("id", post_ids)))
        feed = _build_feed(repo, viewer, rows)
    except StoreError as exc:
        logger.exception("Failed to load tag feed for #%s", tag_name)
        return FeedResult(ok=False, error=str(exc))
    return FeedResult(posts=feed)


def load_model_feed(
    repo: Repository,
    viewer: Viewer,
    category: str,
    *,
    limit: int = config.FEED_LIMIT,
    name_filter: str | None = None,
    scan: int = 500,
) -> FeedResult:
    """Posts whose model name falls in ``category`` (``other`` = unknown families)."""
    category = category.strip().lower()
    if category not in MODEL_CATEGORIES:
        return FeedResult(ok=False, error="Unknown model category")
    needle = (name_filter or "").strip().lower()
    try:
        recent = repo.select("posts", order="created_at", limit=scan)
        rows = [
            r
            for r in recent
            if model_category(r.get("model_name")) == category
            and (not needle or needle in str(r.get("model_name")).lower())
        ][:limit]
        feed = _build_feed(repo, viewer, rows)
    except StoreError as exc:
        logger.exception("Failed to load %s model feed", category)
        return FeedResult(ok=False, error=str(exc))
    return FeedResult(posts=feed)


def load_post(repo: Repository, viewer: Viewer, post_id: str) -> SinglePostResult:
    """A single post with its author block, the target of ``/posts/{id}`` links."""
    if not post_id or not post_id.strip():
        return SinglePostResult(ok=False, error="Post not found")
    try:
        rows = repo.select("posts", eq={"id": post_id.strip()}, limit=1)
        if not rows:
            return SinglePostResult(ok=False, error="Post not found")
        [post] = _build_feed(repo, viewer, rows, keep_order=True)
    except StoreError as exc:
        logger.exception("Failed to load post %s", post_id)
        return SinglePostResult(ok=False, error=str(exc))
    return SinglePostResult(post=post)


def _collection(repo: Repository, viewer: Viewer, table: str) -> list[FeedPost]:
    """Posts the viewer saved or liked, ordered by when they did so."""
    entries = repo.select(table, columns="post_id", eq={"user_id": viewer.id}, order="created_at")
    ordered_ids = list(dict.fromkeys(str(e["post_id"]) for e in entries if e.get("post_id")))
    by_id = {str(r["id"]): r for r in repo.select("posts", in_=("id", ordered_ids))}
    rows = [by_id[pid] for pid in ordered_ids if pid in by_id]
    return _build_feed(repo, viewer, rows, keep_order=True)


def load_collections(repo: Repository, viewer: Viewer) -> CollectionsResult:
    try:
        saved = _collection(repo, viewer, "post_saves")
        liked = _collection(repo, viewer, "post_likes")
    except StoreError as exc:
        logger.exception("Failed to load saved/liked posts for %s", viewer.id)
        return CollectionsResult(ok=False, error=str(exc))
    logger.info("Collections for %s: %d saved, %d liked", viewer.id, len(saved), len(liked))
    return CollectionsResult(saved=saved, liked=liked)


# ── notifications ───────────────────────────────────────────────────────────


def load_notifications(
    repo: Repository,
    viewer: Viewer,
    *,
    limit: int = config.NOTIFICATION_LIMIT,
    unread_only: bool = False,
    clock: Callable[[], datetime] = utcnow,
    formatter: RelativeTimeFormatter | None = None,
) -> NotificationsResult:
    formatter = formatter or default_formatter()
    eq: dict[str, Any] = {"user_id": viewer.id}
    if unread_only:
        eq["is_read"] = False
    try:
        rows = repo.select("notifications", eq=eq, order="created_at", limit=limit)
        total_unread = repo.count("notifications", eq=eq) if unread_only else None
    except StoreError as exc:
        logger.exception("Failed to load notifications for %s", viewer.id)
        return NotificationsResult(ok=False, error=str(exc))

    actor_ids = sorted({str(r["actor_id"]) for r in rows if r.get("actor_id")})
    actors: dict[str, NotificationActor] = {}
    try:
        for actor_row in repo.select(
            "profiles", columns="id,username,full_name,avatar_url", in_=("id", actor_ids)
        ):
            actor = normalize_actor_row(actor_row)
            if actor.id:
                actors[actor.id] = actor
    except StoreError:
        # notifications still render with the fallback actor name
        logger.exception("Failed to fetch notification actors")

    notifications = []
    for row in rows:
        normalized = normalize_notification_row(row, actor=actors.get(str(row.get("actor_id"))))
        notifications.append(
            map_notification(
                normalized, fallback_email=viewer.email, clock=clock, formatter=formatter
            )
        )
    return NotificationsResult(
        notifications=notifications,
        unread_count=total_unread if total_unread is not None else unread_count(notifications),
    )


def fetch_unread_count(repo: Repository, viewer: Viewer) -> CountResult:
    try:
        total = repo.count("notifications", eq={"user_id": viewer.id, "is_read": False})
    except StoreError as exc:
        logger.exception("Failed to count unread notifications")
        return CountResult(ok=False, error=str(exc))
    return CountResult(count=total)


def enqueue_notification(
    repo: Repository,
    *,
    user_id: str | None,
    actor_id: str | None,
    type: str,
    payload: dict[str, Any] | None = None,
) -> Result:
    if not user_id or not actor_id:
        return Result(ok=False, error="Missing notification recipient or actor")
    if user_id == actor_id:
        return Result(ok=False, error="Skipping self notifications")

    sanitized = {k: v for k, v in (payload or {}).items() if v is not None}
    try:
        repo.insert(
            "notifications",
            [{"user_id": user_id, "actor_id": actor_id, "type": type, "payload": sanitized}],
        )
    except StoreError as exc:
        logger.error("Failed to enqueue %s notification for %s: %s", type, user_id, exc)
        return Result(ok=False, error=str(exc))
    return Result()


def mark_notification_read(repo: Repository, viewer: Viewer, notification_id: str) -> Result:
    if not notification_id or not isinstance(notification_id, str):
        return Result(ok=False, error="Invalid notification identifier")
    try:
        repo.update(
            "notifications", {"is_read": True}, eq={"id": notification_id, "user_id": viewer.id}
        )
    except StoreError as exc:
        logger.exception("Failed to mark notification %s as read", notification_id)
        return Result(ok=False, error=str(exc))
    return Result()


def mark_all_notifications_read(repo: Repository, viewer: Viewer) -> CountResult:
    try:
        updated = repo.update(
            "notifications", {"is_read": True}, eq={"user_id": viewer.id, "is_read": False}
        )
    except StoreError as exc:
        logger.exception("Failed to mark notifications as read")
        return CountResult(ok=False, error=str(exc))
    return CountResult(count=len(updated))


def _notify_mentions(
    repo: Repository,
    viewer: Viewer,
    text: str,
    *,
    target_type: str,
    target_id: str,
    target_url: str,
) -> None:
    usernames = sorted({m.lower() for m in _MENTION_RE.findall(text)})
    if not usernames:
        return
    mentioned = [
        p
        for p in (normalize_profile_row(r) for r in repo.select("profiles", columns="id,username"))
        if p.username and p.username.lower() in usernames
    ]
    for profile in mentioned:
        enqueue_notification(
            repo,
            user_id=profile.id,
            actor_id=viewer.id,
            type="mention",
            payload={
                "targetType": target_type,
                "targetId": target_id,
                "targetUrl": target_url,
                "snippet": text[:_SNIPPET_LEN],
            },
        )


# ── follows ─────────────────────────────────────────────────────────────────


def get_follow_state(repo: Repository, viewer: Viewer, target_id: str) -> FollowState:
    try:
        followers = repo.count("follows", eq={"following_id": target_id})
        following = (
            target_id != viewer.id
            and repo.count("follows", eq={"follower_id": viewer.id, "following_id": target_id})
            > 0
        )
    except StoreError as exc:
        logger.exception("Failed to read follow state for %s", target_id)
        return FollowState(ok=False, error=str(exc))
    return FollowState(following=following, followers=followers)


def toggle_follow(repo: Repository, viewer: Viewer, target_id: str) -> FollowState:
    """Follow ``target_id``, or unfollow when already following."""
    if not target_id or target_id == viewer.id:
        state = get_follow_state(repo, viewer, target_id or viewer.id)
        return FollowState(ok=state.ok, error=state.error, following=False, followers=state.followers)

    edge = {"follower_id": viewer.id, "following_id": target_id}
    existing: list[Row] = []
    try:
        existing = repo.select("follows", columns="id", eq=edge, limit=1)
        if existing:
            repo.delete("follows", eq={"id": existing[0]["id"]})
            logger.info("%s unfollowed %s", viewer.id, target_id)
        else:
            repo.insert("follows", [edge])
            logger.info("%s followed %s", viewer.id, target_id)
    except StoreError as exc:
        logger.exception("Failed to toggle follow %s -> %s", viewer.id, target_id)
        return FollowState(ok=False, following=bool(existing), error=str(exc))

    if not existing:
        enqueue_notification(
            repo,
            user_id=target_id,
            actor_id=viewer.id,
            type="follow",
            payload={"targetType": "profile", "targetId": viewer.id},
        )
    return get_follow_state(repo, viewer, target_id)


# ── posts ───────────────────────────────────────────────────────────────────


def _find_post(repo: Repository, post_id: str) -> Row | None:
    rows = repo.select("posts", columns="id,author", eq={"id": post_id}, limit=1)
    return rows[0] if rows else None


def _clean_tags(tags: Iterable[str]) -> list[str]:
    cleaned: dict[str, None] = {}
    for tag in tags:
        if isinstance(tag, str) and tag.strip():
            cleaned.setdefault(tag.strip(), None)
    return list(cleaned)


def _link_tags(repo: Repository, post_id: str, tags: list[str]) -> None:
    """Reuse existing tags, create missing ones, then link them to the post."""
    known = {r["name"]: r["id"] for r in repo.select("tags", columns="id,name", in_=("name", tags))}
    missing = [t for t in tags if t not in known]
    if missing:
        try:
            repo.insert("tags", [{"name": name} for name in missing])
        except StoreError as exc:
            if not exc.is_duplicate:
                raise
            logger.info("Tag insert raced with another writer; re-fetching")
        known = {
            r["name"]: r["id"] for r in repo.select("tags", columns="id,name", in_=("name", tags))
        }
    links = [{"post_id": post_id, "tag_id": known[t]} for t in tags if t in known]
    if links:
        repo.insert("post_tags", links)


def create_post(
    repo: Repository,
    viewer: Viewer,
    *,
    text: str = "",
    category: str = "",
    sub_category: str = "",
    model_name: str = "",
    media_urls: Sequence[str] = (),
    tags: Sequence[str] = (),
) -> PostResult:
    text = (text or "").strip()
    media = [u.strip() for u in media_urls if isinstance(u, str) and u.strip()]
    if not text and not media:
        return PostResult(ok=False, error="Post must include text or media")

    row = {
        "text": text,
        "category": (category or "").strip(),
        "sub_category": (sub_category or "").strip(),
        "model_name": (model_name or "").strip(),
        "media_urls": media,
        "author": viewer.id,
    }
    try:
        inserted = repo.insert("posts", [row])
        if not inserted:
            return PostResult(ok=False, error="Failed to insert post")
        post = inserted[0]
        cleaned_tags = _clean_tags(tags)
        if cleaned_tags:
            _link_tags(repo, str(post["id"]), cleaned_tags)
        if text:
            _notify_mentions(
                repo,
                viewer,
                text,
                target_type="post",
                target_id=str(post["id"]),
                target_url=f"/posts/{post['id']}",
            )
    except StoreError as exc:
        logger.exception("Failed to create post for %s", viewer.id)
        return PostResult(ok=False, error=str(exc))
    logger.info("Created post %s (%d media, %d tags)", post["id"], len(media), len(cleaned_tags))
    return PostResult(post=post)


def delete_post(repo: Repository, viewer: Viewer, post_id: str) -> Result:
    try:
        owned = repo.select("posts", columns="id", eq={"id": post_id, "author": viewer.id}, limit=1)
        if not owned:
            return Result(ok=False, error="Post not found")
        repo.delete("posts", eq={"id": post_id})
    except StoreError as exc:
        logger.exception("Failed to delete post %s", post_id)
        return Result(ok=False, error=str(exc))
    return Result()


def _toggle_membership(repo: Repository, table: str, viewer: Viewer, post_id: str) -> tuple[bool, Row]:
    """Flip a (post, user) row in ``table``; returns (now active, post row)."""
    post = _find_post(repo, post_id)
    if post is None:
        raise LookupError("Post not found")
    key = {"post_id": post_id, "user_id": viewer.id}
    existing = repo.select(table, columns="id", eq=key, limit=1)
    if existing:
        repo.delete(table, eq={"id": existing[0]["id"]})
        return False, post
    repo.insert(table, [key])
    return True, post


def toggle_like(repo: Repository, viewer: Viewer, post_id: str) -> ToggleResult:
    try:
        active, post = _toggle_membership(repo, "post_likes", viewer, post_id)
    except LookupError as exc:
        return ToggleResult(ok=False, error=str(exc))
    except StoreError as exc:
        logger.exception("Failed to toggle like on %s", post_id)
        return ToggleResult(ok=False, error=str(exc))
    if active:
        enqueue_notification(
            repo,
            user_id=post.get("author"),
            actor_id=viewer.id,
            type="like",
            payload={"targetType": "post", "targetId": post_id},
        )
    return ToggleResult(active=active)


def toggle_save(repo: Repository, viewer: Viewer, post_id: str) -> ToggleResult:
    try:
        active, _ = _toggle_membership(repo, "post_saves", viewer, post_id)
    except LookupError as exc:
        return ToggleResult(ok=False, error=str(exc))
    except StoreError as exc:
        logger.exception("Failed to toggle save on %s", post_id)
        return ToggleResult(ok=False, error=str(exc))
    return ToggleResult(active=active)


def add_comment(repo: Repository, viewer: Viewer, post_id: str, text: str) -> PostResult:
    text = (text or "").strip()
    if not text:
        return PostResult(ok=False, error="Comment cannot be empty")
    try:
        post = _find_post(repo, post_id)
        if post is None:
            return PostResult(ok=False, error="Post not found")
        inserted = repo.insert(
            "post_comments", [{"post_id": post_id, "user_id": viewer.id, "text": text}]
        )
        if not inserted:
            return PostResult(ok=False, error="Failed to insert comment")
        comment = inserted[0]
        _notify_mentions(
            repo,
            viewer,
            text,
            target_type="comment",
            target_id=str(comment["id"]),
            target_url=f"/posts/{post_id}",
        )
    except StoreError as exc:
        logger.exception("Failed to add comment on %s", post_id)
        return PostResult(ok=False, error=str(exc))

    enqueue_notification(
        repo,
        user_id=post.get("author"),
        actor_id=viewer.id,
        type="comment",
        payload={
            "targetType": "post",
            "targetId": post_id,
            "message": f"{_name_of(viewer)} commented on your post.",
            "snippet": text[:_SNIPPET_LEN],
        },
    )
    return PostResult(post=comment)


# ── explore ─────────────────────────────────────────────────────────────────


def _tag_tiles(
    repo: Repository, links: list[Row], tag_names: dict[str, str], max_photos: int
) -> dict[str, list[str]]:
    post_ids = sorted({str(link["post_id"]) for link in links})
    post_media = {
        p.id: p.media_urls
        for p in (
            normalize_post_row(r)
            for r in repo.select("posts", columns="id,media_urls", in_=("id", post_ids))
        )
    }
    return aggregate_tag_photos(post_media, links, tag_names, max_photos=max_photos)


def explore_tags(
    repo: Repository,
    *,
    max_tags: int = 9,
    recent_posts: int = 60,
    max_photos_per_tag: int = 8,
) -> ExploreTagsResult:
    """Top tags by number of photos among recent posts."""
    try:
        posts = [
            normalize_post_row(r)
            for r in repo.select("posts", columns="id,media_urls", order="created_at", limit=recent_posts)
        ]
        post_ids = [p.id for p in posts if p.media_urls]
        if not post_ids:
            return ExploreTagsResult()
        links = repo.select("post_tags", columns="post_id,tag_id", in_=("post_id", post_ids))
        tag_ids = sorted({str(link["tag_id"]) for link in links})
        tag_names = {
            str(r["id"]): str(r["name"])
            for r in repo.select("tags", columns="id,name", in_=("id", tag_ids))
        }
        photos = _tag_tiles(repo, links, tag_names, max_photos_per_tag)
    except StoreError as exc:
        logger.exception("Failed to aggregate explore tags")
        return ExploreTagsResult(ok=False, error=str(exc))
    return ExploreTagsResult(tags=rank_tags(photos, max_tags=max_tags))


def search_tags(
    repo: Repository,
    query: str,
    *,
    max_tags: int = 12,
    recent_posts: int = 80,
    max_photos_per_tag: int = 6,
) -> ExploreTagsResult:
    """Tags whose name contains ``query``, alphabetical, each with sample photos."""
    needle = (query or "").strip().lower()
    if not needle:
        return ExploreTagsResult()
    try:
        matching = sorted(
            (r for r in repo.select("tags", columns="id,name") if needle in str(r["name"]).lower()),
            key=lambda r: str(r["name"]),
        )[:max_tags]
        tag_names = {str(r["id"]): str(r["name"]) for r in matching}
        links = repo.select(
            "post_tags",
            columns="post_id,tag_id",
            in_=("tag_id", list(tag_names)),
            order="created_at",
            limit=recent_posts,
        )
        photos = _tag_tiles(repo, links, tag_names, max_photos_per_tag)
    except StoreError as exc:
        logger.exception("Failed to search tags for %r", query)
        return ExploreTagsResult(ok=False, error=str(exc))
    return ExploreTagsResult(
        tags=[ExploreTag(name=name, photos=photos.get(name, [])) for name in tag_names.values()]
    )


def search_other_models(repo: Repository, query: str, *, limit: int = 15) -> ModelSearchResult:
    """Distinct model names outside the known families that contain ``query``."""
    needle = (query or "").strip().lower()
    if not needle:
        return ModelSearchResult()
    try:
        rows = repo.select("posts", columns="model_name")
    except StoreError as exc:
        logger.exception("Failed to search models for %r", query)
        return ModelSearchResult(ok=False, error=str(exc))
    names = {
        name.strip()
        for name in (r.get("model_name") for r in rows)
        if isinstance(name, str)
        and needle in name.lower()
        and model_category(name) == "other"
    }
    return ModelSearchResult(models=sorted(names, key=str.lower)[:limit])


# ── profile ─────────────────────────────────────────────────────────────────


def update_profile_settings(
    repo: Repository,
    viewer: Viewer,
    *,
    bio: str | None = None,
    remove_background: bool = False,
) -> ProfileSettingsResult:
    """Write the viewer's bio and/or clear their background image.

    ``bio=None`` leaves the bio unchanged; a blank string clears it.
    """
    values: dict[str, Any] = {}
    if bio is not None:
        values["bio"] = bio.strip() or None
    if remove_background:
        values["background_image"] = None
    try:
        if values:
            rows = repo.update("profiles", values, eq={"id": viewer.id})
            if not rows:
                rows = repo.insert("profiles", [{"id": viewer.id, **values}])
        else:
            rows = repo.select("profiles", eq={"id": viewer.id}, limit=1)
    except StoreError as exc:
        logger.exception("Failed to update profile settings for %s", viewer.id)
        return ProfileSettingsResult(ok=False, error=str(exc))
    if not rows:
        return ProfileSettingsResult(ok=False, error="Profile not found")
    return ProfileSettingsResult(profile=normalize_profile_row(rows[0]))


# ── waitlist ────────────────────────────────────────────────────────────────


def join_waitlist(repo: Repository, email: str, full_name: str) -> Result:
    try:
        entry = WaitlistEntry(email=email, full_name=(full_name or "").strip())
    except ValidationError:
        return Result(ok=False, error="Invalid input")
    try:
        repo.insert("waitlist", [entry.model_dump()])
    except StoreError as exc:
        if exc.is_duplicate:
            return Result(ok=False, error="You're already on the waitlist.")
        logger.exception("Failed to join waitlist")
        return Result(ok=False, error="Failed to join waitlist")
    return Result()
