"""Home-feed assembly: enrich posts with author data, followed authors first."""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Collection, Iterable, Mapping
from typing import Any

from cookbook.media import to_media_items
from cookbook.models import (
    AuthorCounts,
    FeedPost,
    FollowEdge,
    Post,
    PostMeta,
    PostStats,
    PostUser,
    Profile,
    Viewer,
)

logger = logging.getLogger(__name__)

FALLBACK_NAME = "User"


def resolve_display_name(
    author_id: str,
    profile: Profile | None,
    viewer: Viewer | None,
) -> str:
    """Full name, then username, then the viewer's own name, then ``User``."""
    if profile is not None:
        if profile.full_name:
            return profile.full_name
        if profile.username:
            return profile.username
    if viewer is not None and author_id and author_id == viewer.id and viewer.display_name:
        return viewer.display_name
    return FALLBACK_NAME


def _to_feed_post(
    post: Post,
    profile: Profile | None,
    viewer: Viewer | None,
    stats: PostStats | None,
    tags: list[str],
    liked: bool,
    saved: bool,
) -> FeedPost:
    author_id = post.author_id or ""
    avatar = profile.avatar_url if profile else None
    if avatar is None and viewer is not None and author_id and author_id == viewer.id:
        avatar = viewer.avatar_url

    return FeedPost(
        id=post.id,
        user=PostUser(
            id=author_id,
            name=resolve_display_name(author_id, profile, viewer),
            username=profile.username if profile else None,
            avatar_url=avatar,
            bio=profile.bio if profile else None,
        ),
        created_at=post.created_at,
        text=post.text or None,
        attachments=to_media_items(post.media_urls),
        tags=list(tags),
        meta=PostMeta(
            model=post.model_name,
            category=post.category,
            sub_category=post.sub_category,
        ),
        stats=stats.model_copy() if stats else PostStats(),
        liked=liked,
        saved=saved,
    )


def partition_followed(
    feed: list[FeedPost], followed_ids: Collection[str]
) -> list[FeedPost]:
    """Stable partition: posts by followed authors first, input order kept."""
    followed = [p for p in feed if p.user.id in followed_ids]
    others = [p for p in feed if p.user.id not in followed_ids]
    return followed + others


def attach_author_counts(
    feed: list[FeedPost], counts: Mapping[str, AuthorCounts] | None
) -> list[FeedPost]:
    """Fill post/follower/following totals on every author block."""
    counts = counts or {}
    for post in feed:
        c = counts.get(post.user.id) or AuthorCounts()
        post.user.posts_count = c.posts
        post.user.followers_count = c.followers
        post.user.following_count = c.following
    return feed


def assemble_feed(
    posts: Iterable[Post],
    profiles: Mapping[str, Profile],
    followed_ids: Collection[str],
    viewer: Viewer | None,
    *,
    counts: Mapping[str, AuthorCounts] | None = None,
    stats: Mapping[str, PostStats] | None = None,
    tags: Mapping[str, list[str]] | None = None,
    liked_ids: Collection[str] = (),
    saved_ids: Collection[str] = (),
) -> list[FeedPost]:
    """Build the viewer's feed from already-fetched rows.

    ``posts`` are expected newest first; that order survives inside each of
    the followed / other partitions. ``counts`` is keyed by author id and is
    applied in a second pass over the final list.
    """
    stats = stats or {}
    tags = tags or {}
    feed: list[FeedPost] = []
    for post in posts:
        profile = profiles.get(post.author_id) if post.author_id else None
        feed.append(
            _to_feed_post(
                post,
                profile,
                viewer,
                stats.get(post.id),
                tags.get(post.id, []),
                liked=post.id in liked_ids,
                saved=post.id in saved_ids,
            )
        )

    ordered = partition_followed(feed, followed_ids)
    attach_author_counts(ordered, counts)
    logger.debug(
        "Assembled feed of %d posts (%d from followed authors)",
        len(ordered),
        sum(1 for p in ordered if p.user.id in followed_ids),
    )
    return ordered


# ── aggregation helpers ─────────────────────────────────────────────────────


def feed_author_ids(posts: Iterable[Post]) -> list[str]:
    """Distinct non-empty author ids, in order of first appearance."""
    seen: dict[str, None] = {}
    for post in posts:
        if post.author_id:
            seen.setdefault(post.author_id, None)
    return list(seen)


def compute_author_counts(
    author_ids: Iterable[str],
    posts: Iterable[Post],
    follows: Iterable[FollowEdge],
) -> dict[str, AuthorCounts]:
    """Corpus-wide totals for each of ``author_ids``."""
    wanted = set(author_ids)
    post_totals = Counter(p.author_id for p in posts if p.author_id in wanted)
    followers: Counter[str] = Counter()
    following: Counter[str] = Counter()
    for edge in follows:
        if edge.following_id in wanted:
            followers[edge.following_id] += 1
        if edge.follower_id in wanted:
            following[edge.follower_id] += 1
    return {
        a: AuthorCounts(posts=post_totals[a], followers=followers[a], following=following[a])
        for a in wanted
    }


def count_by_post(rows: Iterable[dict[str, Any]]) -> dict[str, int]:
    """Tally rows per ``post_id`` (likes, comments, saves)."""
    totals: Counter[str] = Counter()
    for row in rows:
        post_id = row.get("post_id")
        if post_id is not None:
            totals[str(post_id)] += 1
    return dict(totals)
