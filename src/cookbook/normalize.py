"""Map raw backend rows onto fixed record shapes.

Rows come back from the backend as loosely typed dicts: JSON payloads with
arbitrary keys, ids that may be ints, keys in either snake_case or camelCase.
Everything is coerced here, once, so downstream code can rely on the models in
:mod:`cookbook.models`. None of these functions raise.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from cookbook.models import (
    FollowEdge,
    NotificationActor,
    NotificationPayload,
    NotificationRow,
    Post,
    Profile,
)

logger = logging.getLogger(__name__)

# payload field → accepted keys, first match wins
_PAYLOAD_KEYS: dict[str, tuple[str, ...]] = {
    "target_type": ("targetType", "target_type"),
    "target_id": ("targetId", "target_id"),
    "target_url": ("targetUrl", "target_url"),
    "message": ("message",),
    "title": ("title",),
    "snippet": ("snippet", "preview"),
}


def _as_id(value: Any) -> str:
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, (str, int)):
        return str(value)
    return ""


def _as_text(value: Any) -> str | None:
    """Return a stripped non-empty string, or None."""
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return None


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 string (or pass a datetime through) as aware UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            logger.debug("Unparsable timestamp: %r", value)
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def normalize_post_row(row: dict[str, Any]) -> Post:
    raw_media = row.get("media_urls")
    media = (
        [u.strip() for u in raw_media if isinstance(u, str) and u.strip()]
        if isinstance(raw_media, list)
        else []
    )
    author = row.get("author") or row.get("author_id")
    return Post(
        id=_as_id(row.get("id")),
        author_id=_as_id(author),
        created_at=parse_timestamp(row.get("created_at")),
        text=row.get("text") if isinstance(row.get("text"), str) else "",
        category=_as_text(row.get("category")),
        sub_category=_as_text(row.get("sub_category")),
        model_name=_as_text(row.get("model_name")),
        media_urls=media,
    )


def normalize_profile_row(row: dict[str, Any]) -> Profile:
    return Profile(
        id=_as_id(row.get("id")),
        username=_as_text(row.get("username")),
        full_name=_as_text(row.get("full_name")),
        avatar_url=_as_text(row.get("avatar_url")),
        bio=_as_text(row.get("bio")) or _as_text(row.get("about")),
        background_image=_as_text(row.get("background_image")),
    )


def normalize_follow_row(row: dict[str, Any]) -> FollowEdge:
    return FollowEdge(
        follower_id=_as_id(row.get("follower_id")),
        following_id=_as_id(row.get("following_id")),
    )


def normalize_actor_row(row: dict[str, Any]) -> NotificationActor:
    return NotificationActor(
        id=_as_id(row.get("id")),
        username=_as_text(row.get("username")),
        full_name=_as_text(row.get("full_name")),
        avatar_url=_as_text(row.get("avatar_url")),
    )


def normalize_payload(value: Any) -> NotificationPayload:
    """Pick the known payload fields, accepting camelCase or snake_case keys."""
    if not isinstance(value, dict):
        return NotificationPayload()

    fields: dict[str, str | None] = {}
    consumed: set[str] = set()
    for field, keys in _PAYLOAD_KEYS.items():
        fields[field] = None
        for key in keys:
            if key in value:
                consumed.add(key)
                text = _as_text(value[key])
                if text is not None and fields[field] is None:
                    fields[field] = text

    extra = {k: v for k, v in value.items() if k not in consumed}
    return NotificationPayload(**fields, extra=extra)


def normalize_notification_row(
    row: dict[str, Any],
    actor: NotificationActor | None = None,
) -> NotificationRow:
    actor_id = _as_id(row.get("actor_id")) or None
    kind = row.get("type")
    return NotificationRow(
        id=_as_id(row.get("id")),
        user_id=_as_id(row.get("user_id")),
        actor_id=actor_id,
        type=kind if isinstance(kind, str) and kind else "system",
        payload=normalize_payload(row.get("payload")),
        is_read=bool(row.get("is_read")),
        created_at=parse_timestamp(row.get("created_at")),
        actor=actor,
    )
