"""Turn notification rows into display-ready notifications."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta
from typing import Protocol

from babel.core import UnknownLocaleError
from babel.dates import format_timedelta

from cookbook.models import AppNotification, NotificationPayload, NotificationRow
from cookbook.normalize import parse_timestamp

logger = logging.getLogger(__name__)

FALLBACK_ACTOR = "Someone"
GENERIC_MESSAGE = "You have a new notification."

_KNOWN_CATEGORIES = {"like", "mention", "follow", "comment", "repost", "system"}

_TARGET_URLS: dict[str, str] = {
    "post": "/posts/{id}",
    "profile": "/profile/{id}",
}

# (upper bound in seconds, unit, seconds per unit); a month is 30 days
_UNITS: list[tuple[float, str, int]] = [
    (60, "second", 1),
    (3_600, "minute", 60),
    (86_400, "hour", 3_600),
    (604_800, "day", 86_400),
    (2_592_000, "week", 604_800),
    (31_536_000, "month", 2_592_000),
    (float("inf"), "year", 31_536_000),
]
_UNIT_SECONDS: dict[str, int] = {unit: size for _, unit, size in _UNITS}


def utcnow() -> datetime:
    return datetime.now(UTC)


class RelativeTimeFormatter(Protocol):
    def __call__(self, value: int, unit: str, *, past: bool) -> str: ...


class BabelRelativeTimeFormatter:
    """Render ``value unit`` as a locale-aware phrase ("5 minutes ago")."""

    def __init__(self, locale: str = "en_US", style: str = "long") -> None:
        self._locale = locale
        self._style = style

    def __call__(self, value: int, unit: str, *, past: bool) -> str:
        seconds = value * _UNIT_SECONDS[unit]
        delta = timedelta(seconds=-seconds if past else seconds)
        return format_timedelta(
            delta,
            granularity=unit,
            threshold=1,
            add_direction=True,
            format=self._style,
            locale=self._locale,
        )


_default_formatter = BabelRelativeTimeFormatter()


def _absolute(created_at: datetime) -> str:
    return created_at.astimezone(UTC).strftime("%b %d, %Y %H:%M UTC")


def format_relative_time(
    created_at: datetime | None,
    *,
    now: datetime,
    formatter: RelativeTimeFormatter | None = _default_formatter,
) -> str | None:
    """Elapsed time as a relative phrase, or an absolute date if unformattable."""
    created_at = parse_timestamp(created_at)
    if created_at is None:
        return None
    if formatter is None:
        return _absolute(created_at)
    now = parse_timestamp(now) or utcnow()

    elapsed = (now - created_at).total_seconds()
    past = elapsed >= 0
    magnitude = abs(elapsed)
    for limit, unit, size in _UNITS:
        if magnitude < limit:
            value = max(1, int(magnitude // size))
            break
    try:
        return formatter(value, unit, past=past)
    except (UnknownLocaleError, ValueError, TypeError) as exc:
        logger.warning("Relative time formatting unavailable (%s); using absolute date", exc)
        return _absolute(created_at)


def resolve_actor_name(row: NotificationRow, fallback_email: str | None = None) -> str:
    actor = row.actor
    if actor is not None:
        if actor.full_name:
            return actor.full_name
        if actor.username:
            return actor.username
    if fallback_email:
        return fallback_email
    return FALLBACK_ACTOR


def resolve_category(kind: str) -> str:
    return kind if kind in _KNOWN_CATEGORIES else "general"


def derive_target_url(payload: NotificationPayload) -> str | None:
    if payload.target_url:
        return payload.target_url
    template = _TARGET_URLS.get(payload.target_type or "")
    if template is None or not payload.target_id:
        return None
    return template.format(id=payload.target_id)


def build_message(kind: str, actor_name: str, payload: NotificationPayload) -> str:
    """Message text for a notification; depends only on its arguments."""
    on_comment = payload.target_type == "comment"
    if kind == "like":
        message = f"{actor_name} liked your {'comment' if on_comment else 'post'}."
    elif kind == "follow":
        message = f"{actor_name} started following you."
    elif kind == "mention":
        where = "in a comment" if on_comment else "in a post"
        message = f"{actor_name} mentioned you {where}."
    elif kind == "system":
        message = payload.message or payload.title or GENERIC_MESSAGE
    else:
        message = payload.message or GENERIC_MESSAGE

    if payload.snippet:
        message = f'{message} "{payload.snippet}"'
    return message


def map_notification(
    row: NotificationRow,
    *,
    fallback_email: str | None = None,
    clock: Callable[[], datetime] = utcnow,
    formatter: RelativeTimeFormatter | None = _default_formatter,
) -> AppNotification:
    payload = row.payload
    actor_name = resolve_actor_name(row, fallback_email)
    return AppNotification(
        id=row.id,
        message=build_message(row.type, actor_name, payload),
        read=row.is_read,
        timestamp=format_relative_time(row.created_at, now=clock(), formatter=formatter),
        category=resolve_category(row.type),
        target_type=payload.target_type,
        target_id=payload.target_id,
        target_url=derive_target_url(payload),
        actors=[row.actor] if row.actor is not None else [],
        meta={
            "type": row.type,
            "createdAt": row.created_at.isoformat() if row.created_at else None,
        },
    )


def unread_count(notifications: Iterable[AppNotification]) -> int:
    return sum(1 for n in notifications if not n.read)
