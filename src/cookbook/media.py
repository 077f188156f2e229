"""Attachment classification by file extension."""

from __future__ import annotations

from collections.abc import Iterable

from cookbook.models import MediaType, PostMedia

VIDEO_EXTENSIONS: frozenset[str] = frozenset(
    {"mp4", "webm", "ogg", "mov", "m4v", "avi", "mkv"}
)


def _extension(url: str) -> str:
    path = url.split("?", 1)[0].split("#", 1)[0]
    name = path.rsplit("/", 1)[-1]
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[-1].lower()


def classify_media(url: str) -> MediaType:
    """Return ``video`` for known video extensions, ``image`` otherwise."""
    return "video" if _extension(url) in VIDEO_EXTENSIONS else "image"


def to_media_items(urls: Iterable[str] | None) -> list[PostMedia]:
    if not urls:
        return []
    return [
        PostMedia(type=classify_media(url), url=url)
        for url in urls
        if isinstance(url, str) and url.strip()
    ]
