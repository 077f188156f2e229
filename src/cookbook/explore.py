"""Explore-page aggregation: tag photo tiles and model categories."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from cookbook.models import ExploreTag

logger = logging.getLogger(__name__)

# Known model families, matched as name prefixes; first match wins
KNOWN_MODELS: tuple[str, ...] = ("chatgpt", "gemini", "grok", "midjourney")
MODEL_CATEGORIES: tuple[str, ...] = (*KNOWN_MODELS, "other")


def model_category(model_name: str | None) -> str | None:
    """Bucket a free-form model name; ``None`` when no model is set."""
    if not model_name or not model_name.strip():
        return None
    name = model_name.strip().lower()
    if "midjourney" in name:
        return "midjourney"
    for key in KNOWN_MODELS:
        if name.startswith(key):
            return key
    return "other"


def aggregate_tag_photos(
    post_media: Mapping[str, list[str]],
    post_tags: Iterable[Mapping[str, Any]],
    tag_names: Mapping[str, str],
    *,
    max_photos: int,
) -> dict[str, list[str]]:
    """Collect distinct media URLs per tag name, capped at ``max_photos``.

    ``post_tags`` rows link ``post_id`` to ``tag_id``; link order decides
    which photos make the cut.
    """
    photos: dict[str, list[str]] = {}
    for link in post_tags:
        tag_name = tag_names.get(str(link.get("tag_id")))
        if not tag_name:
            continue
        urls = post_media.get(str(link.get("post_id")), [])
        if not urls:
            continue
        bucket = photos.setdefault(tag_name, [])
        for url in urls:
            if len(bucket) >= max_photos:
                break
            if url and url not in bucket:
                bucket.append(url)
    return photos


def rank_tags(photos_by_tag: Mapping[str, list[str]], *, max_tags: int) -> list[ExploreTag]:
    """Tags with the most photos first, ties broken alphabetically."""
    ranked = sorted(
        ((name, urls) for name, urls in photos_by_tag.items() if urls),
        key=lambda item: (-len(item[1]), item[0]),
    )
    return [ExploreTag(name=name, photos=list(urls)) for name, urls in ranked[:max_tags]]
