"""Records shared across the cookbook data layer."""

from __future__ import annotations

import re
from datetime import UTC, datetime
from typing import Annotated, Any, Literal

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

MediaType = Literal["image", "video"]

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value


# naive datetimes are taken to be UTC
UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]


class _Output(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Input records (normalised backend rows) ────────────────────────────────


class Post(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    id: str
    author_id: str = ""
    created_at: UtcDatetime | None = None
    text: str = ""
    category: str | None = None
    sub_category: str | None = None
    model_name: str | None = None
    media_urls: list[str] = Field(default_factory=list)


class Profile(_Output):
    id: str
    username: str | None = None
    full_name: str | None = None
    avatar_url: str | None = None
    bio: str | None = None
    background_image: str | None = None


class FollowEdge(BaseModel):
    follower_id: str
    following_id: str


class Viewer(BaseModel):
    """The account a request is made on behalf of."""

    id: str
    display_name: str | None = None
    email: str | None = None
    avatar_url: str | None = None


class WaitlistEntry(BaseModel):
    email: str = Field(max_length=254)
    full_name: str = Field(min_length=2, max_length=100)

    @field_validator("email", mode="before")
    @classmethod
    def _normalise_email(cls, value: object) -> object:
        if isinstance(value, str):
            value = value.strip().lower()
            if not _EMAIL_RE.match(value):
                raise ValueError("Invalid email address")
        return value


class NotificationPayload(BaseModel):
    target_type: str | None = None
    target_id: str | None = None
    target_url: str | None = None
    message: str | None = None
    title: str | None = None
    snippet: str | None = None
    extra: dict[str, Any] = Field(default_factory=dict)


# ── Output records (camelCase on the wire) ─────────────────────────────────


class NotificationActor(_Output):
    id: str
    username: str | None = None
    full_name: str | None = None
    avatar_url: str | None = None


class NotificationRow(BaseModel):
    id: str
    user_id: str = ""
    actor_id: str | None = None
    type: str = "system"
    payload: NotificationPayload = Field(default_factory=NotificationPayload)
    is_read: bool = False
    created_at: UtcDatetime | None = None
    actor: NotificationActor | None = None


class AuthorCounts(_Output):
    posts: int = 0
    followers: int = 0
    following: int = 0


class PostMedia(_Output):
    type: MediaType
    url: str


class PostUser(_Output):
    id: str
    name: str
    username: str | None = None
    avatar_url: str | None = None
    bio: str | None = None
    posts_count: int = 0
    followers_count: int = 0
    following_count: int = 0


class PostStats(_Output):
    likes: int = 0
    comments: int = 0
    shares: int = 0


class PostMeta(_Output):
    model: str | None = None
    category: str | None = None
    sub_category: str | None = None


class FeedPost(_Output):
    id: str
    user: PostUser
    created_at: UtcDatetime | None = None
    text: str | None = None
    attachments: list[PostMedia] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    meta: PostMeta = Field(default_factory=PostMeta)
    stats: PostStats = Field(default_factory=PostStats)
    liked: bool = False
    saved: bool = False


class AppNotification(_Output):
    id: str
    message: str
    read: bool = False
    timestamp: str | None = None
    category: str = "general"
    target_type: str | None = None
    target_id: str | None = None
    target_url: str | None = None
    actors: list[NotificationActor] = Field(default_factory=list)
    meta: dict[str, Any] = Field(default_factory=dict)


class ExploreTag(_Output):
    name: str
    photos: list[str] = Field(default_factory=list)


class ProfileSummary(_Output):
    profile: Profile
    followers: int = 0
    following: int = 0
    posts_count: int = 0
    is_following: bool = False
    is_self: bool = False


# ── Service results ────────────────────────────────────────────────────────


class Result(_Output):
    ok: bool = True
    error: str | None = None


class FeedResult(Result):
    posts: list[FeedPost] = Field(default_factory=list)


class ProfileResult(Result):
    summary: ProfileSummary | None = None
    posts: list[FeedPost] = Field(default_factory=list)


class NotificationsResult(Result):
    notifications: list[AppNotification] = Field(default_factory=list)
    unread_count: int = 0


class CountResult(Result):
    count: int = 0


class FollowState(Result):
    following: bool = False
    followers: int = 0


class ToggleResult(Result):
    active: bool = False


class PostResult(Result):
    post: dict[str, Any] | None = None


class ExploreTagsResult(Result):
    tags: list[ExploreTag] = Field(default_factory=list)


class SinglePostResult(Result):
    post: FeedPost | None = None


class CollectionsResult(Result):
    """The viewer's saved and liked posts, most recent save/like first."""

    saved: list[FeedPost] = Field(default_factory=list)
    liked: list[FeedPost] = Field(default_factory=list)


class ModelSearchResult(Result):
    models: list[str] = Field(default_factory=list)


class ProfileSettingsResult(Result):
    profile: Profile | None = None
