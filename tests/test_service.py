"""End-to-end service tests against a throwaway SQLite store."""

from datetime import UTC, datetime
from pathlib import Path

import pytest

from cookbook import service
from cookbook.models import Viewer
from cookbook.repository import StoreError
from cookbook.store import SQLiteStore

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


def _plain(value: int, unit: str, *, past: bool) -> str:
    return f"{value}{unit[0]}"


@pytest.fixture
def repo(tmp_path: Path) -> SQLiteStore:
    store = SQLiteStore(tmp_path / "cookbook.sqlite3")
    store.insert(
        "profiles",
        [
            {"id": "jane", "username": "jane", "full_name": "Jane Doe"},
            {"id": "omar", "username": "omar", "full_name": "Omar"},
            {"id": "li", "username": "li"},
        ],
    )
    store.insert(
        "posts",
        [
            {"id": "p1", "author": "omar", "text": "one", "model_name": "Grok 3", "created_at": "2024-06-01T08:00:00Z"},
            {"id": "p2", "author": "li", "text": "two", "media_urls": ["a.jpg"], "created_at": "2024-06-01T09:00:00Z"},
            {"id": "p3", "author": "omar", "text": "three", "media_urls": ["b.mov"], "created_at": "2024-06-01T10:00:00Z"},
            {"id": "p4", "author": "li", "text": "four", "model_name": "gemini", "created_at": "2024-06-01T11:00:00Z"},
        ],
    )
    store.insert("follows", [{"follower_id": "jane", "following_id": "omar"}, {"follower_id": "li", "following_id": "omar"}])
    return store


def _viewer(user_id: str = "jane") -> Viewer:
    return Viewer(id=user_id, display_name="Jane Doe", email=f"{user_id}@example.com")


def _make_note(repo: SQLiteStore, **row: object) -> None:
    repo.insert("notifications", [{"user_id": "jane", "type": "like", "payload": {}, **row}])


class TestResolveViewer:
    def test_uses_profile(self, repo: SQLiteStore) -> None:
        viewer = service.resolve_viewer(repo, "li", email="li@example.com")
        assert viewer.display_name == "li"
        assert viewer.email == "li@example.com"

    def test_unknown_account(self, repo: SQLiteStore) -> None:
        assert service.resolve_viewer(repo, "ghost").display_name is None


class TestHomeFeed:
    def test_followed_first_with_counts(self, repo: SQLiteStore) -> None:
        result = service.load_home_feed(repo, _viewer())
        assert result.ok
        assert [p.id for p in result.posts] == ["p3", "p1", "p4", "p2"]
        omar = result.posts[0].user
        assert (omar.name, omar.posts_count, omar.followers_count, omar.following_count) == ("Omar", 2, 2, 0)
        assert result.posts[0].attachments[0].type == "video"

    def test_limit_scopes_counts_to_page_authors(self, repo: SQLiteStore) -> None:
        result = service.load_home_feed(repo, _viewer(), limit=1)
        assert [p.id for p in result.posts] == ["p4"]
        assert result.posts[0].user.posts_count == 2

    def test_engagement_flags(self, repo: SQLiteStore) -> None:
        service.toggle_like(repo, _viewer(), "p2")
        service.toggle_save(repo, _viewer(), "p2")
        service.add_comment(repo, _viewer("omar"), "p2", "nice")
        post = next(p for p in service.load_home_feed(repo, _viewer()).posts if p.id == "p2")
        assert (post.stats.likes, post.stats.comments, post.liked, post.saved) == (1, 1, True, True)

    def test_backend_failure_is_a_result(self, repo: SQLiteStore, monkeypatch: pytest.MonkeyPatch) -> None:
        def boom(*args: object, **kwargs: object) -> None:
            raise StoreError("offline")

        monkeypatch.setattr(repo, "select", boom)
        result = service.load_home_feed(repo, _viewer())
        assert not result.ok
        assert result.error == "offline"


class TestOtherFeeds:
    def test_profile_page(self, repo: SQLiteStore) -> None:
        result = service.load_profile_page(repo, _viewer(), "omar")
        assert result.summary is not None
        assert (result.summary.followers, result.summary.posts_count) == (2, 2)
        assert result.summary.is_following
        assert not result.summary.is_self
        assert [p.id for p in result.posts] == ["p3", "p1"]

    def test_missing_profile(self, repo: SQLiteStore) -> None:
        result = service.load_profile_page(repo, _viewer(), "nobody")
        assert not result.ok

    def test_tag_feed(self, repo: SQLiteStore) -> None:
        service.create_post(repo, _viewer(), text="tagged", tags=["food"])
        result = service.load_tag_feed(repo, _viewer(), "food")
        assert [p.text for p in result.posts] == ["tagged"]
        assert result.posts[0].tags == ["food"]
        assert service.load_tag_feed(repo, _viewer(), "nothing").posts == []

    def test_model_feed(self, repo: SQLiteStore) -> None:
        assert [p.id for p in service.load_model_feed(repo, _viewer(), "grok").posts] == ["p1"]
        assert [p.id for p in service.load_model_feed(repo, _viewer(), "Gemini").posts] == ["p4"]
        assert not service.load_model_feed(repo, _viewer(), "dalle").ok


class TestFollow:
    def test_toggle_and_notify(self, repo: SQLiteStore) -> None:
        state = service.toggle_follow(repo, _viewer(), "li")
        assert (state.following, state.followers) == (True, 1)
        [note] = repo.select("notifications", eq={"user_id": "li"})
        assert note["type"] == "follow"
        assert note["payload"] == {"targetType": "profile", "targetId": "jane"}

        state = service.toggle_follow(repo, _viewer(), "li")
        assert (state.following, state.followers) == (False, 0)

    def test_self_follow_ignored(self, repo: SQLiteStore) -> None:
        state = service.toggle_follow(repo, _viewer("omar"), "omar")
        assert state.following is False
        assert state.followers == 2
        assert repo.count("follows", eq={"follower_id": "omar"}) == 0


class TestPosts:
    def test_create_post_requires_content(self, repo: SQLiteStore) -> None:
        assert not service.create_post(repo, _viewer(), text="   ").ok

    def test_create_post_links_tags_once(self, repo: SQLiteStore) -> None:
        repo.insert("tags", [{"id": "t-food", "name": "food"}])
        result = service.create_post(
            repo, _viewer(), text="  ramen ", media_urls=["x.png", " "], tags=["food", "night", "food", " "]
        )
        assert result.ok and result.post is not None
        assert result.post["text"] == "ramen"
        assert result.post["media_urls"] == ["x.png"]
        assert repo.count("tags", eq={}) == 2
        assert repo.count("post_tags", eq={"post_id": result.post["id"]}) == 2

    def test_mentions_notify(self, repo: SQLiteStore) -> None:
        service.create_post(repo, _viewer(), text="look @omar and @jane")
        notes = repo.select("notifications", eq={"type": "mention"})
        assert [n["user_id"] for n in notes] == ["omar"]

    def test_delete_only_by_author(self, repo: SQLiteStore) -> None:
        assert not service.delete_post(repo, _viewer(), "p1").ok
        assert service.delete_post(repo, _viewer("omar"), "p1").ok
        assert repo.select("posts", eq={"id": "p1"}) == []

    def test_like_toggles_and_notifies_author(self, repo: SQLiteStore) -> None:
        assert service.toggle_like(repo, _viewer(), "p1").active
        assert repo.count("notifications", eq={"user_id": "omar", "type": "like"}) == 1
        assert not service.toggle_like(repo, _viewer(), "p1").active
        assert not service.toggle_like(repo, _viewer(), "missing").ok

    def test_comment_notification_message(self, repo: SQLiteStore) -> None:
        service.add_comment(repo, _viewer(), "p1", "  looks great  ")
        result = service.load_notifications(repo, _viewer("omar"), clock=lambda: NOW, formatter=_plain)
        [note] = result.notifications
        assert note.message == 'Jane Doe commented on your post. "looks great"'
        assert note.target_url == "/posts/p1"
        assert not service.add_comment(repo, _viewer(), "p1", " ").ok


class TestNotifications:
    def test_load_and_count(self, repo: SQLiteStore) -> None:
        _make_note(repo, actor_id="omar", created_at="2024-06-01T11:55:00Z")
        _make_note(repo, actor_id="ghost", type="follow", is_read=True, created_at="2024-06-01T10:00:00Z")
        result = service.load_notifications(repo, _viewer(), clock=lambda: NOW, formatter=_plain)
        assert [n.message for n in result.notifications] == [
            "Omar liked your post.",
            "jane@example.com started following you.",
        ]
        assert [n.timestamp for n in result.notifications] == ["5m", "2h"]
        assert result.unread_count == 1
        assert service.fetch_unread_count(repo, _viewer()).count == 1

    def test_unread_only(self, repo: SQLiteStore) -> None:
        _make_note(repo, is_read=True)
        _make_note(repo)
        result = service.load_notifications(repo, _viewer(), unread_only=True, formatter=_plain)
        assert len(result.notifications) == 1

    def test_mark_read(self, repo: SQLiteStore) -> None:
        _make_note(repo, id="n1")
        _make_note(repo, id="n2")
        _make_note(repo, id="n3", user_id="omar")
        assert service.mark_notification_read(repo, _viewer("omar"), "n1").ok
        assert service.fetch_unread_count(repo, _viewer()).count == 2
        assert service.mark_notification_read(repo, _viewer(), "n1").ok
        assert service.mark_all_notifications_read(repo, _viewer()).count == 1
        assert service.fetch_unread_count(repo, _viewer()).count == 0
        assert not service.mark_notification_read(repo, _viewer(), "").ok

    def test_enqueue_guards(self, repo: SQLiteStore) -> None:
        assert not service.enqueue_notification(repo, user_id=None, actor_id="a", type="like").ok
        assert not service.enqueue_notification(repo, user_id="a", actor_id="a", type="like").ok
        assert service.enqueue_notification(
            repo, user_id="a", actor_id="b", type="system", payload={"title": "Hi", "targetId": None}
        ).ok
        [row] = repo.select("notifications", eq={"user_id": "a"})
        assert row["payload"] == {"title": "Hi"}


class TestExplore:
    def test_explore_tags(self, repo: SQLiteStore) -> None:
        service.create_post(repo, _viewer(), media_urls=["1.jpg", "2.jpg"], tags=["food"])
        service.create_post(repo, _viewer(), media_urls=["3.jpg"], tags=["night", "food"])
        result = service.explore_tags(repo)
        assert [(t.name, len(t.photos)) for t in result.tags] == [("food", 3), ("night", 1)]

    def test_search_tags(self, repo: SQLiteStore) -> None:
        service.create_post(repo, _viewer(), media_urls=["1.jpg"], tags=["foodie", "night"])
        result = service.search_tags(repo, "FOOD")
        assert [t.name for t in result.tags] == ["foodie"]
        assert result.tags[0].photos == ["1.jpg"]
        assert service.search_tags(repo, " ").tags == []


class TestWaitlist:
    def test_join_once(self, repo: SQLiteStore) -> None:
        assert service.join_waitlist(repo, "  Me@Example.COM ", "Jane Doe").ok
        [row] = repo.select("waitlist")
        assert row["email"] == "me@example.com"
        again = service.join_waitlist(repo, "me@example.com", "Jane Doe")
        assert again.error == "You're already on the waitlist."

    def test_invalid_input(self, repo: SQLiteStore) -> None:
        assert service.join_waitlist(repo, "not-an-email", "Jane").error == "Invalid input"
        assert service.join_waitlist(repo, "a@b.co", "J").error == "Invalid input"


class _SilentCommentStore(SQLiteStore):
    """Accepts comment inserts but hands back no rows."""

    def insert(self, table, rows):  # type: ignore[no-untyped-def]
        inserted = super().insert(table, rows)
        return [] if table == "post_comments" else inserted


class TestCommentInsertWithoutRows:
    def test_empty_insert_result_is_an_error(self, tmp_path: Path) -> None:
        store = _SilentCommentStore(tmp_path / "silent.sqlite3")
        store.insert("posts", [{"id": "p1", "author": "omar", "text": "hi"}])
        result = service.add_comment(store, _viewer(), "p1", "nice")
        assert not result.ok
        assert result.error == "Failed to insert comment"
        assert store.count("notifications", eq={"user_id": "omar"}) == 0


class TestSinglePost:
    def test_loads_post_with_author(self, repo: SQLiteStore) -> None:
        service.toggle_like(repo, _viewer(), "p3")
        result = service.load_post(repo, _viewer(), "p3")
        assert result.ok and result.post is not None
        assert result.post.user.name == "Omar"
        assert result.post.user.posts_count == 2
        assert result.post.attachments[0].type == "video"
        assert result.post.liked

    def test_unknown_author_uses_fallback_name(self, repo: SQLiteStore) -> None:
        repo.insert("posts", [{"id": "orphan", "author": "gone", "text": "hello"}])
        result = service.load_post(repo, _viewer(), "orphan")
        assert result.post is not None
        assert result.post.user.name == "User"

    def test_missing_post(self, repo: SQLiteStore) -> None:
        assert service.load_post(repo, _viewer(), "nope").error == "Post not found"
        assert not service.load_post(repo, _viewer(), " ").ok


class TestCollections:
    def test_ordered_by_save_and_like_time(self, repo: SQLiteStore) -> None:
        repo.insert(
            "post_saves",
            [
                {"post_id": "p1", "user_id": "jane", "created_at": "2024-06-02T08:00:00Z"},
                {"post_id": "p4", "user_id": "jane", "created_at": "2024-06-02T09:00:00Z"},
                {"post_id": "p2", "user_id": "jane", "created_at": "2024-06-02T07:00:00Z"},
                {"post_id": "p3", "user_id": "omar", "created_at": "2024-06-02T10:00:00Z"},
            ],
        )
        repo.insert(
            "post_likes",
            [
                {"post_id": "p2", "user_id": "jane", "created_at": "2024-06-02T09:00:00Z"},
                {"post_id": "p3", "user_id": "jane", "created_at": "2024-06-02T08:00:00Z"},
            ],
        )
        result = service.load_collections(repo, _viewer())
        assert result.ok
        assert [p.id for p in result.saved] == ["p4", "p1", "p2"]
        assert all(p.saved for p in result.saved)
        assert [p.id for p in result.liked] == ["p2", "p3"]
        assert all(p.liked for p in result.liked)

    def test_saved_post_that_was_deleted_is_skipped(self, repo: SQLiteStore) -> None:
        service.toggle_save(repo, _viewer(), "p1")
        repo.delete("posts", eq={"id": "p1"})
        result = service.load_collections(repo, _viewer())
        assert result.saved == []
        assert result.liked == []


class TestOtherModelSearch:
    def test_distinct_unknown_families_only(self, repo: SQLiteStore) -> None:
        repo.insert(
            "posts",
            [
                {"id": "m1", "author": "li", "text": "a", "model_name": "Flux Pro"},
                {"id": "m2", "author": "li", "text": "b", "model_name": "flux dev"},
                {"id": "m3", "author": "li", "text": "c", "model_name": "Flux Pro"},
                {"id": "m4", "author": "li", "text": "d", "model_name": "gemini flux"},
                {"id": "m5", "author": "li", "text": "e", "model_name": "midjourney flux"},
            ],
        )
        result = service.search_other_models(repo, "FLUX")
        assert result.models == ["flux dev", "Flux Pro"]
        assert service.search_other_models(repo, "flux", limit=1).models == ["flux dev"]

    def test_blank_query(self, repo: SQLiteStore) -> None:
        assert service.search_other_models(repo, "  ").models == []


class TestProfileSettings:
    def test_update_bio_and_clear_background(self, repo: SQLiteStore) -> None:
        repo.update("profiles", {"background_image": "bg.png"}, eq={"id": "jane"})
        result = service.update_profile_settings(
            repo, _viewer(), bio="  Food photographer  ", remove_background=True
        )
        assert result.ok and result.profile is not None
        assert result.profile.bio == "Food photographer"
        assert result.profile.background_image is None
        assert result.profile.full_name == "Jane Doe"

    def test_blank_bio_clears_it(self, repo: SQLiteStore) -> None:
        service.update_profile_settings(repo, _viewer(), bio="hello")
        result = service.update_profile_settings(repo, _viewer(), bio="   ")
        assert result.profile is not None
        assert result.profile.bio is None

    def test_no_changes_returns_current_profile(self, repo: SQLiteStore) -> None:
        result = service.update_profile_settings(repo, _viewer())
        assert result.profile is not None
        assert result.profile.username == "jane"

    def test_missing_profile_row_is_created(self, repo: SQLiteStore) -> None:
        result = service.update_profile_settings(repo, _viewer("newcomer"), bio="hi")
        assert result.ok
        [row] = repo.select("profiles", eq={"id": "newcomer"})
        assert row["bio"] == "hi"
