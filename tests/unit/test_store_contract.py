"""Contract tests run against every ProgressStore backend.

The HTTP backend goes through the REST API to a memory store.

Tests CRUD semantics, last-write-wins, unknown-user no-ops, search history
ordering and capping, cascading user deletion and the admin config blob.
"""

import pytest

from reelhub.models.admin_config import AdminConfig, CustomCategory, SourceEntry
from reelhub.models.media import ContentKind
from reelhub.models.records import Favorite, PlayRecord, SkipConfig, SkipSegment, UserSettings
from reelhub.storage.base import SEARCH_HISTORY_LIMIT

KEY = "alpha+100"


def _record(**kwargs) -> PlayRecord:
    defaults = dict(
        title="Night Train",
        source_name="Alpha",
        year="2023",
        index=3,
        total_episodes=10,
        play_time=45,
        total_time=1400,
        save_time=1_000,
        search_title="Night Train",
    )
    defaults.update(kwargs)
    return PlayRecord(**defaults)


class TestPlayRecords:
    """Play record CRUD."""

    async def test_get_missing_returns_none(self, store):
        assert await store.get_play_record("alice", KEY) is None

    async def test_set_then_get(self, store):
        await store.set_play_record("alice", KEY, _record())

        record = await store.get_play_record("alice", KEY)
        assert record is not None
        assert record.index == 3
        assert record.play_time == 45
        assert record.title == "Night Train"

    async def test_overwrite_with_newer_record(self, store):
        await store.set_play_record("alice", KEY, _record(save_time=1_000))
        await store.set_play_record("alice", KEY, _record(play_time=90, save_time=2_000))

        record = await store.get_play_record("alice", KEY)
        assert record.play_time == 90

    async def test_older_record_never_replaces_newer(self, store):
        await store.set_play_record("alice", KEY, _record(play_time=90, save_time=2_000))
        await store.set_play_record("alice", KEY, _record(play_time=10, save_time=1_000))

        record = await store.get_play_record("alice", KEY)
        assert record.play_time == 90
        assert record.save_time == 2_000

    async def test_get_all(self, store):
        await store.set_play_record("alice", KEY, _record())
        await store.set_play_record(
            "alice",
            "audiobook+77",
            _record(title="Tales", kind=ContentKind.AUDIOBOOK, album_id="77"),
        )

        records = await store.get_all_play_records("alice")
        assert set(records) == {KEY, "audiobook+77"}
        assert records["audiobook+77"].kind == ContentKind.AUDIOBOOK
        assert records["audiobook+77"].album_id == "77"

    async def test_delete(self, store):
        await store.set_play_record("alice", KEY, _record())
        await store.delete_play_record("alice", KEY)

        assert await store.get_play_record("alice", KEY) is None
        assert await store.get_all_play_records("alice") == {}

    async def test_delete_missing_is_noop(self, store):
        await store.delete_play_record("alice", "nope+1")

    async def test_write_for_unknown_user_is_noop(self, store):
        await store.set_play_record("mallory", KEY, _record())

        assert await store.get_play_record("mallory", KEY) is None
        assert await store.get_all_play_records("mallory") == {}

    async def test_users_are_isolated(self, store):
        await store.register_user("bob", "pw")
        await store.set_play_record("alice", KEY, _record())

        assert await store.get_play_record("bob", KEY) is None


class TestFavorites:
    """Favorite CRUD."""

    async def test_set_get_delete(self, store):
        favorite = Favorite(title="Night Train", source_name="Alpha", total_episodes=10)

        await store.set_favorite("alice", KEY, favorite)
        assert (await store.get_favorite("alice", KEY)).title == "Night Train"
        assert list(await store.get_all_favorites("alice")) == [KEY]

        await store.delete_favorite("alice", KEY)
        assert await store.get_favorite("alice", KEY) is None

    async def test_unknown_user_is_noop(self, store):
        await store.set_favorite("mallory", KEY, Favorite(title="x"))
        assert await store.get_all_favorites("mallory") == {}


class TestSkipConfigs:
    """Skip config CRUD."""

    async def test_segments_round_trip(self, store):
        config = SkipConfig(
            provider_key="alpha",
            item_id="100",
            title="Night Train",
            segments=[
                SkipSegment(start=0, end=90, type="opening"),
                SkipSegment(start=1300, end=1400, type="ending", label="credits"),
            ],
        )

        await store.set_skip_config("alice", KEY, config)
        stored = await store.get_skip_config("alice", KEY)

        assert [s.type for s in stored.segments] == ["opening", "ending"]
        assert stored.segments[1].label == "credits"
        assert list(await store.get_all_skip_configs("alice")) == [KEY]

        await store.delete_skip_config("alice", KEY)
        assert await store.get_skip_config("alice", KEY) is None


class TestUsers:
    """User lifecycle."""

    async def test_register_and_verify(self, store):
        await store.register_user("bob", "hunter2")

        assert await store.check_user_exist("bob")
        assert await store.verify_user("bob", "hunter2")
        assert not await store.verify_user("bob", "wrong")
        assert not await store.verify_user("nobody", "hunter2")

    async def test_duplicate_registration_keeps_password(self, store):
        await store.register_user("alice", "other")

        assert await store.verify_user("alice", "secret")
        assert sorted(await store.get_all_users()) == ["alice"]

    async def test_any_username_accepted(self, store):
        await store.register_user("alice.smith", "pw")

        assert await store.verify_user("alice.smith", "pw")

    async def test_change_password(self, store):
        await store.change_password("alice", "new-secret")

        assert await store.verify_user("alice", "new-secret")
        assert not await store.verify_user("alice", "secret")

    async def test_get_all_users(self, store):
        await store.register_user("bob", "pw")

        assert sorted(await store.get_all_users()) == ["alice", "bob"]

    async def test_delete_user_cascades(self, store):
        await store.set_play_record("alice", KEY, _record())
        await store.set_favorite("alice", KEY, Favorite(title="Night Train"))
        await store.set_skip_config(
            "alice", KEY, SkipConfig(provider_key="alpha", item_id="100")
        )
        await store.set_user_settings("alice", UserSettings(theme="dark"))
        await store.add_search_history("alice", "night train")

        await store.delete_user("alice")

        assert not await store.check_user_exist("alice")
        assert await store.get_all_play_records("alice") == {}
        assert await store.get_all_favorites("alice") == {}
        assert await store.get_all_skip_configs("alice") == {}
        assert await store.get_search_history("alice") == []
        assert (await store.get_user_settings("alice")).theme == "auto"

    async def test_deleted_user_can_register_again_with_empty_data(self, store):
        await store.set_play_record("alice", KEY, _record())
        await store.delete_user("alice")
        await store.register_user("alice", "again")

        assert await store.get_all_play_records("alice") == {}
        assert await store.verify_user("alice", "again")


class TestSettings:
    """User settings."""

    async def test_defaults_when_unset(self, store):
        settings = await store.get_user_settings("alice")

        assert settings.filter_adult_content is True
        assert settings.audiobook_playback_speed == 1.0

    async def test_update_merges_and_ignores_none(self, store):
        await store.set_user_settings("alice", UserSettings(theme="dark", language="en"))

        await store.update_user_settings(
            "alice", {"audiobook_playback_speed": 1.5, "theme": None}
        )

        settings = await store.get_user_settings("alice")
        assert settings.theme == "dark"
        assert settings.language == "en"
        assert settings.audiobook_playback_speed == 1.5

    async def test_unknown_keys_are_kept(self, store):
        await store.update_user_settings("alice", {"subtitle_size": "large"})

        settings = await store.get_user_settings("alice")
        assert settings.model_dump()["subtitle_size"] == "large"

    async def test_update_for_unknown_user_is_noop(self, store):
        await store.update_user_settings("mallory", {"theme": "dark"})

        assert (await store.get_user_settings("mallory")).theme == "auto"


class TestSearchHistory:
    """Search history ordering, dedupe and cap."""

    async def test_most_recent_first_without_duplicates(self, store):
        for keyword in ["a", "b", "c", "a"]:
            await store.add_search_history("alice", keyword)

        assert await store.get_search_history("alice") == ["a", "c", "b"]

    async def test_capped(self, store):
        for n in range(SEARCH_HISTORY_LIMIT + 5):
            await store.add_search_history("alice", f"k{n}")

        history = await store.get_search_history("alice")
        assert len(history) == SEARCH_HISTORY_LIMIT
        assert history[0] == f"k{SEARCH_HISTORY_LIMIT + 4}"
        assert "k0" not in history

    async def test_delete_one_and_all(self, store):
        for keyword in ["a", "b", "c"]:
            await store.add_search_history("alice", keyword)

        await store.delete_search_history("alice", "b")
        assert await store.get_search_history("alice") == ["c", "a"]

        await store.delete_search_history("alice")
        assert await store.get_search_history("alice") == []


class TestAdminConfig:
    """Admin config blob."""

    async def test_missing_returns_none(self, store):
        assert await store.get_admin_config() is None

    async def test_round_trip_sources(self, store):
        config = AdminConfig(
            source_config=[
                SourceEntry(key="alpha", name="Alpha", api="https://alpha.example/api"),
                SourceEntry(key="gamma", name="Gamma", api="https://g.example", is_adult=True),
            ],
            custom_categories=[CustomCategory(type="movie", query="hot")],
        )

        await store.set_admin_config(config)
        stored = await store.get_admin_config()

        assert [s.key for s in stored.source_config] == ["alpha", "gamma"]
        assert stored.source_config[1].is_adult is True


class TestSaveIntervals:
    """Per-backend periodic save interval."""

    @pytest.mark.parametrize(
        "fixture_name, interval",
        [
            ("memory_store", 5.0),
            ("sql_store", 10.0),
            ("redis_store", 20.0),
            ("http_store", 10.0),
        ],
    )
    def test_interval(self, request, fixture_name, interval):
        assert request.getfixturevalue(fixture_name).save_interval == interval
