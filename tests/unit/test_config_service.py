"""Unit tests for ConfigService loading, merging and site queries."""

import json

import pytest

from reelhub.config import Settings
from reelhub.core.errors import ConfigurationError
from reelhub.models.admin_config import AdminConfig, SourceEntry
from reelhub.models.media import ContentKind
from reelhub.services.config_service import DEFAULT_CACHE_TIME, ConfigService


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        owner_username="owner",
        site_name="Test Hub",
        config_file=str(tmp_path / "config.json"),
    )


class TestLoading:
    async def test_non_persistent_store_uses_file_only(
        self, test_settings, memory_store, source_config
    ):
        await memory_store.set_admin_config(
            AdminConfig(source_config=[SourceEntry(key="stale", name="Stale", api="https://s")])
        )
        service = ConfigService(test_settings, memory_store, file_config=source_config)

        config = await service.load()

        assert [s.key for s in config.source_config] == ["alpha", "beta", "gamma"]
        assert all(s.origin == "config" for s in config.source_config)
        assert config.site_config.site_name == "Test Hub"
        assert config.site_config.site_interface_cache_time == 3600
        assert [u.username for u in config.user_config.users] == ["owner"]
        assert config.user_config.users[0].role == "owner"
        assert [c.query for c in config.custom_categories] == ["hot"]

    async def test_reads_config_file(self, test_settings, memory_store, source_config, tmp_path):
        (tmp_path / "config.json").write_text(json.dumps(source_config), encoding="utf-8")

        config = await ConfigService(test_settings, memory_store).load()

        assert {s.key for s in config.source_config} == {"alpha", "beta", "gamma"}

    async def test_missing_file_means_no_sites(self, test_settings, memory_store):
        config = await ConfigService(test_settings, memory_store).load()

        assert config.source_config == []
        assert config.site_config.site_interface_cache_time == DEFAULT_CACHE_TIME

    async def test_invalid_json_is_configuration_error(self, test_settings, memory_store, tmp_path):
        (tmp_path / "config.json").write_text("{not json", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            await ConfigService(test_settings, memory_store).load()

    async def test_api_site_must_be_object(self, test_settings, memory_store, tmp_path):
        (tmp_path / "config.json").write_text(json.dumps({"api_site": []}), encoding="utf-8")

        with pytest.raises(ConfigurationError):
            await ConfigService(test_settings, memory_store).load()

    async def test_load_is_cached_until_reload(self, test_settings, memory_store, source_config):
        service = ConfigService(test_settings, memory_store, file_config=source_config)

        first = await service.load()
        source_config["api_site"]["delta"] = {"api": "https://delta.example", "name": "Delta"}

        assert await service.load() is first
        reloaded = await service.reload()
        assert "delta" in {s.key for s in reloaded.source_config}


class TestPersistentMerge:
    async def test_first_load_persists_file_config(self, test_settings, sql_store, source_config):
        service = ConfigService(test_settings, sql_store, file_config=source_config)

        config = await service.load()

        assert [u.username for u in config.user_config.users] == ["owner", "alice"]
        assert await sql_store.get_admin_config() == config

    async def test_stored_customizations_survive_merge(
        self, test_settings, sql_store, source_config
    ):
        await sql_store.set_admin_config(
            AdminConfig(
                source_config=[
                    SourceEntry(key="alpha", name="Alpha", api="https://a", disabled=True),
                    SourceEntry(key="mine", name="Mine", api="https://mine.example"),
                    SourceEntry(key="gamma", name="Gamma", api="https://g", is_adult=False),
                ]
            )
        )
        service = ConfigService(test_settings, sql_store, file_config=source_config)

        config = await service.load()
        by_key = {s.key: s for s in config.source_config}

        assert [s.key for s in config.source_config] == ["alpha", "mine", "gamma", "beta"]
        assert by_key["alpha"].disabled is True
        assert by_key["mine"].origin == "custom"
        # adult flag always follows the file
        assert by_key["gamma"].is_adult is True
        assert config.user_config.users[0].username == "owner"

    async def test_reset_discards_customizations(self, test_settings, sql_store, source_config):
        await sql_store.set_admin_config(
            AdminConfig(source_config=[SourceEntry(key="mine", name="Mine", api="https://m")])
        )
        service = ConfigService(test_settings, sql_store, file_config=source_config)
        await service.load()

        config = await service.reset()

        assert [s.key for s in config.source_config] == ["alpha", "beta", "gamma"]
        assert (await sql_store.get_admin_config()).source_config == config.source_config


class TestSiteQueries:
    @pytest.fixture
    async def service(self, test_settings, memory_store, source_config):
        source_config["api_site"]["books"] = {
            "api": "https://books.example",
            "name": "Books",
            "type": "shortdrama",
        }
        return ConfigService(test_settings, memory_store, file_config=source_config)

    async def test_available_sites_filters(self, service):
        assert [s.key for s in await service.available_sites()] == [
            "alpha",
            "beta",
            "gamma",
            "books",
        ]
        assert [s.key for s in await service.available_sites(filter_adult=True)] == [
            "alpha",
            "beta",
            "books",
        ]

    async def test_video_kind_includes_untyped_sites(self, service):
        sites = await service.available_sites(kind=ContentKind.VIDEO)

        assert [s.key for s in sites] == ["alpha", "beta", "gamma"]
        assert [s.key for s in await service.available_sites(kind="shortdrama")] == ["books"]

    async def test_disabled_sites_hidden(self, service):
        config = await service.load()
        config.source_config[0].disabled = True

        assert "alpha" not in {s.key for s in await service.available_sites()}
        assert await service.find_site("alpha") is None

    async def test_adult_sites(self, service):
        assert [s.key for s in await service.adult_sites()] == ["gamma"]

    async def test_should_filter_adult(self, service, memory_store):
        assert await service.should_filter_adult(None) is True
        assert await service.should_filter_adult("alice") is True

        await memory_store.update_user_settings("alice", {"filter_adult_content": False})

        assert await service.should_filter_adult("alice") is False

    async def test_find_site_respects_adult_setting(self, service, memory_store):
        assert await service.find_site("gamma", "alice") is None

        await memory_store.update_user_settings("alice", {"filter_adult_content": False})

        assert (await service.find_site("gamma", "alice")).name == "Gamma"

    async def test_cache_time(self, service):
        assert await service.cache_time() == 3600
