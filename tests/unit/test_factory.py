"""Tests for storage backend selection and service wiring."""

import pytest

from reelhub.config import Settings
from reelhub.core.errors import ConfigurationError
from reelhub.services.app_services import register_owner
from reelhub.storage.factory import create_store
from reelhub.storage.http_store import HttpStore
from reelhub.storage.memory import MemoryStore
from reelhub.storage.redis_store import RedisStore
from reelhub.storage.sql import SqlStore


class TestCreateStore:
    @pytest.mark.parametrize(
        "storage_type, store_type",
        [
            ("memory", MemoryStore),
            ("SQL", SqlStore),
            ("redis", RedisStore),
            ("http", HttpStore),
        ],
    )
    async def test_backends(self, storage_type, store_type):
        store = create_store(Settings(storage_type=storage_type))

        assert isinstance(store, store_type)
        await store.close()

    def test_unknown_backend(self):
        with pytest.raises(ConfigurationError):
            create_store(Settings(storage_type="floppy"))


class TestRegisterOwner:
    async def test_owner_registered_once(self, memory_store):
        settings = Settings(owner_username="owner", owner_password="pw")

        await register_owner(settings, memory_store)
        await register_owner(settings, memory_store)

        assert await memory_store.verify_user("owner", "pw")
        assert sorted(await memory_store.get_all_users()) == ["alice", "owner"]

    async def test_no_owner_configured(self, memory_store):
        await register_owner(Settings(owner_username="", owner_password=""), memory_store)

        assert await memory_store.get_all_users() == ["alice"]


async def test_services_session_uses_settings(services):
    session = services.new_session("alice")

    assert session.user == "alice"
    assert session.auto_advance_delay == 0
    assert session.save_interval == services.store.save_interval
