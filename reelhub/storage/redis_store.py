"""Document progress store on Redis.

Layout, per user ``u``::

    u:<u>:pwd        string  password
    u:<u>:pr         hash    storage key -> PlayRecord JSON
    u:<u>:fav        hash    storage key -> Favorite JSON
    u:<u>:skip       hash    storage key -> SkipConfig JSON
    u:<u>:settings   string  UserSettings JSON
    u:<u>:sh         list    search keywords, most recent first

plus ``users:all`` (set of usernames) and ``admin:config`` (AdminConfig JSON).
"""

import logging
from functools import partial

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from reelhub.core.errors import StorageError, handle_errors
from reelhub.models.admin_config import AdminConfig
from reelhub.models.records import Favorite, PlayRecord, SkipConfig, UserSettings
from reelhub.storage.base import SEARCH_HISTORY_LIMIT, ProgressStore, is_stale

logger = logging.getLogger(__name__)

USERS_KEY = "users:all"
ADMIN_CONFIG_KEY = "admin:config"

_redis_errors = partial(handle_errors, error_types=(RedisError,), wrap_as=StorageError)


def _user_key(username: str, suffix: str) -> str:
    return f"u:{username}:{suffix}"


class RedisStore(ProgressStore):
    """ProgressStore over ``redis.asyncio`` with string responses decoded."""

    save_interval = 20.0

    def __init__(self, client: aioredis.Redis | None = None, url: str | None = None) -> None:
        if client is None:
            if not url:
                raise ValueError("RedisStore needs a client or a redis URL")
            client = aioredis.from_url(url, decode_responses=True)
        self._client = client

    @_redis_errors(default_message="Redis ping failed")
    async def init(self) -> None:
        await self._client.ping()
        logger.info("Connected to redis progress store")

    async def close(self) -> None:
        await self._client.aclose()

    async def _known(self, username: str) -> bool:
        return bool(await self._client.exists(_user_key(username, "pwd")))

    # --- Play records ---

    @_redis_errors(default_message="Failed to load play record")
    async def get_play_record(self, username: str, key: str) -> PlayRecord | None:
        raw = await self._client.hget(_user_key(username, "pr"), key)
        return PlayRecord.model_validate_json(raw) if raw else None

    @_redis_errors(default_message="Failed to save play record")
    async def set_play_record(self, username: str, key: str, record: PlayRecord) -> None:
        if not await self._known(username):
            return
        existing = await self.get_play_record(username, key)
        if is_stale(existing, record):
            logger.debug(f"Dropping stale play record {key} for {username}")
            return
        await self._client.hset(_user_key(username, "pr"), key, record.model_dump_json())

    @_redis_errors(default_message="Failed to load play records")
    async def get_all_play_records(self, username: str) -> dict[str, PlayRecord]:
        raw = await self._client.hgetall(_user_key(username, "pr"))
        return {key: PlayRecord.model_validate_json(value) for key, value in raw.items()}

    @_redis_errors(default_message="Failed to delete play record")
    async def delete_play_record(self, username: str, key: str) -> None:
        await self._client.hdel(_user_key(username, "pr"), key)

    # --- Favorites ---

    @_redis_errors(default_message="Failed to load favorite")
    async def get_favorite(self, username: str, key: str) -> Favorite | None:
        raw = await self._client.hget(_user_key(username, "fav"), key)
        return Favorite.model_validate_json(raw) if raw else None

    @_redis_errors(default_message="Failed to save favorite")
    async def set_favorite(self, username: str, key: str, favorite: Favorite) -> None:
        if not await self._known(username):
            return
        await self._client.hset(_user_key(username, "fav"), key, favorite.model_dump_json())

    @_redis_errors(default_message="Failed to load favorites")
    async def get_all_favorites(self, username: str) -> dict[str, Favorite]:
        raw = await self._client.hgetall(_user_key(username, "fav"))
        return {key: Favorite.model_validate_json(value) for key, value in raw.items()}

    @_redis_errors(default_message="Failed to delete favorite")
    async def delete_favorite(self, username: str, key: str) -> None:
        await self._client.hdel(_user_key(username, "fav"), key)

    # --- Skip configs ---

    @_redis_errors(default_message="Failed to load skip config")
    async def get_skip_config(self, username: str, key: str) -> SkipConfig | None:
        raw = await self._client.hget(_user_key(username, "skip"), key)
        return SkipConfig.model_validate_json(raw) if raw else None

    @_redis_errors(default_message="Failed to save skip config")
    async def set_skip_config(self, username: str, key: str, config: SkipConfig) -> None:
        if not await self._known(username):
            return
        await self._client.hset(_user_key(username, "skip"), key, config.model_dump_json())

    @_redis_errors(default_message="Failed to load skip configs")
    async def get_all_skip_configs(self, username: str) -> dict[str, SkipConfig]:
        raw = await self._client.hgetall(_user_key(username, "skip"))
        return {key: SkipConfig.model_validate_json(value) for key, value in raw.items()}

    @_redis_errors(default_message="Failed to delete skip config")
    async def delete_skip_config(self, username: str, key: str) -> None:
        await self._client.hdel(_user_key(username, "skip"), key)

    # --- Users ---

    @_redis_errors(default_message="Failed to register user")
    async def register_user(self, username: str, password: str) -> None:
        created = await self._client.set(_user_key(username, "pwd"), password, nx=True)
        if created:
            await self._client.sadd(USERS_KEY, username)
            logger.info(f"Registered user {username}")

    @_redis_errors(default_message="Failed to verify user")
    async def verify_user(self, username: str, password: str) -> bool:
        stored = await self._client.get(_user_key(username, "pwd"))
        return stored is not None and stored == password

    @_redis_errors(default_message="Failed to look up user")
    async def check_user_exist(self, username: str) -> bool:
        return await self._known(username)

    @_redis_errors(default_message="Failed to change password")
    async def change_password(self, username: str, new_password: str) -> None:
        await self._client.set(_user_key(username, "pwd"), new_password, xx=True)

    @_redis_errors(default_message="Failed to delete user")
    async def delete_user(self, username: str) -> None:
        suffixes = ("pwd", "pr", "fav", "skip", "settings", "sh")
        await self._client.delete(*(_user_key(username, suffix) for suffix in suffixes))
        await self._client.srem(USERS_KEY, username)
        logger.info(f"Deleted user {username} and all owned records")

    @_redis_errors(default_message="Failed to list users")
    async def get_all_users(self) -> list[str]:
        return sorted(await self._client.smembers(USERS_KEY))

    # --- Settings ---

    @_redis_errors(default_message="Failed to load user settings")
    async def get_user_settings(self, username: str) -> UserSettings:
        raw = await self._client.get(_user_key(username, "settings"))
        return UserSettings.model_validate_json(raw) if raw else UserSettings()

    @_redis_errors(default_message="Failed to save user settings")
    async def set_user_settings(self, username: str, settings: UserSettings) -> None:
        if not await self._known(username):
            return
        await self._client.set(_user_key(username, "settings"), settings.model_dump_json())

    # --- Search history ---

    @_redis_errors(default_message="Failed to load search history")
    async def get_search_history(self, username: str) -> list[str]:
        return await self._client.lrange(_user_key(username, "sh"), 0, -1)

    @_redis_errors(default_message="Failed to add search history")
    async def add_search_history(self, username: str, keyword: str) -> None:
        if not await self._known(username):
            return
        key = _user_key(username, "sh")
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.lrem(key, 0, keyword)
            pipe.lpush(key, keyword)
            pipe.ltrim(key, 0, SEARCH_HISTORY_LIMIT - 1)
            await pipe.execute()

    @_redis_errors(default_message="Failed to delete search history")
    async def delete_search_history(self, username: str, keyword: str | None = None) -> None:
        key = _user_key(username, "sh")
        if keyword is None:
            await self._client.delete(key)
        else:
            await self._client.lrem(key, 0, keyword)

    # --- Admin config ---

    @_redis_errors(default_message="Failed to load admin config")
    async def get_admin_config(self) -> AdminConfig | None:
        raw = await self._client.get(ADMIN_CONFIG_KEY)
        return AdminConfig.model_validate_json(raw) if raw else None

    @_redis_errors(default_message="Failed to save admin config")
    async def set_admin_config(self, config: AdminConfig) -> None:
        # Custom categories are rebuilt from the source file on every load
        document = config.model_copy(update={"custom_categories": []})
        await self._client.set(ADMIN_CONFIG_KEY, document.model_dump_json())
