"""Local-only progress store held in process memory."""

import logging

from reelhub.models.admin_config import AdminConfig
from reelhub.models.records import Favorite, PlayRecord, SkipConfig, UserSettings
from reelhub.storage.base import SEARCH_HISTORY_LIMIT, ProgressStore, is_stale

logger = logging.getLogger(__name__)


class MemoryStore(ProgressStore):
    """Dict-backed store. Nothing survives a restart."""

    save_interval = 5.0
    persistent = False

    def __init__(self) -> None:
        self._passwords: dict[str, str] = {}
        self._play_records: dict[str, dict[str, PlayRecord]] = {}
        self._favorites: dict[str, dict[str, Favorite]] = {}
        self._skip_configs: dict[str, dict[str, SkipConfig]] = {}
        self._settings: dict[str, UserSettings] = {}
        self._search_history: dict[str, list[str]] = {}
        self._admin_config: AdminConfig | None = None

    def _known(self, username: str) -> bool:
        return username in self._passwords

    # --- Play records ---

    async def get_play_record(self, username: str, key: str) -> PlayRecord | None:
        record = self._play_records.get(username, {}).get(key)
        return record.model_copy(deep=True) if record else None

    async def set_play_record(self, username: str, key: str, record: PlayRecord) -> None:
        if not self._known(username):
            return
        records = self._play_records.setdefault(username, {})
        if is_stale(records.get(key), record):
            logger.debug(f"Dropping stale play record {key} for {username}")
            return
        records[key] = record.model_copy(deep=True)

    async def get_all_play_records(self, username: str) -> dict[str, PlayRecord]:
        records = self._play_records.get(username, {})
        return {key: record.model_copy(deep=True) for key, record in records.items()}

    async def delete_play_record(self, username: str, key: str) -> None:
        self._play_records.get(username, {}).pop(key, None)

    # --- Favorites ---

    async def get_favorite(self, username: str, key: str) -> Favorite | None:
        favorite = self._favorites.get(username, {}).get(key)
        return favorite.model_copy(deep=True) if favorite else None

    async def set_favorite(self, username: str, key: str, favorite: Favorite) -> None:
        if not self._known(username):
            return
        self._favorites.setdefault(username, {})[key] = favorite.model_copy(deep=True)

    async def get_all_favorites(self, username: str) -> dict[str, Favorite]:
        favorites = self._favorites.get(username, {})
        return {key: favorite.model_copy(deep=True) for key, favorite in favorites.items()}

    async def delete_favorite(self, username: str, key: str) -> None:
        self._favorites.get(username, {}).pop(key, None)

    # --- Skip configs ---

    async def get_skip_config(self, username: str, key: str) -> SkipConfig | None:
        config = self._skip_configs.get(username, {}).get(key)
        return config.model_copy(deep=True) if config else None

    async def set_skip_config(self, username: str, key: str, config: SkipConfig) -> None:
        if not self._known(username):
            return
        self._skip_configs.setdefault(username, {})[key] = config.model_copy(deep=True)

    async def get_all_skip_configs(self, username: str) -> dict[str, SkipConfig]:
        configs = self._skip_configs.get(username, {})
        return {key: config.model_copy(deep=True) for key, config in configs.items()}

    async def delete_skip_config(self, username: str, key: str) -> None:
        self._skip_configs.get(username, {}).pop(key, None)

    # --- Users ---

    async def register_user(self, username: str, password: str) -> None:
        self._passwords.setdefault(username, password)

    async def verify_user(self, username: str, password: str) -> bool:
        stored = self._passwords.get(username)
        return stored is not None and stored == password

    async def check_user_exist(self, username: str) -> bool:
        return self._known(username)

    async def change_password(self, username: str, new_password: str) -> None:
        if self._known(username):
            self._passwords[username] = new_password

    async def delete_user(self, username: str) -> None:
        self._passwords.pop(username, None)
        for collection in (
            self._play_records,
            self._favorites,
            self._skip_configs,
            self._settings,
            self._search_history,
        ):
            collection.pop(username, None)

    async def get_all_users(self) -> list[str]:
        return list(self._passwords)

    # --- Settings ---

    async def get_user_settings(self, username: str) -> UserSettings:
        settings = self._settings.get(username)
        return settings.model_copy(deep=True) if settings else UserSettings()

    async def set_user_settings(self, username: str, settings: UserSettings) -> None:
        if self._known(username):
            self._settings[username] = settings.model_copy(deep=True)

    # --- Search history ---

    async def get_search_history(self, username: str) -> list[str]:
        return list(self._search_history.get(username, []))

    async def add_search_history(self, username: str, keyword: str) -> None:
        if not self._known(username):
            return
        history = [k for k in self._search_history.get(username, []) if k != keyword]
        history.insert(0, keyword)
        self._search_history[username] = history[:SEARCH_HISTORY_LIMIT]

    async def delete_search_history(self, username: str, keyword: str | None = None) -> None:
        if keyword is None:
            self._search_history.pop(username, None)
            return
        history = self._search_history.get(username)
        if history is not None:
            self._search_history[username] = [k for k in history if k != keyword]

    # --- Admin config ---

    async def get_admin_config(self) -> AdminConfig | None:
        return self._admin_config.model_copy(deep=True) if self._admin_config else None

    async def set_admin_config(self, config: AdminConfig) -> None:
        self._admin_config = config.model_copy(deep=True)
