"""ProgressStore contract shared by every storage backend.

All operations are scoped to a caller-supplied username. Lookup misses return
None/empty, never raise. Writes for a user that does not exist are no-ops.
Backends raise StorageError for genuine persistence failures.
"""

import abc
import logging
import time
from typing import Any

from reelhub.models.admin_config import AdminConfig
from reelhub.models.records import Favorite, PlayRecord, SkipConfig, UserSettings

logger = logging.getLogger(__name__)

SEARCH_HISTORY_LIMIT = 20


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def is_stale(existing: PlayRecord | None, incoming: PlayRecord) -> bool:
    """Last-write-wins by save time: an older record never replaces a newer one."""
    return existing is not None and existing.save_time > incoming.save_time


def merge_settings(current: UserSettings, changes: dict[str, Any]) -> UserSettings:
    """Overlay ``changes`` onto ``current``; None values count as absent."""
    merged = current.model_dump()
    merged.update({key: value for key, value in changes.items() if value is not None})
    return UserSettings.model_validate(merged)


class ProgressStore(abc.ABC):
    """Namespaced per-user key/value store for play state and preferences."""

    # Seconds between periodic progress saves while playing; backends with
    # slower or costlier writes use longer intervals.
    save_interval: float = 5.0

    # False for stores whose data dies with the process; the admin config is
    # then rebuilt from the source file alone.
    persistent: bool = True

    async def init(self) -> None:
        """Prepare the backend (create tables, open connections)."""

    async def close(self) -> None:
        """Release backend resources."""

    # --- Play records ---

    @abc.abstractmethod
    async def get_play_record(self, username: str, key: str) -> PlayRecord | None: ...

    @abc.abstractmethod
    async def set_play_record(self, username: str, key: str, record: PlayRecord) -> None: ...

    @abc.abstractmethod
    async def get_all_play_records(self, username: str) -> dict[str, PlayRecord]: ...

    @abc.abstractmethod
    async def delete_play_record(self, username: str, key: str) -> None: ...

    # --- Favorites ---

    @abc.abstractmethod
    async def get_favorite(self, username: str, key: str) -> Favorite | None: ...

    @abc.abstractmethod
    async def set_favorite(self, username: str, key: str, favorite: Favorite) -> None: ...

    @abc.abstractmethod
    async def get_all_favorites(self, username: str) -> dict[str, Favorite]: ...

    @abc.abstractmethod
    async def delete_favorite(self, username: str, key: str) -> None: ...

    # --- Skip configs ---

    @abc.abstractmethod
    async def get_skip_config(self, username: str, key: str) -> SkipConfig | None: ...

    @abc.abstractmethod
    async def set_skip_config(self, username: str, key: str, config: SkipConfig) -> None: ...

    @abc.abstractmethod
    async def get_all_skip_configs(self, username: str) -> dict[str, SkipConfig]: ...

    @abc.abstractmethod
    async def delete_skip_config(self, username: str, key: str) -> None: ...

    # --- Users ---

    @abc.abstractmethod
    async def register_user(self, username: str, password: str) -> None: ...

    @abc.abstractmethod
    async def verify_user(self, username: str, password: str) -> bool: ...

    @abc.abstractmethod
    async def check_user_exist(self, username: str) -> bool: ...

    @abc.abstractmethod
    async def change_password(self, username: str, new_password: str) -> None: ...

    @abc.abstractmethod
    async def delete_user(self, username: str) -> None:
        """Remove the user and every record they own."""

    @abc.abstractmethod
    async def get_all_users(self) -> list[str]: ...

    # --- Settings ---

    @abc.abstractmethod
    async def get_user_settings(self, username: str) -> UserSettings:
        """Stored settings, or defaults when none were saved."""

    @abc.abstractmethod
    async def set_user_settings(self, username: str, settings: UserSettings) -> None: ...

    async def update_user_settings(self, username: str, changes: dict[str, Any]) -> None:
        """Partial update: only provided, non-None fields overwrite."""
        if not await self.check_user_exist(username):
            logger.debug(f"Ignoring settings update for unknown user {username!r}")
            return
        current = await self.get_user_settings(username)
        await self.set_user_settings(username, merge_settings(current, changes))

    # --- Search history ---

    @abc.abstractmethod
    async def get_search_history(self, username: str) -> list[str]:
        """Keywords, most recent first."""

    @abc.abstractmethod
    async def add_search_history(self, username: str, keyword: str) -> None: ...

    @abc.abstractmethod
    async def delete_search_history(self, username: str, keyword: str | None = None) -> None:
        """Delete one keyword, or the whole history when ``keyword`` is None."""

    # --- Admin config ---

    @abc.abstractmethod
    async def get_admin_config(self) -> AdminConfig | None: ...

    @abc.abstractmethod
    async def set_admin_config(self, config: AdminConfig) -> None: ...
