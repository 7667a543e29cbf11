"""Source and admin configuration service.

Reads the JSON source config file (provider sites, cache time, custom
categories) and, for persistent stores, merges it with the admin config kept
in the progress store. Constructed explicitly and injected; call ``reload()``
to pick up file or store changes.
"""

import json
import logging
from pathlib import Path
from typing import Any

from reelhub.config import Settings
from reelhub.core.errors import ConfigurationError, ReelhubError, error_context
from reelhub.models.admin_config import (
    AdminConfig,
    CustomCategory,
    SiteConfig,
    SourceEntry,
    UserConfig,
    UserEntry,
)
from reelhub.models.media import ContentKind
from reelhub.storage.base import ProgressStore

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TIME = 7200


def _source_from_site(key: str, site: dict[str, Any]) -> SourceEntry:
    return SourceEntry(
        key=key,
        name=site.get("name", key),
        api=site["api"],
        detail=site.get("detail"),
        origin="config",
        disabled=False,
        is_adult=bool(site.get("is_adult", False)),
        type=site.get("type"),
    )


def _categories_from_file(file_config: dict[str, Any]) -> list[CustomCategory]:
    return [
        CustomCategory(
            name=category.get("name"),
            type=category["type"],
            query=category["query"],
            origin="config",
            disabled=False,
        )
        for category in file_config.get("custom_category") or []
    ]


class ConfigService:
    """Assembles and serves the admin configuration.

    Args:
        settings: Server settings (site name, owner, config file path)
        store: Progress store holding the persisted admin config
        file_config: Pre-parsed source config; read from ``settings.config_file`` when None
    """

    def __init__(
        self,
        settings: Settings,
        store: ProgressStore,
        file_config: dict[str, Any] | None = None,
    ):
        self._settings = settings
        self._store = store
        self._file_override = file_config
        self._file_config: dict[str, Any] = {}
        self._config: AdminConfig | None = None

    # --- Loading ---

    def _read_file(self) -> dict[str, Any]:
        if self._file_override is not None:
            return self._file_override

        path = Path(self._settings.config_file)
        if not path.exists():
            logger.warning(f"Source config {path} not found; starting with no provider sites")
            return {"api_site": {}}

        with error_context(
            error_types=(OSError, ValueError),
            default_message=f"Failed to read source config {path}",
            wrap_as=ConfigurationError,
        ):
            data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, dict) or not isinstance(data.get("api_site", {}), dict):
            raise ConfigurationError(f"{path}: api_site must be an object")
        logger.info(f"Loaded source config from {path}")
        return data

    def _site_config(self) -> SiteConfig:
        return SiteConfig(
            site_name=self._settings.site_name,
            announcement=self._settings.announcement,
            search_downstream_max_page=self._settings.search_max_page,
            site_interface_cache_time=self._file_config.get("cache_time") or DEFAULT_CACHE_TIME,
        )

    def _file_sources(self) -> list[SourceEntry]:
        return [
            _source_from_site(key, site)
            for key, site in (self._file_config.get("api_site") or {}).items()
        ]

    def _with_owner(self, users: list[UserEntry]) -> list[UserEntry]:
        owner = self._settings.owner_username
        if not owner:
            return users
        others = [u for u in users if u.username != owner]
        return [UserEntry(username=owner, role="owner"), *others]

    def _file_based_config(self, usernames: list[str] | None = None) -> AdminConfig:
        users = [UserEntry(username=name, role="user") for name in usernames or []]
        return AdminConfig(
            site_config=self._site_config(),
            user_config=UserConfig(
                allow_register=self._settings.allow_register,
                users=self._with_owner(users),
            ),
            source_config=self._file_sources(),
            custom_categories=_categories_from_file(self._file_config),
        )

    def _merge(self, stored: AdminConfig, usernames: list[str]) -> AdminConfig:
        config = stored.model_copy(deep=True)
        file_sites: dict[str, dict] = self._file_config.get("api_site") or {}

        existing = {source.key for source in config.source_config}
        for key, site in file_sites.items():
            if key not in existing:
                config.source_config.append(_source_from_site(key, site))

        for source in config.source_config:
            site = file_sites.get(source.key)
            if site is None:
                source.origin = "custom"
            else:
                source.is_adult = bool(site.get("is_adult", False))
                source.type = site.get("type")

        config.custom_categories = _categories_from_file(self._file_config)

        known = {user.username for user in config.user_config.users}
        for name in usernames:
            if name not in known:
                config.user_config.users.append(UserEntry(username=name, role="user"))
        config.user_config.users = self._with_owner(config.user_config.users)
        return config

    async def _list_users(self) -> list[str]:
        try:
            return await self._store.get_all_users()
        except ReelhubError as e:
            logger.error(f"Failed to list users: {e}")
            return []

    async def load(self) -> AdminConfig:
        """Build the admin config once; later calls return the loaded copy."""
        if self._config is not None:
            return self._config

        self._file_config = self._read_file()

        if not self._store.persistent:
            self._config = self._file_based_config()
            return self._config

        try:
            stored = await self._store.get_admin_config()
            usernames = await self._list_users()
            if stored is not None:
                config = self._merge(stored, usernames)
            else:
                config = self._file_based_config(usernames)
            await self._store.set_admin_config(config)
        except ReelhubError as e:
            logger.error(f"Failed to load admin config, falling back to file config: {e}")
            config = self._file_based_config()

        self._config = config
        logger.info(
            f"Admin config ready: {len(config.source_config)} sources, "
            f"{len(config.user_config.users)} users"
        )
        return config

    async def reload(self) -> AdminConfig:
        """Drop the loaded config and rebuild it from the file and store."""
        self._config = None
        return await self.load()

    async def get_config(self) -> AdminConfig:
        return await self.load()

    async def reset(self) -> AdminConfig:
        """Discard stored customizations: rebuild from the file and persist."""
        self._file_config = self._read_file()
        config = self._file_based_config(await self._list_users())
        await self._store.set_admin_config(config)
        self._config = config
        logger.info("Admin config reset from source file")
        return config

    # --- Site queries ---

    async def available_sites(
        self, filter_adult: bool = False, kind: ContentKind | str | None = None
    ) -> list[SourceEntry]:
        """Enabled sources, optionally without adult sites and restricted to one kind.

        ``kind="video"`` also matches sources with no declared type.
        """
        config = await self.get_config()
        sites = [s for s in config.source_config if not s.disabled]
        if filter_adult:
            sites = [s for s in sites if not s.is_adult]
        if kind:
            kind_value = kind.value if isinstance(kind, ContentKind) else kind
            if kind_value == ContentKind.VIDEO.value:
                sites = [s for s in sites if not s.type or s.type == kind_value]
            else:
                sites = [s for s in sites if s.type == kind_value]
        return sites

    async def adult_sites(self) -> list[SourceEntry]:
        config = await self.get_config()
        return [s for s in config.source_config if not s.disabled and s.is_adult]

    async def should_filter_adult(self, username: str | None) -> bool:
        """Filter unless the user explicitly turned filtering off."""
        if not username:
            return True
        try:
            user_settings = await self._store.get_user_settings(username)
        except ReelhubError as e:
            logger.warning(f"Failed to read settings for {username}, filtering adult sites: {e}")
            return True
        return user_settings.filter_adult_content is not False

    async def filtered_sites(self, username: str | None = None) -> list[SourceEntry]:
        """Sources visible to ``username`` given their adult-content setting."""
        return await self.available_sites(filter_adult=await self.should_filter_adult(username))

    async def find_site(self, key: str, username: str | None = None) -> SourceEntry | None:
        for site in await self.filtered_sites(username):
            if site.key == key:
                return site
        return None

    async def cache_time(self) -> int:
        config = await self.get_config()
        return config.site_config.site_interface_cache_time or DEFAULT_CACHE_TIME
