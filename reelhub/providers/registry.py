"""Builds provider instances from the configured source sites."""

import logging

from reelhub.config import Settings
from reelhub.models.admin_config import SourceEntry
from reelhub.models.media import ContentKind
from reelhub.providers.audiobook import AudiobookCatalog
from reelhub.providers.base import Provider
from reelhub.providers.cms import CmsProvider
from reelhub.services.config_service import ConfigService
from reelhub.services.fetcher import Fetcher

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Maps source keys to live providers.

    CMS providers are cached per site and rebuilt when the site's entry
    changes after a config reload.
    """

    def __init__(self, config_service: ConfigService, fetcher: Fetcher, settings: Settings):
        self._config = config_service
        self._fetcher = fetcher
        self._settings = settings
        self._cache: dict[str, tuple[SourceEntry, CmsProvider]] = {}
        self.audiobooks = AudiobookCatalog(
            fetcher,
            api_url=settings.audiobook_api_url,
            api_key=settings.audiobook_api_key,
            timeout=settings.provider_timeout,
        )

    def for_site(self, site: SourceEntry) -> CmsProvider:
        cached = self._cache.get(site.key)
        if cached is not None and cached[0] == site:
            return cached[1]
        provider = CmsProvider(
            site,
            self._fetcher,
            max_pages=self._settings.search_max_page,
            timeout=self._settings.provider_timeout,
        )
        self._cache[site.key] = (site.model_copy(), provider)
        return provider

    def for_sites(self, sites: list[SourceEntry]) -> list[Provider]:
        return [self.for_site(site) for site in sites]

    async def lookup(self, key: str, username: str | None = None) -> Provider | None:
        """Provider for ``key`` if the site is enabled and visible to ``username``."""
        if key == self.audiobooks.key:
            return self.audiobooks
        site = await self._config.find_site(key, username)
        if site is None:
            logger.debug(f"Source {key!r} not available for {username or 'guest'}")
            return None
        return self.for_site(site)

    async def providers(
        self, username: str | None = None, kind: ContentKind = ContentKind.VIDEO
    ) -> list[Provider]:
        """Every provider of ``kind`` visible to ``username``."""
        if kind == ContentKind.AUDIOBOOK:
            return [self.audiobooks]
        filter_adult = await self._config.should_filter_adult(username)
        sites = await self._config.available_sites(filter_adult=filter_adult, kind=kind)
        return self.for_sites(sites)
