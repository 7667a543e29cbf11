"""Concurrent provider queries, candidate matching and search-result grouping."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from pydantic import BaseModel, Field

from reelhub.core.errors import InvalidIdentity, ReelhubError
from reelhub.models.media import CandidateSource, ContentKind
from reelhub.providers.base import Provider
from reelhub.providers.registry import ProviderRegistry
from reelhub.services.config_service import ConfigService
from reelhub.storage.base import ProgressStore
from reelhub.storage.keys import validate_token

logger = logging.getLogger(__name__)

UNKNOWN_YEAR = "unknown"


class GroupedSearchResults(BaseModel):
    """Search hits split by whether they came from adult-flagged sites."""

    regular: list[CandidateSource] = Field(default_factory=list)
    adult: list[CandidateSource] = Field(default_factory=list)


class SearchGroup(BaseModel):
    """Equivalent hits from different providers (same title, year and kind)."""

    key: str
    title: str
    year: str
    episode_kind: str  # "movie" | "tv"
    sources: list[CandidateSource]


def normalize_title(title: str) -> str:
    return title.replace(" ", "").casefold()


def group_key(source: CandidateSource) -> str:
    episode_kind = "movie" if source.total_episodes == 1 else "tv"
    return f"{source.title.replace(' ', '')}-{source.year or UNKNOWN_YEAR}-{episode_kind}"


def group_results(results: list[CandidateSource], query: str) -> list[SearchGroup]:
    """Group equivalent hits and order the groups for display.

    Groups whose title contains the query come first, then newer years, with
    unknown years last; remaining ties fall back to key order.
    """
    groups: dict[str, list[CandidateSource]] = {}
    for source in results:
        groups.setdefault(group_key(source), []).append(source)

    needle = query.strip().replace(" ", "")

    def sort_key(item: tuple[str, list[CandidateSource]]):
        key, sources = item
        head = sources[0]
        contains = needle in head.title.replace(" ", "")
        year = head.year if head.year and head.year != UNKNOWN_YEAR else None
        return (
            0 if contains else 1,
            1 if year is None else 0,
            -int(year) if year and year.isdigit() else 0,
            key,
        )

    ordered = sorted(groups.items(), key=sort_key)
    return [
        SearchGroup(
            key=key,
            title=sources[0].title,
            year=sources[0].year or UNKNOWN_YEAR,
            episode_kind="movie" if sources[0].total_episodes == 1 else "tv",
            sources=sources,
        )
        for key, sources in ordered
    ]


def matches_request(
    source: CandidateSource,
    title: str,
    year: str | None = None,
    episode_kind: str | None = None,
) -> bool:
    """Candidate filter used when resolving a title to playable sources."""
    if normalize_title(source.title) != normalize_title(title):
        return False
    if year and source.year.casefold() != year.casefold():
        return False
    if episode_kind == "tv":
        return source.total_episodes > 1
    if episode_kind == "movie":
        return source.total_episodes == 1
    return source.total_episodes >= 1


def _has_valid_identity(source: CandidateSource) -> bool:
    try:
        validate_token(source.provider_key, "provider_key")
        validate_token(source.item_id, "item_id")
    except InvalidIdentity:
        return False
    return True


class Aggregator:
    """Fans queries out to every visible provider and merges the results.

    A failing or slow provider contributes an empty list; it never aborts the
    others.
    """

    def __init__(
        self,
        config_service: ConfigService,
        registry: ProviderRegistry,
        store: ProgressStore,
        provider_timeout: float = 8.0,
    ):
        self._config = config_service
        self._registry = registry
        self._store = store
        self.provider_timeout = provider_timeout

    async def _bounded(
        self, provider: Provider, call: Callable[[], Awaitable[list[CandidateSource]]]
    ) -> list[CandidateSource]:
        try:
            results = await asyncio.wait_for(call(), timeout=self.provider_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Provider {provider.key} timed out after {self.provider_timeout}s")
            return []
        except ReelhubError as e:
            logger.warning(f"Provider {provider.key} failed: {e}")
            return []
        except Exception as e:
            logger.warning(f"Provider {provider.key} returned unusable data: {e!r}")
            return []
        valid = [source for source in results if _has_valid_identity(source)]
        if len(valid) != len(results):
            logger.debug(f"Provider {provider.key}: dropped {len(results) - len(valid)} bad ids")
        return valid

    async def query_providers(self, providers: list[Provider], query: str) -> list[CandidateSource]:
        """Search every provider concurrently; results keep provider order."""
        if not providers:
            return []
        batches = await asyncio.gather(
            *(self._bounded(p, lambda p=p: p.search(query)) for p in providers)
        )
        return [source for batch in batches for source in batch]

    async def search(
        self,
        query: str,
        *,
        user: str | None = None,
        include_adult: bool = False,
        kind: ContentKind | None = None,
    ) -> GroupedSearchResults:
        """Search regular sites, plus adult sites when the caller may see them."""
        query = query.strip()
        if not query:
            return GroupedSearchResults()

        if kind == ContentKind.AUDIOBOOK:
            regular = await self.query_providers([self._registry.audiobooks], query)
            await self._record_search(user, query)
            return GroupedSearchResults(regular=regular)

        should_filter = (await self._config.should_filter_adult(user)) and not include_adult

        regular_sites = await self._config.available_sites(filter_adult=True, kind=kind)
        adult_sites = [] if should_filter else await self._config.adult_sites()

        regular_task = self.query_providers(self._registry.for_sites(regular_sites), query)
        adult_task = self.query_providers(self._registry.for_sites(adult_sites), query)
        regular, adult = await asyncio.gather(regular_task, adult_task)

        await self._record_search(user, query)
        logger.info(
            f"Search '{query}': {len(regular)} regular, {len(adult)} adult results "
            f"from {len(regular_sites) + len(adult_sites)} sites"
        )
        return GroupedSearchResults(regular=regular, adult=adult)

    async def _record_search(self, user: str | None, query: str) -> None:
        if not user:
            return
        try:
            await self._store.add_search_history(user, query)
        except ReelhubError as e:
            logger.warning(f"Could not record search history for {user}: {e}")

    async def candidates_for(
        self,
        title: str,
        *,
        year: str | None = None,
        episode_kind: str | None = None,
        user: str | None = None,
    ) -> list[CandidateSource]:
        """Playable candidates for a title across every provider visible to ``user``."""
        providers = await self._registry.providers(user)
        results = await self.query_providers(providers, title)
        candidates = [s for s in results if matches_request(s, title, year, episode_kind)]
        logger.info(
            f"'{title}' ({year or 'any year'}, {episode_kind or 'any kind'}): "
            f"{len(candidates)} of {len(results)} results match"
        )
        return candidates

    async def detail(
        self, provider_key: str, item_id: str, user: str | None = None
    ) -> CandidateSource | None:
        """Detail lookup on one provider; None when unavailable or failing."""
        provider = await self._registry.lookup(provider_key, user)
        if provider is None:
            return None
        try:
            return await asyncio.wait_for(provider.detail(item_id), timeout=self.provider_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Detail {provider_key}/{item_id} timed out")
        except ReelhubError as e:
            logger.warning(f"Detail {provider_key}/{item_id} failed: {e}")
        return None
