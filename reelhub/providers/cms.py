"""Provider for the common CMS "videolist" JSON API.

Search is ``<api>?ac=videolist&wd=<query>[&pg=<n>]``, detail is
``<api>?ac=videolist&ids=<id>``. Items carry ``vod_*`` fields; the play string
``vod_play_url`` holds play groups separated by ``$$$``, episodes separated by
``#`` and ``label$url`` pairs within an episode.
"""

import asyncio
import logging
import re
from typing import Any

from pydantic import ValidationError

from reelhub.core.errors import UpstreamError
from reelhub.models.admin_config import SourceEntry
from reelhub.models.media import CandidateSource, ContentKind
from reelhub.providers.base import Provider
from reelhub.services.fetcher import Fetcher

logger = logging.getLogger(__name__)

GROUP_SEPARATOR = "$$$"
EPISODE_SEPARATOR = "#"
LABEL_SEPARATOR = "$"

_YEAR_RE = re.compile(r"\d{4}")


def parse_play_url(play_url: str | None) -> list[str]:
    """Episode URLs from a ``vod_play_url`` string.

    The first play group containing ``.m3u8`` links wins; otherwise the first
    non-empty group is used.
    """
    if not play_url:
        return []
    groups: list[list[str]] = []
    for group in play_url.split(GROUP_SEPARATOR):
        urls = []
        for episode in group.split(EPISODE_SEPARATOR):
            episode = episode.strip()
            if not episode:
                continue
            url = episode.rsplit(LABEL_SEPARATOR, 1)[-1].strip()
            if url:
                urls.append(url)
        if urls:
            groups.append(urls)
    if not groups:
        return []
    for urls in groups:
        if any(".m3u8" in url for url in urls):
            return urls
    return groups[0]


def _text(value: Any) -> str:
    """String form of a scalar field; anything else counts as missing."""
    if isinstance(value, bool):
        return ""
    if isinstance(value, (str, int)):
        return str(value)
    return ""


def parse_year(value: Any) -> str:
    match = _YEAR_RE.search(str(value or ""))
    return match.group(0) if match else ""


class CmsProvider(Provider):
    """One configured CMS site.

    Args:
        site: Source entry from the admin config
        fetcher: Shared outbound fetcher
        max_pages: Upper bound on result pages fetched per search
        timeout: Per-request timeout in seconds
    """

    kind = ContentKind.VIDEO

    def __init__(
        self,
        site: SourceEntry,
        fetcher: Fetcher,
        max_pages: int = 1,
        timeout: float | None = None,
    ):
        self.site = site
        self.key = site.key
        self.name = site.name
        self.is_adult = site.is_adult
        self._fetcher = fetcher
        self.max_pages = max(1, max_pages)
        self.timeout = timeout

    def _item_to_candidate(self, item: dict[str, Any]) -> CandidateSource | None:
        item_id = _text(item.get("vod_id"))
        title = _text(item.get("vod_name")).strip()
        if not item_id or not title:
            return None
        try:
            return CandidateSource(
                provider_key=self.key,
                item_id=item_id,
                title=title,
                year=parse_year(item.get("vod_year")),
                poster_url=_text(item.get("vod_pic")),
                episode_urls=tuple(parse_play_url(_text(item.get("vod_play_url")))),
                provider_display_name=self.name,
                kind=ContentKind.VIDEO,
                is_adult=self.is_adult,
                description=_text(item.get("vod_content")) or None,
                type_name=_text(item.get("type_name")) or None,
            )
        except ValidationError as e:
            logger.debug(f"{self.key}: skipping malformed item {item_id}: {e}")
            return None

    def _parse_list(self, payload: Any) -> list[CandidateSource]:
        if not isinstance(payload, dict) or not isinstance(payload.get("list"), list):
            raise UpstreamError(f"{self.key}: response has no 'list' array")
        candidates = []
        for item in payload["list"]:
            if not isinstance(item, dict):
                continue
            candidate = self._item_to_candidate(item)
            if candidate is not None:
                candidates.append(candidate)
        return candidates

    async def _page(self, query: str, page: int) -> Any:
        params: dict[str, Any] = {"ac": "videolist", "wd": query}
        if page > 1:
            params["pg"] = page
        return await self._fetcher.get_json(self.site.api, params=params, timeout=self.timeout)

    async def search(self, query: str) -> list[CandidateSource]:
        first = await self._page(query, 1)
        results = self._parse_list(first)

        try:
            page_count = int(first.get("pagecount") or 1)
        except (TypeError, ValueError):
            page_count = 1
        last_page = min(page_count, self.max_pages)
        if last_page <= 1:
            return results

        pages = await asyncio.gather(
            *(self._page(query, page) for page in range(2, last_page + 1)),
            return_exceptions=True,
        )
        for page_number, payload in enumerate(pages, start=2):
            if isinstance(payload, BaseException):
                logger.warning(f"{self.key}: page {page_number} of '{query}' failed: {payload}")
                continue
            try:
                results.extend(self._parse_list(payload))
            except UpstreamError as e:
                logger.warning(f"{self.key}: page {page_number} unusable: {e}")
        return results

    async def detail(self, item_id: str) -> CandidateSource | None:
        url = self.site.detail or self.site.api
        payload = await self._fetcher.get_json(
            url, params={"ac": "videolist", "ids": item_id}, timeout=self.timeout
        )
        for candidate in self._parse_list(payload):
            if candidate.item_id == str(item_id):
                return candidate
        return None
