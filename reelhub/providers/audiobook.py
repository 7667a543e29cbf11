"""Audiobook catalog client.

Albums are the unit of identity; their "episodes" are track ids, resolved to a
playable URL one track at a time.
"""

import logging
from typing import Any

from reelhub.core.errors import ConfigurationError, UpstreamError
from reelhub.models.media import CandidateSource, ContentKind
from reelhub.providers.base import Provider
from reelhub.services.fetcher import Fetcher
from reelhub.storage.keys import AUDIOBOOK_TAG

logger = logging.getLogger(__name__)


def force_https(url: str) -> str:
    if url.startswith("http://"):
        return "https://" + url[len("http://") :]
    return url


class AudiobookCatalog(Provider):
    """Album search, album track lists and per-track stream URLs."""

    key = AUDIOBOOK_TAG
    name = "Audiobooks"
    kind = ContentKind.AUDIOBOOK

    def __init__(self, fetcher: Fetcher, api_url: str, api_key: str, timeout: float | None = None):
        self._fetcher = fetcher
        self.api_url = api_url
        self.api_key = api_key
        self.timeout = timeout

    async def _call(self, **params: Any) -> Any:
        if not self.api_key:
            raise ConfigurationError("Audiobook API key is not configured")
        return await self._fetcher.get_json(
            self.api_url, params={"key": self.api_key, **params}, timeout=self.timeout
        )

    async def search(self, query: str) -> list[CandidateSource]:
        payload = await self._call(name=query)
        items = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(items, list):
            return []
        results = []
        for item in items:
            if not isinstance(item, dict) or item.get("albumId") in (None, ""):
                continue
            results.append(
                CandidateSource(
                    provider_key=self.key,
                    item_id=str(item["albumId"]),
                    title=item.get("title") or "",
                    poster_url=item.get("cover") or "",
                    provider_display_name=item.get("Nickname") or self.name,
                    kind=ContentKind.AUDIOBOOK,
                    description=item.get("intro"),
                    type_name=item.get("type"),
                )
            )
        return results

    async def album(self, album_id: str) -> CandidateSource | None:
        """Album with its ordered track ids as episode references."""
        payload = await self._call(albumId=album_id)
        if not isinstance(payload, dict):
            return None
        tracks = payload.get("data")
        if not isinstance(tracks, list):
            return None
        track_ids = tuple(
            str(track["trackId"])
            for track in tracks
            if isinstance(track, dict) and track.get("trackId") not in (None, "")
        )
        return CandidateSource(
            provider_key=self.key,
            item_id=str(album_id),
            title=payload.get("albumTitle") or "",
            episode_urls=track_ids,
            provider_display_name=self.name,
            kind=ContentKind.AUDIOBOOK,
        )

    async def detail(self, item_id: str) -> CandidateSource | None:
        return await self.album(item_id)

    async def stream_url(self, source: CandidateSource, index: int) -> str:
        track_id = await super().stream_url(source, index)
        payload = await self._call(trackId=track_id)
        url = payload.get("url") if isinstance(payload, dict) else None
        if not url:
            raise UpstreamError(f"No stream URL for audiobook track {track_id}")
        return force_https(url)
