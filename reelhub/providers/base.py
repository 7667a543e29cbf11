"""Upstream provider abstraction."""

from abc import ABC, abstractmethod

from reelhub.core.errors import EmptyEpisodeList
from reelhub.models.media import CandidateSource, ContentKind


class Provider(ABC):
    """One upstream content source.

    Implementations return empty results or raise ``UpstreamError`` on
    failure; they never return half-parsed objects.
    """

    key: str
    name: str
    kind: ContentKind = ContentKind.VIDEO
    is_adult: bool = False

    @abstractmethod
    async def search(self, query: str) -> list[CandidateSource]:
        """Search the provider and return normalized candidates."""
        raise NotImplementedError

    @abstractmethod
    async def detail(self, item_id: str) -> CandidateSource | None:
        """Full record for one item, episode list included."""
        raise NotImplementedError

    async def stream_url(self, source: CandidateSource, index: int) -> str:
        """Playable URL for the 0-based episode ``index`` of ``source``."""
        if not source.episode_urls:
            raise EmptyEpisodeList(f"{source.provider_key}/{source.item_id} has no episodes")
        return source.episode_urls[index]

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.key}>"
