"""Resolution entry point: request -> chosen source, episode and resume position."""

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable

from reelhub.core.errors import (
    AllProbesFailed,
    EmptyEpisodeList,
    NoCandidatesFound,
    ReelhubError,
)
from reelhub.models.media import (
    CandidateSource,
    ContentIdentity,
    ContentKind,
    ProbeResult,
    ResolveRequest,
    ResolveResult,
    ScoredCandidate,
)
from reelhub.models.records import PlayRecord
from reelhub.providers.base import Provider
from reelhub.providers.registry import ProviderRegistry
from reelhub.services.aggregator import Aggregator
from reelhub.services.probe import ProbeEngine
from reelhub.services.scoring import ScoringEngine
from reelhub.storage.base import ProgressStore
from reelhub.storage.keys import make_key, validate_token

logger = logging.getLogger(__name__)


def batch_size(count: int) -> int:
    """Probe batch size: half the candidates, rounded up."""
    return max(1, math.ceil(count / 2))


class Resolver:
    """Picks the source to play for a request.

    An explicitly requested source is used as-is when it is among the
    candidates; otherwise every candidate is probed (in two sequential
    batches) and the best composite score wins.
    """

    def __init__(
        self,
        aggregator: Aggregator,
        probe_engine: ProbeEngine,
        scoring: ScoringEngine,
        store: ProgressStore,
        registry: ProviderRegistry,
    ):
        self._aggregator = aggregator
        self._probe = probe_engine
        self._scoring = scoring
        self._store = store
        self._registry = registry

    async def probe_in_batches(
        self, candidates: list[CandidateSource]
    ) -> list[tuple[CandidateSource, ProbeResult]]:
        """Probe candidates concurrently within a batch, batches one after another."""
        size = batch_size(len(candidates))
        probed: list[tuple[CandidateSource, ProbeResult]] = []
        for start in range(0, len(candidates), size):
            batch = candidates[start : start + size]
            results = await asyncio.gather(*(self._probe.probe(c.sample_url()) for c in batch))
            probed.extend(zip(batch, results, strict=True))
        return probed

    async def rank(self, candidates: list[CandidateSource]) -> list[ScoredCandidate]:
        """Probe and score; a single unscored entry means every probe failed."""
        size = batch_size(len(candidates))
        logger.info(f"Probing {len(candidates)} candidates in batches of {size}")
        return self._scoring.score(await self.probe_in_batches(candidates))

    async def choose(
        self,
        candidates: list[CandidateSource],
        preferred: ContentIdentity | None = None,
        force_repick: bool = False,
        on_probe: Callable[[], Awaitable[None]] | None = None,
    ) -> tuple[CandidateSource, list[str]]:
        """Select one candidate; returns it with any non-fatal warning codes."""
        if not candidates:
            raise NoCandidatesFound("No playable sources found; try searching again")

        if preferred is not None and not force_repick:
            for candidate in candidates:
                if candidate.identity == preferred:
                    logger.info(f"Using requested source {preferred}")
                    return candidate, []

        if on_probe is not None:
            await on_probe()
        ranked = await self.rank(candidates)
        winner = ranked[0]
        if winner.score is None:
            logger.warning(f"All probes failed, falling back to {winner.source.identity}")
            return winner.source, [AllProbesFailed.code]
        logger.info(f"Selected {winner.source.identity} with score {winner.score}")
        return winner.source, []

    @staticmethod
    async def _episode_url(provider: Provider | None, source: CandidateSource, index: int) -> str:
        if provider is not None:
            return await provider.stream_url(source, index)
        return source.episode_urls[index]

    async def episode_url(
        self, source: CandidateSource, index: int, user: str | None = None
    ) -> str:
        """Playable URL for the 0-based episode ``index`` of ``source``."""
        if source.kind == ContentKind.AUDIOBOOK:
            provider: Provider | None = self._registry.audiobooks
        else:
            provider = await self._registry.lookup(source.provider_key, user)
        return await self._episode_url(provider, source, index)

    async def find_source(
        self,
        provider_key: str,
        item_id: str,
        candidates: list[CandidateSource],
        user: str | None = None,
    ) -> CandidateSource:
        """A known candidate by identity, else a fresh detail lookup.

        Raises:
            InvalidIdentity: Malformed provider key or item id
            NoCandidatesFound: The provider does not offer the item
        """
        validate_token(provider_key, "provider_key")
        validate_token(item_id, "item_id")
        for candidate in candidates:
            if candidate.matches(provider_key, item_id):
                return candidate
        source = await self._aggregator.detail(provider_key, item_id, user)
        if source is None or not source.episode_urls:
            raise NoCandidatesFound(f"Source {provider_key}:{item_id} is not available")
        return source

    async def _stored_record(self, user: str | None, key: str) -> PlayRecord | None:
        if not user:
            return None
        try:
            return await self._store.get_play_record(user, key)
        except ReelhubError as e:
            logger.warning(f"Could not read play record {key} for {user}: {e}")
            return None

    async def _video_candidates(
        self, request: ResolveRequest, user: str | None
    ) -> list[CandidateSource]:
        candidates: list[CandidateSource] = []
        if request.title:
            candidates = await self._aggregator.candidates_for(
                request.title, year=request.year, episode_kind=request.episode_kind, user=user
            )
        if request.explicit_identity:
            wanted = ContentIdentity.video(request.provider_key, request.item_id)
            if not any(c.identity == wanted for c in candidates):
                source = await self._aggregator.detail(request.provider_key, request.item_id, user)
                if source is not None and source.episode_urls:
                    candidates.insert(0, source)
        return candidates

    async def resolve(
        self,
        request: ResolveRequest,
        user: str | None = None,
        on_probe: Callable[[], Awaitable[None]] | None = None,
    ) -> ResolveResult:
        """Resolve a request to a playable episode and resume position.

        Raises:
            InvalidIdentity: Malformed provider key, item id or album id
            NoCandidatesFound: No provider offered the title
            EmptyEpisodeList: The chosen source has no episodes
        """
        warnings: list[str] = []
        if request.is_audiobook:
            validate_token(request.album_id, "album_id")
            source = await self._registry.audiobooks.album(request.album_id)
            if source is None:
                raise NoCandidatesFound(f"Audiobook album {request.album_id} not found")
            candidates = [source]
            provider = self._registry.audiobooks
        else:
            preferred = None
            if request.explicit_identity:
                validate_token(request.provider_key, "provider_key")
                validate_token(request.item_id, "item_id")
                preferred = ContentIdentity.video(request.provider_key, request.item_id)
            candidates = await self._video_candidates(request, user)
            source, warnings = await self.choose(
                candidates, preferred, request.force_repick, on_probe=on_probe
            )
            provider = await self._registry.lookup(source.provider_key, user)

        if not source.episode_urls:
            raise EmptyEpisodeList(f"{source.identity} has no episodes")

        identity = source.identity
        key = make_key(identity)
        record = await self._stored_record(user, key)

        total = source.total_episodes
        index = request.episode or (record.index if record else 1)
        if not 1 <= index <= total:
            logger.info(f"Episode {index} out of range for {identity} ({total}); starting at 1")
            index = 1
        resume = float(record.play_time) if record and record.index == index else 0.0

        episode_url = await self._episode_url(provider, source, index - 1)

        return ResolveResult(
            identity=identity,
            episode_url=episode_url,
            episode_index=index,
            total_episodes=total,
            resume_seconds=resume,
            source=source,
            warnings=warnings,
            candidates=candidates,
        )
