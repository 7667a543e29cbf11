"""Unit tests for the Resolver.

Provider sites answer through httpx.MockTransport; the probe engine is mocked
so each test controls which candidates measure well.
"""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from reelhub.config import Settings
from reelhub.core.errors import AllProbesFailed, InvalidIdentity, NoCandidatesFound
from reelhub.models.media import (
    ContentIdentity,
    ContentKind,
    ProbeResult,
    QualityTier,
    ResolveRequest,
)
from reelhub.models.records import PlayRecord
from reelhub.providers.registry import ProviderRegistry
from reelhub.services.aggregator import Aggregator
from reelhub.services.config_service import ConfigService
from reelhub.services.probe import ProbeEngine
from reelhub.services.resolver import Resolver, batch_size
from reelhub.services.scoring import ScoringEngine

GOOD = ProbeResult(quality=QualityTier.FHD_1080P, throughput_kbps=2048, latency_ms=50)
FAIR = ProbeResult(quality=QualityTier.SD, throughput_kbps=200, latency_ms=600)


def _vod(vod_id, name="Night Train", year="2023", episodes=3):
    play = "#".join(
        f"EP{n}$https://cdn.example/{vod_id}/{n}.m3u8" for n in range(1, episodes + 1)
    )
    return {"vod_id": vod_id, "vod_name": name, "vod_year": year, "vod_play_url": play}


SITES = {
    "alpha": [_vod(1)],
    "beta": [_vod(2)],
}


def _handler(request: httpx.Request) -> httpx.Response:
    host = request.url.host.split(".")[0]
    params = request.url.params
    if host == "books":
        if "name" in params:
            return httpx.Response(200, json={"data": [{"albumId": 77, "title": "Tales"}]})
        if "albumId" in params:
            return httpx.Response(
                200,
                json={"albumTitle": "Tales", "data": [{"trackId": t} for t in (11, 12, 13)]},
            )
        return httpx.Response(200, json={"url": f"http://media.example/{params['trackId']}.m4a"})
    items = SITES.get(host, [])
    if "ids" in params:
        items = [i for i in items if str(i["vod_id"]) == params["ids"]]
    return httpx.Response(200, json={"pagecount": 1, "list": items})


@pytest.fixture
def probe_results():
    """Sample URL -> probe result; unknown URLs fail."""
    return {}


@pytest.fixture
def probe_engine(probe_results):
    engine = MagicMock(spec=ProbeEngine)
    engine.probe = AsyncMock(
        side_effect=lambda url: probe_results.get(url, ProbeResult.failure())
    )
    return engine


@pytest.fixture
def resolver(memory_store, source_config, make_fetcher, probe_engine):
    settings = Settings(
        search_max_page=1,
        audiobook_api_url="https://books.example/api",
        audiobook_api_key="k",
    )
    config = ConfigService(settings, memory_store, file_config=source_config)
    registry = ProviderRegistry(config, make_fetcher(_handler), settings)
    aggregator = Aggregator(config, registry, memory_store, provider_timeout=2.0)
    return Resolver(aggregator, probe_engine, ScoringEngine(), memory_store, registry)


def test_batch_size():
    assert batch_size(1) == 1
    assert batch_size(4) == 2
    assert batch_size(5) == 3


class TestChoose:
    async def test_explicit_identity_used_without_probing(self, resolver, probe_engine):
        request = ResolveRequest(provider_key="alpha", item_id="1", title="Night Train")

        result = await resolver.resolve(request)

        assert result.identity == ContentIdentity.video("alpha", "1")
        assert result.episode_index == 1
        assert result.episode_url == "https://cdn.example/1/1.m3u8"
        assert result.warnings == []
        assert {c.provider_key for c in result.candidates} == {"alpha", "beta"}
        probe_engine.probe.assert_not_awaited()

    async def test_explicit_identity_without_title_uses_detail(self, resolver, probe_engine):
        result = await resolver.resolve(ResolveRequest(provider_key="beta", item_id="2"))

        assert result.identity == ContentIdentity.video("beta", "2")
        assert result.total_episodes == 3
        probe_engine.probe.assert_not_awaited()

    async def test_title_only_picks_best_probe(self, resolver, probe_results):
        probe_results["https://cdn.example/1/2.m3u8"] = FAIR
        probe_results["https://cdn.example/2/2.m3u8"] = GOOD
        on_probe = AsyncMock()

        result = await resolver.resolve(ResolveRequest(title="Night Train"), on_probe=on_probe)

        assert result.identity == ContentIdentity.video("beta", "2")
        on_probe.assert_awaited_once()

    async def test_force_repick_ignores_requested_source(self, resolver, probe_results):
        probe_results["https://cdn.example/2/2.m3u8"] = GOOD
        request = ResolveRequest(
            provider_key="alpha", item_id="1", title="Night Train", force_repick=True
        )

        result = await resolver.resolve(request)

        assert result.identity == ContentIdentity.video("beta", "2")

    async def test_all_probes_failed_falls_back_with_warning(self, resolver):
        result = await resolver.resolve(ResolveRequest(title="Night Train"))

        assert result.identity == ContentIdentity.video("alpha", "1")
        assert result.warnings == [AllProbesFailed.code]

    async def test_unreachable_sample_urls_fall_back(
        self, memory_store, source_config, make_fetcher
    ):
        def handler(request: httpx.Request) -> httpx.Response:
            host = request.url.host.split(".")[0]
            item = {"vod_id": 1, "vod_name": "Night Train", "vod_play_url": "EP1$http://[::1"}
            return httpx.Response(200, json={"list": [item] if host == "beta" else []})

        settings = Settings(search_max_page=1, audiobook_api_key="")
        config = ConfigService(settings, memory_store, file_config=source_config)
        fetcher = make_fetcher(handler)
        registry = ProviderRegistry(config, fetcher, settings)
        aggregator = Aggregator(config, registry, memory_store, provider_timeout=2.0)
        resolver = Resolver(
            aggregator, ProbeEngine(fetcher, timeout=1.0), ScoringEngine(), memory_store, registry
        )

        result = await resolver.resolve(ResolveRequest(title="Night Train"))

        assert result.identity == ContentIdentity.video("beta", "1")
        assert result.episode_url == "http://[::1"
        assert result.warnings == [AllProbesFailed.code]

    async def test_no_candidates(self, resolver):
        with pytest.raises(NoCandidatesFound):
            await resolver.resolve(ResolveRequest(title="Nothing Like This"))

    async def test_malformed_identity(self, resolver):
        with pytest.raises(InvalidIdentity):
            await resolver.resolve(ResolveRequest(provider_key="al pha", item_id="1"))


class TestResumePosition:
    async def _save(self, store, index, play_time):
        await store.set_play_record(
            "alice",
            "alpha+1",
            PlayRecord(title="Night Train", index=index, total_episodes=3, play_time=play_time),
        )

    async def test_stored_record_sets_episode_and_resume(self, resolver, memory_store):
        await self._save(memory_store, index=2, play_time=45)

        result = await resolver.resolve(
            ResolveRequest(provider_key="alpha", item_id="1"), user="alice"
        )

        assert result.episode_index == 2
        assert result.resume_seconds == 45.0
        assert result.episode_url == "https://cdn.example/1/2.m3u8"

    async def test_requested_episode_overrides_record(self, resolver, memory_store):
        await self._save(memory_store, index=2, play_time=45)

        result = await resolver.resolve(
            ResolveRequest(provider_key="alpha", item_id="1", episode=3), user="alice"
        )

        assert result.episode_index == 3
        assert result.resume_seconds == 0.0

    async def test_out_of_range_episode_starts_at_one(self, resolver, memory_store):
        await self._save(memory_store, index=9, play_time=45)

        result = await resolver.resolve(
            ResolveRequest(provider_key="alpha", item_id="1"), user="alice"
        )

        assert result.episode_index == 1
        assert result.resume_seconds == 0.0

    async def test_guest_has_no_resume(self, resolver, memory_store):
        await self._save(memory_store, index=2, play_time=45)

        result = await resolver.resolve(ResolveRequest(provider_key="alpha", item_id="1"))

        assert result.episode_index == 1
        assert result.resume_seconds == 0.0


class TestAudiobooks:
    async def test_album_resolves_track_url(self, resolver, probe_engine):
        result = await resolver.resolve(ResolveRequest(album_id="77", episode=2))

        assert result.identity == ContentIdentity.audiobook("77")
        assert result.source.kind == ContentKind.AUDIOBOOK
        assert result.total_episodes == 3
        assert result.episode_url == "https://media.example/12.m4a"
        probe_engine.probe.assert_not_awaited()

    async def test_episode_url_for_audiobook(self, resolver):
        album = await resolver._registry.audiobooks.album("77")

        assert await resolver.episode_url(album, 2) == "https://media.example/13.m4a"


class TestFindSource:
    async def test_known_candidate(self, resolver, make_source):
        known = make_source("alpha", "1")

        assert await resolver.find_source("alpha", "1", [known]) is known

    async def test_detail_lookup(self, resolver):
        source = await resolver.find_source("beta", "2", [])

        assert source.identity == ContentIdentity.video("beta", "2")

    async def test_unavailable_source(self, resolver):
        with pytest.raises(NoCandidatesFound):
            await resolver.find_source("beta", "404", [])

    async def test_malformed_tokens(self, resolver):
        with pytest.raises(InvalidIdentity):
            await resolver.find_source("beta", "a+b", [])

    async def test_episode_url_for_video(self, resolver, make_source):
        source = make_source("alpha", "1")

        assert await resolver.episode_url(source, 2) == source.episode_urls[2]
