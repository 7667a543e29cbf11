"""Unit tests for the composite scoring engine."""

import pytest

from reelhub.models.media import ProbeResult, QualityTier
from reelhub.services.scoring import (
    ScoringEngine,
    latency_score,
    parse_load_speed,
    round_score,
    speed_score,
)


@pytest.fixture
def engine():
    return ScoringEngine()


class TestParseLoadSpeed:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("500KB/s", 500.0),
            ("2MB/s", 2048.0),
            ("1.5 MB/s", 1536.0),
            ("512.0 KB/s", 512.0),
            ("unknown", None),
            ("未知", None),
            ("", None),
            (None, None),
        ],
    )
    def test_values(self, value, expected):
        assert parse_load_speed(value) == expected


class TestComponents:
    def test_round_half_up(self):
        assert round_score(78.634) == 78.63
        assert round_score(59.766) == 59.77
        assert round_score(20.0) == 20.0

    def test_unknown_speed_scores_thirty(self):
        assert speed_score(None, 2048) == 30.0

    def test_speed_is_relative_to_fastest(self):
        assert speed_score(2048, 2048) == 100.0
        assert speed_score(1024, 2048) == 50.0

    def test_latency_range(self):
        assert latency_score(80, 80, 900) == 100.0
        assert latency_score(900, 80, 900) == 0.0
        assert latency_score(None, 80, 900) == 0.0

    def test_single_latency_scores_full(self):
        assert latency_score(300, 300, 300) == 100.0


class TestScoringEngine:
    def test_three_candidate_ranking(self, engine, make_source):
        a = make_source("a", "1")
        b = make_source("b", "1")
        c = make_source("c", "1")
        probes = [
            (a, ProbeResult(quality=QualityTier.FHD_1080P, throughput_kbps=500, latency_ms=80)),
            (b, ProbeResult(quality=QualityTier.HD_720P, throughput_kbps=2048, latency_ms=300)),
            (c, ProbeResult(quality=QualityTier.SD, throughput_kbps=None, latency_ms=900)),
        ]

        ranked = engine.score(probes)

        assert [r.source.provider_key for r in ranked] == ["b", "a", "c"]
        assert [r.score for r in ranked] == [78.63, 59.77, 20.0]

    def test_failed_probes_excluded(self, engine, make_source):
        good = make_source("good", "1")
        bad = make_source("bad", "1")

        ranked = engine.score(
            [
                (bad, ProbeResult.failure()),
                (good, ProbeResult(quality=QualityTier.SD, throughput_kbps=100, latency_ms=100)),
            ]
        )

        assert [r.source.provider_key for r in ranked] == ["good"]

    def test_all_failed_falls_back_to_first_unscored(self, engine, make_source):
        first = make_source("first", "1")
        second = make_source("second", "1")

        ranked = engine.score([(first, ProbeResult.failure()), (second, ProbeResult.failure())])

        assert len(ranked) == 1
        assert ranked[0].source == first
        assert ranked[0].score is None

    def test_empty_input(self, engine):
        assert engine.score([]) == []

    def test_ties_keep_input_order(self, engine, make_source):
        probe = ProbeResult(quality=QualityTier.HD_720P, throughput_kbps=800, latency_ms=120)
        sources = [make_source(key, "1") for key in ("x", "y", "z")]

        ranked = engine.score([(s, probe) for s in sources])

        assert [r.source.provider_key for r in ranked] == ["x", "y", "z"]
        assert len({r.score for r in ranked}) == 1

    def test_deterministic(self, engine, make_source):
        probes = [
            (make_source("a", "1"), ProbeResult(quality=QualityTier.UHD_4K, latency_ms=400)),
            (make_source("b", "1"), ProbeResult(quality=QualityTier.SD_480P, throughput_kbps=90)),
        ]

        assert engine.score(probes) == engine.score(probes)

    def test_unknown_quality_scores_zero_quality(self, engine, make_source):
        ranked = engine.score(
            [(make_source(), ProbeResult(throughput_kbps=1000, latency_ms=100))]
        )

        # 0.4 * 0 + 0.4 * 100 + 0.2 * 100
        assert ranked[0].score == 60.0
