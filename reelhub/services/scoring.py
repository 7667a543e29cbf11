"""Composite scoring of probed candidates.

score = 0.4 * quality + 0.4 * speed + 0.2 * latency, each component on a
0-100 scale. Speed is linear against the fastest candidate in the set and
latency is linear between the fastest and slowest responders.
"""

import logging
import math
import re

from reelhub.models.media import CandidateSource, ProbeResult, QualityTier, ScoredCandidate

logger = logging.getLogger(__name__)

QUALITY_SCORES: dict[QualityTier, float] = {
    QualityTier.UHD_4K: 100,
    QualityTier.QHD_2K: 85,
    QualityTier.FHD_1080P: 75,
    QualityTier.HD_720P: 60,
    QualityTier.SD_480P: 40,
    QualityTier.SD: 20,
}

QUALITY_WEIGHT = 0.4
SPEED_WEIGHT = 0.4
LATENCY_WEIGHT = 0.2

UNKNOWN_SPEED_SCORE = 30.0
DEFAULT_MAX_SPEED_KBPS = 1024.0
DEFAULT_MIN_LATENCY_MS = 50
DEFAULT_MAX_LATENCY_MS = 1000

_SPEED_RE = re.compile(r"^\s*([\d.]+)\s*(KB|MB)/s\s*$", re.IGNORECASE)


def parse_load_speed(value: str | None) -> float | None:
    """Parse a human speed string (``"500KB/s"``, ``"2MB/s"``) into KB/s.

    Anything unparseable (``"未知"``, ``"unknown"``, empty) yields None.
    """
    if not value:
        return None
    match = _SPEED_RE.match(value)
    if not match:
        return None
    try:
        amount = float(match.group(1))
    except ValueError:
        return None
    return amount * 1024 if match.group(2).upper() == "MB" else amount


def round_score(value: float) -> float:
    """Round half-up to two decimals."""
    return math.floor(value * 100 + 0.5) / 100


def quality_score(tier: QualityTier) -> float:
    return QUALITY_SCORES.get(tier, 0)


def speed_score(throughput_kbps: float | None, max_speed: float) -> float:
    if throughput_kbps is None:
        return UNKNOWN_SPEED_SCORE
    return min(100.0, max(0.0, throughput_kbps / max_speed * 100))


def latency_score(latency_ms: int | None, min_latency: int, max_latency: int) -> float:
    if latency_ms is None or latency_ms <= 0:
        return 0.0
    if max_latency == min_latency:
        return 100.0
    return min(100.0, max(0.0, (max_latency - latency_ms) / (max_latency - min_latency) * 100))


class ScoringEngine:
    """Ranks candidates by their probe results."""

    def score(
        self, candidates: list[tuple[CandidateSource, ProbeResult]]
    ) -> list[ScoredCandidate]:
        """Rank succeeded candidates best-first.

        Failed probes are excluded. When every probe failed the result is the
        first input candidate with ``score=None``; an empty input yields ``[]``.
        Ties keep input order.
        """
        if not candidates:
            return []

        succeeded = [(source, probe) for source, probe in candidates if not probe.failed]
        if not succeeded:
            first_source, first_probe = candidates[0]
            logger.warning(
                f"All {len(candidates)} probes failed; falling back to "
                f"{first_source.provider_key}/{first_source.item_id}"
            )
            return [ScoredCandidate(source=first_source, probe=first_probe, score=None)]

        speeds = [probe.throughput_kbps or 0 for _, probe in succeeded]
        max_speed = max(speeds)
        if max_speed <= 0:
            max_speed = DEFAULT_MAX_SPEED_KBPS

        latencies = [
            probe.latency_ms for _, probe in succeeded if probe.latency_ms and probe.latency_ms > 0
        ]
        min_latency = min(latencies) if latencies else DEFAULT_MIN_LATENCY_MS
        max_latency = max(latencies) if latencies else DEFAULT_MAX_LATENCY_MS

        scored = [
            ScoredCandidate(
                source=source,
                probe=probe,
                score=self.composite(probe, max_speed, min_latency, max_latency),
            )
            for source, probe in succeeded
        ]
        # sorted() is stable, so equal scores keep input order
        ranked = sorted(scored, key=lambda c: c.score, reverse=True)
        summary = ", ".join(f"{c.source.provider_key}={c.score}" for c in ranked)
        logger.debug(f"Ranking: {summary}")
        return ranked

    @staticmethod
    def composite(
        probe: ProbeResult, max_speed: float, min_latency: int, max_latency: int
    ) -> float:
        total = (
            QUALITY_WEIGHT * quality_score(probe.quality)
            + SPEED_WEIGHT * speed_score(probe.throughput_kbps, max_speed)
            + LATENCY_WEIGHT * latency_score(probe.latency_ms, min_latency, max_latency)
        )
        return round_score(total)
