"""Network probing of candidate sample streams.

A probe fetches the sample URL's manifest (latency = time to first byte),
classifies the resolution tier from the master playlist, then pulls a bounded
slice of an early media segment to estimate throughput.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from urllib.parse import urljoin

from reelhub.core.errors import UpstreamError
from reelhub.models.media import ProbeResult, QualityTier
from reelhub.services.fetcher import Fetcher

logger = logging.getLogger(__name__)

MANIFEST_MAX_BYTES = 256 * 1024

_STREAM_INF = "#EXT-X-STREAM-INF"
_RESOLUTION_RE = re.compile(r"RESOLUTION=(\d+)x(\d+)", re.IGNORECASE)
_BANDWIDTH_RE = re.compile(r"(?<![-\w])BANDWIDTH=(\d+)", re.IGNORECASE)

# (minimum pixel height, tier), checked top-down
_HEIGHT_TIERS = [
    (2160, QualityTier.UHD_4K),
    (1440, QualityTier.QHD_2K),
    (1080, QualityTier.FHD_1080P),
    (720, QualityTier.HD_720P),
    (480, QualityTier.SD_480P),
]

# (minimum bits/s, tier) for variants that advertise no resolution
_BANDWIDTH_TIERS = [
    (15_000_000, QualityTier.UHD_4K),
    (8_000_000, QualityTier.QHD_2K),
    (4_000_000, QualityTier.FHD_1080P),
    (2_000_000, QualityTier.HD_720P),
    (800_000, QualityTier.SD_480P),
]


@dataclass
class Variant:
    uri: str
    height: int | None = None
    bandwidth: int | None = None


def tier_for_height(height: int | None) -> QualityTier:
    """Map a pixel height to a quality tier."""
    if not height or height <= 0:
        return QualityTier.UNKNOWN
    for minimum, tier in _HEIGHT_TIERS:
        if height >= minimum:
            return tier
    return QualityTier.SD


def tier_for_bandwidth(bandwidth: int | None) -> QualityTier:
    """Rough tier from advertised bitrate when the playlist gives no resolution."""
    if not bandwidth or bandwidth <= 0:
        return QualityTier.UNKNOWN
    for minimum, tier in _BANDWIDTH_TIERS:
        if bandwidth >= minimum:
            return tier
    return QualityTier.SD


def parse_master_playlist(text: str, base_url: str) -> list[Variant]:
    """Extract variant streams from an HLS master playlist.

    Returns an empty list for media playlists.
    """
    variants: list[Variant] = []
    pending: Variant | None = None
    for raw in text.splitlines():
        line = raw.strip()
        if not line:
            continue
        if line.startswith(_STREAM_INF):
            resolution = _RESOLUTION_RE.search(line)
            bandwidth = _BANDWIDTH_RE.search(line)
            pending = Variant(
                uri="",
                height=int(resolution.group(2)) if resolution else None,
                bandwidth=int(bandwidth.group(1)) if bandwidth else None,
            )
        elif pending is not None and not line.startswith("#"):
            pending.uri = urljoin(base_url, line)
            variants.append(pending)
            pending = None
    return variants


def first_segment_uri(text: str, base_url: str) -> str | None:
    """First media segment URI of a media playlist, resolved against ``base_url``."""
    for raw in text.splitlines():
        line = raw.strip()
        if line and not line.startswith("#"):
            return urljoin(base_url, line)
    return None


def _best_variant(variants: list[Variant]) -> Variant:
    return max(variants, key=lambda v: (v.height or 0, v.bandwidth or 0))


def _is_playlist(text: str) -> bool:
    return text.lstrip().startswith("#EXTM3U")


class ProbeEngine:
    """Measures quality, throughput and latency of a sample stream.

    Args:
        fetcher: Shared outbound fetcher
        timeout: Overall bound for one probe, in seconds
        sample_bytes: Bytes of the first media segment to download
    """

    def __init__(self, fetcher: Fetcher, timeout: float = 6.0, sample_bytes: int = 512 * 1024):
        self._fetcher = fetcher
        self.timeout = timeout
        self.sample_bytes = sample_bytes

    async def probe(self, sample_url: str | None) -> ProbeResult:
        """Probe one sample URL. Never raises: failures yield ``ProbeResult.failure()``."""
        if not sample_url:
            return ProbeResult.failure()
        try:
            return await asyncio.wait_for(self._measure(sample_url), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.info(f"Probe timed out after {self.timeout}s: {sample_url}")
        except UpstreamError as e:
            logger.info(f"Probe failed for {sample_url}: {e}")
        except Exception as e:
            logger.warning(f"Probe error for {sample_url}: {e!r}")
        return ProbeResult.failure()

    async def _measure(self, url: str) -> ProbeResult:
        manifest = await self._fetcher.fetch(url, max_bytes=MANIFEST_MAX_BYTES)
        if not manifest.ok:
            raise UpstreamError(f"HTTP {manifest.status} from {url}")
        latency_ms = max(0, round(manifest.ttfb_ms))

        if not _is_playlist(manifest.text):
            # Progressive file: the manifest fetch itself is the throughput sample
            throughput = self._throughput(len(manifest.content), manifest.elapsed_ms)
            return ProbeResult(
                quality=QualityTier.UNKNOWN, throughput_kbps=throughput, latency_ms=latency_ms
            )

        quality = QualityTier.UNKNOWN
        media_text, media_url = manifest.text, manifest.url
        variants = parse_master_playlist(manifest.text, manifest.url)
        if variants:
            best = _best_variant(variants)
            quality = tier_for_height(best.height)
            if quality == QualityTier.UNKNOWN:
                quality = tier_for_bandwidth(best.bandwidth)
            level = await self._fetcher.fetch(best.uri, max_bytes=MANIFEST_MAX_BYTES)
            if not level.ok:
                raise UpstreamError(f"HTTP {level.status} from {best.uri}")
            media_text, media_url = level.text, level.url

        segment_url = first_segment_uri(media_text, media_url)
        if segment_url is None:
            raise UpstreamError(f"No media segments in {media_url}")

        segment = await self._fetcher.fetch(
            segment_url,
            headers={"Range": f"bytes=0-{self.sample_bytes - 1}"},
            max_bytes=self.sample_bytes,
        )
        if not segment.ok:
            raise UpstreamError(f"HTTP {segment.status} from {segment_url}")

        throughput = self._throughput(len(segment.content), segment.elapsed_ms)
        logger.debug(
            f"Probed {url}: quality={quality.value} "
            f"speed={throughput if throughput is not None else 'unknown'}KB/s latency={latency_ms}ms"
        )
        return ProbeResult(quality=quality, throughput_kbps=throughput, latency_ms=latency_ms)

    @staticmethod
    def _throughput(byte_count: int, elapsed_ms: float) -> float | None:
        """KB/s from a byte count and elapsed time; None when unmeasurable."""
        if byte_count <= 0 or elapsed_ms <= 0:
            return None
        return (byte_count / 1024) / (elapsed_ms / 1000)
