"""Manifest transforms applied between the upstream host and the media decoder."""

import logging
from urllib.parse import urljoin

from reelhub.services.fetcher import Fetcher, FetchResponse

logger = logging.getLogger(__name__)

DISCONTINUITY_TAG = "#EXT-X-DISCONTINUITY"

MANIFEST_CONTENT_TYPES = (
    "application/vnd.apple.mpegurl",
    "application/x-mpegurl",
    "audio/mpegurl",
    "audio/x-mpegurl",
)


def filter_discontinuities(manifest: str) -> str:
    """Drop every line carrying a discontinuity marker.

    Inserted ad breaks are delimited by discontinuities; removing the markers
    keeps the decoder on a single timeline. All other lines, segment URIs
    included, are kept in their original order.
    """
    lines = manifest.split("\n")
    kept = [line for line in lines if DISCONTINUITY_TAG not in line]
    return "\n".join(kept)


def is_manifest(url: str, content_type: str | None = None) -> bool:
    """True for manifest/level responses, False for media segments."""
    if content_type and content_type.split(";")[0].strip().lower() in MANIFEST_CONTENT_TYPES:
        return True
    path = url.split("?", 1)[0].lower()
    return path.endswith(".m3u8") or path.endswith(".m3u")


def absolutize_uris(manifest: str, base_url: str) -> str:
    """Resolve relative segment and playlist URIs so the manifest can be served elsewhere."""
    out = []
    for line in manifest.split("\n"):
        stripped = line.strip()
        if stripped and not stripped.startswith("#"):
            out.append(urljoin(base_url, stripped))
        else:
            out.append(line)
    return "\n".join(out)


class StreamPipeline:
    """Fetches manifests and applies the ad filter; segments pass through untouched."""

    def __init__(self, fetcher: Fetcher, ad_filter: bool = True):
        self._fetcher = fetcher
        self.ad_filter = ad_filter

    def transform(self, url: str, body: str, content_type: str | None = None) -> str:
        """Apply manifest transforms to ``body`` if ``url`` is a manifest."""
        if not is_manifest(url, content_type):
            return body
        if self.ad_filter:
            body = filter_discontinuities(body)
        return body

    async def fetch_manifest(self, url: str) -> tuple[FetchResponse, str]:
        """Fetch ``url`` and return the response plus the transformed manifest text.

        Raises:
            UpstreamError: When the upstream fetch fails
        """
        response = await self._fetcher.fetch(url)
        content_type = response.headers.get("content-type")
        text = self.transform(response.url, response.text, content_type)
        if is_manifest(response.url, content_type):
            text = absolutize_uris(text, response.url)
        return response, text
