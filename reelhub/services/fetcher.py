"""Outbound HTTP fetch capability shared by providers, probes and the manifest proxy."""

import logging
import time
from dataclasses import dataclass, field
from typing import Any

import httpx

from reelhub.config import DEFAULT_USER_AGENT
from reelhub.core.errors import UpstreamError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


def _timeout_kwargs(timeout: float | None) -> dict[str, Any]:
    return {"timeout": httpx.Timeout(timeout)} if timeout is not None else {}


@dataclass
class FetchResponse:
    """Body and timings of one fetch. Timings are in milliseconds."""

    url: str
    status: int
    headers: dict[str, str] = field(default_factory=dict)
    content: bytes = b""
    ttfb_ms: float = 0.0
    elapsed_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")


class Fetcher:
    """One pooled ``httpx.AsyncClient`` with a fixed User-Agent.

    Args:
        user_agent: Value sent as ``User-Agent`` on every request
        timeout: Default per-request timeout in seconds
        transport: Optional transport override (``httpx.MockTransport`` in tests)
    """

    def __init__(
        self,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.user_agent = user_agent
        self._client = httpx.AsyncClient(
            headers={"User-Agent": user_agent},
            timeout=httpx.Timeout(timeout),
            follow_redirects=True,
            transport=transport,
        )

    async def __aenter__(self) -> "Fetcher":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch(
        self,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        max_bytes: int | None = None,
    ) -> FetchResponse:
        """Stream ``url`` and record time-to-first-byte and total elapsed time.

        Args:
            url: Absolute URL to fetch
            headers: Extra request headers (e.g. ``Range``)
            timeout: Per-request timeout override in seconds
            max_bytes: Stop reading the body once this many bytes arrived

        Returns:
            FetchResponse with whatever part of the body was read

        Raises:
            UpstreamError: On any transport-level failure or malformed URL
        """
        extra = _timeout_kwargs(timeout)
        start = time.perf_counter()
        try:
            async with self._client.stream("GET", url, headers=headers, **extra) as response:
                ttfb_ms = (time.perf_counter() - start) * 1000
                chunks: list[bytes] = []
                received = 0
                async for chunk in response.aiter_bytes():
                    chunks.append(chunk)
                    received += len(chunk)
                    if max_bytes is not None and received >= max_bytes:
                        break
                elapsed_ms = (time.perf_counter() - start) * 1000
                content = b"".join(chunks)
                if max_bytes is not None:
                    content = content[:max_bytes]
                return FetchResponse(
                    url=str(response.url),
                    status=response.status_code,
                    headers=dict(response.headers),
                    content=content,
                    ttfb_ms=ttfb_ms,
                    elapsed_ms=elapsed_ms,
                )
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            logger.debug(f"Fetch failed for {url}: {e!r}")
            raise UpstreamError(f"Fetch failed for {url}: {e}") from e

    async def get_json(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        """GET ``url`` and decode a JSON body.

        Raises:
            UpstreamError: On transport failure, malformed URL, non-2xx status or invalid JSON
        """
        try:
            response = await self._client.get(url, params=params, **_timeout_kwargs(timeout))
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise UpstreamError(f"Request to {url} failed: {e}") from e
        except ValueError as e:
            raise UpstreamError(f"Invalid JSON from {url}: {e}") from e
