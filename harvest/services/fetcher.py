"""Single-shot HTTP page fetcher with a browser identity."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

import httpx

from ..errors import FetchError

logger = logging.getLogger(__name__)

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": (
        "text/html,application/xhtml+xml,application/xml;q=0.9,"
        "image/avif,image/webp,image/apng,*/*;q=0.8"
    ),
    "Accept-Language": "pt-BR,pt;q=0.9,en-US;q=0.8,en;q=0.7",
}


@dataclass(slots=True)
class RawPage:
    """Body and response metadata for a fetched URL."""

    url: str
    final_url: str
    status_code: int
    content_type: str | None
    text: str


def build_http_client(timeout: float) -> httpx.AsyncClient:
    """Return an HTTP client configured for scraping third-party pages."""

    return httpx.AsyncClient(
        headers=BROWSER_HEADERS,
        timeout=httpx.Timeout(timeout, connect=min(timeout, 10.0)),
        follow_redirects=True,
    )


class PageFetcher:
    """Perform one outbound GET per call; retries are the caller's concern."""

    def __init__(self, http_client: httpx.AsyncClient, *, timeout: float = 15.0):
        self._client = http_client
        self._timeout = timeout

    async def fetch(self, url: str, *, params: dict[str, str] | None = None) -> RawPage:
        """Fetch ``url`` and return its decoded body or raise ``FetchError``."""

        try:
            response = await self._client.get(url, params=params, timeout=self._timeout)
        except httpx.TimeoutException as exc:
            raise FetchError(url, f"timed out after {self._timeout:.0f}s") from exc
        except httpx.HTTPError as exc:
            raise FetchError(url, f"{exc.__class__.__name__}: {exc}") from exc

        if not response.is_success:
            raise FetchError(url, f"HTTP {response.status_code}")

        logger.debug("Fetched %s (%s bytes)", url, len(response.content))
        return RawPage(
            url=url,
            final_url=str(response.url),
            status_code=response.status_code,
            content_type=response.headers.get("content-type"),
            text=response.text,
        )

    @asynccontextmanager
    async def stream(self, url: str, *, timeout: float | None = None) -> AsyncIterator[httpx.Response]:
        """Open a streamed GET for binary downloads; raises ``FetchError``."""

        try:
            async with self._client.stream(
                "GET", url, timeout=timeout or self._timeout
            ) as response:
                if not response.is_success:
                    raise FetchError(url, f"HTTP {response.status_code}")
                yield response
        except httpx.TimeoutException as exc:
            raise FetchError(url, "timed out") from exc
        except httpx.HTTPError as exc:
            raise FetchError(url, f"{exc.__class__.__name__}: {exc}") from exc
