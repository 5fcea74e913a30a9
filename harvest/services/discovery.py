"""Paginated sweep of a reader site's listing to collect work URLs."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Awaitable, Callable, Iterable
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from ..config import Settings
from ..errors import FetchError
from ..utils import absolute_url, host_of
from .fetcher import PageFetcher

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

CHAPTER_MARKERS = ("/capitulo-", "/chapter-")
EXCLUDED_MARKERS = ("-genre", "/fim/")


def is_entity_link(url: str, host: str | None = None) -> bool:
    """Return whether ``url`` is a ``/manga/<slug>/`` page on ``host``."""

    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or parsed.query:
        return False
    if host and host_of(url) != host:
        return False
    if any(marker in parsed.path for marker in CHAPTER_MARKERS + EXCLUDED_MARKERS):
        return False
    segments = [segment for segment in parsed.path.split("/") if segment]
    return len(segments) == 2 and segments[0] == "manga"


def normalize_entity_link(href: str, base: str) -> str | None:
    url = absolute_url(href, base)
    if not url:
        return None
    url = url.split("#", 1)[0]
    if not url.endswith("/"):
        url += "/"
    return url


def extract_entity_links(html: str, base: str) -> list[str]:
    """Return entity links found on one listing page, in page order."""

    host = host_of(base)
    links: list[str] = []
    soup = BeautifulSoup(html, "html.parser")
    for anchor in soup.select('a[href*="/manga/"]'):
        href = anchor.get("href")
        if not isinstance(href, str):
            continue
        url = normalize_entity_link(href, base)
        if url and is_entity_link(url, host) and url not in links:
            links.append(url)
    return links


def filter_entity_links(lines: Iterable[str], host: str | None = None) -> list[str]:
    """Keep unique entity URLs from free-form lines, preserving order."""

    links: list[str] = []
    for line in lines:
        candidate = line.strip()
        if not candidate or not candidate.startswith(("http://", "https://")):
            continue
        if is_entity_link(candidate, host) and candidate not in links:
            links.append(candidate)
    return links


def read_links_file(path: str | Path, host: str | None = None) -> list[str]:
    content = Path(path).read_text(encoding="utf-8")
    return filter_entity_links(content.splitlines(), host)


def write_links_file(path: str | Path, links: Iterable[str], source: str) -> Path:
    """Write the markdown links file consumed by ``ingest --links-file``."""

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    unique = list(dict.fromkeys(links))
    lines = [
        f"# Manga links - {host_of(source) or source}",
        "",
        f"> Collected at: {datetime.now().isoformat(timespec='seconds')}",
        f"> Total links: {len(unique)}",
        "",
        "## Links",
        "",
        *unique,
        "",
    ]
    target.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Saved %s links to %s", len(unique), target)
    return target


class LinkCollector:
    """Walk the home page then ``/page/<n>/`` pages collecting entity links."""

    def __init__(self, fetcher: PageFetcher, settings: Settings, *, sleep: Sleep = asyncio.sleep):
        self._fetcher = fetcher
        self._settings = settings
        self._sleep = sleep
        self.base_url = str(settings.listing_url)

    def page_url(self, page: int) -> str:
        if page <= 1:
            return self.base_url
        return urljoin(self.base_url, f"/page/{page}/")

    async def _page_links(self, page: int) -> list[str]:
        url = self.page_url(page)
        try:
            fetched = await self._fetcher.fetch(url)
        except FetchError as exc:
            logger.warning("Listing page %s unavailable: %s", page, exc.cause)
            return []
        return extract_entity_links(fetched.text, self.base_url)

    async def collect(self, max_pages: int | None = None) -> list[str]:
        """Return the sorted unique entity links found across the sweep.

        Stops at ``max_pages`` or after a run of consecutive pages that add
        nothing new, whichever comes first.
        """

        limit = max_pages or self._settings.discovery_max_pages
        max_empty = self._settings.discovery_max_empty_pages
        collected: dict[str, None] = {}

        for link in await self._page_links(1):
            collected.setdefault(link, None)
        logger.info("Home page: %s links", len(collected))

        consecutive_empty = 0
        for page in range(2, limit + 1):
            await self._sleep(self._settings.page_delay_seconds)
            fresh = [link for link in await self._page_links(page) if link not in collected]
            for link in fresh:
                collected[link] = None
            logger.info("Page %s: %s new links", page, len(fresh))

            if fresh:
                consecutive_empty = 0
            else:
                consecutive_empty += 1
                if consecutive_empty >= max_empty:
                    logger.info("%s pages without new links, stopping", max_empty)
                    break

            if page % 10 == 0:
                logger.info("Progress: page %s/%s, %s links collected", page, limit, len(collected))

        return sorted(collected)
