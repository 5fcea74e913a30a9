"""Find candidate detail-page URLs for a free-text manga title."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Sequence
from urllib.parse import parse_qs, quote, urlparse

from bs4 import BeautifulSoup

from ..config import Settings
from ..errors import FetchError, ResolutionExhausted
from ..utils import host_matches
from .fetcher import PageFetcher
from .profiles import find_myanimelist_entity_link

logger = logging.getLogger(__name__)

GOOGLE_SEARCH_PAGE_URL = "https://www.google.com/search"
MAX_SCRAPED_CANDIDATES = 5

# Domains with a public search page, keyed by their allow-list entry.
SEARCH_URL_TEMPLATES: dict[str, str] = {
    "myanimelist.net": "https://myanimelist.net/manga.php?q={query}",
    "anilist.co": "https://anilist.co/search/manga?search={query}",
}

# Paths that identify a single work rather than a listing on each domain.
ENTITY_PATH_PREFIXES: dict[str, tuple[str, ...]] = {
    "myanimelist.net": ("/manga/",),
    "anilist.co": ("/manga/",),
    "mangadex.org": ("/title/",),
    "mangaupdates.com": ("/series/",),
    "kitsu.io": ("/manga/",),
}


@dataclass(slots=True)
class StrategyResult:
    """Outcome of one resolution strategy: ordered URLs and a success flag."""

    urls: list[str] = field(default_factory=list)
    ok: bool = False

    @classmethod
    def from_urls(cls, urls: Sequence[str]) -> "StrategyResult":
        return cls(urls=list(urls), ok=bool(urls))


Strategy = Callable[[str], Awaitable[StrategyResult]]


def first_success(strategies: Sequence[Strategy]) -> Strategy:
    """Combine strategies so the first one reporting ``ok`` wins."""

    async def run(title: str) -> StrategyResult:
        for strategy in strategies:
            outcome = await strategy(title)
            name = getattr(strategy, "__name__", strategy.__class__.__name__)
            if outcome.ok:
                logger.info("Strategy %s found %s candidate(s) for %r", name, len(outcome.urls), title)
                return outcome
            logger.debug("Strategy %s found nothing for %r", name, title)
        return StrategyResult()

    return run


def myanimelist_search_url(title: str) -> str:
    return SEARCH_URL_TEMPLATES["myanimelist.net"].format(query=quote(title.strip()))


def is_entity_url(url: str, domains: Sequence[str]) -> bool:
    """Return whether ``url`` points at a work page on an allow-listed domain."""

    if not host_matches(url, tuple(domains)):
        return False
    path = urlparse(url).path
    for domain, prefixes in ENTITY_PATH_PREFIXES.items():
        if host_matches(url, (domain,)):
            return path.startswith(prefixes)
    return True


class SourceResolver:
    """Ordered fallback chain from a title to candidate URLs."""

    def __init__(self, fetcher: PageFetcher, settings: Settings):
        self._fetcher = fetcher
        self._settings = settings
        self._chain = first_success(
            [
                self.direct_site_search,
                self.curated_search_api,
                self.search_engine_scrape,
                self.last_resort_guess,
            ]
        )

    def _query(self, title: str) -> str:
        return f"{title.strip()} {self._settings.search_qualifier}".strip()

    def direct_search_urls(self, title: str) -> list[str]:
        """Return site search URLs for allow-listed domains that have one."""

        encoded = quote(title.strip())
        return [
            SEARCH_URL_TEMPLATES[domain].format(query=encoded)
            for domain in self._settings.trusted_domains
            if domain in SEARCH_URL_TEMPLATES
        ]

    async def direct_site_search(self, title: str) -> StrategyResult:
        url = myanimelist_search_url(title)
        try:
            page = await self._fetcher.fetch(url)
        except FetchError as exc:
            logger.warning("Direct site search failed for %r: %s", title, exc)
            return StrategyResult()

        link = find_myanimelist_entity_link(BeautifulSoup(page.text, "html.parser"), title)
        return StrategyResult.from_urls([link] if link else [])

    async def curated_search_api(self, title: str) -> StrategyResult:
        if not self._settings.search_engine_configured:
            logger.warning("Search engine id not configured, using direct search URLs")
            return StrategyResult.from_urls(self.direct_search_urls(title))

        params = {
            "key": self._settings.google_search_api_key or "",
            "cx": self._settings.google_search_engine_id or "",
            "q": self._query(title),
            "num": "5",
        }
        try:
            page = await self._fetcher.fetch(str(self._settings.google_search_api_url), params=params)
            payload = json.loads(page.text)
        except (FetchError, ValueError) as exc:
            logger.error("Search API request failed for %r: %s", title, exc)
            return StrategyResult.from_urls(self.direct_search_urls(title))

        urls: list[str] = []
        items = payload.get("items") if isinstance(payload, dict) else None
        for item in items or []:
            link = item.get("link") if isinstance(item, dict) else None
            if isinstance(link, str) and is_entity_url(link, self._settings.trusted_domains):
                urls.append(link)
        return StrategyResult.from_urls(urls)

    async def search_engine_scrape(self, title: str) -> StrategyResult:
        try:
            page = await self._fetcher.fetch(GOOGLE_SEARCH_PAGE_URL, params={"q": self._query(title)})
        except FetchError as exc:
            logger.warning("Search page scrape failed for %r: %s", title, exc)
            return StrategyResult()

        urls: list[str] = []
        soup = BeautifulSoup(page.text, "html.parser")
        for anchor in soup.select('a[href^="/url?q="]'):
            href = anchor.get("href")
            if not isinstance(href, str):
                continue
            target = parse_qs(urlparse(href).query).get("q", [""])[0]
            if not target or host_matches(target, ("google.com",)):
                continue
            if host_matches(target, self._settings.trusted_domains) and target not in urls:
                urls.append(target)
            if len(urls) >= MAX_SCRAPED_CANDIDATES:
                break
        return StrategyResult.from_urls(urls)

    async def last_resort_guess(self, title: str) -> StrategyResult:
        if not title.strip():
            return StrategyResult()
        return StrategyResult.from_urls([myanimelist_search_url(title)])

    async def resolve(self, title: str) -> list[str]:
        """Return candidate URLs ordered by confidence, or ``[]``."""

        if not title or not title.strip():
            return []
        outcome = await self._chain(title)
        return outcome.urls

    async def resolve_or_raise(self, title: str) -> list[str]:
        urls = await self.resolve(title)
        if not urls:
            raise ResolutionExhausted(title)
        return urls
