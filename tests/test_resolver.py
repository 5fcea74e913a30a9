"""Tests for the source resolver fallback chain."""

from __future__ import annotations

from typing import Any, Callable

import httpx
import pytest

from harvest.config import Settings
from harvest.errors import ResolutionExhausted
from harvest.services.fetcher import PageFetcher
from harvest.services.resolver import (
    SourceResolver,
    StrategyResult,
    first_success,
    is_entity_url,
)

EMPTY_SEARCH = "<html><body><p>No results found</p></body></html>"
MAL_RESULTS = """
<div class="js-block-list"><table><tbody><tr><td>
  <a class="hoverinfo_trigger" href="/manga/2/Berserk"><img src="x.jpg"></a>
</td></tr></tbody></table></div>
"""
GOOGLE_RESULTS = """
<a href="/url?q=https://www.google.com/preferences&amp;sa=U">prefs</a>
<a href="/url?q=https://myanimelist.net/manga/2/Berserk&amp;sa=U&amp;ved=1">MAL</a>
<a href="/url?q=https://example.com/berserk&amp;sa=U">other</a>
<a href="/url?q=https://myanimelist.net/manga/2/Berserk&amp;sa=U&amp;ved=2">MAL again</a>
<a href="/url?q=https://anilist.co/manga/30002/Berserk/&amp;sa=U">AniList</a>
"""


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def _settings(**overrides: Any) -> Settings:
    base: dict[str, Any] = {
        "GOOGLE_SEARCH_ENGINE_ID": "your-search-engine-id",
        "GOOGLE_SEARCH_API_KEY": "",
    }
    base.update(overrides)
    return Settings(_env_file=None, **base)  # type: ignore[arg-type]


def _resolver(
    handler: Callable[[httpx.Request], httpx.Response], **overrides: Any
) -> tuple[SourceResolver, httpx.AsyncClient]:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SourceResolver(PageFetcher(client), _settings(**overrides)), client


@pytest.mark.anyio("asyncio")
async def test_first_success_short_circuits() -> None:
    calls: list[str] = []

    async def empty(title: str) -> StrategyResult:
        calls.append("empty")
        return StrategyResult()

    async def found(title: str) -> StrategyResult:
        calls.append("found")
        return StrategyResult.from_urls([f"https://x.test/{title}"])

    async def never(title: str) -> StrategyResult:  # pragma: no cover - must not run
        calls.append("never")
        return StrategyResult.from_urls(["https://never.test"])

    outcome = await first_success([empty, found, never])("abc")

    assert outcome == StrategyResult(urls=["https://x.test/abc"], ok=True)
    assert calls == ["empty", "found"]


@pytest.mark.anyio("asyncio")
async def test_direct_site_search_returns_top_hit_only() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, text=MAL_RESULTS)

    resolver, client = _resolver(handler)
    async with client:
        urls = await resolver.resolve("Berserk")

    assert urls == ["https://myanimelist.net/manga/2/Berserk"]
    assert len(requests) == 1
    assert requests[0].url.host == "myanimelist.net"
    assert requests[0].url.params["q"] == "Berserk"


@pytest.mark.anyio("asyncio")
async def test_missing_engine_id_degrades_to_direct_search_urls() -> None:
    """Without an engine id no API is called and site search URLs come back."""

    hosts: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        hosts.append(request.url.host)
        return httpx.Response(200, text=EMPTY_SEARCH)

    resolver, client = _resolver(handler)
    async with client:
        urls = await resolver.resolve("Alpha Saga")

    assert urls == [
        "https://myanimelist.net/manga.php?q=Alpha%20Saga",
        "https://anilist.co/search/manga?search=Alpha%20Saga",
    ]
    assert hosts == ["myanimelist.net"]


@pytest.mark.anyio("asyncio")
async def test_search_api_keeps_allow_listed_entity_pages() -> None:
    api_requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "www.googleapis.com":
            api_requests.append(request)
            return httpx.Response(
                200,
                json={
                    "items": [
                        {"link": "https://myanimelist.net/manga.php?q=berserk"},
                        {"link": "https://myanimelist.net/manga/2/Berserk"},
                        {"link": "https://fan-wiki.example.com/berserk"},
                        {"link": "https://mangadex.org/title/801513ba/berserk"},
                    ]
                },
            )
        return httpx.Response(200, text=EMPTY_SEARCH)

    resolver, client = _resolver(
        handler, GOOGLE_SEARCH_ENGINE_ID="engine-1", GOOGLE_SEARCH_API_KEY="key-1"
    )
    async with client:
        urls = await resolver.resolve("Berserk")

    assert urls == [
        "https://myanimelist.net/manga/2/Berserk",
        "https://mangadex.org/title/801513ba/berserk",
    ]
    params = api_requests[0].url.params
    assert params["cx"] == "engine-1"
    assert params["key"] == "key-1"
    assert params["num"] == "5"
    assert params["q"] == "Berserk manga myanimelist"


@pytest.mark.anyio("asyncio")
async def test_search_api_errors_degrade_to_direct_search_urls() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "www.googleapis.com":
            return httpx.Response(403, json={"error": "quota"})
        return httpx.Response(200, text=EMPTY_SEARCH)

    resolver, client = _resolver(
        handler, GOOGLE_SEARCH_ENGINE_ID="engine-1", GOOGLE_SEARCH_API_KEY="key-1"
    )
    async with client:
        urls = await resolver.resolve("Berserk")

    assert urls[0] == "https://myanimelist.net/manga.php?q=Berserk"


@pytest.mark.anyio("asyncio")
async def test_search_page_scrape_decodes_redirect_links() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "www.googleapis.com":
            return httpx.Response(200, json={"items": []})
        if request.url.host == "www.google.com":
            return httpx.Response(200, text=GOOGLE_RESULTS)
        return httpx.Response(200, text=EMPTY_SEARCH)

    resolver, client = _resolver(
        handler, GOOGLE_SEARCH_ENGINE_ID="engine-1", GOOGLE_SEARCH_API_KEY="key-1"
    )
    async with client:
        outcome = await resolver.search_engine_scrape("Berserk")
        urls = await resolver.resolve("Berserk")

    assert outcome.urls == [
        "https://myanimelist.net/manga/2/Berserk",
        "https://anilist.co/manga/30002/Berserk/",
    ]
    assert urls == outcome.urls


@pytest.mark.anyio("asyncio")
async def test_last_resort_synthesises_search_url() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "www.googleapis.com":
            return httpx.Response(200, json={})
        if request.url.host == "www.google.com":
            return httpx.Response(429)
        return httpx.Response(503)

    resolver, client = _resolver(
        handler, GOOGLE_SEARCH_ENGINE_ID="engine-1", GOOGLE_SEARCH_API_KEY="key-1"
    )
    async with client:
        urls = await resolver.resolve("Obscure Title")

    assert urls == ["https://myanimelist.net/manga.php?q=Obscure%20Title"]


@pytest.mark.anyio("asyncio")
async def test_blank_title_exhausts_resolution() -> None:
    def handler(_: httpx.Request) -> httpx.Response:  # pragma: no cover - never called
        raise AssertionError("No request expected for a blank title")

    resolver, client = _resolver(handler)
    async with client:
        assert await resolver.resolve("   ") == []
        with pytest.raises(ResolutionExhausted):
            await resolver.resolve_or_raise("")


def test_entity_url_filter() -> None:
    domains = ("myanimelist.net", "anilist.co", "mangaupdates.com")

    assert is_entity_url("https://www.mangaupdates.com/series/abc/berserk", domains)
    assert not is_entity_url("https://anilist.co/search/manga?search=x", domains)
    assert not is_entity_url("https://kitsu.io/manga/berserk", domains)
