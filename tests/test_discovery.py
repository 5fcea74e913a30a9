"""Tests for the listing sweep and links file helpers."""

from __future__ import annotations

import asyncio

import httpx

from harvest.config import Settings
from harvest.services.discovery import (
    LinkCollector,
    extract_entity_links,
    filter_entity_links,
    read_links_file,
    write_links_file,
)
from harvest.services.fetcher import PageFetcher

HOME_HTML = """
<a href="https://lermangas.me/manga/solo-leveling/">Solo Leveling</a>
<a href="https://lermangas.me/manga/solo-leveling/capitulo-200/">Capítulo 200</a>
<a href="/manga/omniscient-reader">Omniscient Reader</a>
<a href="https://lermangas.me/manga/">Todos</a>
<a href="https://lermangas.me/manga/?m_orderby=views">Populares</a>
<a href="https://othersite.test/manga/other/">Elsewhere</a>
"""
PAGE_TWO_HTML = """
<a href="https://lermangas.me/manga/solo-leveling/">Solo Leveling</a>
<a href="https://lermangas.me/manga/tower-of-god/">Tower of God</a>
"""


def test_extract_entity_links_applies_link_rules() -> None:
    links = extract_entity_links(HOME_HTML, "https://lermangas.me/")

    assert links == [
        "https://lermangas.me/manga/solo-leveling/",
        "https://lermangas.me/manga/omniscient-reader/",
    ]


def _collector(pages: dict[str, str], requested: list[str], delays: list[float], **overrides):
    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        requested.append(url)
        if url in pages:
            return httpx.Response(200, text=pages[url])
        return httpx.Response(404)

    async def fake_sleep(seconds: float) -> None:
        delays.append(seconds)

    settings = Settings(_env_file=None, PAGE_DELAY="2", **overrides)
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return LinkCollector(PageFetcher(client), settings, sleep=fake_sleep), client


def test_collect_stops_after_consecutive_empty_pages() -> None:
    requested: list[str] = []
    delays: list[float] = []
    pages = {
        "https://lermangas.me/": HOME_HTML,
        "https://lermangas.me/page/2/": PAGE_TWO_HTML,
        "https://lermangas.me/page/3/": PAGE_TWO_HTML,
    }

    async def _run():
        collector, client = _collector(pages, requested, delays)
        async with client:
            return await collector.collect(max_pages=50)

    links = asyncio.run(_run())

    assert links == [
        "https://lermangas.me/manga/omniscient-reader/",
        "https://lermangas.me/manga/solo-leveling/",
        "https://lermangas.me/manga/tower-of-god/",
    ]
    assert requested == [
        "https://lermangas.me/",
        "https://lermangas.me/page/2/",
        "https://lermangas.me/page/3/",
        "https://lermangas.me/page/4/",
        "https://lermangas.me/page/5/",
    ]
    assert delays == [2.0, 2.0, 2.0, 2.0]


def test_collect_respects_page_limit() -> None:
    requested: list[str] = []
    delays: list[float] = []

    async def _run():
        collector, client = _collector({"https://lermangas.me/": HOME_HTML}, requested, delays)
        async with client:
            return await collector.collect(max_pages=2)

    asyncio.run(_run())

    assert requested == ["https://lermangas.me/", "https://lermangas.me/page/2/"]


def test_links_file_round_trip(tmp_path) -> None:
    links = [
        "https://lermangas.me/manga/b/",
        "https://lermangas.me/manga/a/",
        "https://lermangas.me/manga/b/",
    ]
    path = write_links_file(tmp_path / "data" / "links.md", links, "https://lermangas.me/")

    content = path.read_text(encoding="utf-8")
    assert content.startswith("# Manga links - lermangas.me")
    assert read_links_file(path) == ["https://lermangas.me/manga/b/", "https://lermangas.me/manga/a/"]


def test_filter_entity_links_drops_listing_and_genre_pages() -> None:
    lines = [
        "# header",
        "https://lermangas.me/manga/",
        "https://lermangas.me/manga/x/?page=2",
        "https://lermangas.me/manga/acao-genre/",
        "https://lermangas.me/manga/fim/",
        "https://lermangas.me/manga/kept/",
        "https://other.test/manga/kept/",
    ]

    assert filter_entity_links(lines, "lermangas.me") == ["https://lermangas.me/manga/kept/"]
