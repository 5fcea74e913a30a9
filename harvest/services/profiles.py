"""Site profiles: per-site extraction rules plus the AI-assisted catch-all.

Each profile answers two questions: does it recognise a URL, and what does a
fetched page of that site contain. Listing pages are answered with a URL to
follow instead of a result, so the extractor can recurse into the detail
page once.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable
from urllib.parse import parse_qs, urlparse

from bs4 import BeautifulSoup, Tag
from pydantic import ValidationError

from ..errors import AIServiceError
from ..models import ExtractionResult
from ..utils import (
    absolute_url,
    collapse_whitespace,
    extract_json_object,
    host_matches,
    name_key,
    parse_float,
    parse_int,
)
from .fetcher import RawPage
from .openrouter import TextService

logger = logging.getLogger(__name__)

MYANIMELIST_BASE = "https://myanimelist.net"
MYANIMELIST_ENTITY_RE = re.compile(r"/manga/\d+(?:/|$)")
SYNOPSIS_LIMIT = 2_000

GENERIC_EXTRACTION_PROMPT = """
Extract manga information from this webpage text. Return ONLY valid JSON with this structure:
{{
  "title": "manga title",
  "alternativeTitles": ["alt1", "alt2"],
  "synopsis": "description",
  "genres": ["genre1", "genre2"],
  "status": "ongoing or completed",
  "author": "author name",
  "artist": "artist name",
  "chapters": 0,
  "rating": 0.0
}}

The rating must use a 0-10 scale. If a piece of information is not found, omit that field.
Webpage text:
{page_text}
"""


@dataclass(slots=True)
class ProfileResult:
    """Either extracted facts or a detail-page URL to follow."""

    result: ExtractionResult | None = None
    follow_url: str | None = None


def node_text(node: Tag | None, separator: str = " ") -> str:
    if node is None:
        return ""
    return collapse_whitespace(node.get_text(separator))


def select_text(soup: BeautifulSoup | Tag, selector: str) -> str:
    return node_text(soup.select_one(selector))


def image_source(node: Tag | None) -> str | None:
    """Return the real image URL, preferring lazy-load attributes."""

    if node is None:
        return None
    for attribute in ("data-src", "data-lazy-src", "src"):
        value = node.get(attribute)
        if isinstance(value, str) and value.strip() and not value.startswith("data:"):
            return value.strip()
    srcset = node.get("data-srcset") or node.get("srcset")
    if isinstance(srcset, str) and srcset.strip():
        return srcset.split(",")[0].strip().split(" ")[0]
    return None


def meta_content(soup: BeautifulSoup, key: str) -> str | None:
    node = soup.select_one(f'meta[property="{key}"]') or soup.select_one(f'meta[name="{key}"]')
    if node is None:
        return None
    content = node.get("content")
    if not isinstance(content, str):
        return None
    return collapse_whitespace(content) or None


def json_ld_documents(soup: BeautifulSoup) -> list[dict[str, Any]]:
    """Return every JSON-LD object embedded in the page."""

    documents: list[dict[str, Any]] = []
    for script in soup.select('script[type="application/ld+json"]'):
        raw = script.string or script.get_text()
        if not raw or not raw.strip():
            continue
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            continue
        candidates = payload if isinstance(payload, list) else [payload]
        for candidate in candidates:
            if not isinstance(candidate, dict):
                continue
            documents.append(candidate)
            graph = candidate.get("@graph")
            if isinstance(graph, list):
                documents.extend(entry for entry in graph if isinstance(entry, dict))
    return documents


def split_names(value: str, pattern: str = r"[,;]") -> list[str]:
    return [part.strip() for part in re.split(pattern, value) if part.strip()]


def visible_text(soup: BeautifulSoup) -> str:
    """Return the page's visible text with scripts and styles removed."""

    body = soup.body or soup
    for node in body.select("script, style, noscript, template, svg"):
        node.decompose()
    return collapse_whitespace(body.get_text(" "))


class SiteProfile:
    """Rule set for extracting manga facts from one family of pages."""

    name = "base"
    hosts: tuple[str, ...] = ()

    def detect(self, url: str) -> bool:
        """Return whether this profile handles ``url``."""

        return host_matches(url, self.hosts)

    async def extract(self, page: RawPage, soup: BeautifulSoup) -> ProfileResult:
        raise NotImplementedError


def find_myanimelist_entity_link(soup: BeautifulSoup, title: str | None = None) -> str | None:
    """Return the top manga link on a MyAnimeList search results page.

    Heuristics run in order and the first one that finds something wins: the
    results table row, any ``/manga/<id>/`` link, then a link whose title
    attribute or text matches the searched title.
    """

    row = soup.select_one(".js-block-list tbody tr")
    if row is not None:
        anchor = row.select_one("a.hoverinfo_trigger")
        href = anchor.get("href") if anchor is not None else None
        if isinstance(href, str) and href.strip():
            return absolute_url(href, MYANIMELIST_BASE)

    for anchor in soup.select('a[href*="/manga/"]'):
        href = anchor.get("href")
        if not isinstance(href, str) or "?q=" in href:
            continue
        if MYANIMELIST_ENTITY_RE.search(href):
            return absolute_url(href, MYANIMELIST_BASE)

    anchors = soup.select('a.hoverinfo_trigger[href*="/manga/"]')
    if title:
        wanted = name_key(title)
        for anchor in anchors:
            label = anchor.get("title") or node_text(anchor)
            if isinstance(label, str) and name_key(label) == wanted:
                return absolute_url(anchor.get("href"), MYANIMELIST_BASE)
    if anchors:
        return absolute_url(anchors[0].get("href"), MYANIMELIST_BASE)
    return None


class MyAnimeListProfile(SiteProfile):
    """Detail and search-result pages on myanimelist.net (0-10 scores)."""

    name = "myanimelist"
    hosts = ("myanimelist.net",)

    @staticmethod
    def is_search_page(url: str) -> bool:
        parsed = urlparse(url)
        return parsed.path.endswith("manga.php") and "q" in parse_qs(parsed.query)

    async def extract(self, page: RawPage, soup: BeautifulSoup) -> ProfileResult:
        if self.is_search_page(page.url):
            return self._extract_search_page(page, soup)
        return ProfileResult(result=self._extract_detail_page(page, soup))

    def _extract_search_page(self, page: RawPage, soup: BeautifulSoup) -> ProfileResult:
        query = parse_qs(urlparse(page.url).query).get("q", [None])[0]
        link = find_myanimelist_entity_link(soup, query)
        if link:
            return ProfileResult(follow_url=link)

        row = soup.select_one(".js-block-list tbody tr")
        if row is None:
            return ProfileResult(result=ExtractionResult(source_url=page.url))
        return ProfileResult(
            result=ExtractionResult(
                source_url=page.url,
                title=select_text(row, "strong"),
                synopsis=select_text(row, ".pt4"),
                cover_image=absolute_url(image_source(row.select_one("img")), page.url),
            )
        )

    @staticmethod
    def _labelled(soup: BeautifulSoup, label: str) -> Tag | None:
        for node in soup.select("div.spaceit_pad"):
            if node_text(node).startswith(label):
                return node
        return None

    def _labelled_value(self, soup: BeautifulSoup, label: str) -> str:
        node = self._labelled(soup, label)
        if node is None:
            return ""
        return node_text(node)[len(label):].strip()

    def _creators(self, soup: BeautifulSoup) -> tuple[str | None, str | None]:
        node = self._labelled(soup, "Authors:") or self._labelled(soup, "Author:")
        if node is None:
            return None, None

        author: str | None = None
        artist: str | None = None
        for anchor in node.select("a"):
            name = node_text(anchor)
            sibling = anchor.next_sibling
            role = str(sibling) if sibling is not None and not isinstance(sibling, Tag) else ""
            if not name:
                continue
            if "Story" in role and author is None:
                author = name
            if "Art" in role and artist is None:
                artist = name
            if author is None and "Art" not in role:
                author = name
        if author is None and artist is None:
            text = re.sub(r"^Authors?:", "", node_text(node)).split("(")[0].strip()
            author = text or None
        return author, artist

    def _extract_detail_page(self, page: RawPage, soup: BeautifulSoup) -> ExtractionResult:
        title = select_text(soup, "h1.title-name") or select_text(soup, 'span[itemprop="name"]')

        alternatives: list[str] = []
        synonyms = self._labelled_value(soup, "Synonyms:")
        if synonyms:
            alternatives.extend(split_names(synonyms, r","))
        for label in ("English:", "Japanese:"):
            value = self._labelled_value(soup, label)
            if value:
                alternatives.append(value)

        synopsis = select_text(soup, 'p[itemprop="description"]') or select_text(
            soup, 'span[itemprop="description"]'
        )
        genres = [node_text(node) for node in soup.select('span[itemprop="genre"]')]
        author, artist = self._creators(soup)

        score_match = re.search(r"\d+(?:\.\d+)?", select_text(soup, ".score-label"))
        cover = image_source(soup.select_one('img[itemprop="image"]'))

        return ExtractionResult(
            source_url=page.url,
            title=title,
            alternative_titles=alternatives,
            synopsis=synopsis,
            genres=genres,
            author=author,
            artist=artist,
            status=self._labelled_value(soup, "Status:") or None,
            chapters=parse_int(self._labelled_value(soup, "Chapters:")),
            volumes=parse_int(self._labelled_value(soup, "Volumes:")),
            rating=float(score_match.group(0)) if score_match else None,
            cover_image=absolute_url(cover, page.url),
        )


class AniListProfile(SiteProfile):
    """anilist.co media pages; scores are published on a 0-100 scale."""

    name = "anilist"
    hosts = ("anilist.co",)

    @staticmethod
    def _data_sets(soup: BeautifulSoup) -> dict[str, Tag]:
        sets: dict[str, Tag] = {}
        for node in soup.select(".data-set"):
            label = select_text(node, ".type").lower()
            value = node.select_one(".value")
            if label and value is not None:
                sets.setdefault(label, value)
        return sets

    async def extract(self, page: RawPage, soup: BeautifulSoup) -> ProfileResult:
        data_sets = self._data_sets(soup)
        title = select_text(soup, "h1") or meta_content(soup, "og:title")

        alternatives: list[str] = []
        for label in ("romaji", "english", "native", "synonyms"):
            value = data_sets.get(label)
            if value is not None:
                alternatives.extend(
                    line.strip() for line in value.get_text("\n").split("\n") if line.strip()
                )

        genres = [node_text(node) for node in soup.select(".genres-container .tag")]
        if not genres and "genres" in data_sets:
            genres = [node_text(node) for node in data_sets["genres"].select("a")]

        score_text = node_text(data_sets.get("average score")) or select_text(soup, ".score")
        score = parse_float(score_text)

        cover_node = soup.select_one("img.cover") or soup.select_one(".cover")
        cover = image_source(cover_node) if cover_node is not None else None

        return ProfileResult(
            result=ExtractionResult(
                source_url=page.url,
                title=title,
                alternative_titles=alternatives,
                synopsis=select_text(soup, ".description") or meta_content(soup, "og:description"),
                genres=genres,
                status=node_text(data_sets.get("status")) or None,
                chapters=parse_int(node_text(data_sets.get("chapters"))),
                volumes=parse_int(node_text(data_sets.get("volumes"))),
                rating=score / 10 if score is not None else None,
                cover_image=absolute_url(cover or meta_content(soup, "og:image"), page.url),
            )
        )


class MadaraProfile(SiteProfile):
    """WordPress Madara-theme reader sites; ratings use a five star scale."""

    name = "madara"
    hosts = ("lermangas.me",)

    def __init__(self, hosts: Iterable[str] | None = None):
        if hosts is not None:
            self.hosts = tuple(hosts)

    async def extract(self, page: RawPage, soup: BeautifulSoup) -> ProfileResult:
        heading = soup.select_one(".post-title h1")
        if heading is None and soup.select_one(".page-item-detail") is not None:
            anchor = soup.select_one(".page-item-detail .post-title a, .page-item-detail .item-thumb a")
            follow = absolute_url(anchor.get("href"), page.url) if anchor is not None else None
            if follow:
                return ProfileResult(follow_url=follow)

        title = ""
        if heading is not None:
            for badge in heading.select("span"):
                badge.decompose()
            title = node_text(heading)

        json_ld = json_ld_documents(soup)
        rows = self._summary_rows(soup)

        return ProfileResult(
            result=ExtractionResult(
                source_url=page.url,
                title=title,
                alternative_titles=self._alternative_names(rows, json_ld),
                synopsis=self._synopsis(soup, json_ld, title),
                genres=[node_text(node) for node in soup.select(".genres-content a")],
                author=select_text(soup, ".author-content a") or None,
                artist=select_text(soup, ".artist-content a") or None,
                status=self._status(soup),
                chapters=len(soup.select(".wp-manga-chapter a")) or None,
                rating=self._rating(soup),
                cover_image=absolute_url(
                    image_source(soup.select_one(".summary_image img")), page.url
                ),
            )
        )

    @staticmethod
    def _summary_rows(soup: BeautifulSoup | Tag) -> list[tuple[str, Tag]]:
        rows: list[tuple[str, Tag]] = []
        for item in soup.select(".post-content_item"):
            label = select_text(item, ".summary-heading h5").lower()
            content = item.select_one(".summary-content")
            if content is not None:
                rows.append((label, content))
        return rows

    @staticmethod
    def _alternative_names(
        rows: list[tuple[str, Tag]], json_ld: list[dict[str, Any]]
    ) -> list[str]:
        names: list[str] = []
        for label, content in rows:
            if "alternative" in label or "alternativo" in label:
                names.extend(split_names(node_text(content)))
        for document in json_ld:
            headline = document.get("alternativeHeadline")
            if isinstance(headline, str):
                names.append(headline)
            elif isinstance(headline, list):
                names.extend(entry for entry in headline if isinstance(entry, str))
        return names

    @staticmethod
    def _synopsis(
        soup: BeautifulSoup, json_ld: list[dict[str, Any]], title: str
    ) -> str | None:
        synopsis = select_text(soup, ".manga-excerpt") or None

        og_description = meta_content(soup, "og:description")
        if (not synopsis or len(synopsis) < 50) and og_description:
            if len(og_description) > len(synopsis or ""):
                synopsis = og_description

        if not synopsis:
            node = soup.select_one(".description-summary .summary__content, .summary__content")
            synopsis = node_text(node) or None

        if not synopsis:
            for document in json_ld:
                description = document.get("description")
                if isinstance(description, str) and description.strip():
                    synopsis = description

        if not synopsis:
            return None
        synopsis = collapse_whitespace(synopsis)
        if title and synopsis.startswith(title):
            synopsis = synopsis[len(title):].strip()
        synopsis = re.sub(r"\s*Continuar Lendo\s*→?\s*$", "", synopsis, flags=re.IGNORECASE).strip()
        if len(synopsis) > SYNOPSIS_LIMIT:
            synopsis = synopsis[:SYNOPSIS_LIMIT] + "..."
        return synopsis or None

    def _status(self, soup: BeautifulSoup) -> str | None:
        container = soup.select_one(".post-status")
        if container is None:
            return None
        for label, content in self._summary_rows(container):
            if "status" in label:
                return node_text(content) or None
        return None

    @staticmethod
    def _rating(soup: BeautifulSoup) -> float | None:
        stars = parse_float(select_text(soup, ".post-total-rating .score") or select_text(soup, "#averagerate"))
        if stars is None:
            return None
        return min(stars, 5.0) * 2


class GenericProfile(SiteProfile):
    """Catch-all profile asking the AI text service to read the page."""

    name = "generic"

    def __init__(self, text_service: TextService, *, excerpt_chars: int = 5_000):
        self._text_service = text_service
        self._excerpt_chars = excerpt_chars

    def detect(self, url: str) -> bool:
        return True

    async def extract(self, page: RawPage, soup: BeautifulSoup) -> ProfileResult:
        excerpt = visible_text(soup)[: self._excerpt_chars]
        empty = ProfileResult(result=ExtractionResult(source_url=page.url))
        if not excerpt:
            logger.warning("No visible text to extract from %s", page.url)
            return empty

        logger.info("Using AI to extract manga info from generic page %s", page.url)
        try:
            answer = await self._text_service.complete(
                GENERIC_EXTRACTION_PROMPT.format(page_text=excerpt)
            )
            payload = extract_json_object(answer)
        except (AIServiceError, ValueError) as exc:
            logger.warning("Generic extraction failed for %s: %s", page.url, exc)
            return empty

        payload.pop("source_url", None)
        payload.pop("sourceUrl", None)
        try:
            result = ExtractionResult.model_validate({**payload, "source_url": page.url})
        except ValidationError as exc:
            logger.warning("Generic extraction returned unusable fields for %s: %s", page.url, exc)
            return empty
        if result.cover_image:
            result.cover_image = absolute_url(result.cover_image, page.url)
        return ProfileResult(result=result)


def default_profiles(
    text_service: TextService, *, excerpt_chars: int = 5_000
) -> list[SiteProfile]:
    """Return the known profiles in priority order with the AI catch-all last."""

    return [
        MyAnimeListProfile(),
        AniListProfile(),
        MadaraProfile(),
        GenericProfile(text_service, excerpt_chars=excerpt_chars),
    ]
