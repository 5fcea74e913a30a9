"""Turn a fetched page into an :class:`ExtractionResult` via site profiles."""

from __future__ import annotations

import logging
from typing import Sequence

from bs4 import BeautifulSoup

from ..models import ExtractionResult
from .fetcher import PageFetcher
from .profiles import SiteProfile

logger = logging.getLogger(__name__)

MAX_FOLLOW_DEPTH = 1


class MetadataExtractor:
    """Fetch a URL and apply the first profile that recognises it."""

    def __init__(self, fetcher: PageFetcher, profiles: Sequence[SiteProfile]):
        if not profiles:
            raise ValueError("At least one site profile is required")
        self._fetcher = fetcher
        self._profiles = list(profiles)

    def profile_for(self, url: str) -> SiteProfile:
        for profile in self._profiles:
            if profile.detect(url):
                return profile
        return self._profiles[-1]

    async def extract(self, url: str) -> ExtractionResult:
        """Return the facts published at ``url``.

        Missing fields come back empty rather than raising. ``FetchError`` is
        the only exception that escapes, since an unreachable page is an
        item-level failure the orchestrator counts.
        """

        return await self._extract(url, depth=0)

    async def _extract(self, url: str, *, depth: int) -> ExtractionResult:
        page = await self._fetcher.fetch(url)
        soup = BeautifulSoup(page.text, "html.parser")
        profile = self.profile_for(url)
        logger.debug("Extracting %s with the %s profile", url, profile.name)

        outcome = await profile.extract(page, soup)
        if outcome.follow_url:
            if depth < MAX_FOLLOW_DEPTH:
                logger.info("Listing page %s, following %s", url, outcome.follow_url)
                return await self._extract(outcome.follow_url, depth=depth + 1)
            logger.warning("Not following %s from %s: depth limit reached", outcome.follow_url, url)

        result = outcome.result or ExtractionResult(source_url=url)
        if not result.source_url:
            result.source_url = url
        if not result.has_title():
            logger.info("No title found on %s", url)
        return result
