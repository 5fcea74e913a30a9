"""Sequential orchestration of resolve, extract, translate, reconcile, acquire."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Iterable
from urllib.parse import urlparse

from ..config import Settings
from ..errors import (
    ExtractionEmpty,
    FetchError,
    HarvestError,
    ReconciliationConflict,
    ResolutionExhausted,
)
from ..models import BatchStats, ExtractionResult, ItemReport, ItemState
from .assets import AssetAcquirer
from .extractor import MetadataExtractor
from .reconciler import CatalogReconciler
from .resolver import SourceResolver
from .translator import Translator

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

PROGRESS_EVERY = 10


def is_url(entry: str) -> bool:
    parsed = urlparse(entry.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class HarvestPipeline:
    """Drive each input through the acquisition stages, one at a time.

    Items never run concurrently and a failing item never aborts the batch:
    every error is logged with its URL or title and counted.
    """

    def __init__(
        self,
        resolver: SourceResolver,
        extractor: MetadataExtractor,
        translator: Translator,
        reconciler: CatalogReconciler,
        acquirer: AssetAcquirer,
        settings: Settings,
        *,
        sleep: Sleep = asyncio.sleep,
    ):
        self._resolver = resolver
        self._extractor = extractor
        self._translator = translator
        self._reconciler = reconciler
        self._acquirer = acquirer
        self._settings = settings
        self._sleep = sleep
        self._cancelled = False

    def cancel(self) -> None:
        """Stop the current run once the in-flight item finishes."""

        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @staticmethod
    def _enter(report: ItemReport, state: ItemState) -> None:
        report.state = state
        logger.info("%s -> %s", report.input, state.value)

    async def _first_titled(self, urls: list[str]) -> ExtractionResult:
        """Extract candidates in order until one yields a title."""

        last_fetch_error: FetchError | None = None
        untitled: ExtractionResult | None = None
        for url in urls:
            try:
                result = await self._extractor.extract(url)
            except FetchError as exc:
                logger.warning("Candidate %s failed: %s", url, exc.cause)
                last_fetch_error = exc
                continue
            if result.has_title():
                return result
            untitled = untitled or result
        if untitled is None and last_fetch_error is not None:
            raise last_fetch_error
        raise ExtractionEmpty(untitled.source_url if untitled else (urls[0] if urls else None))

    async def process(self, entry: str, *, translate: bool = False) -> ItemReport:
        """Run one URL or title through every stage and report the outcome."""

        entry = entry.strip()
        report = ItemReport(input=entry, state=ItemState.RESOLVING, result="errored")
        logger.info("%s -> %s", entry, report.state.value)

        try:
            if is_url(entry):
                urls = [entry]
            else:
                urls = await self._resolver.resolve_or_raise(entry)

            self._enter(report, ItemState.EXTRACTING)
            result = await self._first_titled(urls)
            report.url = result.source_url
            report.title = result.title

            if translate:
                self._enter(report, ItemState.TRANSLATING)
                result = await self._translator.translate(result)

            self._enter(report, ItemState.RECONCILING)
            outcome = await self._reconciler.reconcile(result)
            report.item_id = outcome.item_id

            self._enter(report, ItemState.ACQUIRING_ASSET)
            report.asset = await self._acquirer.acquire_if_missing(
                outcome.item_id, outcome.has_asset, result.cover_image
            )
        except ResolutionExhausted as exc:
            logger.warning("No candidates for %r: %s", entry, exc)
            report.result, report.error = "unresolved", str(exc)
            self._enter(report, ItemState.FAILED)
            return report
        except ExtractionEmpty as exc:
            logger.warning("Skipping %r: %s", entry, exc)
            report.url = report.url or exc.url
            report.result, report.error = "skipped", str(exc)
            self._enter(report, ItemState.FAILED)
            return report
        except FetchError as exc:
            logger.warning("Fetch failed for %r at %s: %s", entry, exc.url, exc.cause)
            report.url = report.url or exc.url
            report.result, report.error = "errored", str(exc)
            self._enter(report, ItemState.FAILED)
            return report
        except ReconciliationConflict as exc:
            logger.error("Catalog write failed for %r (%s): %s", entry, report.url, exc)
            report.result, report.error = "errored", str(exc)
            self._enter(report, ItemState.FAILED)
            return report

        self._enter(report, ItemState.DONE)
        if outcome.created:
            report.result = "created"
        elif outcome.changed:
            report.result = "updated"
        else:
            report.result = "unchanged"
        logger.info("%s %r (%s)", report.result.capitalize(), report.title, report.url)
        return report

    async def run(
        self,
        entries: Iterable[str],
        *,
        translate: bool = False,
        limit: int | None = None,
    ) -> BatchStats:
        """Process ``entries`` in order with a politeness delay between items."""

        self._cancelled = False
        selected = [entry for entry in entries if entry and entry.strip()]
        if limit is not None:
            selected = selected[: max(limit, 0)]

        stats = BatchStats(total=len(selected))
        started = time.monotonic()
        logger.info("Processing %s entries", stats.total)

        for index, entry in enumerate(selected):
            if self._cancelled:
                logger.info("Run cancelled after %s of %s entries", index, stats.total)
                break

            logger.info("[%s/%s] %s", index + 1, stats.total, entry)
            try:
                report = await self.process(entry, translate=translate)
            except HarvestError as exc:
                logger.error("Unexpected pipeline error for %r: %s", entry, exc)
                report = ItemReport(
                    input=entry, state=ItemState.FAILED, result="errored", error=str(exc)
                )
            except Exception as exc:  # noqa: BLE001
                logger.exception("Unhandled error while processing %r", entry)
                report = ItemReport(
                    input=entry, state=ItemState.FAILED, result="errored", error=repr(exc)
                )
            stats.record(report)

            if (index + 1) % PROGRESS_EVERY == 0:
                logger.info("Progress: %s", stats.as_dict())
            if index < len(selected) - 1 and not self._cancelled:
                await self._sleep(self._settings.request_delay_seconds)

        stats.elapsed_seconds = time.monotonic() - started
        logger.info("Run finished: %s", stats.as_dict())
        return stats

    async def scrape(self, url: str, *, translate: bool = False) -> ExtractionResult:
        """Extract ``url`` without touching the catalog."""

        result = await self._extractor.extract(url)
        if translate and result.has_title():
            result = await self._translator.translate(result)
        return result

    async def lookup(self, title: str, *, translate: bool = False) -> list[ExtractionResult]:
        """Resolve ``title`` and extract every candidate without persisting."""

        results: list[ExtractionResult] = []
        for url in await self._resolver.resolve(title):
            try:
                result = await self.scrape(url, translate=translate)
            except FetchError as exc:
                logger.warning("Lookup candidate %s failed: %s", url, exc.cause)
                continue
            if result.has_title():
                results.append(result)
        logger.info("Lookup for %r returned %s result(s)", title, len(results))
        return results
