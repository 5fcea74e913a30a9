"""Error types raised by the acquisition pipeline.

Item-level failures (fetch, empty extraction, exhausted resolution) are
counted by the orchestrator and never abort a batch. Translation and asset
failures are recovered where they happen.
"""

from __future__ import annotations


class HarvestError(Exception):
    """Base exception for all pipeline errors."""


class FetchError(HarvestError):
    """A page or asset could not be retrieved."""

    def __init__(self, url: str, cause: str):
        super().__init__(f"Failed to fetch {url}: {cause}")
        self.url = url
        self.cause = cause


class ExtractionEmpty(HarvestError):
    """No title could be recovered from a fetched page."""

    def __init__(self, url: str | None):
        super().__init__(f"No title extracted from {url or 'unknown source'}")
        self.url = url


class ResolutionExhausted(HarvestError):
    """Every resolver strategy came back empty for a title."""

    def __init__(self, title: str):
        super().__init__(f"No candidate pages found for {title!r}")
        self.title = title


class AIServiceError(HarvestError):
    """The AI text service failed or answered with unusable content."""


class ReconciliationConflict(HarvestError):
    """The catalog store failed inside an atomic reconciliation unit.

    This is the only error class that should alert in production: it means a
    transaction was rolled back because of a store outage or a constraint the
    reconciler did not anticipate.
    """

    def __init__(self, title: str, cause: str):
        super().__init__(f"Reconciliation failed for {title!r}: {cause}")
        self.title = title
        self.cause = cause


class AssetAcquisitionError(HarvestError):
    """A cover image could not be downloaded or stored."""

    def __init__(self, url: str, cause: str):
        super().__init__(f"Failed to acquire asset {url}: {cause}")
        self.url = url
        self.cause = cause
