"""Pydantic models and value types shared across the pipeline."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from .utils import collapse_whitespace, name_key, parse_float, parse_int

ReadingStatus = Literal["reading", "completed", "plan_to_read", "on_hold", "dropped"]
CreatorRole = Literal["author", "artist"]

DEFAULT_READING_STATUS: ReadingStatus = "plan_to_read"

_PUBLICATION_STATUS_ALIASES: dict[str, tuple[str, ...]] = {
    "completed": ("finished", "completed", "complete", "completo", "concluído", "concluido", "finalizado"),
    "ongoing": ("publishing", "releasing", "ongoing", "em andamento", "em lançamento", "em lancamento", "ativo"),
    "hiatus": ("hiatus", "on hiatus", "em hiato", "pausado"),
    "cancelled": ("cancelled", "canceled", "discontinued", "cancelado"),
}


def normalize_publication_status(value: str | None) -> str | None:
    """Map scraped publication status text onto a small vocabulary."""

    text = collapse_whitespace(value).lower()
    if not text:
        return None
    for canonical, aliases in _PUBLICATION_STATUS_ALIASES.items():
        if any(alias in text for alias in aliases):
            return canonical
    return text[:50]


def _unique_names(values: Any) -> list[str]:
    if values is None:
        return []
    if isinstance(values, str):
        values = [values]
    if not isinstance(values, (list, tuple, set)):
        return []
    seen: set[str] = set()
    cleaned: list[str] = []
    for value in values:
        if not isinstance(value, (str, int, float)) or isinstance(value, bool):
            continue
        text = collapse_whitespace(str(value))
        key = text.casefold()
        if not text or key in seen:
            continue
        seen.add(key)
        cleaned.append(text)
    return cleaned


class ExtractionResult(BaseModel):
    """Facts pulled from one fetched page; never persisted as-is."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    source_url: str | None = Field(
        default=None, validation_alias=AliasChoices("source_url", "sourceUrl", "url")
    )
    title: str | None = Field(default=None, validation_alias=AliasChoices("title", "name"))
    alternative_titles: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices(
            "alternative_titles", "alternativeTitles", "alternativeNames", "synonyms"
        ),
    )
    synopsis: str | None = Field(
        default=None, validation_alias=AliasChoices("synopsis", "description")
    )
    genres: list[str] = Field(default_factory=list)
    author: str | None = None
    artist: str | None = None
    status: str | None = None
    chapters: int | None = Field(
        default=None, validation_alias=AliasChoices("chapters", "totalChapters")
    )
    volumes: int | None = None
    rating: float | None = Field(default=None, validation_alias=AliasChoices("rating", "score"))
    cover_image: str | None = Field(
        default=None, validation_alias=AliasChoices("cover_image", "coverImage", "imageUrl")
    )

    @field_validator("title", "author", "artist", "status", "source_url", "cover_image", mode="before")
    @classmethod
    def _clean_text(cls, value: Any) -> str | None:
        if value is None or isinstance(value, (list, dict, bool)):
            return None
        text = collapse_whitespace(str(value))
        return text or None

    @field_validator("synopsis", mode="before")
    @classmethod
    def _clean_synopsis(cls, value: Any) -> str | None:
        if value is None or not isinstance(value, str):
            return None
        text = collapse_whitespace(value)
        return text or None

    @field_validator("alternative_titles", "genres", mode="before")
    @classmethod
    def _clean_lists(cls, value: Any) -> list[str]:
        return _unique_names(value)

    @field_validator("chapters", "volumes", mode="before")
    @classmethod
    def _positive_count(cls, value: Any) -> int | None:
        number = parse_int(value)
        if number is None or number <= 0:
            return None
        return number

    @field_validator("rating", mode="before")
    @classmethod
    def _bounded_rating(cls, value: Any) -> float | None:
        number = parse_float(value)
        if number is None or number <= 0:
            return None
        return round(min(number, 10.0), 2)

    @model_validator(mode="after")
    def _drop_primary_from_alternatives(self) -> "ExtractionResult":
        if self.title:
            primary = name_key(self.title)
            self.alternative_titles = [
                name for name in self.alternative_titles if name_key(name) != primary
            ]
        return self

    def has_title(self) -> bool:
        """Return whether the minimum viable fact (a title) is present."""

        return bool(self.title)

    def translatable_fields(self) -> dict[str, Any]:
        """Return the subset of fields handed to the translator."""

        return {
            "title": self.title,
            "alternativeTitles": list(self.alternative_titles),
            "synopsis": self.synopsis,
            "genres": list(self.genres),
            "author": self.author,
            "artist": self.artist,
        }

    def creators(self) -> list[tuple[str, CreatorRole]]:
        """Return creator names paired with their role."""

        pairs: list[tuple[str, CreatorRole]] = []
        if self.author:
            pairs.append((self.author, "author"))
        if self.artist:
            pairs.append((self.artist, "artist"))
        return pairs


@dataclass(frozen=True, slots=True)
class CatalogSnapshot:
    """Read-only view of a stored catalog item used for merging."""

    id: str
    primary_title: str
    source_url: str | None = None
    synopsis: str | None = None
    rating: float | None = None
    image_url: str | None = None
    image_filename: str | None = None
    total_chapters: int | None = None
    publication_status: str | None = None
    alternate_names: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    creators: tuple[tuple[str, str], ...] = ()

    @property
    def has_asset(self) -> bool:
        return bool(self.image_filename)


@dataclass(slots=True)
class MergePlan:
    """Mutations needed to fold an extraction result into a stored item."""

    field_updates: dict[str, Any] = field(default_factory=dict)
    new_alternate_names: list[str] = field(default_factory=list)
    new_tags: list[str] = field(default_factory=list)
    new_creators: list[tuple[str, CreatorRole]] = field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        return not (
            self.field_updates
            or self.new_alternate_names
            or self.new_tags
            or self.new_creators
        )


@dataclass(slots=True)
class ReconcileOutcome:
    """Result of reconciling one extraction against the catalog."""

    item_id: str
    created: bool
    changed: bool
    has_asset: bool


class AssetStatus(str, enum.Enum):
    ACQUIRED = "acquired"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(slots=True)
class AssetOutcome:
    status: AssetStatus
    filename: str | None = None
    detail: str | None = None


class ItemState(str, enum.Enum):
    """States an input moves through inside the orchestrator."""

    RESOLVING = "resolving"
    EXTRACTING = "extracting"
    TRANSLATING = "translating"
    RECONCILING = "reconciling"
    ACQUIRING_ASSET = "acquiring_asset"
    DONE = "done"
    FAILED = "failed"


ItemResult = Literal[
    "created", "updated", "unchanged", "skipped", "errored", "unresolved"
]


@dataclass(slots=True)
class ItemReport:
    """Outcome of driving one input through the pipeline."""

    input: str
    state: ItemState
    result: ItemResult
    url: str | None = None
    title: str | None = None
    item_id: str | None = None
    asset: AssetOutcome | None = None
    error: str | None = None


@dataclass(slots=True)
class BatchStats:
    """Counters accumulated over a batch run."""

    total: int = 0
    processed: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0
    errored: int = 0
    unresolved: int = 0
    assets_acquired: int = 0
    elapsed_seconds: float = 0.0
    reports: list[ItemReport] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.reports)

    @property
    def succeeded(self) -> int:
        return self.created + self.updated + self.unchanged

    def record(self, report: ItemReport) -> None:
        """Count an item report under its outcome bucket."""

        self.reports.append(report)
        if report.result in ("created", "updated", "unchanged"):
            self.processed += 1
        counter = {
            "created": "created",
            "updated": "updated",
            "unchanged": "unchanged",
            "skipped": "skipped",
            "errored": "errored",
            "unresolved": "unresolved",
        }[report.result]
        setattr(self, counter, getattr(self, counter) + 1)
        if report.asset is not None and report.asset.status is AssetStatus.ACQUIRED:
            self.assets_acquired += 1

    def as_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "created": self.created,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "skipped": self.skipped,
            "errored": self.errored,
            "unresolved": self.unresolved,
            "assets_acquired": self.assets_acquired,
            "elapsed_seconds": round(self.elapsed_seconds, 1),
        }

    def summary_lines(self) -> list[str]:
        """Return the human readable end-of-run report."""

        return [
            f"Attempted: {self.attempted}/{self.total}",
            f"Succeeded: {self.succeeded}",
            f"Created: {self.created}",
            f"Updated: {self.updated}",
            f"Unchanged: {self.unchanged}",
            f"Skipped (no title): {self.skipped}",
            f"Errored: {self.errored}",
            f"Unresolved: {self.unresolved}",
            f"Assets acquired: {self.assets_acquired}",
            f"Elapsed: {self.elapsed_seconds:.1f}s",
        ]
