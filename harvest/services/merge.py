"""Fill-only, append-only merge of an extraction into a stored item.

Everything here is pure: the reconciler turns a :class:`MergePlan` into
store calls, and tests exercise the rules without a database.
"""

from __future__ import annotations

import dataclasses
from typing import Any, Iterable

from ..models import (
    CatalogSnapshot,
    CreatorRole,
    ExtractionResult,
    MergePlan,
    normalize_publication_status,
)
from ..utils import name_key

# Scalars written only while the stored value is empty. Rating belongs here,
# so once set it is never replaced even by a later source.
FILL_ONLY_FIELDS = ("source_url", "synopsis", "rating", "image_url", "publication_status")


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


def _incoming_scalars(result: ExtractionResult) -> dict[str, Any]:
    return {
        "source_url": result.source_url,
        "synopsis": result.synopsis,
        "rating": result.rating,
        "image_url": result.cover_image,
        "publication_status": normalize_publication_status(result.status),
    }


def _new_names(candidates: Iterable[str], existing: Iterable[str]) -> list[str]:
    seen = {name_key(name) for name in existing}
    fresh: list[str] = []
    for candidate in candidates:
        key = name_key(candidate)
        if not key or key in seen:
            continue
        seen.add(key)
        fresh.append(candidate.strip())
    return fresh


def plan_merge(snapshot: CatalogSnapshot, result: ExtractionResult) -> MergePlan:
    """Return the mutations that fold ``result`` into ``snapshot``."""

    plan = MergePlan()

    for name, incoming in _incoming_scalars(result).items():
        if _is_empty(incoming):
            continue
        if _is_empty(getattr(snapshot, name)):
            plan.field_updates[name] = incoming

    chapters = result.chapters
    if chapters is not None and (
        snapshot.total_chapters is None or chapters > snapshot.total_chapters
    ):
        plan.field_updates["total_chapters"] = chapters

    candidates = list(result.alternative_titles)
    if result.title and name_key(result.title) != name_key(snapshot.primary_title):
        candidates.append(result.title)
    plan.new_alternate_names = _new_names(
        candidates, (snapshot.primary_title, *snapshot.alternate_names)
    )
    plan.new_tags = _new_names(result.genres, snapshot.tags)

    linked = {(name_key(name), role) for name, role in snapshot.creators}
    for name, role in result.creators():
        key = (name_key(name), role)
        if key[0] and key not in linked:
            linked.add(key)
            plan.new_creators.append((name.strip(), role))

    return plan


def apply_plan(snapshot: CatalogSnapshot, plan: MergePlan) -> CatalogSnapshot:
    """Return a copy of ``snapshot`` with ``plan`` applied."""

    creators: tuple[tuple[str, CreatorRole], ...] = tuple(snapshot.creators) + tuple(plan.new_creators)
    return dataclasses.replace(
        snapshot,
        **plan.field_updates,
        alternate_names=snapshot.alternate_names + tuple(plan.new_alternate_names),
        tags=snapshot.tags + tuple(plan.new_tags),
        creators=creators,
    )


def merge_records(snapshot: CatalogSnapshot, result: ExtractionResult) -> CatalogSnapshot:
    """Apply the merge rules and return the resulting snapshot.

    Idempotent: merging the same result twice equals merging it once.
    """

    return apply_plan(snapshot, plan_merge(snapshot, result))
