"""Match-or-create an extraction against the catalog in one transaction."""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from ..errors import ExtractionEmpty, ReconciliationConflict
from ..models import CatalogSnapshot, ExtractionResult, MergePlan, ReconcileOutcome
from .catalog_store import CatalogStore, CatalogTransaction
from .merge import plan_merge

logger = logging.getLogger(__name__)


class CatalogReconciler:
    """Fold extraction results into the catalog without overwriting data.

    Identity is resolved by source URL, then exact primary title, then exact
    alternate name (both case-insensitive). Stored scalars are only filled
    while empty and relations only grow, so replaying a result is a no-op.
    """

    def __init__(self, store: CatalogStore):
        self._store = store

    async def _match(
        self, tx: CatalogTransaction, title: str, result: ExtractionResult
    ) -> str | None:
        if result.source_url:
            item_id = await tx.find_by_url(result.source_url)
            if item_id:
                logger.debug("Matched %s by source URL", result.source_url)
                return item_id
        item_id = await tx.find_by_title_exact(title)
        if item_id:
            logger.debug("Matched %r by primary title", title)
            return item_id
        item_id = await tx.find_by_alternate_name(title)
        if item_id:
            logger.debug("Matched %r by alternate name", title)
        return item_id

    @staticmethod
    async def _apply(tx: CatalogTransaction, item_id: str, plan: MergePlan) -> None:
        await tx.update_item_fields(item_id, plan.field_updates)
        for name in plan.new_alternate_names:
            await tx.insert_alternate_name_if_absent(item_id, name)
        for tag in plan.new_tags:
            await tx.insert_tag_if_absent(item_id, tag, "genre")
        for name, role in plan.new_creators:
            await tx.insert_creator_if_absent(item_id, name, role)

    async def reconcile(self, result: ExtractionResult) -> ReconcileOutcome:
        if not result.has_title():
            raise ExtractionEmpty(result.source_url)
        title = result.title or ""

        try:
            async with self._store.transaction() as tx:
                item_id = await self._match(tx, title, result)
                if item_id is None:
                    plan = plan_merge(CatalogSnapshot(id="", primary_title=title), result)
                    item_id = await tx.create_item({"primary_title": title, **plan.field_updates})
                    await self._apply(tx, item_id, MergePlan(
                        new_alternate_names=plan.new_alternate_names,
                        new_tags=plan.new_tags,
                        new_creators=plan.new_creators,
                    ))
                    return ReconcileOutcome(item_id=item_id, created=True, changed=True, has_asset=False)

                snapshot = await tx.snapshot(item_id)
                if snapshot is None:
                    raise ReconciliationConflict(title, f"item {item_id} vanished mid-transaction")
                plan = plan_merge(snapshot, result)
                if not plan.is_noop:
                    await self._apply(tx, item_id, plan)
                    logger.info(
                        "Updated %r: fields=%s names=%s tags=%s creators=%s",
                        snapshot.primary_title,
                        sorted(plan.field_updates),
                        len(plan.new_alternate_names),
                        len(plan.new_tags),
                        len(plan.new_creators),
                    )
                return ReconcileOutcome(
                    item_id=item_id,
                    created=False,
                    changed=not plan.is_noop,
                    has_asset=snapshot.has_asset,
                )
        except SQLAlchemyError as exc:
            logger.error("Rolled back reconciliation of %r: %s", title, exc)
            raise ReconciliationConflict(title, str(exc)) from exc
