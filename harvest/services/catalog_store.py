"""Catalog persistence operations used by the reconciler and asset acquirer."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Mapping

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import Creator, Manga, MangaCreator, MangaName, MangaTag, Tag
from ..models import CatalogSnapshot, CreatorRole, DEFAULT_READING_STATUS
from ..utils import collapse_whitespace, name_key

logger = logging.getLogger(__name__)

WRITABLE_FIELDS = frozenset(
    {
        "primary_title",
        "status",
        "rating",
        "synopsis",
        "image_filename",
        "image_url",
        "source_url",
        "total_chapters",
        "publication_status",
    }
)


def _live():
    return Manga.deleted_at.is_(None)


def _checked_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
    unknown = set(fields) - WRITABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown catalog fields: {', '.join(sorted(unknown))}")
    return dict(fields)


class CatalogTransaction:
    """Store operations bound to one session and one database transaction."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def find_by_url(self, url: str) -> str | None:
        stmt = select(Manga.id).where(Manga.source_url == url, _live()).limit(1)
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def find_by_title_exact(self, title: str) -> str | None:
        stmt = (
            select(Manga.id)
            .where(Manga.match_key == name_key(title), _live())
            .order_by(Manga.created_at)
            .limit(1)
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def find_by_alternate_name(self, name: str) -> str | None:
        stmt = (
            select(Manga.id)
            .join(MangaName, MangaName.manga_id == Manga.id)
            .where(MangaName.match_key == name_key(name), _live())
            .order_by(Manga.created_at)
            .limit(1)
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def snapshot(self, item_id: str) -> CatalogSnapshot | None:
        return await load_snapshot(self._session, item_id)

    async def create_item(self, fields: Mapping[str, Any]) -> str:
        values = _checked_fields(fields)
        values.setdefault("status", DEFAULT_READING_STATUS)
        manga = Manga(**values, match_key=name_key(values["primary_title"]))
        self._session.add(manga)
        await self._session.flush()
        logger.info("Created catalog item %s (%s)", manga.id, manga.primary_title)
        return manga.id

    async def update_item_fields(self, item_id: str, partial: Mapping[str, Any]) -> None:
        values = _checked_fields(partial)
        if not values:
            return
        if "primary_title" in values:
            values["match_key"] = name_key(values["primary_title"])
        await self._session.execute(update(Manga).where(Manga.id == item_id).values(**values))

    async def _insert_if_absent(self, row: Any) -> bool:
        try:
            async with self._session.begin_nested():
                self._session.add(row)
        except IntegrityError:
            logger.debug("Skipped duplicate %s row", row.__class__.__name__)
            return False
        return True

    async def insert_alternate_name_if_absent(
        self, item_id: str, name: str, language: str | None = None
    ) -> bool:
        name = collapse_whitespace(name)
        if not name:
            return False
        stmt = select(MangaName.id).where(
            MangaName.manga_id == item_id, MangaName.match_key == name_key(name)
        )
        if (await self._session.execute(stmt)).first() is not None:
            return False
        return await self._insert_if_absent(
            MangaName(manga_id=item_id, name=name, match_key=name_key(name), language=language)
        )

    async def _tag_id(self, name: str, category: str) -> str:
        stmt = select(Tag.id).where(Tag.match_key == name_key(name))
        tag_id = (await self._session.execute(stmt)).scalar_one_or_none()
        if tag_id is not None:
            return tag_id
        tag = Tag(name=name, match_key=name_key(name), category=category)
        if not await self._insert_if_absent(tag):
            return (await self._session.execute(stmt)).scalar_one()
        return tag.id

    async def insert_tag_if_absent(self, item_id: str, name: str, category: str = "genre") -> bool:
        name = collapse_whitespace(name)
        if not name:
            return False
        tag_id = await self._tag_id(name, category)
        existing = await self._session.get(MangaTag, (item_id, tag_id))
        if existing is not None:
            return False
        return await self._insert_if_absent(MangaTag(manga_id=item_id, tag_id=tag_id))

    async def _creator_id(self, name: str) -> str:
        stmt = select(Creator.id).where(Creator.match_key == name_key(name))
        creator_id = (await self._session.execute(stmt)).scalar_one_or_none()
        if creator_id is not None:
            return creator_id
        creator = Creator(name=name, match_key=name_key(name))
        if not await self._insert_if_absent(creator):
            return (await self._session.execute(stmt)).scalar_one()
        return creator.id

    async def insert_creator_if_absent(self, item_id: str, name: str, role: CreatorRole) -> bool:
        name = collapse_whitespace(name)
        if not name:
            return False
        creator_id = await self._creator_id(name)
        existing = await self._session.get(MangaCreator, (item_id, creator_id, role))
        if existing is not None:
            return False
        return await self._insert_if_absent(
            MangaCreator(manga_id=item_id, creator_id=creator_id, role=role)
        )


async def load_snapshot(session: AsyncSession, item_id: str) -> CatalogSnapshot | None:
    manga = await session.get(Manga, item_id)
    if manga is None or manga.deleted_at is not None:
        return None

    names = await session.execute(
        select(MangaName.name).where(MangaName.manga_id == item_id).order_by(MangaName.name)
    )
    tags = await session.execute(
        select(Tag.name)
        .join(MangaTag, MangaTag.tag_id == Tag.id)
        .where(MangaTag.manga_id == item_id)
        .order_by(Tag.name)
    )
    creators = await session.execute(
        select(Creator.name, MangaCreator.role)
        .join(MangaCreator, MangaCreator.creator_id == Creator.id)
        .where(MangaCreator.manga_id == item_id)
        .order_by(Creator.name, MangaCreator.role)
    )
    return CatalogSnapshot(
        id=manga.id,
        primary_title=manga.primary_title,
        source_url=manga.source_url,
        synopsis=manga.synopsis,
        rating=manga.rating,
        image_url=manga.image_url,
        image_filename=manga.image_filename,
        total_chapters=manga.total_chapters,
        publication_status=manga.publication_status,
        alternate_names=tuple(names.scalars()),
        tags=tuple(tags.scalars()),
        creators=tuple((name, role) for name, role in creators.all()),
    )


class CatalogStore:
    """Entry point to the catalog tables."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[CatalogTransaction]:
        """Yield a unit of work that commits on success and rolls back on error."""

        async with self._session_factory() as session:
            async with session.begin():
                yield CatalogTransaction(session)

    async def get(self, item_id: str) -> CatalogSnapshot | None:
        async with self._session_factory() as session:
            return await load_snapshot(session, item_id)

    async def set_asset_reference(self, item_id: str, filename: str) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(
                    update(Manga).where(Manga.id == item_id).values(image_filename=filename)
                )
        logger.debug("Stored asset reference %s for %s", filename, item_id)
