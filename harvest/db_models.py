"""SQLAlchemy ORM models backing the manga catalog."""

from __future__ import annotations

from datetime import datetime
from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base


def _new_id() -> str:
    return uuid4().hex


READING_STATUSES = ("reading", "completed", "plan_to_read", "on_hold", "dropped")
TAG_CATEGORIES = ("genre", "demographic", "theme", "format", "custom")
CREATOR_ROLES = ("author", "artist")


class Manga(Base):
    """A tracked work in the catalog."""

    __tablename__ = "mangas"
    __table_args__ = (
        CheckConstraint("rating IS NULL OR (rating >= 0 AND rating <= 10)", name="ck_mangas_rating"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    primary_title: Mapped[str] = mapped_column(String(750), index=True)
    # Casefolded title; lookups compare keys so matching ignores case beyond ASCII.
    match_key: Mapped[str] = mapped_column(String(750), index=True)
    status: Mapped[str] = mapped_column(
        Enum(*READING_STATUSES, name="reading_status", native_enum=False),
        default="plan_to_read",
        index=True,
    )
    rating: Mapped[float | None] = mapped_column(Float, nullable=True)
    synopsis: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_filename: Mapped[str | None] = mapped_column(String(500), nullable=True)
    image_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    source_url: Mapped[str | None] = mapped_column(String(1000), nullable=True, index=True)
    total_chapters: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_chapter_read: Mapped[int] = mapped_column(Integer, default=0)
    publication_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    alternative_names: Mapped[list["MangaName"]] = relationship(
        back_populates="manga", cascade="all, delete-orphan"
    )


class MangaName(Base):
    """Alternate name of a manga, unique per item."""

    __tablename__ = "manga_names"
    __table_args__ = (
        UniqueConstraint("manga_id", "match_key", name="uq_manga_names_manga_match_key"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    manga_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("mangas.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str] = mapped_column(String(750))
    match_key: Mapped[str] = mapped_column(String(750), index=True)
    language: Mapped[str | None] = mapped_column(String(10), nullable=True)

    manga: Mapped[Manga] = relationship(back_populates="alternative_names")


class Tag(Base):
    """Global genre/category dictionary."""

    __tablename__ = "tags"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(100))
    match_key: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    category: Mapped[str] = mapped_column(
        Enum(*TAG_CATEGORIES, name="tag_category", native_enum=False), default="custom"
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class MangaTag(Base):
    """Many-to-many link between mangas and tags."""

    __tablename__ = "manga_tags"

    manga_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("mangas.id", ondelete="CASCADE"), primary_key=True
    )
    tag_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class Creator(Base):
    """Author or artist known to the catalog."""

    __tablename__ = "creators"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255))
    match_key: Mapped[str] = mapped_column(String(255), unique=True, index=True)


class MangaCreator(Base):
    """Link between a manga and a creator in a given role."""

    __tablename__ = "manga_creators"

    manga_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("mangas.id", ondelete="CASCADE"), primary_key=True
    )
    creator_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("creators.id", ondelete="CASCADE"), primary_key=True
    )
    role: Mapped[str] = mapped_column(
        Enum(*CREATOR_ROLES, name="creator_role", native_enum=False), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
