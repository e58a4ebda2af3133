"""Source records: raw entities extracted from one crawled page.

Rows are written by the extraction stage. The identity pipeline only ever
sets `identity_entity_id`, once, when the record is first indexed.

The per-type field mixins are shared with the `extracted_*` tables so both
pipelines see the same shape.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, String, Text, func
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from artgraph.models.base import Base


class ArtistFields:
    name: Mapped[str] = mapped_column(String(512))
    bio: Mapped[str | None] = mapped_column(Text)
    website: Mapped[str | None] = mapped_column(String(2048))
    socials: Mapped[list[str]] = mapped_column(ARRAY(Text), default=list)


class GalleryFields:
    name: Mapped[str] = mapped_column(String(512))
    website: Mapped[str | None] = mapped_column(String(2048))
    address: Mapped[str | None] = mapped_column(String(1024))
    description: Mapped[str | None] = mapped_column(Text)


class EventFields:
    title: Mapped[str] = mapped_column(String(1024))
    description: Mapped[str | None] = mapped_column(Text)
    url: Mapped[str | None] = mapped_column(String(2048))
    start_ts: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    end_ts: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    venue_name: Mapped[str | None] = mapped_column(String(1024))
    participants: Mapped[list[str]] = mapped_column(ARRAY(Text), default=list)
    tags: Mapped[list[str]] = mapped_column(ARRAY(Text), default=list)


class SourceRecordMixin:
    """Columns common to every source table."""

    id: Mapped[UUID] = mapped_column(primary_key=True)

    page_url: Mapped[str] = mapped_column(String(2048), index=True)
    """The crawled page this record was extracted from."""

    @declared_attr
    def identity_entity_id(cls) -> Mapped[UUID | None]:
        """Identity entity assigned by the indexer (null until indexed)."""
        return mapped_column(ForeignKey("identity_entities.id"), index=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class SourceArtist(SourceRecordMixin, ArtistFields, Base):
    __tablename__ = "source_artists"


class SourceGallery(SourceRecordMixin, GalleryFields, Base):
    __tablename__ = "source_galleries"


class SourceEvent(SourceRecordMixin, EventFields, Base):
    __tablename__ = "source_events"


SourceRecord = SourceArtist | SourceGallery | SourceEvent
