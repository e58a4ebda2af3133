"""Golden records: one materialized record per canonical identity entity.

Golden rows are only ever written whole (upsert of every column) by the
materializer, so they can be recomputed from the family's source records at
any time.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from artgraph.models.base import Base


class GoldenRecordMixin:
    @declared_attr
    def entity_id(cls) -> Mapped[UUID]:
        """Canonical identity entity id."""
        return mapped_column(ForeignKey("identity_entities.id"), primary_key=True)

    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class GoldenArtist(GoldenRecordMixin, Base):
    __tablename__ = "golden_artists"

    name: Mapped[str] = mapped_column(String(512), default="")
    bio: Mapped[str | None] = mapped_column(Text)
    website: Mapped[str | None] = mapped_column(String(2048))
    socials: Mapped[list[str]] = mapped_column(ARRAY(Text), default=list)


class GoldenGallery(GoldenRecordMixin, Base):
    __tablename__ = "golden_galleries"

    name: Mapped[str] = mapped_column(String(512), default="")
    website: Mapped[str | None] = mapped_column(String(2048))
    address: Mapped[str | None] = mapped_column(String(1024))
    description: Mapped[str | None] = mapped_column(Text)


class GoldenEvent(GoldenRecordMixin, Base):
    __tablename__ = "golden_events"

    title: Mapped[str] = mapped_column(String(1024), default="")
    description: Mapped[str | None] = mapped_column(Text)
    url: Mapped[str | None] = mapped_column(String(2048))
    start_ts: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    end_ts: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    venue_text: Mapped[str | None] = mapped_column(String(1024))
    tags: Mapped[list[str]] = mapped_column(ARRAY(Text), default=list)


GoldenRecord = GoldenArtist | GoldenGallery | GoldenEvent
