"""Extracted records and their pairwise similarity links.

A flatter, pre-identity variant of the pipeline: similarity is computed
directly between extracted records and stored as one link table per type,
without identity entities in between.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pgvector.sqlalchemy import Vector  # type: ignore[import-untyped]
from sqlalchemy import CheckConstraint, DateTime, Float, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from artgraph.config import settings
from artgraph.models.base import Base
from artgraph.models.enums import CuratorDecision
from artgraph.models.source import ArtistFields, EventFields, GalleryFields


class ExtractedRecordMixin:
    id: Mapped[UUID] = mapped_column(primary_key=True)
    page_url: Mapped[str] = mapped_column(String(2048), index=True)

    embedding: Mapped[list[Any] | None] = mapped_column(Vector(settings.dim_text_embedding))

    cluster_id: Mapped[UUID | None] = mapped_column(index=True)
    """Set once the record has been clustered; clustered records are not matched."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class ExtractedArtist(ExtractedRecordMixin, ArtistFields, Base):
    __tablename__ = "extracted_artists"


class ExtractedGallery(ExtractedRecordMixin, GalleryFields, Base):
    __tablename__ = "extracted_galleries"


class ExtractedEvent(ExtractedRecordMixin, EventFields, Base):
    __tablename__ = "extracted_events"


class ExtractedLinkMixin:
    """A candidate duplicate pair, ordered so that source_a_id < source_b_id."""

    _target_table = ""

    @declared_attr
    def source_a_id(cls) -> Mapped[UUID]:
        return mapped_column(
            ForeignKey(f"{cls._target_table}.id", ondelete="CASCADE"), primary_key=True
        )

    @declared_attr
    def source_b_id(cls) -> Mapped[UUID]:
        return mapped_column(
            ForeignKey(f"{cls._target_table}.id", ondelete="CASCADE"), primary_key=True
        )

    similarity_score: Mapped[float] = mapped_column(Float)
    curator_decision: Mapped[CuratorDecision] = mapped_column(
        default=CuratorDecision.PENDING, index=True
    )
    curator_decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    curator_notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    @declared_attr.directive
    def __table_args__(cls) -> tuple[Any, ...]:
        return (
            CheckConstraint(
                "source_a_id::text < source_b_id::text",
                name=f"ck_{cls.__tablename__}_pair_order",
            ),
            CheckConstraint(
                "similarity_score >= 0 AND similarity_score <= 1",
                name=f"ck_{cls.__tablename__}_score",
            ),
        )


class ExtractedArtistLink(ExtractedLinkMixin, Base):
    __tablename__ = "extracted_artist_links"
    _target_table = "extracted_artists"


class ExtractedGalleryLink(ExtractedLinkMixin, Base):
    __tablename__ = "extracted_gallery_links"
    _target_table = "extracted_galleries"


class ExtractedEventLink(ExtractedLinkMixin, Base):
    __tablename__ = "extracted_event_links"
    _target_table = "extracted_events"
