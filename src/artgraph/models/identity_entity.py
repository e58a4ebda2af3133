"""IdentityEntity model: the deduplicated identity-space node."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pgvector.sqlalchemy import Vector  # type: ignore[import-untyped]
from sqlalchemy import DateTime, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column

from artgraph.config import settings
from artgraph.models.base import Base
from artgraph.models.enums import EntityType


class IdentityEntity(Base):
    """A node in identity space that source records are assigned to.

    Rows are never deleted. A merged-away entity keeps its row and points at
    the entity it was merged into through `canonical_entity_id`; following
    those pointers to a row whose pointer is null yields the canonical id.
    Source records may keep referencing merged-away ids indefinitely.
    """

    __tablename__ = "identity_entities"

    id: Mapped[UUID] = mapped_column(primary_key=True)

    entity_type: Mapped[EntityType] = mapped_column(index=True)
    """artist | gallery | event. Immutable after creation."""

    display_name: Mapped[str] = mapped_column(String(1024))

    embedding: Mapped[list[Any] | None] = mapped_column(Vector(settings.dim_text_embedding))
    """Composite-text embedding (null until an embedding was available)."""

    canonical_entity_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("identity_entities.id"), index=True
    )
    """Union-find parent pointer. Null means this entity is canonical."""

    merged_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    last_materialized_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    """Last time a golden record was materialized for this (canonical) entity."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
