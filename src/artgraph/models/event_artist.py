"""Event ↔ artist participant links.

Two tables with the same shape:

- `identity_event_artists`: raw links written while indexing an event. The
  artist id is whatever participant resolution returned at the time and may
  since have been merged away.
- `golden_event_artists`: the canonicalized set for a golden event, rebuilt
  from scratch on every event materialization.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column

from artgraph.models.base import Base


class IdentityEventArtist(Base):
    """An artist named as a participant of an indexed event."""

    __tablename__ = "identity_event_artists"

    event_entity_id: Mapped[UUID] = mapped_column(
        ForeignKey("identity_entities.id"), primary_key=True
    )
    artist_entity_id: Mapped[UUID] = mapped_column(
        ForeignKey("identity_entities.id"), primary_key=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class GoldenEventArtist(Base):
    """A canonical participant of a golden event."""

    __tablename__ = "golden_event_artists"

    event_entity_id: Mapped[UUID] = mapped_column(
        ForeignKey("golden_events.entity_id", ondelete="CASCADE"), primary_key=True
    )
    artist_entity_id: Mapped[UUID] = mapped_column(primary_key=True, index=True)
