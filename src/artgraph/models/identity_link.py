"""IdentityLink model: candidate pairs and curator decisions."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, DateTime, Float, ForeignKey, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from artgraph.models.base import Base
from artgraph.models.enums import CuratorDecision, EntityType, LinkRelation


class IdentityLink(Base):
    """A relation between two identity entities of the same type.

    The pair is stored normalized (`a_id` sorts before `b_id` as text), so the
    same two entities always map to the same key regardless of call order.
    There is at most one row per (entity_type, a_id, b_id, relation): the
    indexer's SIMILAR note and a curator's MERGE/DISMISSED decision are
    separate rows, never mutations of each other.

    This table is the audit trail for why a golden record has its shape:
    every automatic candidate and every decision is kept.
    """

    __tablename__ = "identity_links"

    id: Mapped[UUID] = mapped_column(primary_key=True)

    entity_type: Mapped[EntityType] = mapped_column(index=True)

    a_id: Mapped[UUID] = mapped_column(ForeignKey("identity_entities.id"), index=True)
    b_id: Mapped[UUID] = mapped_column(ForeignKey("identity_entities.id"), index=True)

    relation: Mapped[LinkRelation] = mapped_column(index=True)
    """similar | merge | dismissed."""

    score: Mapped[float | None] = mapped_column(Float)
    """Cosine similarity in [0, 1] (null for decisions made without one)."""

    curator_decision: Mapped[CuratorDecision] = mapped_column(
        default=CuratorDecision.PENDING
    )
    """Review state; meaningful on SIMILAR rows."""

    decided_by: Mapped[str | None] = mapped_column(String(128))
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    notes: Mapped[str | None] = mapped_column(Text)

    created_by: Mapped[str] = mapped_column(String(128), default="system")
    """Either `system` for automatic rows or the curator identifier."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index(
            "ix_identity_links_unique",
            "entity_type",
            "a_id",
            "b_id",
            "relation",
            unique=True,
        ),
        Index("ix_identity_links_review", "entity_type", "curator_decision", "score"),
        CheckConstraint("a_id::text < b_id::text", name="ck_identity_links_pair_order"),
        CheckConstraint("score IS NULL OR (score >= 0 AND score <= 1)", name="ck_identity_links_score"),
    )
