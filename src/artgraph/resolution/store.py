"""Storage primitives the resolution and golden algorithms run on.

`IdentityStore` wraps one `AsyncSession` and exposes the few reads and
writes the pipeline stages need. The stages never build SQL themselves, so
the algorithms can be exercised against an in-memory subclass.

Nothing here commits: every stage runs inside the caller's transaction.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from artgraph.models.enums import DECISIVE_RELATIONS, CuratorDecision, EntityType, LinkRelation
from artgraph.models.event_artist import GoldenEventArtist, IdentityEventArtist
from artgraph.models.extracted import (
    ExtractedArtist,
    ExtractedArtistLink,
    ExtractedEvent,
    ExtractedEventLink,
    ExtractedGallery,
    ExtractedGalleryLink,
)
from artgraph.models.golden import GoldenArtist, GoldenEvent, GoldenGallery, GoldenRecord
from artgraph.models.identity_entity import IdentityEntity
from artgraph.models.identity_link import IdentityLink
from artgraph.models.source import SourceArtist, SourceEvent, SourceGallery, SourceRecord

logger = logging.getLogger(__name__)

SOURCE_MODELS: dict[EntityType, type[SourceArtist | SourceGallery | SourceEvent]] = {
    EntityType.ARTIST: SourceArtist,
    EntityType.GALLERY: SourceGallery,
    EntityType.EVENT: SourceEvent,
}

GOLDEN_MODELS: dict[EntityType, type[GoldenArtist | GoldenGallery | GoldenEvent]] = {
    EntityType.ARTIST: GoldenArtist,
    EntityType.GALLERY: GoldenGallery,
    EntityType.EVENT: GoldenEvent,
}

EXTRACTED_MODELS: dict[EntityType, type[ExtractedArtist | ExtractedGallery | ExtractedEvent]] = {
    EntityType.ARTIST: ExtractedArtist,
    EntityType.GALLERY: ExtractedGallery,
    EntityType.EVENT: ExtractedEvent,
}

EXTRACTED_LINK_MODELS: dict[
    EntityType, type[ExtractedArtistLink | ExtractedGalleryLink | ExtractedEventLink]
] = {
    EntityType.ARTIST: ExtractedArtistLink,
    EntityType.GALLERY: ExtractedGalleryLink,
    EntityType.EVENT: ExtractedEventLink,
}


class IdentityStore:
    """Reads and writes over the identity, golden and extracted tables."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def flush(self) -> None:
        await self._session.flush()

    # ── Source records ───────────────────────────────────────────────────────

    async def get_source(self, entity_type: EntityType, source_id: UUID) -> SourceRecord | None:
        return await self._session.get(SOURCE_MODELS[entity_type], source_id)

    async def assign_source(self, record: SourceRecord, entity_id: UUID) -> None:
        """Point a source record at its identity entity."""
        record.identity_entity_id = entity_id
        await self._session.flush()

    async def sources_for_family(
        self, entity_type: EntityType, entity_ids: Sequence[UUID]
    ) -> list[SourceRecord]:
        """Source records assigned to any of `entity_ids`, ordered by id."""
        if not entity_ids:
            return []
        model = SOURCE_MODELS[entity_type]
        stmt = (
            select(model)
            .where(model.identity_entity_id.in_(list(entity_ids)))
            .order_by(model.id)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    # ── Identity entities ────────────────────────────────────────────────────

    async def get_entity(
        self, entity_id: UUID, *, for_update: bool = False
    ) -> IdentityEntity | None:
        if for_update:
            return await self._session.get(
                IdentityEntity, entity_id, with_for_update=True, populate_existing=True
            )
        return await self._session.get(IdentityEntity, entity_id)

    async def create_entity(
        self,
        entity_type: EntityType,
        display_name: str,
        embedding: list[float] | None,
    ) -> IdentityEntity:
        entity = IdentityEntity(
            id=uuid4(),
            entity_type=entity_type,
            display_name=display_name,
            embedding=embedding or None,
        )
        self._session.add(entity)
        await self._session.flush()
        return entity

    async def children_of(self, entity_id: UUID) -> list[UUID]:
        """Ids of entities whose canonical pointer is `entity_id`."""
        stmt = select(IdentityEntity.id).where(IdentityEntity.canonical_entity_id == entity_id)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def unmaterialized_entities(
        self, entity_type: EntityType | None, limit: int
    ) -> list[IdentityEntity]:
        """Canonical entities that have never been materialized."""
        stmt = select(IdentityEntity).where(
            IdentityEntity.canonical_entity_id.is_(None),
            IdentityEntity.last_materialized_at.is_(None),
        )
        if entity_type is not None:
            stmt = stmt.where(IdentityEntity.entity_type == entity_type)
        stmt = stmt.order_by(IdentityEntity.created_at).limit(limit)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    # ── Identity links ───────────────────────────────────────────────────────

    async def get_link(self, link_id: UUID) -> IdentityLink | None:
        return await self._session.get(IdentityLink, link_id)

    async def has_decisive_link(self, entity_type: EntityType, a_id: UUID, b_id: UUID) -> bool:
        """True if a curator already merged or dismissed this (normalized) pair."""
        stmt = (
            select(IdentityLink.id)
            .where(
                IdentityLink.entity_type == entity_type,
                IdentityLink.a_id == a_id,
                IdentityLink.b_id == b_id,
                IdentityLink.relation.in_(DECISIVE_RELATIONS),
            )
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def upsert_similar_link(
        self, entity_type: EntityType, a_id: UUID, b_id: UUID, score: float
    ) -> None:
        """Insert or refresh the automatic `similar` row for a normalized pair."""
        stmt = insert(IdentityLink).values(
            id=uuid4(),
            entity_type=entity_type,
            a_id=a_id,
            b_id=b_id,
            relation=LinkRelation.SIMILAR,
            score=score,
            curator_decision=CuratorDecision.PENDING,
            created_by="system",
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["entity_type", "a_id", "b_id", "relation"],
            set_={"score": stmt.excluded.score},
        )
        await self._session.execute(stmt)

    async def record_decision(
        self,
        entity_type: EntityType,
        a_id: UUID,
        b_id: UUID,
        relation: LinkRelation,
        *,
        decided_by: str,
        decided_at: datetime,
        notes: str | None = None,
    ) -> None:
        """Write a decisive MERGE/DISMISSED row and stamp the pair's `similar` row."""
        decision = (
            CuratorDecision.MERGED if relation == LinkRelation.MERGE else CuratorDecision.DISMISSED
        )
        stmt = insert(IdentityLink).values(
            id=uuid4(),
            entity_type=entity_type,
            a_id=a_id,
            b_id=b_id,
            relation=relation,
            curator_decision=decision,
            decided_by=decided_by,
            decided_at=decided_at,
            notes=notes,
            created_by=decided_by,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["entity_type", "a_id", "b_id", "relation"],
            set_={
                "decided_by": stmt.excluded.decided_by,
                "decided_at": stmt.excluded.decided_at,
                "notes": stmt.excluded.notes,
            },
        )
        await self._session.execute(stmt)

        await self._session.execute(
            update(IdentityLink)
            .where(
                IdentityLink.entity_type == entity_type,
                IdentityLink.a_id == a_id,
                IdentityLink.b_id == b_id,
                IdentityLink.relation == LinkRelation.SIMILAR,
            )
            .values(
                curator_decision=decision,
                decided_by=decided_by,
                decided_at=decided_at,
                notes=notes,
            )
            .execution_options(synchronize_session="fetch")
        )

    async def pending_links(
        self,
        entity_type: EntityType | None,
        *,
        min_score: float,
        max_score: float | None = None,
        limit: int,
    ) -> list[tuple[IdentityLink, str, str]]:
        """Pending `similar` rows in a score window with both display names, score desc."""
        entity_a = aliased(IdentityEntity)
        entity_b = aliased(IdentityEntity)
        stmt = (
            select(IdentityLink, entity_a.display_name, entity_b.display_name)
            .join(entity_a, entity_a.id == IdentityLink.a_id)
            .join(entity_b, entity_b.id == IdentityLink.b_id)
            .where(
                IdentityLink.relation == LinkRelation.SIMILAR,
                IdentityLink.curator_decision == CuratorDecision.PENDING,
                IdentityLink.score >= min_score,
            )
            .order_by(IdentityLink.score.desc(), IdentityLink.id)
            .limit(limit)
        )
        if max_score is not None:
            stmt = stmt.where(IdentityLink.score <= max_score)
        if entity_type is not None:
            stmt = stmt.where(IdentityLink.entity_type == entity_type)
        result = await self._session.execute(stmt)
        return [(row[0], row[1], row[2]) for row in result.all()]

    async def pending_link_counts(self) -> dict[EntityType, int]:
        stmt = (
            select(IdentityLink.entity_type, func.count())
            .where(
                IdentityLink.relation == LinkRelation.SIMILAR,
                IdentityLink.curator_decision == CuratorDecision.PENDING,
            )
            .group_by(IdentityLink.entity_type)
        )
        result = await self._session.execute(stmt)
        return {row[0]: row[1] for row in result.all()}

    # ── Participants ─────────────────────────────────────────────────────────

    async def add_event_artist(self, event_id: UUID, artist_id: UUID) -> None:
        stmt = (
            insert(IdentityEventArtist)
            .values(event_entity_id=event_id, artist_entity_id=artist_id)
            .on_conflict_do_nothing(index_elements=["event_entity_id", "artist_entity_id"])
        )
        await self._session.execute(stmt)

    async def event_artist_ids(self, event_ids: Sequence[UUID]) -> list[UUID]:
        """Raw participant artist ids recorded for any of `event_ids`."""
        if not event_ids:
            return []
        stmt = select(IdentityEventArtist.artist_entity_id).where(
            IdentityEventArtist.event_entity_id.in_(list(event_ids))
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def events_with_artists(self, artist_ids: Sequence[UUID]) -> list[UUID]:
        """Event ids that list any of `artist_ids` as a participant."""
        if not artist_ids:
            return []
        stmt = (
            select(IdentityEventArtist.event_entity_id)
            .where(IdentityEventArtist.artist_entity_id.in_(list(artist_ids)))
            .distinct()
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    # ── Golden records ───────────────────────────────────────────────────────

    async def upsert_golden(
        self, entity_type: EntityType, entity_id: UUID, values: dict[str, Any]
    ) -> GoldenRecord:
        """Write every column of the golden row for `entity_id`."""
        model = GOLDEN_MODELS[entity_type]
        stmt = insert(model).values(entity_id=entity_id, **values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["entity_id"],
            set_={key: stmt.excluded[key] for key in values},
        )
        result = await self._session.scalars(
            stmt.returning(model), execution_options={"populate_existing": True}
        )
        return result.one()

    async def delete_golden(self, entity_type: EntityType, entity_ids: Sequence[UUID]) -> None:
        """Delete golden rows (and golden participants) of non-canonical ids."""
        if not entity_ids:
            return
        ids = list(entity_ids)
        if entity_type == EntityType.EVENT:
            await self._session.execute(
                delete(GoldenEventArtist).where(GoldenEventArtist.event_entity_id.in_(ids))
            )
        model = GOLDEN_MODELS[entity_type]
        await self._session.execute(delete(model).where(model.entity_id.in_(ids)))

    async def replace_golden_event_artists(self, event_id: UUID, artist_ids: Sequence[UUID]) -> None:
        await self._session.execute(
            delete(GoldenEventArtist).where(GoldenEventArtist.event_entity_id == event_id)
        )
        if artist_ids:
            await self._session.execute(
                insert(GoldenEventArtist).values(
                    [{"event_entity_id": event_id, "artist_entity_id": a} for a in artist_ids]
                )
            )

    # ── Extracted records ────────────────────────────────────────────────────

    async def get_extracted(
        self, entity_type: EntityType, record_id: UUID
    ) -> ExtractedArtist | ExtractedGallery | ExtractedEvent | None:
        return await self._session.get(EXTRACTED_MODELS[entity_type], record_id)

    async def upsert_extracted_link(
        self, entity_type: EntityType, a_id: UUID, b_id: UUID, score: float
    ) -> None:
        """Insert a pending link or refresh its score, keeping any curator decision."""
        model = EXTRACTED_LINK_MODELS[entity_type]
        stmt = insert(model).values(
            source_a_id=a_id,
            source_b_id=b_id,
            similarity_score=score,
            curator_decision=CuratorDecision.PENDING,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["source_a_id", "source_b_id"],
            set_={"similarity_score": stmt.excluded.similarity_score},
        )
        await self._session.execute(stmt)

    async def pending_extracted_counts(self) -> dict[EntityType, int]:
        counts: dict[EntityType, int] = {}
        for entity_type, model in EXTRACTED_LINK_MODELS.items():
            stmt = (
                select(func.count())
                .select_from(model)
                .where(model.curator_decision == CuratorDecision.PENDING)
            )
            counts[entity_type] = (await self._session.execute(stmt)).scalar_one()
        return counts
