"""Shared pytest fixtures for artgraph tests.

The pipeline stages only touch the database through `IdentityStore` and
`CandidatePoolService`, so these tests run them against in-memory stub
subclasses instead of PostgreSQL.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

import numpy as np
import pytest

from artgraph.models import (
    ExtractedArtist,
    ExtractedEvent,
    ExtractedGallery,
    GoldenArtist,
    GoldenEvent,
    GoldenGallery,
    IdentityEntity,
    IdentityLink,
    SourceArtist,
    SourceEvent,
    SourceGallery,
)
from artgraph.models.enums import (
    DECISIVE_RELATIONS,
    CuratorDecision,
    EntityType,
    LinkRelation,
)
from artgraph.resolution.candidate_pool import CandidatePoolService, Neighbor
from artgraph.resolution.similarity import as_vector, score_from_distance
from artgraph.resolution.store import IdentityStore

GOLDEN = {
    EntityType.ARTIST: GoldenArtist,
    EntityType.GALLERY: GoldenGallery,
    EntityType.EVENT: GoldenEvent,
}


class InMemoryIdentityStore(IdentityStore):
    """An IdentityStore backed by dicts."""

    def __init__(self) -> None:
        # Don't call super().__init__() - we don't need a real session
        self.entities: dict[UUID, IdentityEntity] = {}
        self.sources: dict[tuple[EntityType, UUID], Any] = {}
        self.links: dict[tuple[EntityType, UUID, UUID, LinkRelation], IdentityLink] = {}
        self.event_artists: set[tuple[UUID, UUID]] = set()
        self.golden: dict[tuple[EntityType, UUID], Any] = {}
        self.golden_event_artists: dict[UUID, list[UUID]] = {}
        self.extracted: dict[tuple[EntityType, UUID], Any] = {}
        self.extracted_links: dict[tuple[EntityType, UUID, UUID], dict[str, Any]] = {}
        self.flushes = 0
        self.locked: list[UUID] = []

    # ── helpers for arranging tests ──────────────────────────────────────────

    def add_entity(
        self,
        entity_type: EntityType,
        name: str = "",
        embedding: list[float] | None = None,
        *,
        canonical_entity_id: UUID | None = None,
        entity_id: UUID | None = None,
    ) -> IdentityEntity:
        entity = IdentityEntity(
            id=entity_id or uuid4(),
            entity_type=entity_type,
            display_name=name,
            embedding=embedding,
            canonical_entity_id=canonical_entity_id,
        )
        self.entities[entity.id] = entity
        return entity

    def add_source(self, entity_type: EntityType, **fields: Any) -> Any:
        model = {
            EntityType.ARTIST: SourceArtist,
            EntityType.GALLERY: SourceGallery,
            EntityType.EVENT: SourceEvent,
        }[entity_type]
        fields.setdefault("id", uuid4())
        fields.setdefault("page_url", "https://example.org/page")
        record = model(**fields)
        self.sources[(entity_type, record.id)] = record
        return record

    def add_extracted(self, entity_type: EntityType, **fields: Any) -> Any:
        model = {
            EntityType.ARTIST: ExtractedArtist,
            EntityType.GALLERY: ExtractedGallery,
            EntityType.EVENT: ExtractedEvent,
        }[entity_type]
        fields.setdefault("id", uuid4())
        fields.setdefault("page_url", "https://example.org/page")
        record = model(**fields)
        self.extracted[(entity_type, record.id)] = record
        return record

    def links_of(self, relation: LinkRelation) -> list[IdentityLink]:
        return [link for key, link in self.links.items() if key[3] == relation]

    def golden_participants(self, event_id: UUID) -> list[UUID]:
        return sorted(self.golden_event_artists.get(event_id, []), key=str)

    # ── IdentityStore ────────────────────────────────────────────────────────

    async def flush(self) -> None:
        self.flushes += 1

    async def get_source(self, entity_type: EntityType, source_id: UUID) -> Any:
        return self.sources.get((entity_type, source_id))

    async def assign_source(self, record: Any, entity_id: UUID) -> None:
        record.identity_entity_id = entity_id

    async def sources_for_family(
        self, entity_type: EntityType, entity_ids: Sequence[UUID]
    ) -> list[Any]:
        family = set(entity_ids)
        records = [
            record
            for (et, _), record in self.sources.items()
            if et == entity_type and record.identity_entity_id in family
        ]
        return sorted(records, key=lambda r: r.id)

    async def get_entity(
        self, entity_id: UUID, *, for_update: bool = False
    ) -> IdentityEntity | None:
        if for_update:
            self.locked.append(entity_id)
        return self.entities.get(entity_id)

    async def create_entity(
        self,
        entity_type: EntityType,
        display_name: str,
        embedding: list[float] | None,
    ) -> IdentityEntity:
        return self.add_entity(entity_type, display_name, embedding or None)

    async def children_of(self, entity_id: UUID) -> list[UUID]:
        return [e.id for e in self.entities.values() if e.canonical_entity_id == entity_id]

    async def unmaterialized_entities(
        self, entity_type: EntityType | None, limit: int
    ) -> list[IdentityEntity]:
        return [
            e
            for e in self.entities.values()
            if e.canonical_entity_id is None
            and e.last_materialized_at is None
            and (entity_type is None or e.entity_type == entity_type)
        ][:limit]

    async def get_link(self, link_id: UUID) -> IdentityLink | None:
        return next((link for link in self.links.values() if link.id == link_id), None)

    async def has_decisive_link(self, entity_type: EntityType, a_id: UUID, b_id: UUID) -> bool:
        return any((entity_type, a_id, b_id, r) in self.links for r in DECISIVE_RELATIONS)

    async def upsert_similar_link(
        self, entity_type: EntityType, a_id: UUID, b_id: UUID, score: float
    ) -> None:
        assert str(a_id) < str(b_id)
        key = (entity_type, a_id, b_id, LinkRelation.SIMILAR)
        if key in self.links:
            self.links[key].score = score
            return
        self.links[key] = IdentityLink(
            id=uuid4(),
            entity_type=entity_type,
            a_id=a_id,
            b_id=b_id,
            relation=LinkRelation.SIMILAR,
            score=score,
            curator_decision=CuratorDecision.PENDING,
            created_by="system",
        )

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
        assert str(a_id) < str(b_id)
        decision = (
            CuratorDecision.MERGED if relation == LinkRelation.MERGE else CuratorDecision.DISMISSED
        )
        self.links[(entity_type, a_id, b_id, relation)] = IdentityLink(
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
        similar = self.links.get((entity_type, a_id, b_id, LinkRelation.SIMILAR))
        if similar is not None:
            similar.curator_decision = decision
            similar.decided_by = decided_by
            similar.decided_at = decided_at
            similar.notes = notes

    async def pending_links(
        self,
        entity_type: EntityType | None,
        *,
        min_score: float,
        max_score: float | None = None,
        limit: int,
    ) -> list[tuple[IdentityLink, str, str]]:
        rows = [
            link
            for link in self.links_of(LinkRelation.SIMILAR)
            if link.curator_decision == CuratorDecision.PENDING
            and link.score is not None
            and link.score >= min_score
            and (max_score is None or link.score <= max_score)
            and (entity_type is None or link.entity_type == entity_type)
        ]
        rows.sort(key=lambda link: (-(link.score or 0.0), str(link.id)))
        return [
            (link, self.entities[link.a_id].display_name, self.entities[link.b_id].display_name)
            for link in rows[:limit]
        ]

    async def pending_link_counts(self) -> dict[EntityType, int]:
        counts: dict[EntityType, int] = {}
        for link in self.links_of(LinkRelation.SIMILAR):
            if link.curator_decision == CuratorDecision.PENDING:
                counts[link.entity_type] = counts.get(link.entity_type, 0) + 1
        return counts

    async def add_event_artist(self, event_id: UUID, artist_id: UUID) -> None:
        self.event_artists.add((event_id, artist_id))

    async def event_artist_ids(self, event_ids: Sequence[UUID]) -> list[UUID]:
        wanted = set(event_ids)
        return [artist for event, artist in self.event_artists if event in wanted]

    async def events_with_artists(self, artist_ids: Sequence[UUID]) -> list[UUID]:
        wanted = set(artist_ids)
        return sorted({event for event, artist in self.event_artists if artist in wanted}, key=str)

    async def upsert_golden(
        self, entity_type: EntityType, entity_id: UUID, values: dict[str, Any]
    ) -> Any:
        golden = GOLDEN[entity_type](entity_id=entity_id, **values)
        self.golden[(entity_type, entity_id)] = golden
        return golden

    async def delete_golden(self, entity_type: EntityType, entity_ids: Sequence[UUID]) -> None:
        for entity_id in entity_ids:
            self.golden.pop((entity_type, entity_id), None)
            if entity_type == EntityType.EVENT:
                self.golden_event_artists.pop(entity_id, None)

    async def replace_golden_event_artists(
        self, event_id: UUID, artist_ids: Sequence[UUID]
    ) -> None:
        self.golden_event_artists[event_id] = list(artist_ids)

    async def get_extracted(self, entity_type: EntityType, record_id: UUID) -> Any:
        return self.extracted.get((entity_type, record_id))

    async def upsert_extracted_link(
        self, entity_type: EntityType, a_id: UUID, b_id: UUID, score: float
    ) -> None:
        assert str(a_id) < str(b_id)
        key = (entity_type, a_id, b_id)
        if key in self.extracted_links:
            self.extracted_links[key]["similarity_score"] = score
            return
        self.extracted_links[key] = {
            "similarity_score": score,
            "curator_decision": CuratorDecision.PENDING,
        }

    async def pending_extracted_counts(self) -> dict[EntityType, int]:
        counts = {entity_type: 0 for entity_type in EntityType}
        for (entity_type, _, _), link in self.extracted_links.items():
            if link["curator_decision"] == CuratorDecision.PENDING:
                counts[entity_type] += 1
        return counts


class InMemoryCandidatePool(CandidatePoolService):
    """Brute-force cosine search over an InMemoryIdentityStore.

    `fixed_scores` pins the score reported for specific ids, for boundary tests.
    """

    def __init__(
        self,
        store: InMemoryIdentityStore,
        fixed_scores: dict[UUID, float] | None = None,
    ) -> None:
        # Don't call super().__init__() - we don't need a real session
        self._store = store
        self._fixed_scores = fixed_scores or {}
        self.queries: list[tuple[EntityType, int]] = []

    def _score(self, entity_id: UUID, embedding: list[float], other: Any) -> float:
        if entity_id in self._fixed_scores:
            return self._fixed_scores[entity_id]
        return cosine_similarity(embedding, as_vector(other))

    async def nearest_entities(
        self,
        entity_type: EntityType,
        embedding: list[float],
        k: int,
    ) -> list[Neighbor]:
        self.queries.append((entity_type, k))
        neighbors = [
            Neighbor(id=e.id, score=self._score(e.id, embedding, e.embedding))
            for e in self._store.entities.values()
            if e.entity_type == entity_type
            and e.canonical_entity_id is None
            and e.embedding is not None
        ]
        neighbors.sort(key=lambda n: -n.score)
        return neighbors[:k]

    async def nearest_extracted(
        self,
        entity_type: EntityType,
        embedding: list[float],
        k: int,
        *,
        min_score: float,
    ) -> list[Neighbor]:
        self.queries.append((entity_type, k))
        neighbors = [
            Neighbor(id=r.id, score=self._score(r.id, embedding, r.embedding))
            for (et, _), r in self._store.extracted.items()
            if et == entity_type and r.embedding is not None and r.cluster_id is None
        ]
        neighbors = [n for n in neighbors if n.score >= min_score]
        neighbors.sort(key=lambda n: -n.score)
        return neighbors[:k]


class FakeEmbedder:
    """Maps text to vectors by the text's first line.

    Unknown text embeds to `default` (empty by default, like a blank input).
    """

    def __init__(
        self,
        vectors: dict[str, list[float]] | None = None,
        default: list[float] | None = None,
    ) -> None:
        self.vectors = vectors or {}
        self.default = default or []
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if text in self.vectors:
            return list(self.vectors[text])
        first_line = text.split("\n", 1)[0]
        return list(self.vectors.get(first_line, self.default))


def unit(angle_degrees: float) -> list[float]:
    """2-d unit vector; cosine between unit(a) and unit(b) is cos(a - b)."""
    radians = math.radians(angle_degrees)
    return [math.cos(radians), math.sin(radians)]


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Cosine similarity clamped to [0, 1], the way pgvector scores are reported."""
    if len(a) != len(b) or not a:
        return 0.0

    a_np = np.array(a)
    b_np = np.array(b)

    norm_a = np.linalg.norm(a_np)
    norm_b = np.linalg.norm(b_np)

    if norm_a == 0 or norm_b == 0:
        return 0.0

    return score_from_distance(1.0 - float(np.dot(a_np, b_np) / (norm_a * norm_b)))


@pytest.fixture
def store() -> InMemoryIdentityStore:
    return InMemoryIdentityStore()


@pytest.fixture
def pool(store: InMemoryIdentityStore) -> InMemoryCandidatePool:
    return InMemoryCandidatePool(store)


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()
