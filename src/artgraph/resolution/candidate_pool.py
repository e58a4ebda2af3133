"""Nearest-neighbor candidates via pgvector cosine distance.

Identity-space queries only ever see canonical entities that have an
embedding: a merged-away entity is represented by its canonical, and an
entity without an embedding cannot be compared.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from artgraph.config import settings
from artgraph.models.enums import EntityType
from artgraph.models.identity_entity import IdentityEntity
from artgraph.resolution.similarity import score_from_distance
from artgraph.resolution.store import EXTRACTED_MODELS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Neighbor:
    """A candidate returned by a similarity search."""

    id: UUID
    score: float
    """Cosine similarity in [0, 1] (higher = more similar)."""


class CandidatePoolService:
    """k-NN search over identity entities and extracted records.

    Usage:
        async with async_session_factory() as session:
            pool = CandidatePoolService(session)
            neighbors = await pool.nearest_entities(EntityType.ARTIST, vector, k=5)
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    def _check_dimension(self, embedding: list[float]) -> None:
        dim = settings.dim_text_embedding
        if len(embedding) != dim:
            msg = f"Embedding dimension mismatch: got {len(embedding)}, expected {dim}"
            raise ValueError(msg)

    async def nearest_entities(
        self,
        entity_type: EntityType,
        embedding: list[float],
        k: int,
    ) -> list[Neighbor]:
        """Up to `k` nearest canonical entities of `entity_type`, best first."""
        self._check_dimension(embedding)

        distance = IdentityEntity.embedding.cosine_distance(embedding).label("distance")
        stmt = (
            select(IdentityEntity.id, distance)
            .where(
                IdentityEntity.entity_type == entity_type,
                IdentityEntity.embedding.isnot(None),
                IdentityEntity.canonical_entity_id.is_(None),
            )
            .order_by(distance)
            .limit(k)
        )
        result = await self._session.execute(stmt)
        return [Neighbor(id=row.id, score=score_from_distance(row.distance)) for row in result.all()]

    async def nearest_extracted(
        self,
        entity_type: EntityType,
        embedding: list[float],
        k: int,
        *,
        min_score: float,
    ) -> list[Neighbor]:
        """Up to `k` nearest unclustered extracted records scoring at least `min_score`."""
        self._check_dimension(embedding)

        model = EXTRACTED_MODELS[entity_type]
        distance = model.embedding.cosine_distance(embedding).label("distance")
        stmt = (
            select(model.id, distance)
            .where(
                model.embedding.isnot(None),
                model.cluster_id.is_(None),
                distance <= 1.0 - min_score,
            )
            .order_by(distance)
            .limit(k)
        )
        result = await self._session.execute(stmt)
        return [Neighbor(id=row.id, score=score_from_distance(row.distance)) for row in result.all()]
