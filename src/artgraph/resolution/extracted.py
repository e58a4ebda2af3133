"""Similarity links between extracted records.

The flat variant of similarity discovery: extracted records are compared
with each other directly and candidate duplicates are written to the
per-type `extracted_*_links` tables for curator review. No identity entities
are involved.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from artgraph.clients.embeddings import Embedder
from artgraph.config import settings
from artgraph.models.enums import EntityType
from artgraph.resolution.candidate_pool import CandidatePoolService
from artgraph.resolution.similarity import as_vector, composite_text, normalize_pair, threshold_map
from artgraph.resolution.store import IdentityStore

logger = logging.getLogger(__name__)


class ExtractedSimilarityService:
    """Links extracted records to their near duplicates for curator review.

    Usage:
        service = ExtractedSimilarityService(session, embedder)
        written = await service.compute(EntityType.GALLERY, record_id)
        counts = await service.pending_counts()
    """

    def __init__(
        self,
        session: AsyncSession,
        embedder: Embedder,
        *,
        thresholds: Mapping[str, float] | None = None,
        top_k: int | None = None,
        store: IdentityStore | None = None,
        pool: CandidatePoolService | None = None,
    ) -> None:
        self._embedder = embedder
        self._thresholds = threshold_map(thresholds)
        self._top_k = top_k or settings.extracted_top_k
        self._store = store or IdentityStore(session)
        self._pool = pool or CandidatePoolService(session)

    async def compute(
        self,
        entity_type: EntityType,
        entity_id: UUID,
        threshold: float | None = None,
    ) -> int:
        """Write pending links from one extracted record to its near duplicates.

        Args:
            entity_type: Type of the extracted record.
            entity_id: The extracted record id.
            threshold: Minimum similarity; defaults to the per-type threshold.

        Returns:
            Number of links written (new or refreshed).
        """
        record = await self._store.get_extracted(entity_type, entity_id)
        if record is None:
            logger.info("Extracted %s %s not found", entity_type.value, entity_id)
            return 0

        embedding = as_vector(record.embedding)
        if not embedding:
            embedding = await self._embedder.embed(composite_text(entity_type, record))
            if not embedding:
                logger.debug("Empty embedding for extracted %s %s", entity_type.value, entity_id)
                return 0
            record.embedding = embedding
            await self._store.flush()

        min_score = threshold if threshold is not None else self._thresholds[entity_type]
        neighbors = await self._pool.nearest_extracted(
            entity_type, embedding, self._top_k, min_score=min_score
        )

        written = 0
        for neighbor in neighbors:
            if neighbor.id == entity_id or neighbor.score < min_score:
                continue
            a_id, b_id = normalize_pair(entity_id, neighbor.id)
            await self._store.upsert_extracted_link(entity_type, a_id, b_id, neighbor.score)
            written += 1

        logger.info(
            "Wrote %d %s similarity link(s) for %s", written, entity_type.value, entity_id
        )
        return written

    async def pending_counts(self) -> dict[EntityType, int]:
        """Links awaiting curator review, per type."""
        return await self._store.pending_extracted_counts()
