"""Event participant name → artist identity.

A participant mention is only a name, so it is matched against artist
identities by embedding the bare name. A close enough match reuses the
existing artist; anything else becomes a new artist identity. Matches near
the threshold are logged for curator attention but never merged here.
"""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from artgraph.clients.embeddings import Embedder
from artgraph.config import settings
from artgraph.models.enums import EntityType
from artgraph.resolution.candidate_pool import CandidatePoolService
from artgraph.resolution.store import IdentityStore

logger = logging.getLogger(__name__)


class ParticipantResolver:
    """Resolves event participant names to artist identities.

    Usage:
        resolver = ParticipantResolver(session, embedder)
        resolved = await resolver.resolve("Yayoi Kusama")
        if resolved is not None:
            artist_id, created = resolved
    """

    def __init__(
        self,
        session: AsyncSession,
        embedder: Embedder,
        *,
        threshold: float | None = None,
        top_k: int | None = None,
        review_margin: float | None = None,
        store: IdentityStore | None = None,
        pool: CandidatePoolService | None = None,
    ) -> None:
        self._embedder = embedder
        self._store = store or IdentityStore(session)
        self._pool = pool or CandidatePoolService(session)
        self._threshold = (
            threshold
            if threshold is not None
            else settings.participant_match_threshold or settings.similarity_threshold_artist
        )
        self._top_k = top_k or settings.participant_top_k
        self._review_margin = (
            review_margin if review_margin is not None else settings.participant_review_margin
        )

    async def resolve(self, name: str) -> tuple[UUID, bool] | None:
        """Map a participant name to an artist identity.

        Returns:
            `(artist_id, created)`, or None when the name is blank or cannot
            be embedded.
        """
        name = name.strip()
        if not name:
            return None

        embedding = await self._embedder.embed(name)
        if not embedding:
            logger.debug("Skipping participant %r: empty embedding", name)
            return None

        neighbors = await self._pool.nearest_entities(EntityType.ARTIST, embedding, self._top_k)
        best = max(neighbors, key=lambda n: n.score, default=None)

        if best is not None and abs(best.score - self._threshold) <= self._review_margin:
            logger.warning(
                "Participant %r is a near-threshold match for artist %s (score %.4f, threshold %.2f)",
                name, best.id, best.score, self._threshold
            )

        if best is not None and best.score >= self._threshold:
            return best.id, False

        artist = await self._store.create_entity(EntityType.ARTIST, name, embedding)
        logger.info("Created artist %s for participant %r", artist.id, name)
        return artist.id, True
