"""Identity indexing: assign a source record to an identity entity.

Indexing is idempotent. The first run creates the identity entity and sets
the record's pointer; every run (re)discovers `similar` candidates among the
nearest canonical entities of the same type. Candidates are only noted for
review, never merged.

For events, participant names are resolved to artist identities as well.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from artgraph.clients.embeddings import Embedder
from artgraph.config import settings
from artgraph.messages import MaterializeRequest
from artgraph.models.enums import EntityType
from artgraph.resolution.candidate_pool import CandidatePoolService
from artgraph.resolution.canonical import resolve_canonical
from artgraph.resolution.participants import ParticipantResolver
from artgraph.resolution.similarity import (
    as_vector,
    composite_text,
    display_name,
    normalize_pair,
    threshold_map,
)
from artgraph.resolution.store import IdentityStore

logger = logging.getLogger(__name__)


class IdentityIndexer:
    """Indexes source records into identity space.

    Usage:
        async with async_session_factory() as session, session.begin():
            indexer = IdentityIndexer(session, EmbeddingClient())
            requests = await indexer.index_source(EntityType.ARTIST, source_id)
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
        participants: ParticipantResolver | None = None,
    ) -> None:
        self._embedder = embedder
        self._thresholds = threshold_map(thresholds)
        self._top_k = top_k or settings.identity_top_k
        self._store = store or IdentityStore(session)
        self._pool = pool or CandidatePoolService(session)
        self._participants = participants or ParticipantResolver(
            session,
            embedder,
            threshold=settings.participant_match_threshold or self._thresholds[EntityType.ARTIST],
            store=self._store,
            pool=self._pool,
        )

    async def index_source(
        self, entity_type: EntityType, source_id: UUID
    ) -> list[MaterializeRequest]:
        """Index one source record.

        Returns:
            Materialize requests for the record's entity and for any artist
            created while resolving event participants. Empty if the record
            does not exist.
        """
        record = await self._store.get_source(entity_type, source_id)
        if record is None:
            logger.info("Source %s %s not found; nothing to index", entity_type.value, source_id)
            return []

        if record.identity_entity_id is None:
            embedding = await self._embedder.embed(composite_text(entity_type, record))
            if not embedding:
                logger.debug("Empty embedding for %s %s", entity_type.value, source_id)
            entity = await self._store.create_entity(
                entity_type, display_name(entity_type, record), embedding
            )
            await self._store.assign_source(record, entity.id)
            logger.info(
                "Indexed %s %s as new identity %s", entity_type.value, source_id, entity.id
            )
        else:
            entity = await self._store.get_entity(record.identity_entity_id)
            if entity is None:
                logger.warning(
                    "Source %s points at missing identity %s",
                    source_id, record.identity_entity_id
                )
                return []
            embedding = as_vector(entity.embedding)
            if not embedding:
                embedding = await self._embedder.embed(composite_text(entity_type, record))
                if embedding:
                    entity.embedding = embedding
                    await self._store.flush()
                    logger.info("Backfilled embedding for identity %s", entity.id)

        if embedding:
            await self._link_similar(entity_type, entity.id, embedding)

        requests = [MaterializeRequest(entity_type=entity_type, entity_id=entity.id)]

        if entity_type == EntityType.EVENT:
            requests.extend(await self._link_participants(entity.id, record.participants or []))

        return requests

    async def _link_similar(
        self, entity_type: EntityType, entity_id: UUID, embedding: list[float]
    ) -> int:
        threshold = self._thresholds[entity_type]
        own_family = {entity_id}
        canonical_id = await resolve_canonical(self._store, entity_id)
        if canonical_id is not None:
            own_family.add(canonical_id)

        neighbors = await self._pool.nearest_entities(entity_type, embedding, self._top_k)
        written = 0
        for neighbor in neighbors:
            if neighbor.id in own_family or neighbor.score < threshold:
                continue
            a_id, b_id = normalize_pair(entity_id, neighbor.id)
            if await self._already_decided(entity_type, own_family, neighbor.id):
                logger.debug("Pair %s/%s already decided; not re-proposing", a_id, b_id)
                continue
            await self._store.upsert_similar_link(entity_type, a_id, b_id, neighbor.score)
            written += 1

        if written:
            logger.info(
                "Noted %d similar %s candidate(s) for %s", written, entity_type.value, entity_id
            )
        return written

    async def _already_decided(
        self, entity_type: EntityType, own_family: set[UUID], neighbor_id: UUID
    ) -> bool:
        """True if the neighbor was merged or dismissed against the entity or its canonical."""
        for member_id in sorted(own_family, key=str):
            a_id, b_id = normalize_pair(member_id, neighbor_id)
            if await self._store.has_decisive_link(entity_type, a_id, b_id):
                return True
        return False

    async def _link_participants(
        self, event_id: UUID, names: list[str]
    ) -> list[MaterializeRequest]:
        requests: list[MaterializeRequest] = []
        linked: set[UUID] = set()
        for name in names:
            resolved = await self._participants.resolve(name)
            if resolved is None:
                continue
            artist_id, created = resolved
            if artist_id in linked:
                continue
            linked.add(artist_id)
            await self._store.add_event_artist(event_id, artist_id)
            if created:
                requests.append(MaterializeRequest(entity_type=EntityType.ARTIST, entity_id=artist_id))
        return requests
