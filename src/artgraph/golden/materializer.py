"""Golden record materialization.

A golden record is a pure function of the canonical entity's family and
their source records, so materializing is idempotent and may be repeated
whenever the family changes (indexing, merges) or on demand.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from artgraph.errors import EntityTypeMismatchError
from artgraph.golden.aggregation import aggregate
from artgraph.models.enums import EntityType
from artgraph.models.golden import GoldenRecord
from artgraph.resolution.canonical import family_of, resolve_canonical
from artgraph.resolution.store import IdentityStore

logger = logging.getLogger(__name__)


class GoldenMaterializer:
    """Recomputes golden records from source records.

    Usage:
        async with async_session_factory() as session, session.begin():
            golden = await GoldenMaterializer(session).materialize(EntityType.EVENT, entity_id)
    """

    def __init__(self, session: AsyncSession, *, store: IdentityStore | None = None) -> None:
        self._store = store or IdentityStore(session)

    async def materialize(self, entity_type: EntityType, entity_id: UUID) -> GoldenRecord | None:
        """Write the golden record for `entity_id`'s family.

        Args:
            entity_type: Expected type of the entity.
            entity_id: Any member of the family.

        Returns:
            The golden record, stored under the canonical id, or None if the
            entity does not exist.

        Raises:
            EntityTypeMismatchError: If the entity is not of `entity_type`.
        """
        canonical_id = await resolve_canonical(self._store, entity_id)
        if canonical_id is None:
            logger.info("Identity %s not found; nothing to materialize", entity_id)
            return None

        canonical = await self._store.get_entity(canonical_id)
        if canonical is None:
            logger.info("Identity %s disappeared before materializing", canonical_id)
            return None
        if canonical.entity_type != entity_type:
            raise EntityTypeMismatchError(
                canonical_id, entity_type.value, canonical.entity_type.value
            )

        family = await family_of(self._store, canonical_id)
        records = await self._store.sources_for_family(entity_type, family)

        now = datetime.now(UTC)
        values = aggregate(entity_type, records, fallback_name=canonical.display_name)
        values["updated_at"] = now
        golden = await self._store.upsert_golden(entity_type, canonical_id, values)

        stale = [member for member in family if member != canonical_id]
        await self._store.delete_golden(entity_type, stale)

        if entity_type == EntityType.EVENT:
            await self._refresh_participants(canonical_id, family)

        canonical.last_materialized_at = now
        await self._store.flush()

        logger.info(
            "Materialized %s %s from %d source record(s) across %d identities",
            entity_type.value, canonical_id, len(records), len(family)
        )
        return golden

    async def _refresh_participants(self, event_id: UUID, family: list[UUID]) -> None:
        artist_ids: set[UUID] = set()
        for raw_id in await self._store.event_artist_ids(family):
            artist_id = await resolve_canonical(self._store, raw_id)
            if artist_id is not None:
                artist_ids.add(artist_id)
        await self._store.replace_golden_event_artists(event_id, sorted(artist_ids, key=str))
