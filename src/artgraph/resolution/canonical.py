"""Union-find over identity entities.

Each identity entity carries a parent pointer (`canonical_entity_id`); a null
pointer marks the canonical entity (root) of its family. Merges compress on
write, re-pointing the loser's whole family at the winner's root, so chains
stay one hop deep. Reads compress any longer chain they walk.

Merging is only ever an explicit decision (curator or an opted-in policy);
similarity discovery never calls `MergeResolver.merge`.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from artgraph.errors import InvalidMergeError, ResolutionCycleError
from artgraph.messages import MaterializeRequest
from artgraph.models.enums import EntityType, LinkRelation
from artgraph.models.identity_entity import IdentityEntity
from artgraph.resolution.similarity import normalize_pair
from artgraph.resolution.store import IdentityStore

logger = logging.getLogger(__name__)


async def resolve_canonical(
    store: IdentityStore,
    entity_id: UUID,
    *,
    compress_path: bool = True,
) -> UUID | None:
    """Follow parent pointers from `entity_id` to its canonical id.

    Args:
        store: Storage to read (and compress) pointers through.
        entity_id: Any member of a family.
        compress_path: Re-point every entity walked directly at the root.

    Returns:
        The canonical id, or None if `entity_id` does not exist.

    Raises:
        ResolutionCycleError: If the chain revisits an entity.
    """
    visited: list[IdentityEntity] = []
    seen: set[UUID] = set()
    current_id = entity_id

    while True:
        if current_id in seen:
            raise ResolutionCycleError(entity_id, [e.id for e in visited] + [current_id])
        seen.add(current_id)

        entity = await store.get_entity(current_id)
        if entity is None:
            if visited:
                logger.warning(
                    "Canonical chain of %s points at missing entity %s", entity_id, current_id
                )
            return None

        visited.append(entity)
        if entity.canonical_entity_id is None:
            break
        current_id = entity.canonical_entity_id

    canonical = visited[-1]

    if compress_path and len(visited) > 2:
        for entity in visited[:-1]:
            if entity.canonical_entity_id != canonical.id:
                entity.canonical_entity_id = canonical.id
        await store.flush()

    return canonical.id


async def family_of(store: IdentityStore, canonical_id: UUID) -> list[UUID]:
    """All entity ids whose canonical is `canonical_id`, the root first.

    Walks children breadth-first, so families written before compression
    (multi-hop chains) are still complete.
    """
    family: list[UUID] = [canonical_id]
    seen: set[UUID] = {canonical_id}
    queue: deque[UUID] = deque([canonical_id])

    while queue:
        parent = queue.popleft()
        for child in await store.children_of(parent):
            if child in seen:
                continue
            seen.add(child)
            family.append(child)
            queue.append(child)

    return family


@dataclass
class MergeResult:
    """Outcome of a merge decision."""

    merged: bool
    """False when both ids already shared a canonical (no-op)."""

    canonical_id: UUID
    """The winner's canonical id after the merge."""

    absorbed_ids: list[UUID] = field(default_factory=list)
    """Entities re-pointed at `canonical_id` by this merge."""

    requests: list[MaterializeRequest] = field(default_factory=list)
    """Golden records to recompute; the caller enqueues them."""


class MergeResolver:
    """Applies merge decisions to the identity graph.

    Usage:
        resolver = MergeResolver(session)
        result = await resolver.merge(EntityType.ARTIST, winner_id, loser_id)
        for request in result.requests:
            await queue.enqueue(request)
    """

    def __init__(self, session: AsyncSession, *, store: IdentityStore | None = None) -> None:
        self._store = store or IdentityStore(session)

    async def merge(
        self,
        entity_type: EntityType,
        winner_id: UUID,
        loser_id: UUID,
        *,
        decided_by: str = "curator",
        notes: str | None = None,
    ) -> MergeResult:
        """Fold the loser's family into the winner's.

        Runs inside the caller's transaction; both canonical rows are locked
        for the duration.

        Raises:
            InvalidMergeError: On a self-merge, an unknown id or a type mismatch.
        """
        if winner_id == loser_id:
            raise InvalidMergeError(f"Cannot merge entity {winner_id} into itself")

        for entity_id in (winner_id, loser_id):
            entity = await self._store.get_entity(entity_id)
            if entity is None:
                raise InvalidMergeError(f"Entity {entity_id} not found")
            if entity.entity_type != entity_type:
                raise InvalidMergeError(
                    f"Entity {entity_id} is a {entity.entity_type.value}, not a {entity_type.value}"
                )

        # Root rows are always locked in canonical id order
        unlocked = {
            entity_id: await resolve_canonical(self._store, entity_id)
            for entity_id in (winner_id, loser_id)
        }
        roots: dict[UUID, IdentityEntity] = {}
        for entity_id in sorted(unlocked, key=lambda e: (str(unlocked[e]), str(e))):
            roots[entity_id] = await self._lock_canonical(entity_id)
        winner_root, loser_root = roots[winner_id], roots[loser_id]

        now = datetime.now(UTC)
        a_id, b_id = normalize_pair(winner_id, loser_id)

        if winner_root.id == loser_root.id:
            # Already joined transitively; the decision still settles the pair
            await self._store.record_decision(
                entity_type,
                a_id,
                b_id,
                LinkRelation.MERGE,
                decided_by=decided_by,
                decided_at=now,
                notes=notes,
            )
            logger.info(
                "Merge %s <- %s is a no-op: already share canonical %s",
                winner_id, loser_id, winner_root.id
            )
            return MergeResult(merged=False, canonical_id=winner_root.id)

        absorbed = await family_of(self._store, loser_root.id)
        for member_id in absorbed:
            member = await self._store.get_entity(member_id)
            if member is None:
                continue
            member.canonical_entity_id = winner_root.id
        loser_root.merged_at = now
        await self._store.flush()

        await self._store.record_decision(
            entity_type,
            a_id,
            b_id,
            LinkRelation.MERGE,
            decided_by=decided_by,
            decided_at=now,
            notes=notes,
        )

        logger.info(
            "Merged %s %s into %s (%d entities re-pointed)",
            entity_type.value, loser_root.id, winner_root.id, len(absorbed)
        )

        requests = [MaterializeRequest(entity_type=entity_type, entity_id=winner_root.id)]
        if entity_type == EntityType.ARTIST:
            # Events listing an absorbed artist now have a different participant set.
            event_roots: set[UUID] = set()
            for event_id in await self._store.events_with_artists(absorbed):
                root = await resolve_canonical(self._store, event_id)
                if root is not None:
                    event_roots.add(root)
            requests.extend(
                MaterializeRequest(entity_type=EntityType.EVENT, entity_id=root)
                for root in sorted(event_roots, key=str)
            )

        return MergeResult(
            merged=True,
            canonical_id=winner_root.id,
            absorbed_ids=absorbed,
            requests=requests,
        )

    async def _lock_canonical(self, entity_id: UUID) -> IdentityEntity:
        while True:
            canonical_id = await resolve_canonical(self._store, entity_id)
            if canonical_id is None:
                raise InvalidMergeError(f"Entity {entity_id} not found")
            root = await self._store.get_entity(canonical_id, for_update=True)
            if root is None:
                raise InvalidMergeError(f"Entity {canonical_id} not found")
            # A concurrent merge may have re-pointed the root before the lock was taken
            if root.canonical_entity_id is None:
                return root
