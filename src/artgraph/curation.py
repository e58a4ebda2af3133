"""Curator decision queue.

`similar` links written by the indexer wait here for a human decision:

- accept: merge the pair (through `MergeResolver`).
- dismiss: record that the pair is distinct, so indexing never re-proposes it.

`auto_merge` is an explicit, opt-in policy for high-confidence pairs that an
operator runs on purpose; nothing in the indexing path calls it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from artgraph.config import settings
from artgraph.errors import InvalidMergeError
from artgraph.messages import MaterializeRequest
from artgraph.models.enums import CuratorDecision, EntityType, LinkRelation
from artgraph.models.identity_link import IdentityLink
from artgraph.resolution.canonical import MergeResolver, MergeResult
from artgraph.resolution.store import IdentityStore

logger = logging.getLogger(__name__)


@dataclass
class ReviewItem:
    """A pending candidate pair as shown to a curator."""

    link_id: UUID
    entity_type: EntityType
    a_id: UUID
    b_id: UUID
    score: float | None
    a_name: str
    b_name: str


@dataclass
class AutoMergeReport:
    considered: int = 0
    merged: int = 0
    requests: list[MaterializeRequest] = field(default_factory=list)


class CuratorService:
    """Review listing and decisions over `identity_links`.

    Usage:
        curator = CuratorService(session)
        for item in await curator.list_pending(EntityType.ARTIST):
            ...
        result = await curator.accept(link_id, winner_id, loser_id, decided_by="ana")
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        store: IdentityStore | None = None,
        resolver: MergeResolver | None = None,
    ) -> None:
        self._store = store or IdentityStore(session)
        self._resolver = resolver or MergeResolver(session, store=self._store)

    async def list_pending(
        self,
        entity_type: EntityType | None = None,
        *,
        min_score: float | None = None,
        max_score: float | None = None,
        limit: int = 50,
    ) -> list[ReviewItem]:
        """Pending pairs inside the review window, highest score first."""
        rows = await self._store.pending_links(
            entity_type,
            min_score=settings.review_min_score if min_score is None else min_score,
            max_score=settings.review_max_score if max_score is None else max_score,
            limit=limit,
        )
        return [
            ReviewItem(
                link_id=link.id,
                entity_type=link.entity_type,
                a_id=link.a_id,
                b_id=link.b_id,
                score=link.score,
                a_name=a_name,
                b_name=b_name,
            )
            for link, a_name, b_name in rows
        ]

    async def accept(
        self,
        link_id: UUID,
        winner_id: UUID,
        loser_id: UUID,
        *,
        decided_by: str = "curator",
        notes: str | None = None,
    ) -> MergeResult:
        """Merge the pair of a `similar` link.

        Raises:
            InvalidMergeError: If the link is unknown or the ids are not its pair.
        """
        link = await self._similar_link(link_id)
        if {winner_id, loser_id} != {link.a_id, link.b_id}:
            raise InvalidMergeError(
                f"Entities {winner_id}/{loser_id} are not the pair of link {link_id}"
            )
        return await self._resolver.merge(
            link.entity_type, winner_id, loser_id, decided_by=decided_by, notes=notes
        )

    async def dismiss(
        self,
        link_id: UUID,
        *,
        decided_by: str = "curator",
        notes: str | None = None,
    ) -> None:
        """Record that a pair is not a duplicate."""
        link = await self._similar_link(link_id)
        await self._store.record_decision(
            link.entity_type,
            link.a_id,
            link.b_id,
            LinkRelation.DISMISSED,
            decided_by=decided_by,
            decided_at=datetime.now(UTC),
            notes=notes,
        )
        logger.info("Dismissed %s pair %s/%s", link.entity_type.value, link.a_id, link.b_id)

    async def pending_counts(self) -> dict[EntityType, int]:
        """Pending `similar` links per type (zero for types with none)."""
        counts = await self._store.pending_link_counts()
        return {entity_type: counts.get(entity_type, 0) for entity_type in EntityType}

    async def auto_merge(
        self,
        entity_type: EntityType,
        threshold: float | None = None,
        *,
        limit: int = 500,
    ) -> AutoMergeReport:
        """Merge pending pairs scoring at least `threshold`, best first.

        The winner of each pair is its `a_id`. Requires an explicit threshold,
        either passed in or configured as `auto_merge_threshold`.

        Raises:
            ValueError: If no threshold is given or configured.
        """
        threshold = threshold if threshold is not None else settings.auto_merge_threshold
        if threshold is None:
            raise ValueError("auto-merge needs an explicit threshold")

        report = AutoMergeReport()
        rows = await self._store.pending_links(entity_type, min_score=threshold, limit=limit)
        for link, _, _ in rows:
            report.considered += 1
            result = await self._resolver.merge(
                entity_type,
                link.a_id,
                link.b_id,
                decided_by="auto",
                notes=f"auto-merge at score {link.score:.4f} >= {threshold}",
            )
            if result.merged:
                report.merged += 1
                report.requests.extend(result.requests)

        logger.info(
            "Auto-merge %s: %d of %d pending pair(s) merged at threshold %.2f",
            entity_type.value, report.merged, report.considered, threshold
        )
        return report

    async def list_stale(
        self, entity_type: EntityType | None = None, *, limit: int = 100
    ) -> list[MaterializeRequest]:
        """Canonical entities that have never been materialized."""
        entities = await self._store.unmaterialized_entities(entity_type, limit)
        return [MaterializeRequest(entity_type=e.entity_type, entity_id=e.id) for e in entities]

    async def _similar_link(self, link_id: UUID) -> IdentityLink:
        link = await self._store.get_link(link_id)
        if link is None or link.relation != LinkRelation.SIMILAR:
            raise InvalidMergeError(f"Similarity link {link_id} not found")
        if link.curator_decision != CuratorDecision.PENDING:
            logger.info("Link %s was already decided (%s)", link_id, link.curator_decision.value)
        return link
