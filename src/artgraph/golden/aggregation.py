"""Field aggregation rules for golden records.

All rules work on trimmed exact strings; blank values are ignored. Every
rule is deterministic regardless of input order:

- `most_frequent`: highest count, ties → longer value, then the
  lexicographically smaller one.
- `longest`: longest value, ties → lexicographically smaller.
- `union`: distinct values, sorted.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any

from artgraph.models.enums import EntityType


def _clean(values: Iterable[str | None]) -> list[str]:
    return [v.strip() for v in values if v is not None and v.strip()]


def most_frequent(values: Iterable[str | None]) -> str | None:
    counts = Counter(_clean(values))
    if not counts:
        return None
    # min over (-count, -len, value) == max count, then longest, then smallest
    return min(counts, key=lambda v: (-counts[v], -len(v), v))


def longest(values: Iterable[str | None]) -> str | None:
    cleaned = _clean(values)
    if not cleaned:
        return None
    return min(cleaned, key=lambda v: (-len(v), v))


def union(lists: Iterable[Sequence[str] | None]) -> list[str]:
    return sorted({v for values in lists if values for v in _clean(values)})


def most_frequent_timestamp(values: Iterable[datetime | None]) -> datetime | None:
    """`most_frequent` over ISO-8601 renderings of the timestamps."""
    winner = most_frequent(v.isoformat() for v in values if v is not None)
    return datetime.fromisoformat(winner) if winner is not None else None


def aggregate(
    entity_type: EntityType, records: Sequence[Any], *, fallback_name: str = ""
) -> dict[str, Any]:
    """Golden column values for one family's source records.

    `fallback_name` names a family without any source records (an artist
    created from an event participant mention).
    """
    if entity_type == EntityType.ARTIST:
        return {
            "name": most_frequent(r.name for r in records) or fallback_name,
            "bio": longest(r.bio for r in records),
            "website": most_frequent(r.website for r in records),
            "socials": union(r.socials for r in records),
        }
    if entity_type == EntityType.GALLERY:
        return {
            "name": most_frequent(r.name for r in records) or fallback_name,
            "website": most_frequent(r.website for r in records),
            "address": most_frequent(r.address for r in records),
            "description": longest(r.description for r in records),
        }
    return {
        "title": most_frequent(r.title for r in records) or fallback_name,
        "description": longest(r.description for r in records),
        "url": most_frequent(r.url for r in records),
        "start_ts": most_frequent_timestamp(r.start_ts for r in records),
        "end_ts": most_frequent_timestamp(r.end_ts for r in records),
        "venue_text": most_frequent(r.venue_name for r in records),
        "tags": union(r.tags for r in records),
    }
