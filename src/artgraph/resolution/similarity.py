"""Similarity primitives shared by the indexer and the extracted pipeline.

- Composite embedding text per entity type (fixed field order).
- Score conversion from pgvector cosine distance.
- Pair normalization for link keys.
- Per-type thresholds as an immutable mapping.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime
from types import MappingProxyType
from typing import Any
from uuid import UUID

import numpy as np

from artgraph.config import settings
from artgraph.models.enums import EntityType

# Fixed composite-text field order per type. Reordering changes every
# embedding, so existing vectors would no longer be comparable.
COMPOSITE_FIELDS: Mapping[EntityType, tuple[str, ...]] = {
    EntityType.ARTIST: ("name", "bio", "website", "socials"),
    EntityType.GALLERY: ("name", "address", "website", "description"),
    EntityType.EVENT: (
        "title",
        "description",
        "venue_name",
        "url",
        "schedule",
        "participants",
        "tags",
    ),
}


def threshold_map(thresholds: Mapping[str, float] | None = None) -> Mapping[EntityType, float]:
    """Freeze per-type inclusive thresholds, keyed by `EntityType`.

    Defaults to the thresholds from settings. Keys may be enum members or
    their string values.
    """
    if thresholds is None:
        thresholds = settings.similarity_thresholds()
    return MappingProxyType({EntityType(key): float(value) for key, value in thresholds.items()})


def _field_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Iterable):
        return " ".join(s for s in (_field_text(v) for v in value) if s)
    return str(value).strip()


def composite_text(entity_type: EntityType, record: Any) -> str:
    """Build the text that is embedded for a record.

    Non-empty fields are joined by newlines in a fixed per-type order. List
    fields are joined by single spaces; an event's start and end form one
    "start end" line.
    """
    parts: list[str] = []
    for field_name in COMPOSITE_FIELDS[entity_type]:
        if field_name == "schedule":
            value: Any = [getattr(record, "start_ts", None), getattr(record, "end_ts", None)]
        else:
            value = getattr(record, field_name, None)
        text = _field_text(value)
        if text:
            parts.append(text)
    return "\n".join(parts)


def display_name(entity_type: EntityType, record: Any) -> str:
    """Name shown for an identity entity created from `record`."""
    value = record.title if entity_type == EntityType.EVENT else record.name
    return (value or "").strip()


def normalize_pair(x: UUID, y: UUID) -> tuple[UUID, UUID]:
    """Order a pair so that `a` sorts before `b` by string form."""
    return (x, y) if str(x) < str(y) else (y, x)


def score_from_distance(distance: float) -> float:
    """Convert pgvector cosine distance into a similarity score in [0, 1]."""
    return min(1.0, max(0.0, 1.0 - float(distance)))


def as_vector(value: Any) -> list[float]:
    """Coerce a stored embedding (pgvector ndarray, list or None) to a list.

    Returns `[]` for a missing embedding.
    """
    if value is None:
        return []
    return [float(v) for v in np.asarray(value).ravel()]
