"""Enumerations for the artgraph data model."""

from enum import Enum


class EntityType(str, Enum):
    """Kind of real-world entity. Fixed for an identity entity once created."""

    ARTIST = "artist"
    GALLERY = "gallery"
    EVENT = "event"


class LinkRelation(str, Enum):
    """Relation carried by an identity link row.

    A pair may hold one row per relation: the automatic SIMILAR note and,
    later, a decisive MERGE or DISMISSED row from a curator.
    """

    SIMILAR = "similar"
    MERGE = "merge"
    DISMISSED = "dismissed"


DECISIVE_RELATIONS = (LinkRelation.MERGE, LinkRelation.DISMISSED)


class CuratorDecision(str, Enum):
    """Review state of a similarity link."""

    PENDING = "pending"  # Needs review
    MERGED = "merged"  # Curator merged
    DISMISSED = "dismissed"  # Not a duplicate


class JobStatus(str, Enum):
    """Lifecycle status of a pipeline job."""

    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"


class QueueName(str, Enum):
    """Pipeline queues, one per consuming stage."""

    IDENTITY = "identity"
    GOLDEN = "golden"
    SIMILARITY = "similarity"
