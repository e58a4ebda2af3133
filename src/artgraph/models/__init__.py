"""Database models for artgraph."""

from artgraph.models.base import Base
from artgraph.models.enums import (
    CuratorDecision,
    EntityType,
    JobStatus,
    LinkRelation,
    QueueName,
)
from artgraph.models.event_artist import GoldenEventArtist, IdentityEventArtist
from artgraph.models.extracted import (
    ExtractedArtist,
    ExtractedArtistLink,
    ExtractedEvent,
    ExtractedEventLink,
    ExtractedGallery,
    ExtractedGalleryLink,
)
from artgraph.models.golden import GoldenArtist, GoldenEvent, GoldenGallery, GoldenRecord
from artgraph.models.identity_entity import IdentityEntity
from artgraph.models.identity_link import IdentityLink
from artgraph.models.job import PipelineJob
from artgraph.models.source import SourceArtist, SourceEvent, SourceGallery, SourceRecord

__all__ = [
    "Base",
    "CuratorDecision",
    "EntityType",
    "ExtractedArtist",
    "ExtractedArtistLink",
    "ExtractedEvent",
    "ExtractedEventLink",
    "ExtractedGallery",
    "ExtractedGalleryLink",
    "GoldenArtist",
    "GoldenEvent",
    "GoldenEventArtist",
    "GoldenGallery",
    "GoldenRecord",
    "IdentityEntity",
    "IdentityEventArtist",
    "IdentityLink",
    "JobStatus",
    "LinkRelation",
    "PipelineJob",
    "QueueName",
    "SourceArtist",
    "SourceEvent",
    "SourceGallery",
    "SourceRecord",
]
