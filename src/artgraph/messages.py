"""Pipeline queue messages.

Every message carries a `type` discriminator so a raw JSON payload can be
parsed back into the right model with `parse_message`. Each message type is
consumed from exactly one queue (`queue_for`).
"""

from __future__ import annotations

from typing import Annotated, Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from artgraph.errors import InvalidMessageError
from artgraph.models.enums import EntityType, QueueName


class IndexRequest(BaseModel):
    """Upstream input: a source record that needs an identity."""

    type: Literal["identity.index"] = "identity.index"
    entity_type: EntityType
    source_id: UUID


class MergeRequest(BaseModel):
    """A curator (or policy) decision to fold `loser_id` into `winner_id`."""

    type: Literal["identity.merge"] = "identity.merge"
    entity_type: EntityType
    winner_id: UUID
    loser_id: UUID
    decided_by: str = "curator"
    notes: str | None = None


class MaterializeRequest(BaseModel):
    """Downstream signal: recompute the golden record of an entity's family.

    `entity_id` need not be canonical; the materializer resolves it.
    """

    type: Literal["golden.materialize"] = "golden.materialize"
    entity_type: EntityType
    entity_id: UUID


class SimilarityRequest(BaseModel):
    """Compute similarity links for one extracted record."""

    type: Literal["similarity.compute"] = "similarity.compute"
    entity_type: EntityType
    entity_id: UUID
    threshold: float | None = Field(default=None, ge=0.0, le=1.0)


PipelineMessage = Annotated[
    IndexRequest | MergeRequest | MaterializeRequest | SimilarityRequest,
    Field(discriminator="type"),
]

_message_adapter: TypeAdapter[PipelineMessage] = TypeAdapter(PipelineMessage)

_QUEUES: dict[type[BaseModel], QueueName] = {
    IndexRequest: QueueName.IDENTITY,
    MergeRequest: QueueName.IDENTITY,
    MaterializeRequest: QueueName.GOLDEN,
    SimilarityRequest: QueueName.SIMILARITY,
}


def parse_message(payload: dict[str, Any]) -> PipelineMessage:
    """Parse a queue payload into its message model.

    Raises:
        InvalidMessageError: If the payload matches no known message.
    """
    try:
        return _message_adapter.validate_python(payload)
    except ValidationError as e:
        raise InvalidMessageError(f"Malformed pipeline message: {e}") from e


def queue_for(message: BaseModel) -> QueueName:
    """The queue that consumes this message type."""
    return _QUEUES[type(message)]
