"""Tests for pipeline message parsing and routing."""

from __future__ import annotations

from uuid import uuid4

import pytest

from artgraph.errors import InvalidMessageError, PermanentError
from artgraph.messages import (
    IndexRequest,
    MaterializeRequest,
    MergeRequest,
    SimilarityRequest,
    parse_message,
    queue_for,
)
from artgraph.models.enums import EntityType, QueueName


@pytest.mark.parametrize(
    ("message", "queue"),
    [
        (IndexRequest(entity_type=EntityType.ARTIST, source_id=uuid4()), QueueName.IDENTITY),
        (
            MergeRequest(entity_type=EntityType.GALLERY, winner_id=uuid4(), loser_id=uuid4()),
            QueueName.IDENTITY,
        ),
        (MaterializeRequest(entity_type=EntityType.EVENT, entity_id=uuid4()), QueueName.GOLDEN),
        (SimilarityRequest(entity_type=EntityType.EVENT, entity_id=uuid4()), QueueName.SIMILARITY),
    ],
)
def test_payload_parses_back_to_message(message, queue: QueueName) -> None:
    payload = message.model_dump(mode="json")
    assert parse_message(payload) == message
    assert queue_for(message) == queue


def test_type_discriminator_values() -> None:
    request = MaterializeRequest(entity_type=EntityType.ARTIST, entity_id=uuid4())
    assert request.model_dump(mode="json")["type"] == "golden.materialize"
    assert IndexRequest.model_fields["type"].default == "identity.index"


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"type": "identity.unknown"},
        {"type": "identity.index", "entity_type": "sculpture", "source_id": str(uuid4())},
        {"type": "golden.materialize", "entity_type": "artist", "entity_id": "not-a-uuid"},
        {"type": "similarity.compute", "entity_type": "artist", "entity_id": str(uuid4()), "threshold": 2},
    ],
)
def test_malformed_payloads_are_permanent_errors(payload: dict) -> None:
    with pytest.raises(InvalidMessageError) as exc_info:
        parse_message(payload)
    assert isinstance(exc_info.value, PermanentError)
