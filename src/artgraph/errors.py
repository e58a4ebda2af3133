"""Error taxonomy for the pipeline stages.

The worker maps each exception family to a queue disposition:

- `RetryableError`: the job is made available again after a backoff.
- `PermanentError`: the job is dropped and logged at ERROR; retrying cannot
  succeed.

Not-found conditions are not errors. Stage entry points return an empty
result for an unknown id, since the job has nothing left to do.
"""

from __future__ import annotations

from uuid import UUID


class ArtgraphError(Exception):
    """Base class for artgraph errors."""


class RetryableError(ArtgraphError):
    """A transient failure; the same job may succeed later."""


class EmbeddingProviderError(RetryableError):
    """The embedding provider failed after the client's own retries."""


class PermanentError(ArtgraphError):
    """A failure that no amount of retrying will fix."""


class InvalidMergeError(PermanentError, ValueError):
    """A merge request that cannot be applied (self-merge, unknown id, type mismatch)."""


class EntityTypeMismatchError(PermanentError):
    """The requested entity type does not match the identity row."""

    def __init__(self, entity_id: UUID, expected: str, actual: str) -> None:
        self.entity_id = entity_id
        self.expected = expected
        self.actual = actual
        super().__init__(f"Entity {entity_id} is a {actual}, not a {expected}")


class ResolutionCycleError(PermanentError):
    """The canonical pointer chain loops back on itself."""

    def __init__(self, entity_id: UUID, chain: list[UUID]) -> None:
        self.entity_id = entity_id
        self.chain = chain
        path = " -> ".join(str(i) for i in chain)
        super().__init__(f"Canonical chain of {entity_id} contains a cycle: {path}")


class InvalidMessageError(PermanentError):
    """A queue payload that does not parse as any known message."""
