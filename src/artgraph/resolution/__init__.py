"""Identity resolution: indexing, similarity discovery and union-find merges."""

from artgraph.resolution.candidate_pool import CandidatePoolService, Neighbor
from artgraph.resolution.canonical import MergeResolver, MergeResult, family_of, resolve_canonical
from artgraph.resolution.extracted import ExtractedSimilarityService
from artgraph.resolution.indexer import IdentityIndexer
from artgraph.resolution.participants import ParticipantResolver
from artgraph.resolution.store import IdentityStore

__all__ = [
    "CandidatePoolService",
    "ExtractedSimilarityService",
    "IdentityIndexer",
    "IdentityStore",
    "MergeResolver",
    "MergeResult",
    "Neighbor",
    "ParticipantResolver",
    "family_of",
    "resolve_canonical",
]
