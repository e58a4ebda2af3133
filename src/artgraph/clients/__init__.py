"""Clients for external services."""

from artgraph.clients.embeddings import EmbeddingClient

__all__ = ["EmbeddingClient"]
