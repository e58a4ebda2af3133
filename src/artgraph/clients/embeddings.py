"""Async client for text embeddings over an OpenAI-compatible API."""

import logging
import time
from typing import Protocol

from openai import APIError, AsyncOpenAI

from artgraph.config import settings
from artgraph.errors import EmbeddingProviderError

logger = logging.getLogger(__name__)


class Embedder(Protocol):
    """Anything that turns text into a vector. Empty text yields `[]`."""

    async def embed(self, text: str) -> list[float]: ...


class EmbeddingClient:
    """Async client for composite-text and name embeddings.

    The OpenAI client retries transient failures `embedding_max_retries`
    times on its own. Whatever still fails surfaces as
    `EmbeddingProviderError`, which the worker treats as retryable.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        model: str | None = None,
    ) -> None:
        self._client = AsyncOpenAI(
            base_url=base_url or settings.embedding_base_url,
            api_key=api_key or settings.embedding_api_key,
            timeout=settings.embedding_timeout_seconds,
            max_retries=settings.embedding_max_retries,
        )
        self._model = model or settings.model_text_embedding

    async def embed(self, text: str) -> list[float]:
        """Embed one text.

        Args:
            text: Text to embed. Blank text is not sent to the provider.

        Returns:
            The embedding vector, or `[]` when there is nothing to embed.

        Raises:
            EmbeddingProviderError: If the provider call fails.
        """
        if not text or not text.strip():
            return []

        start_time = time.time()
        try:
            response = await self._client.embeddings.create(
                model=self._model,
                input=text,
            )
        except APIError as e:
            logger.warning("[EMBED] %s failed: %s", self._model, e)
            raise EmbeddingProviderError(f"Embedding request failed: {e}") from e

        if not response.data:
            return []
        embedding = list(response.data[0].embedding)

        if settings.log_api_calls:
            elapsed = (time.time() - start_time) * 1000  # ms
            logger.info(
                "[EMBED] %s (%d chars) → %d-dim (%.0fms)",
                self._model, len(text), len(embedding), elapsed
            )

        return embedding
