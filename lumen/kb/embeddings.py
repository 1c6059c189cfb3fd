"""Embedding generation with batching support."""
from __future__ import annotations

import logging
from typing import AsyncIterator, Protocol, Sequence

from lumen.kb.chunker import batched
from lumen.llm.errors import ConfigurationMissing, ProviderError
from lumen.utils import with_timeout

logger = logging.getLogger(__name__)


class EmbeddingProvider(Protocol):
    async def create_embeddings(self, model: str, input: str | Sequence[str]) -> list[list[float]]:
        ...


class Embedder:
    """Turns text into dense vectors through an external embedding model."""

    def __init__(
        self,
        provider: EmbeddingProvider | None,
        model: str = "text-embedding-3-small",
        batch_size: int = 32,
    ):
        self.provider = provider
        self.model = model
        self.batch_size = batch_size

    @property
    def configured(self) -> bool:
        return self.provider is not None and getattr(self.provider, "configured", True)

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        """
        Embed texts in a single provider call.

        Returns one vector per input, in input order.
        """
        if not texts:
            return []
        if not self.configured:
            raise ConfigurationMissing("No embedding provider configured (OPENAI_API_KEY not set)")

        vectors = await self.provider.create_embeddings(self.model, list(texts))
        if len(vectors) != len(texts):
            raise ProviderError(
                f"Embedding provider returned {len(vectors)} vectors for {len(texts)} inputs"
            )
        return vectors

    async def embed_batches(
        self,
        texts: Sequence[str],
        timeout: float | None = None,
    ) -> AsyncIterator[tuple[int, list[list[float]]]]:
        """
        Embed texts in sequential batches of `batch_size`.

        Yields (offset, vectors) per batch so callers can persist each batch
        before the next one is requested. A failing batch raises and stops
        the iteration; earlier batches have already been yielded.
        """
        offset = 0
        for n, batch in enumerate(batched(texts, self.batch_size), 1):
            logger.info("Generating embeddings for batch %d (%d texts)", n, len(batch))
            call = self.embed(batch)
            vectors = await (with_timeout(call, timeout, "embed") if timeout is not None else call)
            yield offset, vectors
            offset += len(batch)
