"""KB ingestion and search."""
from __future__ import annotations

import logging
from contextlib import aclosing
from typing import Sequence

from lumen.kb.chunker import chunk_text
from lumen.kb.embeddings import Embedder
from lumen.kb.models import AddResult, Document, KBStatus, KnowledgeEntry, SearchHit
from lumen.kb.store import VectorStore
from lumen.llm.errors import LumenError
from lumen.utils import with_timeout

logger = logging.getLogger(__name__)


class KnowledgeBase:
    def __init__(
        self,
        store: VectorStore,
        embedder: Embedder,
        min_score: float = 0.18,
        chunk_size: int = 900,
        chunk_overlap: int = 100,
        timeout: float = 25.0,
    ):
        self.store = store
        self.embedder = embedder
        self.min_score = min_score
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.timeout = timeout

    @property
    def status(self) -> KBStatus:
        if not self.store.ready:
            return KBStatus.DISABLED
        if not self.embedder.configured:
            return KBStatus.DEGRADED
        return KBStatus.READY

    async def ensure_ready(self) -> KBStatus:
        await self.store.ensure_collection()
        status = self.status
        if status is KBStatus.DEGRADED:
            logger.warning("[KB] store ready but no embedding provider; KB search disabled")
        return status

    async def add_document(
        self,
        title: str,
        text: str,
        source: str = "manual",
        language: str = "en",
        author: str | None = None,
    ) -> AddResult:
        """
        Chunk, embed, and upsert one document.

        Returns AddResult(ok, chunk_count). On failure `chunk_count` is the
        number of chunks already committed before the failing batch.
        """
        return await self.add_documents(
            [Document(title=title, text=text, source=source, language=language, author=author)]
        )

    async def add_documents(self, documents: Sequence[Document]) -> AddResult:
        if self.status is not KBStatus.READY:
            logger.info("[KB] add skipped, status=%s", self.status.value)
            return AddResult(ok=False, chunk_count=0)

        # (document, chunk) pairs so each entry keeps its own metadata
        pieces = [
            (doc, chunk)
            for doc in documents
            for chunk in chunk_text(doc.text, self.chunk_size, self.chunk_overlap)
        ]
        logger.info("Chunked %d document(s) into %d chunks", len(documents), len(pieces))

        inserted = 0
        texts = [chunk for _, chunk in pieces]
        try:
            async with aclosing(self.embedder.embed_batches(texts, timeout=self.timeout)) as batches:
                async for offset, vectors in batches:
                    batch = pieces[offset:offset + len(vectors)]
                    entries = [
                        KnowledgeEntry(
                            vector=vec,
                            title=doc.title,
                            content=chunk,
                            source=doc.source,
                            language=doc.language,
                            author=doc.author,
                        )
                        for (doc, chunk), vec in zip(batch, vectors)
                    ]
                    await with_timeout(self.store.upsert(entries), self.timeout, "upsert")
                    inserted += len(entries)
        except LumenError as e:
            logger.warning("[KB] ingestion aborted after %d chunks: %s", inserted, e)
            return AddResult(ok=False, chunk_count=inserted, error=e)

        logger.info("Successfully uploaded %d chunks", inserted)
        return AddResult(ok=True, chunk_count=inserted)

    async def search(self, query: str, limit: int = 5) -> list[SearchHit]:
        """
        Embed the query, search the store, and drop hits below `min_score`.

        Embedding and store errors propagate.
        """
        if self.status is not KBStatus.READY:
            return []
        logger.info("Searching KB: query=%r, k=%d", query[:50], limit)
        [vector] = await self.embedder.embed([query])
        hits = await self.store.search(vector, limit=limit)
        results = [h for h in hits if h.score >= self.min_score]
        logger.info("Found %d results (%d below %.2f)", len(results), len(hits) - len(results), self.min_score)
        return results

    async def count(self) -> int:
        return await self.store.count()
