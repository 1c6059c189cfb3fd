"""Qdrant client initialization, collection management, upsert and search."""
from __future__ import annotations

import logging
from typing import Sequence

from qdrant_client import AsyncQdrantClient
from qdrant_client.models import Distance, PointStruct, VectorParams

from lumen.kb.models import KnowledgeEntry, SearchHit, StoreState
from lumen.llm.errors import DimensionMismatchError, StoreError

logger = logging.getLogger(__name__)

IN_MEMORY_URL = ":memory:"


def build_qdrant_client(url: str, api_key: str = "") -> AsyncQdrantClient | None:
    """Create a Qdrant client, or None when no URL is configured."""
    if not url:
        return None
    if url == IN_MEMORY_URL:
        return AsyncQdrantClient(location=IN_MEMORY_URL)
    logger.info("Initializing Qdrant client: %s", url)
    return AsyncQdrantClient(url=url, api_key=api_key or None)


def _config_mismatch(vectors, dimension: int, metric: str) -> str | None:
    """Describe how an existing collection's vector config differs, or None."""
    if not isinstance(vectors, VectorParams):
        return "collection uses named vectors"
    if vectors.size != dimension:
        return f"vector size {vectors.size}, expected {dimension}"
    if vectors.distance != Distance(metric):
        return f"distance {vectors.distance.value}, expected {metric}"
    return None


class VectorStore:
    """
    Adapter over one Qdrant collection.

    UNINITIALIZED -> READY after ensure_collection succeeds.
    DISABLED when no client is configured or the collection cannot be ensured;
    in that state search returns [] and upsert does nothing.
    """

    def __init__(
        self,
        client: AsyncQdrantClient | None,
        collection_name: str = "sg_kb",
        dimension: int = 1536,  # text-embedding-3-small
        metric: str = "Cosine",
    ):
        self.client = client
        self.collection_name = collection_name
        self.dimension = dimension
        self.metric = metric
        self.state = StoreState.UNINITIALIZED if client is not None else StoreState.DISABLED
        if client is None:
            logger.info("[KB] QDRANT_URL not set. Knowledge features will be disabled.")

    @property
    def ready(self) -> bool:
        return self.state is StoreState.READY

    async def ensure_collection(
        self,
        name: str | None = None,
        dimension: int | None = None,
        metric: str | None = None,
    ) -> bool:
        """
        Create the collection if it does not exist yet.

        Returns whether the store is usable. Failures are logged and leave the
        store DISABLED instead of raising.
        """
        if self.client is None:
            self.state = StoreState.DISABLED
            return False

        name = name or self.collection_name
        dimension = dimension or self.dimension
        metric = metric or self.metric
        try:
            collections = (await self.client.get_collections()).collections
            if not any(c.name == name for c in collections):
                logger.info("Creating Qdrant collection: %s", name)
                await self.client.create_collection(
                    collection_name=name,
                    vectors_config=VectorParams(size=dimension, distance=Distance(metric)),
                )
                logger.info("[KB] Created collection %s (%d dims, %s)", name, dimension, metric)
            else:
                logger.info("Collection '%s' already exists", name)
                info = await self.client.get_collection(name)
                problem = _config_mismatch(info.config.params.vectors, dimension, metric)
                if problem:
                    logger.error("[KB] Collection '%s' does not match the configuration: %s", name, problem)
                    self.state = StoreState.DISABLED
                    return False
        except Exception as e:
            logger.warning("[KB] ensure_collection failed: %s", e)
            self.state = StoreState.DISABLED
            return False

        self.collection_name, self.dimension, self.metric = name, dimension, metric
        self.state = StoreState.READY
        logger.info("📚 KB (Qdrant) ready.")
        return True

    async def upsert(self, entries: Sequence[KnowledgeEntry], collection_name: str | None = None) -> None:
        """Insert or replace entries by id and wait until the store acknowledges them."""
        if self.state is StoreState.DISABLED or not entries:
            return

        for entry in entries:
            if len(entry.vector) != self.dimension:
                raise DimensionMismatchError(
                    f"Vector for '{entry.title}' has {len(entry.vector)} dims, "
                    f"collection expects {self.dimension}"
                )

        points = [PointStruct(id=e.id, vector=e.vector, payload=e.payload) for e in entries]
        name = collection_name or self.collection_name
        logger.info("Upserting %d points to Qdrant collection '%s'", len(points), name)
        try:
            await self.client.upsert(collection_name=name, points=points, wait=True)
        except Exception as e:
            raise StoreError(f"upsert failed: {e}") from e

    async def search(
        self,
        query_vector: Sequence[float],
        limit: int = 5,
        with_payload: bool = True,
        collection_name: str | None = None,
    ) -> list[SearchHit]:
        """Nearest neighbours ordered by descending similarity."""
        if self.state is StoreState.DISABLED:
            return []
        try:
            response = await self.client.query_points(
                collection_name=collection_name or self.collection_name,
                query=list(query_vector),
                limit=limit,
                with_payload=with_payload,
            )
        except Exception as e:
            raise StoreError(f"search failed: {e}") from e

        return [SearchHit(score=p.score, payload=dict(p.payload or {})) for p in response.points]

    async def count(self, collection_name: str | None = None) -> int:
        if self.state is StoreState.DISABLED:
            return 0
        try:
            result = await self.client.count(
                collection_name=collection_name or self.collection_name, exact=True
            )
        except Exception as e:
            raise StoreError(f"count failed: {e}") from e
        return result.count

    async def close(self) -> None:
        if self.client is not None:
            await self.client.close()
