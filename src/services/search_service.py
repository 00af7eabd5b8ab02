"""Semantic search over stored document chunks.

Embeds the query with the current embedding-capable provider and ranks
every stored chunk by cosine similarity.  Results below the configured
relevance threshold are dropped and at most ``top_k`` are returned.  Any
failure along the way surfaces as a single :class:`SearchFailedError`, so
callers never receive partial results.
"""

from __future__ import annotations

import time

import structlog

from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.models.rag import SearchResult
from src.services.embedding_service import EmbeddingService
from src.utils.errors import DocMindError, SearchFailedError
from src.utils.logging import get_logger

logger: structlog.BoundLogger = get_logger(__name__)


class SemanticSearchService:
    """Query-time retrieval over the vector store.

    Parameters
    ----------
    embedding_service:
        Embeds the query text.
    vector_store:
        Store ranked against the query vector.
    default_top_k:
        Result cap used when the caller does not pass one.
    similarity_threshold:
        Results must score strictly above this.
    """

    def __init__(
        self,
        embedding_service: EmbeddingService,
        vector_store: IVectorStoreProvider,
        default_top_k: int = 5,
        similarity_threshold: float = 0.5,
    ) -> None:
        self._embeddings = embedding_service
        self._vector_store = vector_store
        self._default_top_k = default_top_k
        self._threshold = similarity_threshold

    async def search(self, query: str, top_k: int | None = None) -> list[SearchResult]:
        """Return the chunks most similar to *query*, best first.

        Raises
        ------
        ValueError
            If *query* is blank or *top_k* is not positive.
        SearchFailedError
            If embedding the query or querying the store fails.
        """
        query = query.strip() if query else ""
        if not query:
            raise ValueError("Search query must not be empty")
        limit = top_k if top_k is not None else self._default_top_k
        if limit < 1:
            raise ValueError(f"top_k must be >= 1, got {limit}")

        start = time.perf_counter()
        try:
            query_vector = await self._embeddings.generate_embedding(query)
            results = await self._vector_store.similarity_search(
                query_vector,
                top_k=limit,
                min_similarity=self._threshold,
            )
        except Exception as exc:
            logger.error("semantic_search_failed", query_length=len(query), error=str(exc))
            if isinstance(exc, DocMindError):
                raise SearchFailedError(
                    message=f"Search failed: {exc.message}",
                    provider_name=exc.provider_name,
                ) from exc
            raise SearchFailedError(message=f"Search failed: {exc}") from exc

        logger.info(
            "semantic_search",
            query_length=len(query),
            top_k=limit,
            results=len(results),
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return results
