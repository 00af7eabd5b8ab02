"""Abstract base class for vector-store providers.

Defines the contract for persisting per-chunk embedding rows and ranking
them against a query vector.  The shipped implementation keeps vectors in
SQLite next to the documents table; a pgvector or Qdrant backend would
implement the same interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.rag import ChunkEmbedding, EmbeddingRow, SearchResult


# Concrete implementation: SQLiteVectorStore (src/providers/vector_store/)
class IVectorStoreProvider(ABC):
    """Contract for the embedding-row store used by the RAG pipeline."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables and indices if they do not exist."""

    @abstractmethod
    async def replace_embeddings(self, doc_id: str, chunks: list[ChunkEmbedding]) -> int:
        """Replace every embedding row of *doc_id* with one row per chunk.

        The delete and the inserts run in one transaction: readers see
        either the previous row set or the new one, never a mix.

        Parameters
        ----------
        doc_id:
            Document whose rows are replaced.
        chunks:
            New rows, one per chunk.  An empty list clears the document.

        Returns
        -------
        int
            Number of rows written.

        Raises
        ------
        src.utils.errors.VectorStoreError
            If the vectors have inconsistent or unexpected dimensions, or the
            write fails.  The previous row set is left intact.
        """

    @abstractmethod
    async def similarity_search(
        self,
        query_vector: list[float],
        top_k: int = 5,
        min_similarity: float = 0.5,
    ) -> list[SearchResult]:
        """Rank every row whose document still exists against *query_vector*.

        Returns at most *top_k* results with ``similarity > min_similarity``,
        sorted by similarity, highest first.

        Raises
        ------
        src.utils.errors.VectorStoreError
            If the query fails.
        """

    @abstractmethod
    async def delete_embeddings(self, doc_id: str) -> int:
        """Delete every row of *doc_id* and return how many were removed."""

    @abstractmethod
    async def get_embeddings(self, doc_id: str) -> list[EmbeddingRow]:
        """Return the rows of *doc_id* ordered by chunk index."""

    @abstractmethod
    async def count_embeddings(self, doc_id: str | None = None) -> int:
        """Return the number of rows, for one document or for the whole store."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"sqlite_vector"``."""
