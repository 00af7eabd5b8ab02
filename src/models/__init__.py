"""docmind domain models, re-exported from one place.

Every model lives in ``rag.py``; import from ``src.models`` rather than
the submodule.  If you add a new model class, add it to ``__all__`` too.
"""

from __future__ import annotations

from src.models.rag import (
    AIResponse,
    AIStatus,
    BulkSummaryItem,
    Chunk,
    ChunkEmbedding,
    ContextAnswer,
    Document,
    EmbeddingJob,
    EmbeddingJobResult,
    EmbeddingRow,
    JobState,
    QAAnswer,
    SearchResult,
    SummaryLength,
    SummaryResult,
)

__all__ = [
    "AIResponse",
    "AIStatus",
    "BulkSummaryItem",
    "Chunk",
    "ChunkEmbedding",
    "ContextAnswer",
    "Document",
    "EmbeddingJob",
    "EmbeddingJobResult",
    "EmbeddingRow",
    "JobState",
    "QAAnswer",
    "SearchResult",
    "SummaryLength",
    "SummaryResult",
]
