"""RAG pipeline data models for the docmind knowledge base.

Defines Pydantic v2 models for documents, chunks, persisted embedding rows,
search results, provider responses and embedding-job bookkeeping.  All
models use frozen config so values passed between pipeline stages cannot
be mutated along the way.

Pipeline overview:

    1. TRIGGER: creating a document, or changing its title or content,
       enqueues an :class:`EmbeddingJob` on the ``"embedding"`` topic.
    2. CHUNKING: the worker loads the :class:`Document` and splits its
       content into overlapping :class:`Chunk` windows.
    3. EMBEDDING: each chunk is turned into a vector by the current AI
       provider, giving one :class:`ChunkEmbedding` per chunk.
    4. STORAGE: the document's :class:`EmbeddingRow` set is replaced
       wholesale inside one transaction.
    5. RETRIEVAL: queries are embedded and matched against every row by
       cosine similarity, producing :class:`SearchResult` objects that the
       Q&A service turns into a :class:`QAAnswer`.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class SummaryLength(str, Enum):
    """Length hint passed to :meth:`IAIProvider.summarize`."""

    SHORT = "short"
    MEDIUM = "medium"
    DETAILED = "detailed"


class JobState(str, Enum):
    """Lifecycle of a single embedding job inside the worker."""

    RECEIVED = "received"
    LOADED = "loaded"
    CHUNKED = "chunked"
    EMBEDDED = "embedded"
    STORED = "stored"
    DONE = "done"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Document: owned by the document store; read-only to the RAG core.
# ---------------------------------------------------------------------------
class Document(BaseModel):
    """A user document as seen by the embedding pipeline."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Unique document identifier.")
    title: str = Field(default="", description="Document title.")
    content: str = Field(default="", description="Plain-text document body.")
    updated_at: datetime | None = Field(
        default=None, description="Last modification time reported by the store."
    )


# ---------------------------------------------------------------------------
# Chunk: ephemeral output of the chunker.
# ---------------------------------------------------------------------------
class Chunk(BaseModel):
    """A bounded window of a document's normalised text.

    Indices for one document are contiguous from 0 and follow text order.
    """

    model_config = ConfigDict(frozen=True)

    doc_id: str = Field(description="Identifier of the parent document.")
    index: int = Field(ge=0, description="Position of this chunk within the document.")
    text: str = Field(description="The chunk's textual content.")


class ChunkEmbedding(BaseModel):
    """A chunk paired with its embedding vector, ready to be stored."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=0, description="Chunk index within the document.")
    text: str = Field(description="Chunk text stored alongside the vector.")
    vector: list[float] = Field(description="Embedding vector for this chunk.")


# ---------------------------------------------------------------------------
# EmbeddingRow: one persisted vector per chunk.
# ---------------------------------------------------------------------------
class EmbeddingRow(BaseModel):
    """A persisted embedding row as read back from the vector store."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(description="Row identifier assigned by the store.")
    doc_id: str = Field(description="Identifier of the parent document.")
    chunk_index: int = Field(ge=0, description="Chunk index within the document.")
    content: str = Field(description="Chunk text.")
    vector: list[float] = Field(description="Stored embedding vector.")
    created_at: str = Field(description="ISO-8601 creation timestamp.")


class SearchResult(BaseModel):
    """A stored chunk matched against a query vector."""

    model_config = ConfigDict(frozen=True)

    doc_id: str = Field(description="Identifier of the document the chunk belongs to.")
    content: str = Field(description="Text of the matching chunk.")
    similarity: float = Field(
        ge=-1.0,
        le=1.0,
        description="Cosine similarity between the query and the chunk.",
    )


# ---------------------------------------------------------------------------
# Provider / service responses
# ---------------------------------------------------------------------------
class AIResponse(BaseModel):
    """Text produced by a generative provider, with usage where reported."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(description="Generated text, stripped of surrounding whitespace.")
    model: str = Field(description="Model that produced the text.")
    tokens_in: int | None = Field(default=None, ge=0, description="Prompt tokens, if reported.")
    tokens_out: int | None = Field(
        default=None, ge=0, description="Completion tokens, if reported."
    )
    processing_time: float = Field(
        default=0.0, ge=0.0, description="Wall-clock seconds spent on the request."
    )


class QAAnswer(BaseModel):
    """Answer to a question plus the documents whose chunks were used as context."""

    model_config = ConfigDict(frozen=True)

    answer: str
    context_used: list[str] = Field(
        default_factory=list,
        description="Distinct document ids in retrieval order.",
    )


class ContextAnswer(BaseModel):
    """Answer to a question about caller-supplied context (no retrieval)."""

    model_config = ConfigDict(frozen=True)

    answer: str
    question: str
    provider: str
    model: str
    processing_time: float = Field(default=0.0, ge=0.0)
    tokens_in: int | None = None
    tokens_out: int | None = None


class SummaryResult(BaseModel):
    """Result of summarising raw text or a stored document."""

    model_config = ConfigDict(frozen=True)

    summary: str
    provider: str
    model: str
    length: SummaryLength
    source: str = Field(description='"direct" for raw text, "doc:<id>" for a document.')
    original_text_length: int = Field(ge=0)
    tokens_in: int | None = None
    tokens_out: int | None = None
    processing_time: float = Field(default=0.0, ge=0.0)


class BulkSummaryItem(BaseModel):
    """Outcome for one document of a bulk summary; ``error`` is set on failure."""

    model_config = ConfigDict(frozen=True)

    doc_id: str
    summary: str = ""
    error: str | None = None


class AIStatus(BaseModel):
    """Snapshot of which AI providers are reachable right now."""

    model_config = ConfigDict(frozen=True)

    available: bool
    providers: list[str] = Field(default_factory=list)
    current_provider: str = "none"
    model: str = "none"


# ---------------------------------------------------------------------------
# Embedding jobs
# ---------------------------------------------------------------------------
class EmbeddingJob(BaseModel):
    """Queue payload asking for a document to be (re)embedded."""

    model_config = ConfigDict(frozen=True)

    doc_id: str = Field(min_length=1)


class EmbeddingJobResult(BaseModel):
    """Outcome of one worker run over an :class:`EmbeddingJob`."""

    model_config = ConfigDict(frozen=True)

    doc_id: str
    state: JobState
    chunks: int = Field(default=0, ge=0, description="Number of rows written.")
    skipped_reason: str | None = Field(
        default=None,
        description='Why the job was a no-op, e.g. "document_missing".',
    )
