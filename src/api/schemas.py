"""Pydantic request/response schemas for the docmind API.

Defines the public contract for every REST endpoint: search, question
answering, summaries, key points, AI status, health, and the document hooks
that schedule re-embedding.

Convention: request schemas end with "Request", response schemas with
"Response".  ``Field(...)`` adds constraints and descriptions for the
generated OpenAPI docs.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from src.models.rag import SummaryLength


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------


class SearchRequest(BaseModel):
    """Semantic search query."""

    query: str = Field(..., min_length=1, max_length=2000)
    top_k: int | None = Field(default=None, ge=1, le=50)


class SearchResultResponse(BaseModel):
    """One matching chunk."""

    doc_id: str
    content: str
    similarity: float


class AskQuestionRequest(BaseModel):
    """Question answered from the user's documents."""

    question: str = Field(..., min_length=1, max_length=1000)


class AskQuestionResponse(BaseModel):
    """Answer plus the ids of the documents used as context."""

    answer: str
    context_used: list[str] = Field(default_factory=list)


class ChatRequest(BaseModel):
    """Question about caller-supplied context or one stored document (exactly one)."""

    question: str = Field(..., min_length=1, max_length=500)
    context: str | None = Field(default=None, max_length=100_000)
    doc_id: str | None = None


class ChatResponse(BaseModel):
    """Answer generated from the given context, with provider and usage details."""

    answer: str
    question: str
    provider: str
    model: str
    processing_time: float
    tokens_in: int | None = None
    tokens_out: int | None = None


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------


class SummarizeRequest(BaseModel):
    """Summarise raw text or a stored document (exactly one of the two)."""

    text: str | None = Field(default=None, max_length=100_000)
    doc_id: str | None = None
    length: SummaryLength = SummaryLength.MEDIUM


class SummarizeResponse(BaseModel):
    """Generated summary with provider and usage details."""

    summary: str
    provider: str
    model: str
    length: SummaryLength
    source: str
    original_text_length: int
    tokens_in: int | None = None
    tokens_out: int | None = None
    processing_time: float


class BulkSummarizeRequest(BaseModel):
    """Documents to summarise in one call."""

    doc_ids: list[str] = Field(..., min_length=1, max_length=50)
    length: SummaryLength = SummaryLength.MEDIUM


class BulkSummaryItemResponse(BaseModel):
    """One document's summary, or the reason it could not be produced."""

    doc_id: str
    summary: str
    error: str | None = None


class BulkSummarizeResponse(BaseModel):
    """Per-document results with success and failure counts."""

    results: list[BulkSummaryItemResponse]
    total: int
    successful: int
    failed: int


class KeyPointsRequest(BaseModel):
    """Text to extract key points from."""

    text: str = Field(..., min_length=1, max_length=100_000)
    count: int = Field(default=5, ge=1, le=20)


class KeyPointsResponse(BaseModel):
    """Extracted key points."""

    key_points: list[str]
    count: int


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


class DocumentUpsertRequest(BaseModel):
    """Create or replace a document."""

    title: str = Field(default="", max_length=500)
    content: str = Field(default="", max_length=1_000_000)


class DocumentUpsertResponse(BaseModel):
    """Result of a document write; ``job_id`` is set when re-embedding was scheduled."""

    doc_id: str
    job_id: str | None = None


class ReindexResponse(BaseModel):
    """Id of the embedding job scheduled for a document."""

    doc_id: str
    job_id: str


# ---------------------------------------------------------------------------
# Status / health / errors
# ---------------------------------------------------------------------------


class AIStatusResponse(BaseModel):
    """Which AI providers are reachable and which one serves requests."""

    available: bool
    providers: list[str] = Field(default_factory=list)
    current_provider: str
    model: str


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, Any]


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None
