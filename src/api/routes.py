"""FastAPI API routes for docmind.

Service dependencies are resolved from ``app.state`` (populated at startup
by ``main._build_all``) via FastAPI's ``Depends`` using the ``Annotated``
pattern, so tests can mount the router on a bare app with mocked services.

Endpoint                              Method  Description
─────────────────────────────────────────────────────────────────────
/api/v1/search                        POST    Semantic search over chunks
/api/v1/ask                           POST    RAG question answering
/api/v1/chat                          POST    Answer from given context or one doc
/api/v1/summarize                     POST    Summarise text or a document
/api/v1/bulk-summarize                POST    Summarise several documents
/api/v1/key-points                    POST    Extract key points from text
/api/v1/status                        GET     AI provider availability
/api/v1/health                        GET     Health check + store status
/api/v1/documents/{doc_id}            PUT     Create/replace a document
/api/v1/documents/{doc_id}            DELETE  Delete a document and its rows
/api/v1/documents/{doc_id}/reindex    POST    Schedule re-embedding
"""

from __future__ import annotations

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status

from src.api.schemas import (
    AIStatusResponse,
    AskQuestionRequest,
    AskQuestionResponse,
    BulkSummarizeRequest,
    BulkSummarizeResponse,
    BulkSummaryItemResponse,
    ChatRequest,
    ChatResponse,
    DocumentUpsertRequest,
    DocumentUpsertResponse,
    HealthResponse,
    KeyPointsRequest,
    KeyPointsResponse,
    ReindexResponse,
    SearchRequest,
    SearchResultResponse,
    SummarizeRequest,
    SummarizeResponse,
)
from src.interfaces.document_store import IDocumentStore
from src.models.rag import Document
from src.services.ingestion.document_events import DocumentEmbeddingTrigger
from src.services.qa_service import QAService
from src.services.search_service import SemanticSearchService
from src.services.summary_service import SummaryService
from src.utils.errors import DocumentNotFoundError
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

APP_VERSION = "0.1.0"

router = APIRouter(prefix="/api/v1")


# ---------------------------------------------------------------------------
# Dependency injection helpers: resolve singletons from app.state
# ---------------------------------------------------------------------------


def _get_search_service(request: Request) -> SemanticSearchService:
    """Return the semantic search service from application state."""
    return request.app.state.search_service


def _get_qa_service(request: Request) -> QAService:
    """Return the Q&A service from application state."""
    return request.app.state.qa_service


def _get_summary_service(request: Request) -> SummaryService:
    """Return the summary service from application state."""
    return request.app.state.summary_service


def _get_document_store(request: Request) -> IDocumentStore:
    """Return the document store from application state."""
    return request.app.state.document_store


def _get_embedding_trigger(request: Request) -> DocumentEmbeddingTrigger:
    """Return the document change hooks from application state."""
    return request.app.state.embedding_trigger


SearchServiceDep = Annotated[SemanticSearchService, Depends(_get_search_service)]
QAServiceDep = Annotated[QAService, Depends(_get_qa_service)]
SummaryServiceDep = Annotated[SummaryService, Depends(_get_summary_service)]
DocumentStoreDep = Annotated[IDocumentStore, Depends(_get_document_store)]
EmbeddingTriggerDep = Annotated[DocumentEmbeddingTrigger, Depends(_get_embedding_trigger)]


def _bad_request(exc: ValueError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------


@router.post(
    "/search",
    response_model=list[SearchResultResponse],
    summary="Semantic search over document chunks",
)
async def search(body: SearchRequest, search_service: SearchServiceDep) -> list[SearchResultResponse]:
    """Return the stored chunks most similar to the query, best first."""
    try:
        results = await search_service.search(body.query, top_k=body.top_k)
    except ValueError as exc:
        raise _bad_request(exc) from exc
    return [SearchResultResponse(**r.model_dump()) for r in results]


@router.post(
    "/ask",
    response_model=AskQuestionResponse,
    summary="Answer a question from the user's documents",
)
async def ask_question(body: AskQuestionRequest, qa_service: QAServiceDep) -> AskQuestionResponse:
    """Retrieve relevant chunks and generate an answer grounded in them."""
    try:
        result = await qa_service.answer(body.question)
    except ValueError as exc:
        raise _bad_request(exc) from exc
    return AskQuestionResponse(answer=result.answer, context_used=result.context_used)


@router.post(
    "/chat",
    response_model=ChatResponse,
    summary="Answer a question from supplied context or one document",
)
async def chat(body: ChatRequest, qa_service: QAServiceDep) -> ChatResponse:
    """Answer without retrieval, using only the given context or document."""
    try:
        result = await qa_service.answer_from_context(
            body.question,
            context=body.context,
            doc_id=body.doc_id,
        )
    except ValueError as exc:
        raise _bad_request(exc) from exc
    return ChatResponse(**result.model_dump())


# ---------------------------------------------------------------------------
# Summaries & status
# ---------------------------------------------------------------------------


@router.post(
    "/summarize",
    response_model=SummarizeResponse,
    summary="Summarise raw text or a stored document",
)
async def summarize(body: SummarizeRequest, summary_service: SummaryServiceDep) -> SummarizeResponse:
    try:
        result = await summary_service.summarize(
            text=body.text,
            doc_id=body.doc_id,
            length=body.length,
        )
    except ValueError as exc:
        raise _bad_request(exc) from exc
    return SummarizeResponse(**result.model_dump())


@router.post(
    "/bulk-summarize",
    response_model=BulkSummarizeResponse,
    summary="Summarise several stored documents",
)
async def bulk_summarize(
    body: BulkSummarizeRequest,
    summary_service: SummaryServiceDep,
) -> BulkSummarizeResponse:
    items = await summary_service.summarize_many(body.doc_ids, length=body.length)
    failed = sum(1 for item in items if item.error is not None)
    return BulkSummarizeResponse(
        results=[BulkSummaryItemResponse(**item.model_dump()) for item in items],
        total=len(items),
        successful=len(items) - failed,
        failed=failed,
    )


@router.post(
    "/key-points",
    response_model=KeyPointsResponse,
    summary="Extract key points from text",
)
async def key_points(body: KeyPointsRequest, summary_service: SummaryServiceDep) -> KeyPointsResponse:
    try:
        points = await summary_service.extract_key_points(body.text, count=body.count)
    except ValueError as exc:
        raise _bad_request(exc) from exc
    return KeyPointsResponse(key_points=points, count=len(points))


@router.get(
    "/status",
    response_model=AIStatusResponse,
    summary="AI provider availability",
)
async def ai_status(summary_service: SummaryServiceDep) -> AIStatusResponse:
    result = await summary_service.get_status()
    return AIStatusResponse(**result.model_dump())


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Application health check",
)
async def health_check(request: Request) -> HealthResponse:
    """Return application health, version, and store/queue status."""
    providers: dict[str, Any] = {}
    if hasattr(request.app.state, "provider_registry"):
        providers = dict(request.app.state.provider_registry)

    vector_store = getattr(request.app.state, "vector_store", None)
    if vector_store is not None:
        try:
            providers["embeddings"] = await vector_store.count_embeddings()
            providers["vector_store"] = True
        except Exception as exc:
            _logger.warning("health_vector_store_failed", error=str(exc))
            providers["vector_store"] = False
            providers["embeddings"] = 0

    job_queue = getattr(request.app.state, "job_queue", None)
    if job_queue is not None:
        providers["dead_letters"] = len(job_queue.dead_letters())

    healthy = providers.get("vector_store", False)
    return HealthResponse(
        status="healthy" if healthy else "degraded",
        version=APP_VERSION,
        providers=providers,
    )


# ---------------------------------------------------------------------------
# Document hooks
# ---------------------------------------------------------------------------


@router.put(
    "/documents/{doc_id}",
    response_model=DocumentUpsertResponse,
    summary="Create or replace a document and schedule re-embedding",
)
async def upsert_document(
    doc_id: str,
    body: DocumentUpsertRequest,
    trigger: EmbeddingTriggerDep,
) -> DocumentUpsertResponse:
    document = Document(id=doc_id, title=body.title, content=body.content)
    job_id = await trigger.save_document(document)
    return DocumentUpsertResponse(doc_id=doc_id, job_id=job_id)


@router.delete(
    "/documents/{doc_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a document and its embedding rows",
)
async def delete_document(doc_id: str, document_store: DocumentStoreDep) -> None:
    if not await document_store.delete_document(doc_id):
        raise DocumentNotFoundError(message=f"Document {doc_id} not found")


@router.post(
    "/documents/{doc_id}/reindex",
    response_model=ReindexResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Schedule re-embedding of an existing document",
)
async def reindex_document(
    doc_id: str,
    document_store: DocumentStoreDep,
    trigger: EmbeddingTriggerDep,
) -> ReindexResponse:
    if await document_store.get_document(doc_id) is None:
        raise DocumentNotFoundError(message=f"Document {doc_id} not found")
    job_id = await trigger.request_embedding(doc_id)
    return ReindexResponse(doc_id=doc_id, job_id=job_id)
