"""docmind FastAPI application entry point.

Wires together all providers, services, and routes via dependency
injection.  Loads configuration from the environment and ``.env``,
configures structured logging, and publishes embedding jobs to Celery.
The tasks run on a separate worker (``src.worker``), or in-process when
``CELERY_TASK_ALWAYS_EAGER`` is set.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI

from src.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from src.api.routes import APP_VERSION
from src.api.routes import router as api_router
from src.config.settings import Settings
from src.providers.ai.factory import AIProviderFactory
from src.providers.document_store.sqlite_document_store import SQLiteDocumentStore
from src.providers.queue.celery_queue import CeleryJobQueue, create_celery_app, create_redis_client
from src.providers.vector_store.sqlite_vector_store import SQLiteVectorStore
from src.services.embedding_service import EmbeddingService
from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.document_events import DocumentEmbeddingTrigger
from src.services.ingestion.embedding_worker import EmbeddingWorker
from src.services.qa_service import QAService
from src.services.search_service import SemanticSearchService
from src.services.summary_service import SummaryService
from src.utils.logging import configure_logging, get_logger

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Full DI assembly for the FastAPI application
# ---------------------------------------------------------------------------


def _build_all(app_settings: Settings) -> dict[str, Any]:
    """Construct every provider and service instance for the application.

    Returns a flat dict of named components to be stored on ``app.state``.
    Nothing here touches the network or the database (the Redis client
    connects lazily); ``_lifespan`` initialises the stores and starts the
    queue.
    """
    # -- Stores (shared database file so embeddings can join documents) --
    document_store = SQLiteDocumentStore(db_path=app_settings.database_path)
    vector_store = SQLiteVectorStore(
        db_path=app_settings.database_path,
        dimension=app_settings.embedding_dimension,
    )

    # -- AI --
    provider_factory = AIProviderFactory(app_settings)
    embedding_service = EmbeddingService(provider_factory)

    # -- Embedding pipeline --
    job_queue = CeleryJobQueue(
        create_celery_app(app_settings),
        create_redis_client(app_settings),
        max_attempts=app_settings.embedding_max_attempts,
        retry_backoff=app_settings.embedding_retry_backoff,
        lock_ttl=app_settings.embedding_lock_ttl,
        lock_wait=app_settings.embedding_lock_wait,
    )
    chunker = TextChunker(
        chunk_size=app_settings.chunk_size,
        overlap=app_settings.chunk_overlap,
    )
    worker = EmbeddingWorker(
        document_store=document_store,
        chunker=chunker,
        embedding_service=embedding_service,
        vector_store=vector_store,
    )
    worker.register(job_queue)
    embedding_trigger = DocumentEmbeddingTrigger(job_queue, document_store)

    # -- Query-time services --
    search_service = SemanticSearchService(
        embedding_service=embedding_service,
        vector_store=vector_store,
        default_top_k=app_settings.rag_top_k,
        similarity_threshold=app_settings.rag_similarity_threshold,
    )
    qa_service = QAService(
        search_service=search_service,
        provider_factory=provider_factory,
        top_k=app_settings.qa_top_k,
        document_store=document_store,
    )
    summary_service = SummaryService(
        provider_factory=provider_factory,
        document_store=document_store,
    )

    provider_registry: dict[str, Any] = {
        "ai_provider": app_settings.ai_provider,
        "vector_store": vector_store.get_provider_name(),
        "queue_workers": app_settings.worker_concurrency,
    }

    return {
        "document_store": document_store,
        "vector_store": vector_store,
        "provider_factory": provider_factory,
        "job_queue": job_queue,
        "embedding_worker": worker,
        "embedding_trigger": embedding_trigger,
        "search_service": search_service,
        "qa_service": qa_service,
        "summary_service": summary_service,
        "provider_registry": provider_registry,
    }


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Initialise stores and start the embedding worker; stop it on shutdown."""
    components = _build_all(settings)

    for key, value in components.items():
        setattr(application.state, key, value)

    # Documents first: the embeddings table references it.
    await components["document_store"].initialize()
    await components["vector_store"].initialize()
    await components["job_queue"].start()

    _logger.info(
        "app_startup",
        version=APP_VERSION,
        environment=settings.app_env,
        ai_provider=settings.ai_provider,
        database=settings.database_path,
        chunk_size=settings.chunk_size,
        chunk_overlap=settings.chunk_overlap,
    )

    yield

    await components["job_queue"].stop()
    await components["provider_factory"].aclose()
    _logger.info("app_shutdown", message="Job queue stopped, provider clients closed")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title="docmind API",
        version=APP_VERSION,
        description=(
            "Document knowledge base with semantic search and retrieval-augmented "
            "question answering over locally or remotely hosted AI models."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application)

    application.include_router(api_router)
    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "src.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
