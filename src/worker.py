"""Celery worker entry point for the embedding pipeline.

Run with::

    celery -A src.worker worker --loglevel=INFO

The worker registers the same ``docmind.embedding`` task the API publishes
to.  Each job runs on its own event loop (see ``run_async``), so the AI
provider clients are built per job and closed afterwards rather than
shared across loops.
"""

from __future__ import annotations

from typing import Any, Callable

import structlog
from celery.signals import after_setup_logger, after_setup_task_logger, worker_init

from src.config.settings import Settings
from src.interfaces.document_store import IDocumentStore
from src.interfaces.job_queue import JobHandler
from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.providers.ai.factory import AIProviderFactory
from src.providers.document_store.sqlite_document_store import SQLiteDocumentStore
from src.providers.queue.celery_queue import CeleryJobQueue, create_celery_app, create_redis_client
from src.providers.vector_store.sqlite_vector_store import SQLiteVectorStore
from src.services.embedding_service import EmbeddingService
from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.embedding_worker import EMBEDDING_TOPIC, EmbeddingWorker
from src.utils.concurrency import run_async
from src.utils.logging import configure_logging, get_logger

logger: structlog.BoundLogger = get_logger(__name__)


def make_embedding_handler(
    worker_settings: Settings,
    document_store: IDocumentStore,
    vector_store: IVectorStoreProvider,
    factory_builder: Callable[[Settings], Any] = AIProviderFactory,
) -> JobHandler:
    """Return a job handler that runs one embedding job with fresh AI clients."""

    async def embed_document(payload: dict[str, Any]) -> Any:
        factory = factory_builder(worker_settings)
        worker = EmbeddingWorker(
            document_store=document_store,
            chunker=TextChunker(
                chunk_size=worker_settings.chunk_size,
                overlap=worker_settings.chunk_overlap,
            ),
            embedding_service=EmbeddingService(factory),
            vector_store=vector_store,
        )
        try:
            return await worker.handle(payload)
        finally:
            await factory.aclose()

    return embed_document


def build_worker_queue(
    worker_settings: Settings,
    redis_client: Any = None,
) -> tuple[CeleryJobQueue, SQLiteDocumentStore, SQLiteVectorStore]:
    """Assemble the queue a Celery worker process consumes, with its stores."""
    document_store = SQLiteDocumentStore(db_path=worker_settings.database_path)
    vector_store = SQLiteVectorStore(
        db_path=worker_settings.database_path,
        dimension=worker_settings.embedding_dimension,
    )
    queue = CeleryJobQueue(
        create_celery_app(worker_settings),
        redis_client if redis_client is not None else create_redis_client(worker_settings),
        max_attempts=worker_settings.embedding_max_attempts,
        retry_backoff=worker_settings.embedding_retry_backoff,
        lock_ttl=worker_settings.embedding_lock_ttl,
        lock_wait=worker_settings.embedding_lock_wait,
    )
    queue.subscribe(
        EMBEDDING_TOPIC,
        make_embedding_handler(worker_settings, document_store, vector_store),
    )
    return queue, document_store, vector_store


settings = Settings()
job_queue, _document_store, _vector_store = build_worker_queue(settings)
app = job_queue.celery_app


@after_setup_logger.connect
@after_setup_task_logger.connect
def setup_celery_logging(*_args: Any, **_kwargs: Any) -> None:
    """Route Celery's own loggers through the structlog configuration."""
    configure_logging(
        log_level=settings.log_level,
        json_output=(settings.app_env == "production"),
    )


@worker_init.connect
def initialise_stores(**_kwargs: Any) -> None:
    """Create the database tables before the first job arrives."""
    run_async(_document_store.initialize())
    run_async(_vector_store.initialize())
    logger.info(
        "worker_ready",
        database=settings.database_path,
        topics=[EMBEDDING_TOPIC],
        max_attempts=settings.embedding_max_attempts,
    )
