"""Document change hooks that schedule re-embedding.

The document CRUD layer calls these hooks after it writes.  Creating a
document, or changing its title or content, publishes an embedding job keyed
by the document id; the worker picks it up asynchronously.  Other field
changes do not re-embed.
"""

from __future__ import annotations

import structlog

from src.interfaces.document_store import IDocumentStore
from src.interfaces.job_queue import IJobQueue
from src.models.rag import Document, EmbeddingJob
from src.services.ingestion.embedding_worker import EMBEDDING_TOPIC
from src.utils.logging import get_logger

logger: structlog.BoundLogger = get_logger(__name__)


def needs_reembedding(previous: Document | None, current: Document) -> bool:
    """Return ``True`` if *current* differs from *previous* in title or content."""
    if previous is None:
        return True
    return previous.title != current.title or previous.content != current.content


class DocumentEmbeddingTrigger:
    """Publishes embedding jobs in response to document changes."""

    def __init__(self, queue: IJobQueue, document_store: IDocumentStore | None = None) -> None:
        self._queue = queue
        self._documents = document_store

    async def request_embedding(self, doc_id: str) -> str:
        """Enqueue an embedding job for *doc_id* and return the job id."""
        payload = EmbeddingJob(doc_id=doc_id).model_dump()
        return await self._queue.enqueue(EMBEDDING_TOPIC, payload, key=doc_id)

    async def on_document_created(self, document: Document) -> str:
        return await self.request_embedding(document.id)

    async def on_document_updated(self, previous: Document | None, current: Document) -> str | None:
        """Enqueue a job if the title or content changed; return its id or ``None``."""
        if not needs_reembedding(previous, current):
            logger.debug("embedding_not_required", doc_id=current.id)
            return None
        return await self.request_embedding(current.id)

    async def save_document(self, document: Document) -> str | None:
        """Upsert *document* through the configured store and fire the matching hook.

        Raises
        ------
        RuntimeError
            If the trigger was built without a document store.
        """
        if self._documents is None:
            raise RuntimeError("DocumentEmbeddingTrigger has no document store")
        previous = await self._documents.upsert_document(document)
        if previous is None:
            return await self.on_document_created(document)
        return await self.on_document_updated(previous, document)
