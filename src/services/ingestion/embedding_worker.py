"""Embedding worker: keeps a document's vector rows in step with its content.

Consumes ``{"doc_id": ...}`` jobs from the ``"embedding"`` topic and walks
each through a fixed sequence of states:

    RECEIVED -> LOADED -> CHUNKED -> EMBEDDED -> STORED -> DONE
                    (any step may end in FAILED)

1. **Loaded** -- fetch the document.  A missing document or blank content
   ends the job as a successful no-op.
2. **Chunked** -- split the content with the configured size and overlap.
3. **Embedded** -- embed every chunk, sequentially.  Any failure fails the
   job so the queue retries it; existing rows are left untouched, and
   search keeps serving the previous version in the meantime.
4. **Stored** -- replace the document's rows in one transaction.

Every run rebuilds the full row set from the current content, so a
duplicate or retried job produces the same result as a single run.
"""

from __future__ import annotations

from typing import Any

import structlog

from src.interfaces.document_store import IDocumentStore
from src.interfaces.job_queue import IJobQueue
from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.models.rag import ChunkEmbedding, EmbeddingJob, EmbeddingJobResult, JobState
from src.services.embedding_service import EmbeddingService
from src.services.ingestion.chunker import TextChunker
from src.utils.logging import get_logger

logger: structlog.BoundLogger = get_logger(__name__)

EMBEDDING_TOPIC = "embedding"


class EmbeddingWorker:
    """Runs the chunk -> embed -> store pipeline for one document per job.

    Parameters
    ----------
    document_store:
        Source of document content.
    chunker:
        Configured :class:`TextChunker`.
    embedding_service:
        Produces one vector per chunk.
    vector_store:
        Destination for the replaced row set.
    """

    def __init__(
        self,
        document_store: IDocumentStore,
        chunker: TextChunker,
        embedding_service: EmbeddingService,
        vector_store: IVectorStoreProvider,
    ) -> None:
        self._documents = document_store
        self._chunker = chunker
        self._embeddings = embedding_service
        self._vector_store = vector_store

    def register(self, queue: IJobQueue) -> None:
        """Subscribe this worker to the embedding topic of *queue*."""
        queue.subscribe(EMBEDDING_TOPIC, self.handle)

    async def handle(self, payload: dict[str, Any]) -> EmbeddingJobResult:
        """Queue handler entry point; validates the payload and runs the job."""
        job = EmbeddingJob.model_validate(payload)
        return await self.process(job.doc_id)

    async def process(self, doc_id: str) -> EmbeddingJobResult:
        """Run the full pipeline for *doc_id*.

        Raises
        ------
        src.utils.errors.DocMindError
            Any provider or store failure, after logging the FAILED state.
            The queue decides whether to retry.
        """
        log = logger.bind(doc_id=doc_id)
        state = JobState.RECEIVED
        log.debug("embedding_job_state", state=state.value)

        try:
            document = await self._documents.get_document(doc_id)
            if document is None:
                log.info("embedding_job_skipped", reason="document_missing")
                return EmbeddingJobResult(
                    doc_id=doc_id, state=JobState.DONE, skipped_reason="document_missing"
                )
            if not document.content.strip():
                # Rows from the last non-blank version stay until the document is deleted.
                log.info("embedding_job_skipped", reason="document_empty")
                return EmbeddingJobResult(
                    doc_id=doc_id, state=JobState.DONE, skipped_reason="document_empty"
                )
            state = JobState.LOADED
            log.debug("embedding_job_state", state=state.value)

            chunks = self._chunker.chunk(doc_id, document.content)
            state = JobState.CHUNKED
            log.debug("embedding_job_state", state=state.value, chunks=len(chunks))

            vectors = await self._embeddings.generate_embeddings([c.text for c in chunks])
            state = JobState.EMBEDDED
            log.debug("embedding_job_state", state=state.value)

            rows = [
                ChunkEmbedding(index=chunk.index, text=chunk.text, vector=vector)
                for chunk, vector in zip(chunks, vectors)
            ]
            written = await self._vector_store.replace_embeddings(doc_id, rows)
            state = JobState.STORED
            log.debug("embedding_job_state", state=state.value, rows=written)
        except Exception as exc:
            log.error(
                "embedding_job_failed",
                state=JobState.FAILED.value,
                failed_after=state.value,
                error=str(exc),
            )
            raise

        log.info("embedding_job_done", state=JobState.DONE.value, chunks=written)
        return EmbeddingJobResult(doc_id=doc_id, state=JobState.DONE, chunks=written)
