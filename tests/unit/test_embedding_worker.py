"""Unit tests for EmbeddingWorker."""

from __future__ import annotations

import pytest

from src.models.rag import Document, JobState
from src.providers.document_store.sqlite_document_store import SQLiteDocumentStore
from src.providers.queue.celery_queue import CeleryJobQueue, create_celery_app
from src.providers.vector_store.sqlite_vector_store import SQLiteVectorStore
from src.services.embedding_service import EmbeddingService
from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.embedding_worker import EMBEDDING_TOPIC, EmbeddingWorker
from src.utils.errors import ProviderRequestError
from tests.conftest import FakeAIProvider, StaticProviderFactory, make_settings


@pytest.fixture()
def worker(
    document_store: SQLiteDocumentStore,
    vector_store: SQLiteVectorStore,
    provider_factory: StaticProviderFactory,
) -> EmbeddingWorker:
    return EmbeddingWorker(
        document_store=document_store,
        chunker=TextChunker(chunk_size=500, overlap=50),
        embedding_service=EmbeddingService(provider_factory),
        vector_store=vector_store,
    )


async def test_document_of_520_chars_produces_two_rows(
    worker: EmbeddingWorker,
    document_store: SQLiteDocumentStore,
    vector_store: SQLiteVectorStore,
    fake_provider: FakeAIProvider,
) -> None:
    await document_store.upsert_document(Document(id="d1", title="T", content="x" * 520))

    result = await worker.process("d1")

    assert result.state is JobState.DONE
    assert result.chunks == 2
    rows = await vector_store.get_embeddings("d1")
    assert [r.chunk_index for r in rows] == [0, 1]
    assert len(fake_provider.embedding_calls) == 2


async def test_reprocessing_is_idempotent(
    worker: EmbeddingWorker,
    document_store: SQLiteDocumentStore,
    vector_store: SQLiteVectorStore,
) -> None:
    await document_store.upsert_document(Document(id="d1", content="x" * 520))

    await worker.process("d1")
    first = [(r.chunk_index, r.content) for r in await vector_store.get_embeddings("d1")]
    await worker.process("d1")
    second = [(r.chunk_index, r.content) for r in await vector_store.get_embeddings("d1")]

    assert first == second


async def test_shrinking_content_drops_old_rows(
    worker: EmbeddingWorker,
    document_store: SQLiteDocumentStore,
    vector_store: SQLiteVectorStore,
) -> None:
    await document_store.upsert_document(Document(id="d1", content="x" * 1400))
    await worker.process("d1")
    await document_store.upsert_document(Document(id="d1", content="short now"))
    await worker.process("d1")

    rows = await vector_store.get_embeddings("d1")
    assert [r.content for r in rows] == ["short now"]


async def test_missing_document_is_a_no_op(
    worker: EmbeddingWorker, fake_provider: FakeAIProvider
) -> None:
    result = await worker.process("ghost")

    assert result.state is JobState.DONE
    assert result.skipped_reason == "document_missing"
    assert fake_provider.embedding_calls == []


async def test_blank_document_is_a_no_op(
    worker: EmbeddingWorker,
    document_store: SQLiteDocumentStore,
    fake_provider: FakeAIProvider,
) -> None:
    await document_store.upsert_document(Document(id="d2", title="Empty", content="  \n "))

    result = await worker.process("d2")

    assert result.skipped_reason == "document_empty"
    assert fake_provider.embedding_calls == []


async def test_content_cleared_to_blank_keeps_previous_rows(
    worker: EmbeddingWorker,
    document_store: SQLiteDocumentStore,
    vector_store: SQLiteVectorStore,
) -> None:
    await document_store.upsert_document(Document(id="d3", content="first draft"))
    await worker.process("d3")
    await document_store.upsert_document(Document(id="d3", content="   "))

    result = await worker.process("d3")

    assert result.skipped_reason == "document_empty"
    rows = await vector_store.get_embeddings("d3")
    assert [r.content for r in rows] == ["first draft"]


async def test_embedding_failure_keeps_previous_rows(
    worker: EmbeddingWorker,
    document_store: SQLiteDocumentStore,
    vector_store: SQLiteVectorStore,
    fake_provider: FakeAIProvider,
) -> None:
    await document_store.upsert_document(Document(id="d1", content="original text"))
    await worker.process("d1")

    await document_store.upsert_document(Document(id="d1", content="x" * 520))
    fake_provider.fail_embeddings = 2
    with pytest.raises(ProviderRequestError):
        await worker.process("d1")

    rows = await vector_store.get_embeddings("d1")
    assert [r.content for r in rows] == ["original text"]


async def test_handle_validates_payload(worker: EmbeddingWorker) -> None:
    with pytest.raises(ValueError):
        await worker.handle({"doc_id": ""})


async def test_register_subscribes_to_embedding_topic(
    worker: EmbeddingWorker,
    document_store: SQLiteDocumentStore,
    vector_store: SQLiteVectorStore,
    redis_client,
) -> None:
    queue = CeleryJobQueue(create_celery_app(make_settings()), redis_client, retry_backoff=0)
    worker.register(queue)
    await document_store.upsert_document(Document(id="d9", content="queued content"))

    await queue.start()
    try:
        await queue.enqueue(EMBEDDING_TOPIC, {"doc_id": "d9"}, key="d9")
        await queue.join()
    finally:
        await queue.stop()

    assert await vector_store.count_embeddings("d9") == 1
