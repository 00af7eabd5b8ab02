"""Unit tests for the Celery worker entry point in src/worker.py."""

from __future__ import annotations

from pathlib import Path

import pytest

from src.models.rag import Document, JobState
from src.providers.document_store.sqlite_document_store import SQLiteDocumentStore
from src.providers.vector_store.sqlite_vector_store import SQLiteVectorStore
from src.services.ingestion.embedding_worker import EMBEDDING_TOPIC
from src.utils.errors import ProviderRequestError
from src.worker import build_worker_queue, make_embedding_handler
from tests.conftest import FakeAIProvider, StaticProviderFactory, make_settings


async def test_embedding_handler_uses_a_fresh_factory_per_job(
    document_store: SQLiteDocumentStore,
    vector_store: SQLiteVectorStore,
    fake_provider: FakeAIProvider,
) -> None:
    factories: list[StaticProviderFactory] = []

    def build_factory(_settings) -> StaticProviderFactory:
        factory = StaticProviderFactory(fake_provider)
        factories.append(factory)
        return factory

    handler = make_embedding_handler(
        make_settings(), document_store, vector_store, factory_builder=build_factory
    )
    await document_store.upsert_document(Document(id="w1", content="worker content"))

    first = await handler({"doc_id": "w1"})
    await handler({"doc_id": "w1"})

    assert first.state is JobState.DONE
    assert first.chunks == 1
    assert len(factories) == 2
    assert all(f.closed for f in factories)
    assert await vector_store.count_embeddings("w1") == 1


async def test_factory_closed_when_job_fails(
    document_store: SQLiteDocumentStore,
    vector_store: SQLiteVectorStore,
) -> None:
    provider = FakeAIProvider()
    provider.fail_embeddings = 1
    factory = StaticProviderFactory(provider)
    handler = make_embedding_handler(
        make_settings(), document_store, vector_store, factory_builder=lambda _s: factory
    )
    await document_store.upsert_document(Document(id="w2", content="will fail"))

    with pytest.raises(ProviderRequestError):
        await handler({"doc_id": "w2"})

    assert factory.closed
    assert await vector_store.count_embeddings("w2") == 0


def test_build_worker_queue_subscribes_embedding_task(tmp_path: Path, redis_client) -> None:
    settings = make_settings(database_path=str(tmp_path / "worker.db"), embedding_max_attempts=4)
    queue, document_store, vector_store = build_worker_queue(settings, redis_client)

    task = queue.task_for(EMBEDDING_TOPIC)
    assert task.name == "docmind.embedding"
    assert task.max_retries == 3
    assert queue.celery_app.conf.task_acks_late is True
    assert isinstance(document_store, SQLiteDocumentStore)
    assert isinstance(vector_store, SQLiteVectorStore)
