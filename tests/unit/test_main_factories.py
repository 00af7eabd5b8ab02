"""Unit tests for the DI assembly and app factory in src/main.py."""

from __future__ import annotations

from pathlib import Path

import fakeredis
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

import src.main as main_module
from src.main import _build_all, create_app
from src.providers.ai.factory import AIProviderFactory
from src.providers.document_store.sqlite_document_store import SQLiteDocumentStore
from src.providers.queue.celery_queue import CeleryJobQueue
from src.providers.vector_store.sqlite_vector_store import SQLiteVectorStore
from src.services.ingestion.document_events import DocumentEmbeddingTrigger
from src.services.qa_service import QAService
from src.services.search_service import SemanticSearchService
from src.services.summary_service import SummaryService
from tests.conftest import make_settings


class TestBuildAll:
    def test_returns_every_component(self, tmp_path: Path) -> None:
        components = _build_all(make_settings(database_path=str(tmp_path / "app.db")))

        assert isinstance(components["document_store"], SQLiteDocumentStore)
        assert isinstance(components["vector_store"], SQLiteVectorStore)
        assert isinstance(components["provider_factory"], AIProviderFactory)
        assert isinstance(components["job_queue"], CeleryJobQueue)
        assert isinstance(components["embedding_trigger"], DocumentEmbeddingTrigger)
        assert isinstance(components["search_service"], SemanticSearchService)
        assert isinstance(components["qa_service"], QAService)
        assert isinstance(components["summary_service"], SummaryService)

    def test_provider_registry_reflects_settings(self, tmp_path: Path) -> None:
        components = _build_all(
            make_settings(
                database_path=str(tmp_path / "app.db"),
                ai_provider="openai",
                worker_concurrency=4,
            )
        )

        assert components["provider_registry"] == {
            "ai_provider": "openai",
            "vector_store": "sqlite_vector",
            "queue_workers": 4,
        }

    def test_worker_is_subscribed_to_embedding_topic(self, tmp_path: Path) -> None:
        components = _build_all(make_settings(database_path=str(tmp_path / "app.db")))
        with pytest.raises(ValueError, match="already has a handler"):
            components["embedding_worker"].register(components["job_queue"])


class TestCreateApp:
    def test_returns_fastapi_with_api_routes(self) -> None:
        app = create_app()
        paths = set(app.openapi()["paths"])

        assert isinstance(app, FastAPI)
        assert "/api/v1/search" in paths
        assert "/api/v1/ask" in paths
        assert "/api/v1/chat" in paths
        assert "/api/v1/bulk-summarize" in paths
        assert "/api/v1/documents/{doc_id}/reindex" in paths

    def test_lifespan_initialises_stores(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        db_file = tmp_path / "nested" / "app.db"
        monkeypatch.setattr(main_module, "settings", make_settings(database_path=str(db_file)))
        monkeypatch.setattr(
            main_module,
            "create_redis_client",
            lambda _s: fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True),
        )

        with TestClient(create_app()) as client:
            health = client.get("/api/v1/health").json()
            missing = client.delete("/api/v1/documents/unknown")

        assert db_file.exists()
        assert health["status"] == "healthy"
        assert health["providers"]["embeddings"] == 0
        assert missing.status_code == 404
