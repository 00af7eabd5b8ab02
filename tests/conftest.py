"""Shared pytest fixtures for the docmind test suite."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

import fakeredis
import pytest

from src.config.settings import Settings
from src.interfaces.ai_provider import IAIProvider
from src.models.rag import AIResponse, Document, SummaryLength
from src.providers.document_store.sqlite_document_store import SQLiteDocumentStore
from src.providers.vector_store.sqlite_vector_store import SQLiteVectorStore
from src.utils.errors import ProviderRequestError


def make_settings(**overrides: Any) -> Settings:
    """Build Settings without reading the developer's ``.env`` file."""
    defaults: dict[str, Any] = {
        "ai_provider": "ollama",
        "openai_api_key": "",
        "anthropic_api_key": "",
        "provider_probe_timeout": 1.0,
        "provider_failure_ttl": 0.0,
        "celery_broker_url": "memory://",
        "celery_result_backend": "cache+memory://",
        "celery_task_always_eager": True,
        "embedding_retry_backoff": 0.0,
        "embedding_lock_wait": 2.0,
    }
    defaults.update(overrides)
    return Settings(_env_file=None, **defaults)


# ---------------------------------------------------------------------------
# Fake AI provider
# ---------------------------------------------------------------------------


class FakeAIProvider(IAIProvider):
    """In-memory IAIProvider with call counters.

    ``embed`` maps text to a vector; the default returns a fixed 3-d vector.
    ``fail_embeddings`` makes the next N embedding calls raise.
    """

    def __init__(
        self,
        name: str = "fake",
        *,
        available: bool = True,
        embeddings: bool = True,
        embed: Callable[[str], list[float]] | None = None,
        answer_text: str = "Generated answer.",
        summary_text: str = "A short summary.",
    ) -> None:
        self.name = name
        self.available = available
        self.embeddings = embeddings
        self.embed = embed or (lambda _text: [1.0, 0.0, 0.0])
        self.answer_text = answer_text
        self.summary_text = summary_text
        self.fail_embeddings = 0
        self.probe_calls = 0
        self.embedding_calls: list[str] = []
        self.question_calls: list[tuple[str, str]] = []
        self.summary_calls: list[tuple[str, SummaryLength]] = []

    def get_provider_name(self) -> str:
        return self.name

    def get_model_name(self) -> str:
        return f"{self.name}-model"

    def supports_embeddings(self) -> bool:
        return self.embeddings

    async def summarize(self, text: str, length: SummaryLength) -> AIResponse:
        self.summary_calls.append((text, length))
        return AIResponse(text=self.summary_text, model=self.get_model_name(), tokens_in=10, tokens_out=5)

    async def answer_question(self, question: str, context: str) -> AIResponse:
        self.question_calls.append((question, context))
        return AIResponse(text=self.answer_text, model=self.get_model_name())

    async def generate_embedding(self, text: str) -> list[float]:
        self.embedding_calls.append(text)
        if self.fail_embeddings > 0:
            self.fail_embeddings -= 1
            raise ProviderRequestError(message="embedding backend down", provider_name=self.name)
        return self.embed(text)

    async def is_available(self) -> bool:
        self.probe_calls += 1
        return self.available


class StaticProviderFactory:
    """Stands in for AIProviderFactory: always hands back one provider."""

    def __init__(self, provider: IAIProvider) -> None:
        self.provider = provider
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    async def get_provider(self, preferred: Any = None, *, require_embeddings: bool = False) -> IAIProvider:
        self.calls.append({"preferred": preferred, "require_embeddings": require_embeddings})
        return self.provider

    async def get_available_providers(self) -> list[str]:
        return [self.provider.get_provider_name()]

    async def aclose(self) -> None:
        self.closed = True


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_provider() -> FakeAIProvider:
    return FakeAIProvider()


@pytest.fixture
def provider_factory(fake_provider: FakeAIProvider) -> StaticProviderFactory:
    return StaticProviderFactory(fake_provider)


@pytest.fixture
def redis_client() -> fakeredis.FakeRedis:
    """Isolated in-memory Redis for queue locks, markers and dead letters."""
    return fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Return a fresh database path inside pytest's temp directory."""
    return tmp_path / "docmind.db"


@pytest.fixture
async def document_store(db_path: Path) -> SQLiteDocumentStore:
    store = SQLiteDocumentStore(db_path=db_path)
    await store.initialize()
    return store


@pytest.fixture
async def vector_store(db_path: Path, document_store: SQLiteDocumentStore) -> SQLiteVectorStore:
    store = SQLiteVectorStore(db_path=db_path)
    await store.initialize()
    return store


@pytest.fixture
def sample_document() -> Document:
    return Document(
        id="doc-1",
        title="Release notes",
        content="The sync engine now retries failed uploads with exponential backoff.",
    )
