"""Unit tests for SemanticSearchService."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from src.models.rag import SearchResult
from src.services.embedding_service import EmbeddingService
from src.services.search_service import SemanticSearchService
from src.utils.errors import ProviderUnavailableError, SearchFailedError, VectorStoreError
from tests.conftest import StaticProviderFactory


@pytest.fixture()
def mock_vector_store() -> AsyncMock:
    store = AsyncMock()
    store.similarity_search = AsyncMock(
        return_value=[SearchResult(doc_id="d1", content="chunk", similarity=0.9)]
    )
    return store


@pytest.fixture()
def service(provider_factory: StaticProviderFactory, mock_vector_store: AsyncMock) -> SemanticSearchService:
    return SemanticSearchService(
        embedding_service=EmbeddingService(provider_factory),
        vector_store=mock_vector_store,
        default_top_k=5,
        similarity_threshold=0.5,
    )


async def test_search_embeds_query_and_uses_threshold(
    service: SemanticSearchService, mock_vector_store: AsyncMock
) -> None:
    results = await service.search("  retry policy  ")

    assert results[0].doc_id == "d1"
    mock_vector_store.similarity_search.assert_awaited_once_with(
        [1.0, 0.0, 0.0], top_k=5, min_similarity=0.5
    )


async def test_explicit_top_k_overrides_default(
    service: SemanticSearchService, mock_vector_store: AsyncMock
) -> None:
    await service.search("query", top_k=2)
    assert mock_vector_store.similarity_search.call_args.kwargs["top_k"] == 2


@pytest.mark.parametrize("query", ["", "   "])
async def test_blank_query_rejected(service: SemanticSearchService, query: str) -> None:
    with pytest.raises(ValueError):
        await service.search(query)


async def test_non_positive_top_k_rejected(service: SemanticSearchService) -> None:
    with pytest.raises(ValueError):
        await service.search("query", top_k=0)


async def test_provider_failure_becomes_search_failed(mock_vector_store: AsyncMock) -> None:
    factory = AsyncMock()
    factory.get_provider = AsyncMock(
        side_effect=ProviderUnavailableError(message="all down", provider_name="ollama")
    )
    service = SemanticSearchService(EmbeddingService(factory), mock_vector_store)

    with pytest.raises(SearchFailedError) as exc_info:
        await service.search("query")

    assert exc_info.value.provider_name == "ollama"
    mock_vector_store.similarity_search.assert_not_awaited()


async def test_store_failure_becomes_search_failed(
    service: SemanticSearchService, mock_vector_store: AsyncMock
) -> None:
    mock_vector_store.similarity_search = AsyncMock(side_effect=VectorStoreError(message="locked"))
    with pytest.raises(SearchFailedError, match="locked"):
        await service.search("query")
