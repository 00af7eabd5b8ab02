"""Embedding facade over the AI provider factory."""

from __future__ import annotations

import structlog

from src.providers.ai.factory import AIProviderFactory
from src.utils.logging import get_logger

logger: structlog.BoundLogger = get_logger(__name__)


class EmbeddingService:
    """Turns text into vectors using the current embedding-capable provider.

    Parameters
    ----------
    provider_factory:
        Factory used to pick a provider for every call, so a provider that
        goes down mid-batch is replaced by the fallback on the next text.
    """

    def __init__(self, provider_factory: AIProviderFactory) -> None:
        self._factory = provider_factory

    async def generate_embedding(self, text: str) -> list[float]:
        """Return the embedding of *text*.

        Raises
        ------
        src.utils.errors.ProviderUnavailableError
            If no embedding-capable provider is reachable.
        src.utils.errors.ProviderRequestError
            If the provider call fails.
        """
        provider = await self._factory.get_provider(require_embeddings=True)
        try:
            return await provider.generate_embedding(text)
        except Exception as exc:
            logger.error(
                "embedding_failed",
                provider=provider.get_provider_name(),
                text_length=len(text),
                error=str(exc),
            )
            raise

    async def generate_embeddings(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts* one at a time, in order.

        Requests are sequential to stay inside per-provider rate limits.  The
        first failure propagates immediately and the remaining texts are not
        embedded, so callers must treat any exception as "nothing produced".
        """
        vectors: list[list[float]] = []
        for text in texts:
            vectors.append(await self.generate_embedding(text))
        return vectors
