"""Anthropic AI provider adapter.

Wraps the ``anthropic`` async client for summarisation and question
answering through the Messages API.  Anthropic has no embeddings endpoint,
so this provider declares ``supports_embeddings() == False`` and the
factory never selects it for the embedding pipeline or semantic search.

Differences from the OpenAI adapter:
    - The system prompt is a top-level ``system`` argument, not a message.
    - Responses are lists of content blocks; only text blocks are kept.
"""

from __future__ import annotations

import time

import anthropic
import structlog

from src.config.settings import Settings
from src.interfaces.ai_provider import (
    QA_SYSTEM_PROMPT,
    IAIProvider,
    build_question_prompt,
    build_summary_prompt,
)
from src.models.rag import AIResponse, SummaryLength
from src.utils.errors import ProviderRequestError

logger = structlog.get_logger(logger_name=__name__)

_SUMMARY_SYSTEM_PROMPT = "You are a helpful assistant that writes faithful, concise summaries."


class AnthropicAIProvider(IAIProvider):
    """AI provider backed by the Anthropic Claude API."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._api_key = settings.anthropic_api_key
        self._client = anthropic.AsyncAnthropic(
            api_key=self._api_key or "not-configured",
            timeout=settings.provider_request_timeout,
            max_retries=0,
        )
        self._model = settings.anthropic_model
        self._temperature = settings.ai_temperature
        self._max_tokens = settings.ai_max_tokens

    # ------------------------------------------------------------------
    # IAIProvider implementation
    # ------------------------------------------------------------------

    def get_provider_name(self) -> str:
        return "anthropic"

    def get_model_name(self) -> str:
        return self._model

    def supports_embeddings(self) -> bool:
        return False

    async def summarize(self, text: str, length: SummaryLength) -> AIResponse:
        return await self._message(_SUMMARY_SYSTEM_PROMPT, build_summary_prompt(text, length))

    async def answer_question(self, question: str, context: str) -> AIResponse:
        return await self._message(QA_SYSTEM_PROMPT, build_question_prompt(question, context))

    async def generate_embedding(self, text: str) -> list[float]:
        raise ProviderRequestError(
            message="Anthropic does not provide an embeddings API",
            provider_name=self.get_provider_name(),
        )

    async def is_available(self) -> bool:
        """Return ``True`` if a key is configured and ``models.list()`` succeeds."""
        if not self._api_key:
            return False
        try:
            await self._client.models.list(limit=1)
            return True
        except anthropic.APIError as exc:
            logger.warning("anthropic_probe_failed", error=str(exc))
            return False

    async def aclose(self) -> None:
        await self._client.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _message(self, system_prompt: str, user_prompt: str) -> AIResponse:
        start = time.perf_counter()
        try:
            response = await self._client.messages.create(
                model=self._model,
                max_tokens=self._max_tokens,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
                temperature=self._temperature,
            )
        except anthropic.APIError as exc:
            raise ProviderRequestError(
                message=f"Anthropic API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        text_blocks = [block.text for block in response.content if block.type == "text"]
        if not text_blocks:
            raise ProviderRequestError(
                message="Anthropic returned no text content",
                provider_name=self.get_provider_name(),
            )

        elapsed = time.perf_counter() - start
        logger.info(
            "anthropic_completion",
            model=self._model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )
        return AIResponse(
            text="\n".join(text_blocks).strip(),
            model=self._model,
            tokens_in=response.usage.input_tokens,
            tokens_out=response.usage.output_tokens,
            processing_time=elapsed,
        )
