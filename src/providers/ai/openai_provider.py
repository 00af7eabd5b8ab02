"""OpenAI-compatible AI provider adapter.

Wraps the ``openai`` async client.  When ``openai_base_url`` is set
(TogetherAI, Groq, Fireworks, a local vLLM) the same adapter talks to that
endpoint instead, so one class covers every OpenAI-compatible host.

Endpoints used: chat completions for generation, embeddings for vectors and
``models.list()`` as the health probe.
"""

from __future__ import annotations

import time

import openai
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


class OpenAIAIProvider(IAIProvider):
    """AI provider backed by an OpenAI-compatible API.

    Uses ``gpt-4o-mini`` for text and ``text-embedding-3-small`` (1536 dims)
    for embeddings unless overridden in settings.  Reports itself as
    unavailable when no API key is configured.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._api_key = settings.openai_api_key

        client_kwargs: dict = {
            # The SDK refuses to build a client without a key; the probe
            # reports "unavailable" before any real call is made.
            "api_key": self._api_key or "not-configured",
            "timeout": openai.Timeout(settings.provider_request_timeout, connect=5.0),
            "max_retries": 0,
        }
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url

        self._client = openai.AsyncOpenAI(**client_kwargs)
        self._text_model = settings.openai_text_model or "gpt-4o-mini"
        self._embedding_model = settings.openai_embedding_model or "text-embedding-3-small"
        self._temperature = settings.ai_temperature
        self._max_tokens = settings.ai_max_tokens

    # ------------------------------------------------------------------
    # IAIProvider implementation
    # ------------------------------------------------------------------

    def get_provider_name(self) -> str:
        return "openai"

    def get_model_name(self) -> str:
        return self._text_model

    def supports_embeddings(self) -> bool:
        return True

    async def summarize(self, text: str, length: SummaryLength) -> AIResponse:
        return await self._chat(_SUMMARY_SYSTEM_PROMPT, build_summary_prompt(text, length))

    async def answer_question(self, question: str, context: str) -> AIResponse:
        return await self._chat(QA_SYSTEM_PROMPT, build_question_prompt(question, context))

    async def generate_embedding(self, text: str) -> list[float]:
        try:
            response = await self._client.embeddings.create(
                model=self._embedding_model,
                input=text,
            )
        except openai.APIError as exc:
            raise ProviderRequestError(
                message=f"OpenAI embedding error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if not response.data:
            raise ProviderRequestError(
                message="OpenAI returned no embedding",
                provider_name=self.get_provider_name(),
            )
        return list(response.data[0].embedding)

    async def is_available(self) -> bool:
        """Return ``True`` if a key is configured and ``models.list()`` succeeds."""
        if not self._api_key:
            return False
        try:
            await self._client.models.list()
            return True
        except openai.APIError as exc:
            logger.warning("openai_probe_failed", error=str(exc))
            return False

    async def aclose(self) -> None:
        await self._client.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _chat(self, system_prompt: str, user_prompt: str) -> AIResponse:
        start = time.perf_counter()
        try:
            response = await self._client.chat.completions.create(
                model=self._text_model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=self._temperature,
                max_tokens=self._max_tokens,
            )
        except openai.APIError as exc:
            raise ProviderRequestError(
                message=f"OpenAI API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise ProviderRequestError(
                message="OpenAI returned empty response",
                provider_name=self.get_provider_name(),
            )

        usage = response.usage
        elapsed = time.perf_counter() - start
        logger.info(
            "openai_completion",
            model=self._text_model,
            prompt_tokens=usage.prompt_tokens if usage else None,
            completion_tokens=usage.completion_tokens if usage else None,
        )
        return AIResponse(
            text=content.strip(),
            model=self._text_model,
            tokens_in=usage.prompt_tokens if usage else None,
            tokens_out=usage.completion_tokens if usage else None,
            processing_time=elapsed,
        )
