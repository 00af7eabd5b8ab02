"""Ollama AI provider adapter.

Talks to a local Ollama server over its native HTTP API with ``httpx``:

    POST /api/generate     text generation (``stream: false``)
    POST /api/embeddings   single-prompt embedding
    GET  /api/tags         installed-model listing, used as the health probe

Ollama is free and runs fully offline, which makes it the default provider.
Setup: install Ollama (https://ollama.com), run ``ollama pull phi3:3.8b`` and
point OLLAMA_BASE_URL at the server (default http://127.0.0.1:11434).
"""

from __future__ import annotations

import time
from typing import Any

import httpx
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


class OllamaAIProvider(IAIProvider):
    """AI provider backed by a local Ollama server.

    Parameters
    ----------
    settings:
        Application settings (base URL, model names, sampling options).
    http_client:
        Optional pre-built ``httpx.AsyncClient``.  Tests pass one wired to
        ``httpx.MockTransport``; production lets the provider build its own.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings
        self._base_url = settings.ollama_base_url.rstrip("/")
        self._model = settings.ollama_model
        self._embedding_model = settings.ollama_embedding_model or settings.ollama_model
        self._temperature = settings.ai_temperature
        self._max_tokens = settings.ai_max_tokens
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=settings.provider_request_timeout,
        )

    # ------------------------------------------------------------------
    # IAIProvider implementation
    # ------------------------------------------------------------------

    def get_provider_name(self) -> str:
        return "ollama"

    def get_model_name(self) -> str:
        return self._model

    def supports_embeddings(self) -> bool:
        return True

    async def summarize(self, text: str, length: SummaryLength) -> AIResponse:
        return await self._generate(build_summary_prompt(text, length))

    async def answer_question(self, question: str, context: str) -> AIResponse:
        return await self._generate(
            build_question_prompt(question, context),
            system=QA_SYSTEM_PROMPT,
        )

    async def generate_embedding(self, text: str) -> list[float]:
        payload = {"model": self._embedding_model, "prompt": text}
        data = await self._post("/api/embeddings", payload)
        embedding = data.get("embedding")
        if not isinstance(embedding, list) or not embedding:
            raise ProviderRequestError(
                message="Ollama returned no embedding",
                provider_name=self.get_provider_name(),
            )
        try:
            return [float(value) for value in embedding]
        except (TypeError, ValueError) as exc:
            raise ProviderRequestError(
                message=f"Ollama returned a malformed embedding: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def is_available(self) -> bool:
        """Return ``True`` if the server answers /api/tags and lists the model.

        A model is considered installed when a listed name matches either
        the configured tag exactly or its base name (``phi3`` for
        ``phi3:3.8b``).
        """
        try:
            response = await self._client.get(f"{self._base_url}/api/tags")
            response.raise_for_status()
            models = response.json().get("models") or []
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("ollama_probe_failed", base_url=self._base_url, error=str(exc))
            return False

        base_name = self._model.split(":")[0]
        names = [m.get("name", "") for m in models if isinstance(m, dict)]
        available = any(n == self._model or n.split(":")[0] == base_name for n in names)
        if not available:
            logger.warning("ollama_model_missing", model=self._model, installed=names)
        return available

    async def aclose(self) -> None:
        """Close the HTTP client if this provider created it."""
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _generate(self, prompt: str, system: str | None = None) -> AIResponse:
        payload: dict[str, Any] = {
            "model": self._model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": self._temperature,
                "num_predict": self._max_tokens,
            },
        }
        if system:
            payload["system"] = system

        start = time.perf_counter()
        data = await self._post("/api/generate", payload)
        text = data.get("response")
        if not isinstance(text, str) or not text.strip():
            raise ProviderRequestError(
                message="Ollama returned empty response",
                provider_name=self.get_provider_name(),
            )
        elapsed = time.perf_counter() - start
        logger.info(
            "ollama_completion",
            model=self._model,
            prompt_tokens=data.get("prompt_eval_count"),
            completion_tokens=data.get("eval_count"),
            duration_s=round(elapsed, 3),
        )
        return AIResponse(
            text=text.strip(),
            model=self._model,
            tokens_in=data.get("prompt_eval_count"),
            tokens_out=data.get("eval_count"),
            processing_time=elapsed,
        )

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self._client.post(f"{self._base_url}{path}", json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:
            raise ProviderRequestError(
                message=f"Ollama request to {path} failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except ValueError as exc:
            raise ProviderRequestError(
                message=f"Ollama returned invalid JSON from {path}",
                provider_name=self.get_provider_name(),
            ) from exc
        if not isinstance(data, dict):
            raise ProviderRequestError(
                message=f"Ollama returned an unexpected payload from {path}",
                provider_name=self.get_provider_name(),
            )
        return data
