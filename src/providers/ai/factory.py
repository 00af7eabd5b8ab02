"""AI provider selection, caching and failover.

The factory owns the closed set of provider types and decides which one
serves a request:

1. Resolve the wanted type from the explicit argument, else
   ``settings.ai_provider``, else ``"ollama"``.
2. Return the cached instance for that type without probing it again.
3. Otherwise probe it (bounded by ``provider_probe_timeout``) and cache it
   if it answers.
4. If it does not, walk the fixed fallback order, probe each remaining
   type, and cache the first one that answers under *its own* type.  The
   preferred type stays uncached, so it is re-probed on the next call and
   takes over again once it recovers.
5. If nothing answers, raise :class:`ProviderUnavailableError`.

A failed probe is remembered for ``provider_failure_ttl`` seconds.  During
that window the type is skipped without probing, so a hung backend costs
one probe timeout per window rather than one per call.

Provider instances are process-wide state; :meth:`clear_cache` drops them
(e.g. after a configuration reload).
"""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Callable, Mapping

import structlog

from src.config.settings import Settings
from src.interfaces.ai_provider import IAIProvider
from src.providers.ai.anthropic_provider import AnthropicAIProvider
from src.providers.ai.ollama_provider import OllamaAIProvider
from src.providers.ai.openai_provider import OpenAIAIProvider
from src.utils.concurrency import throttled_gather
from src.utils.errors import ConfigurationError, ProviderUnavailableError

logger = structlog.get_logger(logger_name=__name__)


class AIProviderType(str, Enum):
    """Known provider types, in fallback priority order."""

    OLLAMA = "ollama"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


FALLBACK_ORDER: tuple[AIProviderType, ...] = (
    AIProviderType.OLLAMA,
    AIProviderType.OPENAI,
    AIProviderType.ANTHROPIC,
)

_DEFAULT_TYPE = AIProviderType.OLLAMA

ProviderBuilder = Callable[[Settings], IAIProvider]

_DEFAULT_BUILDERS: dict[AIProviderType, ProviderBuilder] = {
    AIProviderType.OLLAMA: OllamaAIProvider,
    AIProviderType.OPENAI: OpenAIAIProvider,
    AIProviderType.ANTHROPIC: AnthropicAIProvider,
}


def parse_provider_type(value: str | AIProviderType) -> AIProviderType:
    """Convert a configuration string into an :class:`AIProviderType`.

    Raises
    ------
    ConfigurationError
        If *value* does not name a known provider.
    """
    if isinstance(value, AIProviderType):
        return value
    try:
        return AIProviderType(value.strip().lower())
    except ValueError as exc:
        known = ", ".join(t.value for t in AIProviderType)
        raise ConfigurationError(
            message=f"Unknown AI provider '{value}' (expected one of: {known})",
        ) from exc


class AIProviderFactory:
    """Selects, caches and fails over between AI providers.

    Parameters
    ----------
    settings:
        Application settings; provides the configured default type and the
        probe timeout.
    builders:
        Optional mapping from provider type to a constructor.  Defaults to
        the real Ollama/OpenAI/Anthropic adapters; tests inject fakes.
    clock:
        Monotonic time source for the failed-probe window.
    """

    def __init__(
        self,
        settings: Settings,
        builders: Mapping[AIProviderType, ProviderBuilder] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings
        self._builders: dict[AIProviderType, ProviderBuilder] = dict(
            builders if builders is not None else _DEFAULT_BUILDERS
        )
        self._probe_timeout = settings.provider_probe_timeout
        self._failure_ttl = settings.provider_failure_ttl
        self._clock = clock
        # Constructed adapters, whether or not they passed a probe.
        self._instances: dict[AIProviderType, IAIProvider] = {}
        # Adapters that passed a probe; returned without re-probing.
        self._cache: dict[AIProviderType, IAIProvider] = {}
        # Types whose last probe failed, with the time the skip expires.
        self._down_until: dict[AIProviderType, float] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def resolve_type(self, preferred: str | AIProviderType | None = None) -> AIProviderType:
        """Return the provider type a call with *preferred* would try first."""
        if preferred:
            return parse_provider_type(preferred)
        if self._settings.ai_provider:
            return parse_provider_type(self._settings.ai_provider)
        return _DEFAULT_TYPE

    async def get_provider(
        self,
        preferred: str | AIProviderType | None = None,
        *,
        require_embeddings: bool = False,
    ) -> IAIProvider:
        """Return a working provider, falling back when the preferred one is down.

        Parameters
        ----------
        preferred:
            Provider type to try first.  ``None`` uses configuration.
        require_embeddings:
            When ``True`` only providers that can embed are considered.

        Raises
        ------
        ConfigurationError
            If *preferred* (or the configured type) is unknown.
        ProviderUnavailableError
            If no candidate passes its availability probe.
        """
        wanted = self.resolve_type(preferred)

        cached = self._cache.get(wanted)
        if cached is not None and self._qualifies(cached, require_embeddings):
            return cached

        if wanted in self._builders:
            provider = self._instance(wanted)
            if self._qualifies(provider, require_embeddings) and await self._probe_type(wanted, provider):
                self._cache[wanted] = provider
                return provider

        for candidate_type in FALLBACK_ORDER:
            if candidate_type == wanted or candidate_type not in self._builders:
                continue
            candidate = self._cache.get(candidate_type)
            if candidate is None:
                candidate = self._instance(candidate_type)
                if not self._qualifies(candidate, require_embeddings):
                    continue
                if not await self._probe_type(candidate_type, candidate):
                    continue
                self._cache[candidate_type] = candidate
            elif not self._qualifies(candidate, require_embeddings):
                continue

            logger.warning(
                "ai_provider_fallback",
                preferred=wanted.value,
                fallback=candidate_type.value,
                require_embeddings=require_embeddings,
            )
            return candidate

        logger.error(
            "ai_provider_none_available",
            preferred=wanted.value,
            require_embeddings=require_embeddings,
        )
        raise ProviderUnavailableError(
            message=(
                "No AI provider is available"
                + (" that supports embeddings" if require_embeddings else "")
            ),
            provider_name=wanted.value,
        )

    async def get_available_providers(self) -> list[str]:
        """Probe every known provider type and return the names that answered.

        A probe that raises or times out counts as unavailable for that
        provider only; the scan always covers every type.
        """
        types = [t for t in FALLBACK_ORDER if t in self._builders]

        async def _check(provider_type: AIProviderType) -> bool:
            return await self._probe(self._instance(provider_type))

        results = await throttled_gather([_check(t) for t in types], return_exceptions=True)

        available: list[str] = []
        for provider_type, result in zip(types, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "ai_provider_build_failed",
                    provider=provider_type.value,
                    error=str(result),
                )
            elif result:
                available.append(provider_type.value)
        return available

    def clear_cache(self) -> None:
        """Forget every provider instance so the next call rebuilds and re-probes."""
        self._cache.clear()
        self._instances.clear()
        self._down_until.clear()
        logger.info("ai_provider_cache_cleared")

    async def aclose(self) -> None:
        """Close the HTTP clients held by constructed providers."""
        for provider in self._instances.values():
            closer = getattr(provider, "aclose", None)
            if closer is not None:
                await closer()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _instance(self, provider_type: AIProviderType) -> IAIProvider:
        provider = self._instances.get(provider_type)
        if provider is None:
            provider = self._builders[provider_type](self._settings)
            self._instances[provider_type] = provider
        return provider

    @staticmethod
    def _qualifies(provider: IAIProvider, require_embeddings: bool) -> bool:
        return not require_embeddings or provider.supports_embeddings()

    async def _probe_type(self, provider_type: AIProviderType, provider: IAIProvider) -> bool:
        """Probe *provider* unless its type failed within the last window."""
        until = self._down_until.get(provider_type)
        if until is not None:
            if self._clock() < until:
                logger.debug("ai_provider_probe_skipped", provider=provider_type.value)
                return False
            del self._down_until[provider_type]

        if await self._probe(provider):
            return True
        if self._failure_ttl > 0:
            self._down_until[provider_type] = self._clock() + self._failure_ttl
        return False

    async def _probe(self, provider: IAIProvider) -> bool:
        name = provider.get_provider_name()
        try:
            available = await asyncio.wait_for(provider.is_available(), self._probe_timeout)
        except asyncio.TimeoutError:
            logger.warning("ai_provider_probe_timeout", provider=name, timeout=self._probe_timeout)
            return False
        except Exception as exc:
            logger.warning("ai_provider_probe_error", provider=name, error=str(exc))
            return False
        logger.debug("ai_provider_probed", provider=name, available=available)
        return bool(available)
