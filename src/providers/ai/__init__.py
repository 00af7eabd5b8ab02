"""AI provider adapters and the provider factory.

Three concrete implementations of IAIProvider (src/interfaces/ai_provider.py):
    - OllamaAIProvider     local models via the Ollama HTTP API (default)
    - OpenAIAIProvider     OpenAI or any OpenAI-compatible endpoint
    - AnthropicAIProvider  Claude via the Messages API (no embeddings)

AIProviderFactory picks one per call, caching probed instances and falling
back in the order ollama -> openai -> anthropic.
"""

from src.providers.ai.anthropic_provider import AnthropicAIProvider
from src.providers.ai.factory import AIProviderFactory, AIProviderType, FALLBACK_ORDER
from src.providers.ai.ollama_provider import OllamaAIProvider
from src.providers.ai.openai_provider import OpenAIAIProvider

__all__ = [
    "AIProviderFactory",
    "AIProviderType",
    "AnthropicAIProvider",
    "FALLBACK_ORDER",
    "OllamaAIProvider",
    "OpenAIAIProvider",
]
