"""Abstract base class for generative AI providers.

Defines the capability set every backend must offer to the RAG core:
summarisation, context-grounded question answering, embedding generation
and a live availability probe.  Implementations wrap a local Ollama server,
the OpenAI API (or any OpenAI-compatible endpoint) and the Anthropic API.
Call sites never touch an SDK directly; they go through
:class:`~src.providers.ai.factory.AIProviderFactory`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.rag import AIResponse, SummaryLength

# Prompt fragments shared by every provider so that switching backends does
# not change what the model is asked to do.
SUMMARY_INSTRUCTIONS: dict[SummaryLength, str] = {
    SummaryLength.SHORT: "Write a concise summary in 2-3 sentences.",
    SummaryLength.MEDIUM: "Write a comprehensive summary in 1-2 paragraphs.",
    SummaryLength.DETAILED: (
        "Write a detailed summary with key points and main concepts in 3-4 paragraphs."
    ),
}

QA_SYSTEM_PROMPT = (
    "You are a helpful assistant that answers questions using only the provided "
    "context. If the answer cannot be found in the context, say that you could "
    "not find it rather than guessing."
)


def build_summary_prompt(text: str, length: SummaryLength) -> str:
    """Return the user prompt asking for a summary of *text*."""
    return (
        f"Please summarize the following text. {SUMMARY_INSTRUCTIONS[length]}\n\n"
        f"Text to summarize:\n{text}\n\n"
        "Summary:"
    )


def build_question_prompt(question: str, context: str) -> str:
    """Return the user prompt asking *question* against *context*."""
    return (
        "Please answer the following question based on the provided context.\n\n"
        f"Context:\n{context}\n\n"
        f"Question: {question}\n\n"
        "Answer:"
    )


# Concrete implementations: OllamaAIProvider, OpenAIAIProvider, AnthropicAIProvider
# Located in: src/providers/ai/
class IAIProvider(ABC):
    """Contract for AI backends used by the embedding pipeline, search and Q&A.

    Text generation is mandatory.  Embedding support is declared via
    :meth:`supports_embeddings`; the factory only hands embedding-incapable
    providers to callers that do not need vectors.
    """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return the provider type identifier, e.g. ``"ollama"``."""

    @abstractmethod
    def get_model_name(self) -> str:
        """Return the text-generation model this provider is configured with."""

    @abstractmethod
    async def summarize(self, text: str, length: SummaryLength) -> AIResponse:
        """Summarise *text* at the requested length.

        Raises
        ------
        src.utils.errors.ProviderRequestError
            If the backend call fails or returns no text.
        """

    @abstractmethod
    async def answer_question(self, question: str, context: str) -> AIResponse:
        """Answer *question* using only *context*.

        Parameters
        ----------
        question:
            The user's natural-language question.
        context:
            Retrieved chunk texts joined by ``"\\n---\\n"``.

        Raises
        ------
        src.utils.errors.ProviderRequestError
            If the backend call fails or returns no text.
        """

    @abstractmethod
    async def generate_embedding(self, text: str) -> list[float]:
        """Return the embedding vector for *text*.

        Raises
        ------
        src.utils.errors.ProviderRequestError
            If the call fails, returns a malformed payload, or the provider
            cannot embed at all.
        """

    @abstractmethod
    async def is_available(self) -> bool:
        """Probe the backend and return ``True`` if it can serve requests.

        This contacts the service (list models, ping an endpoint); it is not
        a configuration check.  Implementations return ``False`` instead of
        raising on connection problems.  Callers bound the probe with a
        timeout.
        """

    @abstractmethod
    def supports_embeddings(self) -> bool:
        """Return ``True`` if :meth:`generate_embedding` is implemented."""
