"""Custom exception hierarchy for docmind.

All application exceptions inherit from :class:`DocMindError`, which
carries an optional ``provider_name`` so error handlers can identify which
backend (e.g. "ollama", "openai", "sqlite") caused the failure.

The hierarchy is organized by RAG pipeline stage:

    DocMindError  (base -- catch-all for any docmind error)
    +-- ConfigurationError       (startup / unknown provider type)
    +-- ProviderUnavailableError (no AI provider passed its health probe)
    +-- ProviderRequestError     (an AI provider call failed or was malformed)
    +-- ChunkingDegenerateError  (chunker failed to make forward progress)
    +-- VectorStoreError         (embedding persistence or query failure)
    +-- SearchFailedError        (semantic search could not complete)
    +-- DocumentNotFoundError    (summary or reindex of an unknown document)

A missing or empty document is deliberately *not* an error: the embedding
worker treats it as a successful no-op.
"""


class DocMindError(Exception):
    """Base exception for all docmind errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which backend triggered the error.  The
    ``__str__`` method prefixes the provider name in brackets for
    structured log output, e.g. ``[ollama] connection refused``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

class ConfigurationError(DocMindError):
    """Raised when configuration is invalid or names an unknown provider."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# AI provider errors
# ---------------------------------------------------------------------------

class ProviderUnavailableError(DocMindError):
    """Raised when neither the preferred provider nor any fallback is reachable.

    The provider factory is the only place that recovers from an
    unavailable provider (by probing the next one in the fallback order);
    once every candidate has failed, this error reaches the caller.
    """

    def __init__(
        self,
        message: str = "No AI provider is available",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ProviderRequestError(DocMindError):
    """Raised when a provider HTTP/SDK call fails or returns a malformed payload.

    Embedding jobs that hit this are retried by the job queue; synchronous
    search and Q&A requests surface it to the caller.
    """

    def __init__(
        self,
        message: str = "AI provider request failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Pipeline errors
# ---------------------------------------------------------------------------

class ChunkingDegenerateError(DocMindError):
    """Raised if the chunker exceeds its iteration bound without finishing."""

    def __init__(
        self,
        message: str = "Chunking failed to make forward progress",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class VectorStoreError(DocMindError):
    """Raised when storing or querying embedding rows fails."""

    def __init__(
        self,
        message: str = "Vector store operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class SearchFailedError(DocMindError):
    """Raised when embedding the query or querying the store fails during search."""

    def __init__(
        self,
        message: str = "Search is unavailable, retry later",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class DocumentNotFoundError(DocMindError):
    """Raised when an operation names a document that does not exist.

    The embedding worker never raises this; for it a missing document is a
    successful no-op.
    """

    def __init__(
        self,
        message: str = "Document not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
