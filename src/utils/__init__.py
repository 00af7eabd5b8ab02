"""Utility modules for docmind.

- **errors** -- Domain exception hierarchy rooted at DocMindError; the API
  middleware maps each subclass to an HTTP status code.
- **concurrency** -- bounded ``asyncio.gather`` and a sync-to-async bridge.
  The Celery tasks run handlers through ``run_async``.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
"""

# -- Domain exception hierarchy --------------------------------------------
from src.utils.errors import (
    ChunkingDegenerateError,
    ConfigurationError,
    DocMindError,
    DocumentNotFoundError,
    ProviderRequestError,
    ProviderUnavailableError,
    SearchFailedError,
    VectorStoreError,
)

# -- Async concurrency helpers ---------------------------------------------
from src.utils.concurrency import run_async, throttled_gather

# -- Structured logging setup ----------------------------------------------
from src.utils.logging import configure_logging, get_logger

__all__ = [
    "ChunkingDegenerateError",
    "ConfigurationError",
    "DocMindError",
    "DocumentNotFoundError",
    "ProviderRequestError",
    "ProviderUnavailableError",
    "SearchFailedError",
    "VectorStoreError",
    "configure_logging",
    "get_logger",
    "run_async",
    "throttled_gather",
]
