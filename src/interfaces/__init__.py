"""Public interface definitions for storage, AI, and job-queue providers.

Services depend only on the abstract base classes in this package.
Concrete adapters live in ``src/providers/`` and are wired together in
``src/main.py``, so tests can inject fakes without touching a network or
a database server.

CONCRETE PROVIDER MAP:
    Interface                  →  Concrete implementations (in src/providers/)
    ─────────────────────────────────────────────────────────────────────
    IAIProvider                →  OllamaAIProvider, OpenAIAIProvider,
                                  AnthropicAIProvider
    IVectorStoreProvider       →  SQLiteVectorStore
    IDocumentStore             →  SQLiteDocumentStore
    IJobQueue                  →  CeleryJobQueue
"""

from src.interfaces.ai_provider import IAIProvider
from src.interfaces.document_store import IDocumentStore
from src.interfaces.job_queue import DeadLetter, IJobQueue, Job, JobHandler
from src.interfaces.vector_store_provider import IVectorStoreProvider

__all__ = [
    "DeadLetter",
    "IAIProvider",
    "IDocumentStore",
    "IJobQueue",
    "IVectorStoreProvider",
    "Job",
    "JobHandler",
]
