"""Abstract base class for the document store.

The document CRUD layer (ownership rules, upload, text extraction) lives
outside the RAG core; the embedding worker and the summary service only
need to read a document by id.  ``upsert_document`` and
``delete_document`` exist so the bundled SQLite store can stand in for
that layer locally and in tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.rag import Document


class IDocumentStore(ABC):
    """Contract for reading (and, locally, writing) documents."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables if they do not exist."""

    @abstractmethod
    async def get_document(self, doc_id: str) -> Document | None:
        """Return the document with *doc_id*, or ``None`` if it does not exist."""

    @abstractmethod
    async def upsert_document(self, document: Document) -> Document | None:
        """Insert or update *document*.

        Returns
        -------
        Document | None
            The previously stored version, or ``None`` if it is new.  Callers
            compare it against *document* to decide whether to re-embed.
        """

    @abstractmethod
    async def delete_document(self, doc_id: str) -> bool:
        """Delete *doc_id* and its embedding rows; return ``True`` if it existed."""
