"""SQLite-backed document store.

Stands in for the document CRUD service: it owns the ``documents`` table
that embedding rows reference, and lets the embedding worker load a
document by id.  Deleting a document cascades to its embedding rows.

Uses ``aiosqlite`` for async I/O.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import aiosqlite
import structlog

from src.interfaces.document_store import IDocumentStore
from src.models.rag import Document

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/docmind.db")

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS documents (
    id          TEXT PRIMARY KEY,
    title       TEXT NOT NULL DEFAULT '',
    content     TEXT NOT NULL DEFAULT '',
    updated_at  TEXT NOT NULL
);
"""

_UPSERT_SQL = """\
INSERT INTO documents (id, title, content, updated_at)
VALUES (?, ?, ?, ?)
ON CONFLICT(id)
DO UPDATE SET title      = excluded.title,
              content    = excluded.content,
              updated_at = excluded.updated_at;
"""

_SELECT_SQL = "SELECT id, title, content, updated_at FROM documents WHERE id = ?;"


class SQLiteDocumentStore(IDocumentStore):
    """SQLite persistence for documents."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create the documents table if it doesn't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_CREATE_TABLE_SQL)
            await db.commit()
        logger.info("document_store_initialized", path=str(self._db_path))

    async def get_document(self, doc_id: str) -> Document | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(_SELECT_SQL, (doc_id,))
            row = await cursor.fetchone()
        if row is None:
            return None
        return Document(
            id=row["id"],
            title=row["title"],
            content=row["content"],
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    async def upsert_document(self, document: Document) -> Document | None:
        previous = await self.get_document(document.id)
        updated_at = document.updated_at or datetime.now(timezone.utc)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                _UPSERT_SQL,
                (document.id, document.title, document.content, updated_at.isoformat()),
            )
            await db.commit()
        logger.info("document_saved", doc_id=document.id, created=previous is None)
        return previous

    async def delete_document(self, doc_id: str) -> bool:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute("PRAGMA foreign_keys = ON;")
            cursor = await db.execute("DELETE FROM documents WHERE id = ?", (doc_id,))
            await db.commit()
            deleted = cursor.rowcount > 0
        logger.info("document_deleted", doc_id=doc_id, existed=deleted)
        return deleted
