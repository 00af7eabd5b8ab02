"""SQLite-backed vector store.

Persists one embedding row per document chunk in the ``embeddings`` table
of the application database, next to the ``documents`` table it joins
against.  Vectors are stored as little-endian float32 blobs (via
``numpy``).  Similarity is computed in SQL through a ``cosine_similarity``
function registered on each connection, so ranking, thresholding and the
join to live documents happen in one query.

Uses ``aiosqlite`` for async I/O.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import aiosqlite
import numpy as np
import structlog

from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.models.rag import ChunkEmbedding, EmbeddingRow, SearchResult
from src.utils.errors import VectorStoreError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/docmind.db")

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS embeddings (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    doc_id       TEXT    NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    chunk_index  INTEGER NOT NULL,
    content      TEXT    NOT NULL,
    vector       BLOB    NOT NULL,
    dimension    INTEGER NOT NULL,
    created_at   TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
    UNIQUE(doc_id, chunk_index)
);
"""

_DELETE_DOC_SQL = "DELETE FROM embeddings WHERE doc_id = ?;"

_INSERT_SQL = """\
INSERT INTO embeddings (doc_id, chunk_index, content, vector, dimension)
VALUES (?, ?, ?, ?, ?);
"""

_SELECT_DOC_SQL = """\
SELECT id, doc_id, chunk_index, content, vector, created_at
FROM embeddings
WHERE doc_id = ?
ORDER BY chunk_index;
"""

# Rows whose parent document is gone, or whose vector cannot be compared
# with the query, get a NULL similarity and fall out at the WHERE clause.
_SEARCH_SQL = """\
SELECT doc_id, content, similarity
FROM (
    SELECT e.doc_id,
           e.content,
           e.chunk_index,
           cosine_similarity(e.vector, ?) AS similarity
    FROM embeddings e
    JOIN documents d ON d.id = e.doc_id
)
WHERE similarity > ?
ORDER BY similarity DESC, doc_id, chunk_index
LIMIT ?;
"""


def encode_vector(vector: list[float]) -> bytes:
    """Serialise a vector as a float32 blob."""
    return np.asarray(vector, dtype=np.float32).tobytes()


def decode_vector(blob: bytes) -> np.ndarray:
    """Deserialise a float32 blob written by :func:`encode_vector`."""
    return np.frombuffer(blob, dtype=np.float32)


def cosine_similarity(left: bytes | None, right: bytes | None) -> float | None:
    """Cosine similarity of two float32 blobs, or ``None`` if undefined.

    Undefined means a NULL input, differing dimensions or a zero vector.
    The result is clipped to [-1, 1] to absorb float32 rounding.
    """
    if left is None or right is None:
        return None
    a = decode_vector(left)
    b = decode_vector(right)
    if a.shape != b.shape or a.size == 0:
        return None
    denom = float(np.linalg.norm(a)) * float(np.linalg.norm(b))
    if denom == 0.0:
        return None
    return float(np.clip(np.dot(a, b) / denom, -1.0, 1.0))


class SQLiteVectorStore(IVectorStoreProvider):
    """Embedding rows in SQLite with cosine-similarity search.

    Parameters
    ----------
    db_path:
        Path to the application database.  The ``documents`` table must be
        created (by the document store) before rows are written.
    dimension:
        Expected vector width.  ``0`` accepts any width as long as all
        vectors in one replacement agree.
    """

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH, dimension: int = 0) -> None:
        self._db_path = Path(db_path)
        self._dimension = dimension

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute("PRAGMA foreign_keys = ON;")
            await db.create_function("cosine_similarity", 2, cosine_similarity, deterministic=True)
            yield db

    async def initialize(self) -> None:
        """Create the embeddings table if it doesn't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self._connect() as db:
            await db.execute(_CREATE_TABLE_SQL)
            await db.commit()
        logger.info("vector_store_initialized", path=str(self._db_path))

    async def replace_embeddings(self, doc_id: str, chunks: list[ChunkEmbedding]) -> int:
        rows = [
            (doc_id, chunk.index, chunk.text, encode_vector(chunk.vector), len(chunk.vector))
            for chunk in chunks
        ]
        self._validate_dimensions(doc_id, [row[4] for row in rows])

        async with self._connect() as db:
            try:
                await db.execute(_DELETE_DOC_SQL, (doc_id,))
                await db.executemany(_INSERT_SQL, rows)
                await db.commit()
            except aiosqlite.Error as exc:
                await db.rollback()
                logger.error("embeddings_replace_failed", doc_id=doc_id, error=str(exc))
                raise VectorStoreError(
                    message=f"Failed to replace embeddings for {doc_id}: {exc}",
                    provider_name=self.get_provider_name(),
                ) from exc

        logger.info("embeddings_replaced", doc_id=doc_id, rows=len(rows))
        return len(rows)

    async def similarity_search(
        self,
        query_vector: list[float],
        top_k: int = 5,
        min_similarity: float = 0.5,
    ) -> list[SearchResult]:
        if top_k < 1:
            return []
        query_blob = encode_vector(query_vector)
        try:
            async with self._connect() as db:
                db.row_factory = aiosqlite.Row
                cursor = await db.execute(_SEARCH_SQL, (query_blob, min_similarity, top_k))
                rows = await cursor.fetchall()
        except aiosqlite.Error as exc:
            raise VectorStoreError(
                message=f"Similarity search failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        return [
            SearchResult(doc_id=r["doc_id"], content=r["content"], similarity=r["similarity"])
            for r in rows
        ]

    async def delete_embeddings(self, doc_id: str) -> int:
        async with self._connect() as db:
            cursor = await db.execute(_DELETE_DOC_SQL, (doc_id,))
            await db.commit()
            deleted = cursor.rowcount
        logger.info("embeddings_deleted", doc_id=doc_id, rows=deleted)
        return deleted

    async def get_embeddings(self, doc_id: str) -> list[EmbeddingRow]:
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(_SELECT_DOC_SQL, (doc_id,))
            rows = await cursor.fetchall()
        return [
            EmbeddingRow(
                id=r["id"],
                doc_id=r["doc_id"],
                chunk_index=r["chunk_index"],
                content=r["content"],
                vector=decode_vector(r["vector"]).tolist(),
                created_at=r["created_at"],
            )
            for r in rows
        ]

    async def count_embeddings(self, doc_id: str | None = None) -> int:
        async with self._connect() as db:
            if doc_id is None:
                cursor = await db.execute("SELECT COUNT(*) FROM embeddings")
            else:
                cursor = await db.execute(
                    "SELECT COUNT(*) FROM embeddings WHERE doc_id = ?", (doc_id,)
                )
            row = await cursor.fetchone()
        return int(row[0]) if row else 0

    def get_provider_name(self) -> str:
        return "sqlite_vector"

    def _validate_dimensions(self, doc_id: str, dimensions: list[int]) -> None:
        if not dimensions:
            return
        distinct = set(dimensions)
        if len(distinct) > 1 or 0 in distinct:
            raise VectorStoreError(
                message=f"Inconsistent vector dimensions for {doc_id}: {sorted(distinct)}",
                provider_name=self.get_provider_name(),
            )
        actual = dimensions[0]
        if self._dimension and actual != self._dimension:
            raise VectorStoreError(
                message=(
                    f"Vector dimension {actual} for {doc_id} does not match "
                    f"configured dimension {self._dimension}"
                ),
                provider_name=self.get_provider_name(),
            )
