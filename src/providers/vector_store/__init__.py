"""Vector store provider implementations.

SQLiteVectorStore keeps embedding rows in the application database and
ranks them with a cosine-similarity SQL function.  To swap in pgvector,
Qdrant or another backend, implement IVectorStoreProvider and register it
in main.py.
"""

from src.providers.vector_store.sqlite_vector_store import SQLiteVectorStore

__all__ = ["SQLiteVectorStore"]
