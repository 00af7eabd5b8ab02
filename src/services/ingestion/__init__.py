"""Embedding pipeline: document change -> job -> chunk -> embed -> store.

1. **Trigger** (document_events.py / DocumentEmbeddingTrigger) -- turns
   document creates and content changes into queued embedding jobs keyed
   by document id.

2. **Chunk** (chunker.py / TextChunker) -- splits normalised document text
   into overlapping windows, cutting at word boundaries where possible.

3. **Embed + store** (embedding_worker.py / EmbeddingWorker) -- embeds
   every chunk and replaces the document's rows in the vector store in a
   single transaction.
"""

from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.document_events import DocumentEmbeddingTrigger
from src.services.ingestion.embedding_worker import EMBEDDING_TOPIC, EmbeddingWorker

__all__ = [
    "DocumentEmbeddingTrigger",
    "EMBEDDING_TOPIC",
    "EmbeddingWorker",
    "TextChunker",
]
