"""Fixed-size overlapping text chunking.

Splits document text into character windows sized for embedding models
(500 characters with a 50-character overlap by default).

The text is normalised first: every whitespace run collapses to one space
and the ends are trimmed.  Each window then tries to end on a word
boundary, but only when the nearest preceding space lies in the last 20% of
the window, which keeps chunks from becoming pathologically short.  The
next window starts ``overlap`` characters before the previous end; if that
would not move forward, it starts at the previous end instead, so chunking
always terminates.
"""

from __future__ import annotations

import re

import structlog

from src.models.rag import Chunk
from src.utils.errors import ChunkingDegenerateError

logger = structlog.get_logger(logger_name=__name__)

_WHITESPACE_RE = re.compile(r"\s+")

# A word-boundary cut is only accepted beyond this fraction of the window.
_MIN_BREAK_RATIO = 0.8


def normalize_text(text: str) -> str:
    """Collapse whitespace runs to single spaces and trim both ends."""
    return _WHITESPACE_RE.sub(" ", text or "").strip()


def chunk_windows(text: str, chunk_size: int, overlap: int) -> list[tuple[int, int]]:
    """Return the ``(start, end)`` spans of each window over *normalised* text.

    Parameters
    ----------
    text:
        Text that has already been passed through :func:`normalize_text`.
    chunk_size:
        Window width in characters.  Must be at least 1.
    overlap:
        Characters shared between consecutive windows.  Must be non-negative.

    Returns
    -------
    list[tuple[int, int]]
        Half-open spans in text order.  Consecutive spans never move
        backwards, the first starts at 0 and the last ends at ``len(text)``.

    Raises
    ------
    ValueError
        If ``chunk_size < 1`` or ``overlap < 0``.
    ChunkingDegenerateError
        If the loop exceeds its iteration bound.
    """
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
    if overlap < 0:
        raise ValueError(f"overlap must be >= 0, got {overlap}")

    length = len(text)
    if length == 0:
        return []
    if length <= chunk_size:
        return [(0, length)]

    # A word-boundary cut still ends past 80% of the window, so every
    # iteration except the last advances by at least this much.
    min_step = max(1, int(chunk_size * _MIN_BREAK_RATIO) - overlap)
    max_iterations = length // min_step + 2

    windows: list[tuple[int, int]] = []
    start = 0
    while start < length:
        if len(windows) >= max_iterations:
            raise ChunkingDegenerateError(
                message=(
                    f"Chunking exceeded {max_iterations} windows "
                    f"(length={length}, chunk_size={chunk_size}, overlap={overlap})"
                ),
            )

        end = start + chunk_size
        if end < length:
            space_index = text.rfind(" ", 0, end + 1)
            if space_index > start + chunk_size * _MIN_BREAK_RATIO:
                end = space_index
        else:
            end = length

        windows.append((start, end))
        if end >= length:
            break

        next_start = end - overlap
        if next_start <= start:
            next_start = end
        start = next_start

    return windows


def split_into_chunks(text: str, chunk_size: int, overlap: int) -> list[str]:
    """Split *text* into overlapping chunks of at most *chunk_size* characters.

    Pure and deterministic.  Empty or whitespace-only chunks are dropped, so
    blank input yields an empty list.
    """
    normalized = normalize_text(text)
    chunks: list[str] = []
    for start, end in chunk_windows(normalized, chunk_size, overlap):
        piece = normalized[start:end].strip()
        if piece:
            chunks.append(piece)
    return chunks


class TextChunker:
    """Chunker bound to a configured window size and overlap.

    Parameters
    ----------
    chunk_size:
        Window width in characters (default 500).
    overlap:
        Characters shared between consecutive windows (default 50).
    """

    def __init__(self, chunk_size: int = 500, overlap: int = 50) -> None:
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
        if overlap < 0:
            raise ValueError(f"overlap must be >= 0, got {overlap}")
        self._chunk_size = chunk_size
        self._overlap = overlap

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def overlap(self) -> int:
        return self._overlap

    def chunk(self, doc_id: str, text: str) -> list[Chunk]:
        """Split *text* into :class:`Chunk` models indexed from 0."""
        pieces = split_into_chunks(text, self._chunk_size, self._overlap)
        chunks = [
            Chunk(doc_id=doc_id, index=index, text=piece)
            for index, piece in enumerate(pieces)
        ]
        logger.debug(
            "document_chunked",
            doc_id=doc_id,
            chunks=len(chunks),
            chunk_size=self._chunk_size,
            overlap=self._overlap,
        )
        return chunks
