"""Unit tests for the fixed-size overlapping chunker."""

from __future__ import annotations

import pytest

from src.models.rag import Chunk
from src.services.ingestion.chunker import (
    TextChunker,
    chunk_windows,
    normalize_text,
    split_into_chunks,
)


def _words(n_chars: int) -> str:
    """Return roughly *n_chars* of space-separated filler words."""
    text = ""
    i = 0
    while len(text) < n_chars:
        text += f"word{i % 10} "
        i += 1
    return text[:n_chars]


class TestNormalizeText:
    def test_collapses_whitespace_runs(self) -> None:
        assert normalize_text("  a\n\n b\t\tc  ") == "a b c"

    def test_none_and_blank(self) -> None:
        assert normalize_text("") == ""
        assert normalize_text("   \n\t ") == ""


class TestChunkWindows:
    def test_empty_text_has_no_windows(self) -> None:
        assert chunk_windows("", 500, 50) == []

    def test_short_text_is_single_window(self) -> None:
        assert chunk_windows("hello world", 500, 50) == [(0, 11)]

    def test_exact_chunk_size_is_single_window(self) -> None:
        text = "x" * 500
        assert chunk_windows(text, 500, 50) == [(0, 500)]

    def test_520_chars_without_spaces_gives_two_windows(self) -> None:
        text = "x" * 520
        assert chunk_windows(text, 500, 50) == [(0, 500), (450, 520)]

    def test_windows_cover_text_and_never_move_backwards(self) -> None:
        text = normalize_text(_words(3000))
        windows = chunk_windows(text, 200, 30)

        assert windows[0][0] == 0
        assert windows[-1][1] == len(text)
        for (prev_start, prev_end), (start, end) in zip(windows, windows[1:]):
            assert start > prev_start
            assert start <= prev_end
            assert end > start
        for start, end in windows:
            assert end - start <= 200

    def test_breaks_on_word_boundary_in_last_fifth(self) -> None:
        text = "a" * 90 + " " + "b" * 50
        windows = chunk_windows(text, 100, 10)
        assert windows[0] == (0, 90)

    def test_ignores_word_boundary_too_early_in_window(self) -> None:
        text = "a" * 40 + " " + "b" * 100
        windows = chunk_windows(text, 100, 10)
        assert windows[0] == (0, 100)

    @pytest.mark.parametrize("overlap", [500, 800])
    def test_overlap_at_least_chunk_size_still_terminates(self, overlap: int) -> None:
        text = "y" * 1200
        windows = chunk_windows(text, 500, overlap)
        assert windows == [(0, 500), (500, 1000), (1000, 1200)]

    def test_zero_overlap(self) -> None:
        assert chunk_windows("z" * 25, 10, 0) == [(0, 10), (10, 20), (20, 25)]

    def test_rejects_invalid_parameters(self) -> None:
        with pytest.raises(ValueError):
            chunk_windows("abc", 0, 0)
        with pytest.raises(ValueError):
            chunk_windows("abc", 10, -1)


class TestSplitIntoChunks:
    def test_520_chars_gives_two_chunks(self) -> None:
        chunks = split_into_chunks("x" * 520, 500, 50)
        assert len(chunks) == 2
        assert len(chunks[0]) == 500
        assert chunks[1] == "x" * 70

    def test_blank_input_gives_no_chunks(self) -> None:
        assert split_into_chunks("  \n ", 500, 50) == []

    def test_is_deterministic(self) -> None:
        text = _words(1500)
        assert split_into_chunks(text, 300, 40) == split_into_chunks(text, 300, 40)

    def test_no_chunk_exceeds_size_or_has_edge_whitespace(self) -> None:
        for chunk in split_into_chunks(_words(2500), 250, 25):
            assert 0 < len(chunk) <= 250
            assert chunk == chunk.strip()


class TestTextChunker:
    def test_chunk_returns_indexed_models(self) -> None:
        chunker = TextChunker(chunk_size=500, overlap=50)
        chunks = chunker.chunk("doc-7", "x" * 520)

        assert all(isinstance(c, Chunk) for c in chunks)
        assert [c.index for c in chunks] == [0, 1]
        assert {c.doc_id for c in chunks} == {"doc-7"}

    def test_defaults(self) -> None:
        chunker = TextChunker()
        assert chunker.chunk_size == 500
        assert chunker.overlap == 50

    def test_rejects_invalid_parameters(self) -> None:
        with pytest.raises(ValueError):
            TextChunker(chunk_size=0)
        with pytest.raises(ValueError):
            TextChunker(overlap=-5)
