"""
Archive RAG - Boundary-Aware Chunker
--------------------------------------
Splits extracted document text into overlapping character windows.

Each window is at most `max_size` characters.  Before cutting, the chunker
looks back from the raw cutoff for a natural boundary:

  1. the last sentence terminator (. ! ?) within `sentence_lookback` chars
  2. failing that, the last space / newline within `break_lookback` chars
  3. failing both, the raw cutoff (mid-word, rare in prose)

The next window starts `overlap` characters before the previous one ended,
so a fact straddling a boundary appears whole in at least one chunk.

Chunks too short to be useful are dropped by the ingestion pipeline,
not here: the chunker's output is a faithful tiling of the input.
"""
from __future__ import annotations

from loguru import logger

from archive_rag.chunking.schemas import Chunk

# ── Constants ─────────────────────────────────────────────────────────────────

CHUNK_SIZE = 1000
CHUNK_OVERLAP = 200
SENTENCE_LOOKBACK = 100
BREAK_LOOKBACK = 20

SENTENCE_TERMINATORS = (".", "!", "?")
WORD_BREAKS = (" ", "\n", "\t")


def _validate(max_size: int, overlap: int) -> None:
    if max_size <= 0:
        raise ValueError(f"max_size must be positive, got {max_size}")
    if overlap < 0 or overlap >= max_size:
        raise ValueError(f"overlap must be in [0, max_size), got {overlap} (max_size={max_size})")


def _last_of(text: str, chars: tuple[str, ...], start: int, end: int) -> int:
    return max(text.rfind(ch, start, end) for ch in chars)


def _snap_to_boundary(
    text: str,
    start: int,
    end: int,
    sentence_lookback: int,
    break_lookback: int,
) -> int:
    """Move `end` back to just past the best boundary inside [start, end)."""
    sentence_end = _last_of(text, SENTENCE_TERMINATORS, start, end)
    if sentence_end > start and sentence_end > end - sentence_lookback:
        return sentence_end + 1

    word_break = _last_of(text, WORD_BREAKS, start, end)
    if word_break > start and word_break > end - break_lookback:
        return word_break + 1

    return end


def chunk_spans(
    text: str,
    max_size: int = CHUNK_SIZE,
    overlap: int = CHUNK_OVERLAP,
    sentence_lookback: int = SENTENCE_LOOKBACK,
    break_lookback: int = BREAK_LOOKBACK,
) -> list[tuple[int, int]]:
    """
    Return the raw [start, end) windows used to chunk `text`.

    Consecutive spans satisfy start[i+1] == end[i] - overlap, the first
    span starts at 0 and the last ends at len(text).
    """
    _validate(max_size, overlap)
    n = len(text)
    if n == 0:
        return []
    if n <= max_size:
        return [(0, n)]

    # Lookback never reaches into the overlap region, so `start` always advances
    sentence_lookback = min(sentence_lookback, max_size - overlap)
    break_lookback = min(break_lookback, max_size - overlap)

    spans: list[tuple[int, int]] = []
    start = 0
    while start < n:
        end = min(start + max_size, n)
        if end < n:
            end = _snap_to_boundary(text, start, end, sentence_lookback, break_lookback)
        spans.append((start, end))

        start = end - overlap
        # Remaining text is all overlap: the final window already covered it
        if start >= n - overlap:
            break

    return spans


def chunk_text(
    text: str,
    max_size: int = CHUNK_SIZE,
    overlap: int = CHUNK_OVERLAP,
    sentence_lookback: int = SENTENCE_LOOKBACK,
    break_lookback: int = BREAK_LOOKBACK,
) -> list[str]:
    """Split `text` into trimmed, overlapping, boundary-aware chunks."""
    spans = chunk_spans(text, max_size, overlap, sentence_lookback, break_lookback)
    if len(spans) == 1 and spans[0] == (0, len(text)):
        return [text]
    return [text[start:end].strip() for start, end in spans]


# ── Chunker ───────────────────────────────────────────────────────────────────

class TextChunker:
    """
    Applies chunk_text() with configured parameters and wraps the
    result in Chunk objects carrying stable ids.

    Usage:
        chunker = TextChunker(chunk_size=1000, chunk_overlap=200)
        chunks = chunker.chunk_document("HSCA_Report.pdf", text)
    """

    def __init__(
        self,
        chunk_size: int = CHUNK_SIZE,
        chunk_overlap: int = CHUNK_OVERLAP,
        sentence_lookback: int = SENTENCE_LOOKBACK,
        break_lookback: int = BREAK_LOOKBACK,
    ) -> None:
        _validate(chunk_size, chunk_overlap)
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.sentence_lookback = sentence_lookback
        self.break_lookback = break_lookback

    @classmethod
    def from_settings(cls, settings) -> "TextChunker":
        """Build from a ChunkingSettings section."""
        return cls(
            chunk_size=settings.chunk_size,
            chunk_overlap=settings.chunk_overlap,
            sentence_lookback=settings.sentence_lookback,
            break_lookback=settings.break_lookback,
        )

    def split(self, text: str) -> list[str]:
        return chunk_text(
            text,
            max_size=self.chunk_size,
            overlap=self.chunk_overlap,
            sentence_lookback=self.sentence_lookback,
            break_lookback=self.break_lookback,
        )

    def chunk_document(self, source: str, text: str, url: str | None = None) -> list[Chunk]:
        """
        Chunk one document's text.

        Ordinals follow the chunker's output order and include chunks the
        ingestion pipeline may later skip, so ids stay stable across runs.
        """
        chunks = [
            Chunk(source=source, chunk_index=i, text=piece, url=url)
            for i, piece in enumerate(self.split(text))
        ]
        logger.debug(f"[Chunker] {source} | {len(text)} chars -> {len(chunks)} chunk(s)")
        return chunks
