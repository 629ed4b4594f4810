"""
Legal RAG - Overlapping Character Chunker
-------------------------------------------
Splits ingested statute / guidance text into bounded windows that share an
exact character overlap with their neighbours.

Boundary selection:
  - Each window is at most `chunk_size` characters.
  - Inside a window the cut prefers the last paragraph break, then line
    break, then sentence end, then space -- so an article or section is
    rarely split mid-sentence without repeated context.
  - A preferred cut must keep the chunk at least half full and must move
    past the overlap; otherwise the window is cut hard at `chunk_size`.
  - The next window always starts exactly `overlap` characters before the
    previous cut, so dropping the first `overlap` characters of every chunk
    after the first reconstructs the input exactly.
"""
from __future__ import annotations

from typing import Iterable

from loguru import logger

from legal_rag.errors import InvalidConfiguration


# ── Constants ─────────────────────────────────────────────────────────────────

CHUNK_SIZE = 800          # Characters per chunk
CHUNK_OVERLAP = 120       # Characters shared between consecutive chunks

DEFAULT_SEPARATORS: tuple[str, ...] = ("\n\n", "\n", ". ", " ")


def validate_chunk_params(chunk_size: int, overlap: int) -> None:
    if chunk_size <= 0:
        raise InvalidConfiguration(f"chunk_size must be > 0, got {chunk_size}")
    if overlap < 0 or overlap >= chunk_size:
        raise InvalidConfiguration(
            f"overlap must satisfy 0 <= overlap < chunk_size ({chunk_size}), got {overlap}"
        )


# ── Main Chunker ──────────────────────────────────────────────────────────────

class TextChunker:
    """
    Separator-aware fixed-overlap splitter.

    Usage:
        chunker = TextChunker(chunk_size=800, overlap=120)
        pieces = chunker.split(text)
    """

    def __init__(
        self,
        chunk_size: int = CHUNK_SIZE,
        overlap: int = CHUNK_OVERLAP,
        separators: Iterable[str] = DEFAULT_SEPARATORS,
    ) -> None:
        validate_chunk_params(chunk_size, overlap)
        self.chunk_size = chunk_size
        self.overlap = overlap
        self.separators = tuple(s for s in separators if s)

    def split(self, text: str) -> list[str]:
        """
        Split `text` into overlapping chunks.

        Returns:
            Ordered list of non-empty chunks; [] for empty input and
            [text] when the input already fits in one chunk.
        """
        if not text:
            return []
        if len(text) <= self.chunk_size:
            return [text]

        chunks: list[str] = []
        start = 0
        while True:
            end = start + self.chunk_size
            if end >= len(text):
                chunks.append(text[start:])
                break
            cut = self._find_cut(text, start, end)
            chunks.append(text[start:cut])
            start = cut - self.overlap

        logger.debug(
            f"[Chunker] {len(text)} chars -> {len(chunks)} chunk(s) "
            f"(size={self.chunk_size}, overlap={self.overlap})"
        )
        return chunks

    def split_many(self, texts: Iterable[str]) -> list[list[str]]:
        """Split several texts, keeping one list of chunks per input."""
        return [self.split(t) for t in texts]

    def _find_cut(self, text: str, start: int, end: int) -> int:
        # start + overlap < cut <= end guarantees forward progress
        lowest = start + max(self.overlap, self.chunk_size // 2)
        for sep in self.separators:
            idx = text.rfind(sep, lowest, end)
            if idx != -1:
                return idx + len(sep)
        return end


def split_text(text: str, chunk_size: int = CHUNK_SIZE, overlap: int = CHUNK_OVERLAP) -> list[str]:
    """Functional form of TextChunker(chunk_size, overlap).split(text)."""
    return TextChunker(chunk_size=chunk_size, overlap=overlap).split(text)
