# =============================================================================
# Sentence-Window Text Chunker
# =============================================================================
#
# Splits extracted document text into overlapping chunks ready for
# embedding. Chunk boundaries always fall between sentences.
#
# UNITS:
#   - chunk_size is a CHARACTER threshold for the running buffer
#   - chunk_overlap is a count of WHITESPACE-DELIMITED WORDS carried from
#     the end of one chunk into the start of the next
#
# ALGORITHM:
# 1. Split the text on runs of sentence terminators (. ! ?) and drop
#    empty or whitespace-only fragments
# 2. Append sentences (each followed by ". ") to a running buffer
# 3. When the next sentence would push a non-empty buffer past chunk_size,
#    emit the buffer and seed a new one with its trailing chunk_overlap
#    words plus the sentence
# 4. Emit whatever remains in the buffer
#
# A single sentence longer than chunk_size is emitted as its own oversized
# chunk; sentences are never cut.
# =============================================================================

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from finrag.services.errors import ChunkingError

logger = logging.getLogger(__name__)

_SENTENCE_SPLIT = re.compile(r"[.!?]+")
_TERMINATOR = ". "


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Chunk:
    """A single chunk of a source document, ready for embedding."""

    text: str  # Non-empty chunk content
    source_id: str  # Identifier of the document this chunk came from
    ordinal: int  # 0-indexed position within the document

    @property
    def entry_id(self) -> str:
        """Stable index id, unique per (source_id, ordinal)."""
        return f"{self.source_id}_chunk_{self.ordinal}"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def split_sentences(text: str) -> list[str]:
    """Split text on sentence terminators, dropping blank fragments."""
    return [
        fragment.strip()
        for fragment in _SENTENCE_SPLIT.split(text)
        if fragment.strip()
    ]


def chunk_text(
    text: str,
    source_id: str,
    chunk_size: int = 500,
    chunk_overlap: int = 50,
) -> list[Chunk]:
    """
    Split document text into overlapping, sentence-aligned chunks.

    Args:
        text: Raw text extracted from the document.
        source_id: Identifier stamped onto every chunk.
        chunk_size: Character threshold for a chunk (default 500).
        chunk_overlap: Words carried over between chunks (default 50).

    Returns:
        List of Chunk in document order, ordinals 0..n-1. Empty text
        yields an empty list.

    Raises:
        ChunkingError: If chunk_size <= 0 or chunk_overlap < 0.

    Pipeline position: Step 2 of ingestion (extract → chunk → embed → store).
    """
    if chunk_size <= 0:
        raise ChunkingError(f"chunk_size must be positive, got {chunk_size}")
    if chunk_overlap < 0:
        raise ChunkingError(
            f"chunk_overlap must be non-negative, got {chunk_overlap}"
        )

    pieces: list[str] = []
    buffer = ""

    for sentence in split_sentences(text):
        if buffer and len(buffer + sentence) > chunk_size:
            pieces.append(buffer.strip())
            carried = _trailing_words(buffer, chunk_overlap)
            buffer = f"{carried} " if carried else ""

        buffer += sentence + _TERMINATOR

    if buffer.strip():
        pieces.append(buffer.strip())

    chunks = [
        Chunk(text=piece, source_id=source_id, ordinal=i)
        for i, piece in enumerate(pieces)
    ]

    logger.debug(
        "Chunked source_id=%s into %d chunks (chunk_size=%d, overlap=%d words)",
        source_id, len(chunks), chunk_size, chunk_overlap,
    )
    return chunks


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _trailing_words(buffer: str, count: int) -> str:
    """Return the last `count` whitespace-delimited words of buffer."""
    if count == 0:
        return ""
    return " ".join(buffer.split()[-count:])
