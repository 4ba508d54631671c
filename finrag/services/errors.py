# =============================================================================
# Retrieval Error Taxonomy
# =============================================================================
#
#   RetrievalError
#   ├── ChunkingError           — invalid chunking parameters (caller bug)
#   ├── EmbeddingServiceError   — remote embedding call failed / bad payload
#   ├── DimensionMismatchError  — vector length != configured dimension
#   └── IndexUnavailableError   — vector store unreachable (also a
#                                 StorageUnavailableError)
#
# A query that matches nothing is NOT an error: the pipeline returns an
# EmptyResultSet (see pipeline.py).
#
# None of these are retried inside the service. The pipeline attaches the
# failing source_id / chunk ordinal via add_context() and re-raises, so the
# caller can decide on retry or cleanup.
# =============================================================================

from __future__ import annotations


class StorageUnavailableError(Exception):
    """A backing store (vector index or database) could not be reached."""


class RetrievalError(Exception):
    """Base class for failures in the chunk → embed → index pipeline."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message
        self.source_id: str | None = None
        self.ordinal: int | None = None

    def add_context(
        self,
        source_id: str | None = None,
        ordinal: int | None = None,
    ) -> None:
        """Record which document / chunk was being processed."""
        if source_id is not None:
            self.source_id = source_id
        if ordinal is not None:
            self.ordinal = ordinal

        where = f"source_id={self.source_id!r}"
        if self.ordinal is not None:
            where += f", chunk={self.ordinal}"
        self.add_note(f"while processing {where}")


class ChunkingError(RetrievalError, ValueError):
    """Chunk size must be positive and overlap non-negative."""


class EmbeddingServiceError(RetrievalError):
    """The embedding service failed or returned a malformed vector."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class DimensionMismatchError(RetrievalError):
    """A vector's length does not match the index dimension."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"Expected a vector of {expected} dimensions, got {actual}"
        )
        self.expected = expected
        self.actual = actual


class IndexUnavailableError(RetrievalError, StorageUnavailableError):
    """The vector store backend could not be reached or failed."""
