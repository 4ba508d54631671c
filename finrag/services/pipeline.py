# =============================================================================
# Retrieval Pipeline — Ingestion & Query Orchestration
# =============================================================================
#
# INGESTION:  text → chunk_text() → [embed → insert] per chunk, in order
# QUERY:      question → embed → index.search(top_k) → ranked results
#
# The pipeline holds no state of its own beyond its collaborators; the
# embedder and index are injected so tests can substitute doubles.
#
# FAILURE SEMANTICS:
# - Ingestion stops at the first failing chunk. The exception propagates
#   with source_id and the chunk ordinal attached (add_context); entries
#   already inserted for that source stay in the index.
# - Query embedding failures (EmbeddingServiceError) and index failures
#   (IndexUnavailableError) propagate unchanged and stay distinguishable.
# - A query that matches nothing returns EmptyResultSet, not an error.
# =============================================================================

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

from finrag.services.chunker import chunk_text
from finrag.services.embedder import Embedder
from finrag.services.errors import RetrievalError
from finrag.services.vectorstore import IndexedEntry, SearchResult, VectorIndex

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result Types
# ---------------------------------------------------------------------------


@dataclass
class IngestResult:
    """Outcome of ingesting one document."""

    source_id: str
    chunk_count: int


@dataclass
class QueryResult:
    """Ranked search results for a question, best first."""

    question: str
    results: list[SearchResult] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.results


@dataclass
class EmptyResultSet(QueryResult):
    """A query that matched nothing (the index held no entries)."""


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class RetrievalPipeline:
    """Chunk → embed → index on the way in; embed → search on the way out."""

    def __init__(
        self,
        embedder: Embedder,
        index: VectorIndex,
        chunk_size: int = 500,
        chunk_overlap: int = 50,
        default_top_k: int = 3,
    ) -> None:
        self.embedder = embedder
        self.index = index
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.default_top_k = default_top_k

    async def ingest(
        self,
        text: str,
        source_id: str,
        chunk_size: int | None = None,
        chunk_overlap: int | None = None,
    ) -> IngestResult:
        """
        Chunk a document and index every chunk.

        Chunks are embedded and inserted one at a time, in ordinal order.

        Raises:
            ChunkingError: Invalid chunk parameters (nothing is written).
            EmbeddingServiceError / DimensionMismatchError /
            IndexUnavailableError: With .source_id and .ordinal set to the
                failing chunk.
        """
        start = time.perf_counter()

        try:
            chunks = chunk_text(
                text,
                source_id=source_id,
                chunk_size=self.chunk_size if chunk_size is None else chunk_size,
                chunk_overlap=self.chunk_overlap if chunk_overlap is None else chunk_overlap,
            )
        except RetrievalError as exc:
            exc.add_context(source_id=source_id)
            raise

        for chunk in chunks:
            try:
                vector = await self.embedder.embed(chunk.text)
                await self.index.insert(IndexedEntry.from_chunk(chunk, vector))
            except RetrievalError as exc:
                exc.add_context(source_id=source_id, ordinal=chunk.ordinal)
                logger.error(
                    "Ingestion of %s failed at chunk %d/%d: %s",
                    source_id, chunk.ordinal, len(chunks), exc.message,
                )
                raise

        logger.info(
            "Ingested %s: %d chunks in %.0fms",
            source_id, len(chunks), (time.perf_counter() - start) * 1000,
        )
        return IngestResult(source_id=source_id, chunk_count=len(chunks))

    async def query(
        self,
        question: str,
        top_k: int | None = None,
    ) -> QueryResult:
        """
        Embed the question once and return the top_k closest chunks.

        Returns:
            QueryResult, or EmptyResultSet when nothing is indexed.
        """
        k = self.default_top_k if top_k is None else top_k

        vector = await self.embedder.embed(question)
        results = await self.index.search(vector, k)

        logger.info("Query returned %d results (top_k=%d)", len(results), k)
        if not results:
            return EmptyResultSet(question=question)
        return QueryResult(question=question, results=results)

    async def delete_source(self, source_id: str) -> int:
        return await self.index.delete_by_source(source_id)

    async def list_sources(self) -> dict[str, int]:
        return await self.index.list_sources()
