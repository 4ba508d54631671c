# =============================================================================
# Vector Index — Pluggable Backend Protocol
# =============================================================================
#
# Stores (vector, text, source_id) entries and answers top-K nearest-neighbour
# queries ranked by cosine similarity.
#
# ARCHITECTURE:
#   VectorIndex (Protocol)
#   ├── ChromaVectorIndex — ChromaDB (in-process, persistent or HTTP)
#   │   └── ANN candidates from Chroma, exact score computed here
#   ├── PgVectorIndex     — PostgreSQL + pgvector extension
#   │   └── score computed in SQL from cosine_distance()
#   └── create_vector_index() — builds the configured backend
#
# SCORING:
#   score = cosine_similarity(query, stored) + 1.0        range [0, 2]
#   A zero-magnitude vector on either side has similarity 0 (score 1.0).
#   Results are ordered by score descending, then by inserted_at
#   descending (most recent first).
#
# INVARIANTS:
# - Every stored vector has exactly `dimensions` components; anything
#   else raises DimensionMismatchError and nothing is written
# - insert() upserts by entry id ("<source_id>_chunk_<ordinal>")
# - search() on an empty index returns [] (not an error)
# - Backend failures raise IndexUnavailableError
#
# KNOWN LIMITATIONS:
# - ChromaDB ranks candidates with its HNSW graph before exact re-scoring,
#   so with top_k * search_candidate_multiplier < collection size a true
#   neighbour can be missed (approximate recall).
# - pgvector orders NaN distances (zero vectors) last before LIMIT, so a
#   zero-vector entry (score 1.0) can be cut even when it outranks
#   negatively-correlated entries.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import math
from collections import Counter
from collections.abc import Callable, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol

import chromadb
import httpx
import numpy as np
from chromadb.errors import ChromaError
from sqlalchemy import delete, func, select, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import DBAPIError, IntegrityError, ProgrammingError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from finrag.config import Settings
from finrag.db.engine import create_session_factory
from finrag.db.models import Base, IndexedChunk
from finrag.services.chunker import Chunk
from finrag.services.errors import DimensionMismatchError, IndexUnavailableError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class IndexedEntry:
    """
    A chunk plus its embedding, as stored in the index.

    Created once per chunk during ingestion and never mutated; replaced
    wholesale when the same id is inserted again.
    """

    id: str
    vector: list[float]
    text: str
    source_id: str
    ordinal: int = 0
    inserted_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_chunk(cls, chunk: Chunk, vector: list[float]) -> IndexedEntry:
        return cls(
            id=chunk.entry_id,
            vector=vector,
            text=chunk.text,
            source_id=chunk.source_id,
            ordinal=chunk.ordinal,
        )


@dataclass
class SearchResult:
    """A single ranked hit. score = cosine similarity + 1.0, in [0, 2]."""

    text: str
    source_id: str
    score: float


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


def cosine_score(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity shifted by +1.0, rounded to 6 decimal places.

    Zero-magnitude input on either side scores 1.0 (similarity 0).

    Raises:
        DimensionMismatchError: If the vectors differ in length.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise DimensionMismatchError(expected=va.shape[0], actual=vb.shape[0])

    # sqrt(|a|^2 * |b|^2) rather than |a| * |b| keeps identical vectors at
    # exactly 1.0
    norms = float(np.dot(va, va)) * float(np.dot(vb, vb))
    if norms == 0.0:
        similarity = 0.0
    else:
        similarity = float(np.dot(va, vb)) / math.sqrt(norms)
        similarity = max(-1.0, min(1.0, similarity))

    return round(similarity + 1.0, 6)


def _distance_to_score(distance: float | None) -> float:
    """Convert a cosine distance (1 - similarity) to a [0, 2] score."""
    if distance is None or math.isnan(distance):
        return 1.0
    similarity = max(-1.0, min(1.0, 1.0 - distance))
    return round(similarity + 1.0, 6)


def _rank(
    candidates: list[tuple[SearchResult, float]],
    top_k: int,
) -> list[SearchResult]:
    """Order (result, inserted_at timestamp) pairs and keep the best top_k."""
    candidates.sort(key=lambda pair: (-pair[0].score, -pair[1]))
    return [result for result, _ in candidates[:top_k]]


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class VectorIndex(Protocol):
    """
    Protocol defining the vector index interface.

    All operations are async: every call may wait on the backing store.
    """

    dimensions: int

    async def create_schema(self) -> None:
        """Create the backing collection/table if missing. Idempotent."""
        ...

    async def insert(self, entry: IndexedEntry) -> None:
        """Upsert an entry by id. Raises DimensionMismatchError on bad D."""
        ...

    async def search(
        self,
        query_vector: Sequence[float],
        top_k: int,
    ) -> list[SearchResult]:
        """Return at most top_k results, best first."""
        ...

    async def delete_by_source(self, source_id: str) -> int:
        """Delete every entry of a source. Returns the number removed."""
        ...

    async def list_sources(self) -> dict[str, int]:
        """Map each source_id to its entry count."""
        ...


def _check_dimensions(vector: Sequence[float], dimensions: int) -> None:
    if len(vector) != dimensions:
        raise DimensionMismatchError(expected=dimensions, actual=len(vector))


def _check_top_k(top_k: int) -> None:
    if top_k <= 0:
        raise ValueError(f"top_k must be positive, got {top_k}")


# ---------------------------------------------------------------------------
# Implementation 1: ChromaDB
# ---------------------------------------------------------------------------

# Storage and transport failures; anything else is a bug and propagates.
_CHROMA_FAILURES = (ChromaError, OSError, httpx.HTTPError)


class ChromaVectorIndex:
    """
    ChromaDB-backed vector index.

    One collection holds every document's chunks; per-source operations
    filter on the `source_id` metadata field. The collection uses cosine
    space and records the index dimension in its metadata.

    ChromaDB's Python client is synchronous, so every call runs in a
    worker thread via asyncio.to_thread().
    """

    def __init__(
        self,
        client: Any,
        collection_name: str,
        dimensions: int,
        candidate_multiplier: int = 4,
    ) -> None:
        self._client = client
        self._collection_name = collection_name
        self.dimensions = dimensions
        self._candidate_multiplier = max(candidate_multiplier, 1)
        self._collection: Any = None

    async def _call(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run a blocking Chroma call in a thread, translating failures."""
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except _CHROMA_FAILURES as exc:
            name = getattr(fn, "__name__", "call")
            raise IndexUnavailableError(f"ChromaDB {name} failed: {exc}") from exc

    async def create_schema(self) -> None:
        """Open or create the collection; verify its recorded dimension."""

        def _open() -> Any:
            # get_collection() leaves stored metadata untouched, so the
            # recorded dimension can be checked against ours
            existing = {
                getattr(c, "name", c) for c in self._client.list_collections()
            }
            if self._collection_name in existing:
                return self._client.get_collection(name=self._collection_name)
            try:
                return self._client.get_or_create_collection(
                    name=self._collection_name,
                    metadata={"hnsw:space": "cosine", "dimensions": self.dimensions},
                )
            except (ChromaError, ValueError) as exc:
                # Another process created it between check and create
                if "already exists" not in str(exc).lower():
                    raise
                return self._client.get_collection(name=self._collection_name)

        collection = await self._call(_open)

        stored = (collection.metadata or {}).get("dimensions")
        if stored is not None and int(stored) != self.dimensions:
            raise DimensionMismatchError(expected=self.dimensions, actual=int(stored))

        self._collection = collection
        logger.info(
            "ChromaDB collection '%s' ready (dimensions=%d)",
            self._collection_name, self.dimensions,
        )

    async def _get_collection(self) -> Any:
        if self._collection is None:
            await self.create_schema()
        return self._collection

    async def insert(self, entry: IndexedEntry) -> None:
        _check_dimensions(entry.vector, self.dimensions)
        collection = await self._get_collection()

        await self._call(
            collection.upsert,
            ids=[entry.id],
            embeddings=[list(entry.vector)],
            documents=[entry.text],
            metadatas=[{
                "source_id": entry.source_id,
                "ordinal": entry.ordinal,
                "inserted_at": entry.inserted_at.timestamp(),
            }],
        )
        logger.debug("Upserted entry %s into ChromaDB", entry.id)

    async def search(
        self,
        query_vector: Sequence[float],
        top_k: int,
    ) -> list[SearchResult]:
        """
        Top-k search: Chroma HNSW picks candidates, cosine_score() ranks them.

        A zero query vector has similarity 0 with everything, so ANN is
        skipped and every entry scores 1.0, ordered by recency.
        """
        _check_top_k(top_k)
        _check_dimensions(query_vector, self.dimensions)
        collection = await self._get_collection()

        total = await self._call(collection.count)
        if total == 0:
            return []

        candidates: list[tuple[SearchResult, float]] = []

        if not np.any(np.asarray(query_vector, dtype=np.float64)):
            rows = await self._call(collection.get, include=["documents", "metadatas"])
            for document, metadata in zip(rows["documents"], rows["metadatas"]):
                candidates.append((
                    SearchResult(text=document, source_id=metadata["source_id"], score=1.0),
                    float(metadata.get("inserted_at", 0.0)),
                ))
            return _rank(candidates, top_k)

        rows = await self._call(
            collection.query,
            query_embeddings=[list(query_vector)],
            n_results=min(total, top_k * self._candidate_multiplier),
            include=["documents", "metadatas", "embeddings"],
        )
        for document, metadata, embedding in zip(
            rows["documents"][0], rows["metadatas"][0], rows["embeddings"][0]
        ):
            candidates.append((
                SearchResult(
                    text=document,
                    source_id=metadata["source_id"],
                    score=cosine_score(query_vector, embedding),
                ),
                float(metadata.get("inserted_at", 0.0)),
            ))

        return _rank(candidates, top_k)

    async def delete_by_source(self, source_id: str) -> int:
        collection = await self._get_collection()

        existing = await self._call(
            collection.get, where={"source_id": source_id}, include=[],
        )
        ids = existing["ids"]
        if ids:
            await self._call(collection.delete, ids=ids)

        logger.info("Deleted %d entries for source_id=%s", len(ids), source_id)
        return len(ids)

    async def list_sources(self) -> dict[str, int]:
        collection = await self._get_collection()
        rows = await self._call(collection.get, include=["metadatas"])
        counts = Counter(metadata["source_id"] for metadata in rows["metadatas"])
        return dict(sorted(counts.items()))


# ---------------------------------------------------------------------------
# Implementation 2: pgvector (PostgreSQL)
# ---------------------------------------------------------------------------


def _already_exists(exc: DBAPIError) -> bool:
    message = str(exc.orig if exc.orig is not None else exc).lower()
    return "already exists" in message or "duplicate" in message


class PgVectorIndex:
    """
    pgvector-backed vector index using PostgreSQL.

    Writes use INSERT ... ON CONFLICT (id) DO UPDATE; reads order by
    pgvector's cosine_distance(), converted to score = 2 - distance.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        session_factory: async_sessionmaker[AsyncSession],
        dimensions: int,
    ) -> None:
        self._engine = engine
        self._session_factory = session_factory
        self.dimensions = dimensions

    @asynccontextmanager
    async def _session(self, operation: str):
        """Session scope translating driver/connection errors."""
        try:
            async with self._session_factory() as session:
                yield session
        except (DBAPIError, OSError) as exc:
            raise IndexUnavailableError(f"pgvector {operation} failed: {exc}") from exc

    async def create_schema(self) -> None:
        """
        Create the vector extension and the indexed_chunks table.

        Concurrent starters can race on both statements; "already exists"
        from the loser counts as success.
        """
        try:
            async with self._engine.begin() as conn:
                await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
                await conn.run_sync(
                    Base.metadata.create_all,
                    tables=[IndexedChunk.__table__],
                )
        except (IntegrityError, ProgrammingError) as exc:
            if not _already_exists(exc):
                raise IndexUnavailableError(f"pgvector create_schema failed: {exc}") from exc
            logger.info("indexed_chunks schema created concurrently; continuing")
        except (DBAPIError, OSError) as exc:
            raise IndexUnavailableError(f"pgvector create_schema failed: {exc}") from exc

        logger.info("pgvector table 'indexed_chunks' ready (dimensions=%d)", self.dimensions)

    async def insert(self, entry: IndexedEntry) -> None:
        _check_dimensions(entry.vector, self.dimensions)

        stmt = pg_insert(IndexedChunk).values(
            id=entry.id,
            source_id=entry.source_id,
            ordinal=entry.ordinal,
            content=entry.text,
            embedding=list(entry.vector),
            inserted_at=entry.inserted_at,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[IndexedChunk.id],
            set_={
                "source_id": stmt.excluded.source_id,
                "ordinal": stmt.excluded.ordinal,
                "content": stmt.excluded.content,
                "embedding": stmt.excluded.embedding,
                "inserted_at": stmt.excluded.inserted_at,
            },
        )

        async with self._session("insert") as session:
            await session.execute(stmt)
            await session.commit()

    async def search(
        self,
        query_vector: Sequence[float],
        top_k: int,
    ) -> list[SearchResult]:
        _check_top_k(top_k)
        _check_dimensions(query_vector, self.dimensions)

        distance = IndexedChunk.embedding.cosine_distance(list(query_vector))
        stmt = (
            select(
                IndexedChunk.content,
                IndexedChunk.source_id,
                IndexedChunk.inserted_at,
                distance.label("distance"),
            )
            .order_by(distance, IndexedChunk.inserted_at.desc())
            .limit(top_k)
        )

        async with self._session("search") as session:
            rows = (await session.execute(stmt)).all()

        candidates = [
            (
                SearchResult(
                    text=row.content,
                    source_id=row.source_id,
                    score=_distance_to_score(row.distance),
                ),
                row.inserted_at.timestamp(),
            )
            for row in rows
        ]
        return _rank(candidates, top_k)

    async def delete_by_source(self, source_id: str) -> int:
        stmt = delete(IndexedChunk).where(IndexedChunk.source_id == source_id)
        async with self._session("delete_by_source") as session:
            result = await session.execute(stmt)
            await session.commit()

        logger.info("Deleted %d entries for source_id=%s", result.rowcount, source_id)
        return result.rowcount

    async def list_sources(self) -> dict[str, int]:
        stmt = (
            select(IndexedChunk.source_id, func.count())
            .group_by(IndexedChunk.source_id)
            .order_by(IndexedChunk.source_id)
        )
        async with self._session("list_sources") as session:
            rows = (await session.execute(stmt)).all()
        return {source_id: count for source_id, count in rows}


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------


def create_vector_index(
    settings: Settings,
    engine: AsyncEngine | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> ChromaVectorIndex | PgVectorIndex:
    """
    Build the configured vector index backend.

    Reads `vectorstore_type` from settings:
    - "chroma" → ChromaVectorIndex (default). Client mode is picked from
      chroma_url (HTTP), chroma_persist_dir (on disk) or in-process memory.
    - "pgvector" → PgVectorIndex on the given async engine, which is
      required for this backend.
    """
    if settings.vectorstore_type == "pgvector":
        if engine is None:
            raise ValueError("vectorstore_type 'pgvector' needs a database engine")
        if session_factory is None:
            session_factory = create_session_factory(engine)

        logger.info("Using pgvector vector index")
        return PgVectorIndex(
            engine=engine,
            session_factory=session_factory,
            dimensions=settings.embedding_dimensions,
        )

    if settings.vectorstore_type != "chroma":
        raise ValueError(
            f"Unknown vectorstore_type '{settings.vectorstore_type}'. "
            "Supported: 'chroma', 'pgvector'"
        )

    if settings.chroma_url:
        client = chromadb.HttpClient(host=settings.chroma_url)
    elif settings.chroma_persist_dir:
        client = chromadb.PersistentClient(path=settings.chroma_persist_dir)
    else:
        client = chromadb.Client()

    logger.info("Using ChromaDB vector index (collection=%s)", settings.vector_collection)
    return ChromaVectorIndex(
        client=client,
        collection_name=settings.vector_collection,
        dimensions=settings.embedding_dimensions,
        candidate_multiplier=settings.search_candidate_multiplier,
    )
