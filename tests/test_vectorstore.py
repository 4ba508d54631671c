# =============================================================================
# Unit Tests — Vector Index (ChromaDB backend) and Scoring
# =============================================================================
#
# Uses ChromaDB's in-process client (no external services needed), with a
# unique collection per test. pgvector is not exercised here; it requires
# a running PostgreSQL instance.
# =============================================================================

from __future__ import annotations

import asyncio
import uuid
from datetime import UTC, datetime, timedelta

import chromadb
import httpx
import pytest

from finrag.config import Settings
from finrag.db.engine import create_engine
from finrag.services.errors import DimensionMismatchError, IndexUnavailableError
from finrag.services.vectorstore import (
    ChromaVectorIndex,
    IndexedEntry,
    PgVectorIndex,
    SearchResult,
    _distance_to_score,
    cosine_score,
    create_vector_index,
)

_client = chromadb.EphemeralClient()


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _make_index(dimensions: int = 3, name: str | None = None) -> ChromaVectorIndex:
    index = ChromaVectorIndex(
        client=_client,
        collection_name=name or f"test_{uuid.uuid4().hex}",
        dimensions=dimensions,
    )
    _run(index.create_schema())
    return index


def _entry(
    source_id: str,
    ordinal: int,
    vector: list[float],
    text: str | None = None,
    inserted_at: datetime | None = None,
) -> IndexedEntry:
    return IndexedEntry(
        id=f"{source_id}_chunk_{ordinal}",
        vector=vector,
        text=text or f"{source_id} chunk {ordinal}",
        source_id=source_id,
        ordinal=ordinal,
        inserted_at=inserted_at or datetime.now(UTC),
    )


# ---------------------------------------------------------------------------
# Test: Scoring
# ---------------------------------------------------------------------------


class TestCosineScore:
    def test_identical_vectors_score_two(self):
        assert cosine_score([0.3, 0.5, 0.1], [0.3, 0.5, 0.1]) == 2.0

    def test_orthogonal_vectors_score_one(self):
        assert cosine_score([1.0, 0.0], [0.0, 1.0]) == 1.0

    def test_opposite_vectors_score_zero(self):
        assert cosine_score([1.0, 2.0], [-1.0, -2.0]) == 0.0

    def test_zero_vector_scores_one(self):
        assert cosine_score([0.0, 0.0, 0.0], [1.0, 2.0, 3.0]) == 1.0
        assert cosine_score([1.0, 2.0, 3.0], [0.0, 0.0, 0.0]) == 1.0

    def test_rounded_to_six_places(self):
        score = cosine_score([1.0, 2.0, 3.0], [3.0, 1.0, 2.0])
        assert score == round(score, 6)
        assert 0.0 <= score <= 2.0

    def test_length_mismatch_raises(self):
        with pytest.raises(DimensionMismatchError):
            cosine_score([1.0, 0.0], [1.0, 0.0, 0.0])

    def test_distance_conversion(self):
        assert _distance_to_score(0.0) == 2.0
        assert _distance_to_score(1.0) == 1.0
        assert _distance_to_score(2.0) == 0.0
        assert _distance_to_score(float("nan")) == 1.0
        assert _distance_to_score(None) == 1.0


# ---------------------------------------------------------------------------
# Test: ChromaVectorIndex
# ---------------------------------------------------------------------------


class TestChromaVectorIndex:
    def test_empty_index_search_returns_empty(self):
        index = _make_index()
        assert _run(index.search([1.0, 0.0, 0.0], 3)) == []

    def test_identical_vector_scores_two(self):
        index = _make_index()
        _run(index.insert(_entry("doc1", 0, [0.3, 0.5, 0.1])))

        results = _run(index.search([0.3, 0.5, 0.1], 1))

        assert results == [SearchResult(text="doc1 chunk 0", source_id="doc1", score=2.0)]

    def test_results_ordered_and_bounded(self):
        index = _make_index()
        _run(index.insert(_entry("a", 0, [1.0, 0.0, 0.0], text="exact")))
        _run(index.insert(_entry("a", 1, [0.7, 0.7, 0.0], text="close")))
        _run(index.insert(_entry("b", 0, [0.0, 1.0, 0.0], text="orthogonal")))
        _run(index.insert(_entry("b", 1, [-1.0, 0.0, 0.0], text="opposite")))

        results = _run(index.search([1.0, 0.0, 0.0], 3))

        assert [r.text for r in results] == ["exact", "close", "orthogonal"]
        scores = [r.score for r in results]
        assert scores == sorted(scores, reverse=True)
        assert all(0.0 <= s <= 2.0 for s in scores)

    def test_top_k_larger_than_index(self):
        index = _make_index()
        _run(index.insert(_entry("a", 0, [1.0, 0.0, 0.0])))
        _run(index.insert(_entry("a", 1, [0.0, 1.0, 0.0])))

        assert len(_run(index.search([1.0, 1.0, 0.0], 10))) == 2

    def test_ties_broken_by_most_recent(self):
        index = _make_index()
        now = datetime.now(UTC)
        _run(index.insert(_entry("old", 0, [1.0, 0.0, 0.0], inserted_at=now - timedelta(minutes=5))))
        _run(index.insert(_entry("new", 0, [1.0, 0.0, 0.0], inserted_at=now)))

        results = _run(index.search([1.0, 0.0, 0.0], 2))

        assert [r.source_id for r in results] == ["new", "old"]

    def test_zero_query_scores_everything_one(self):
        index = _make_index()
        now = datetime.now(UTC)
        _run(index.insert(_entry("a", 0, [1.0, 0.0, 0.0], inserted_at=now - timedelta(seconds=10))))
        _run(index.insert(_entry("b", 0, [0.0, 1.0, 0.0], inserted_at=now)))

        results = _run(index.search([0.0, 0.0, 0.0], 5))

        assert [r.score for r in results] == [1.0, 1.0]
        assert [r.source_id for r in results] == ["b", "a"]

    def test_upsert_replaces_entry(self):
        index = _make_index()
        _run(index.insert(_entry("doc", 0, [1.0, 0.0, 0.0], text="first")))
        _run(index.insert(_entry("doc", 0, [0.0, 1.0, 0.0], text="second")))

        assert _run(index.list_sources()) == {"doc": 1}
        results = _run(index.search([0.0, 1.0, 0.0], 1))
        assert results[0].text == "second"
        assert results[0].score == 2.0

    def test_insert_wrong_dimension_rejected(self):
        index = _make_index()

        with pytest.raises(DimensionMismatchError) as exc_info:
            _run(index.insert(_entry("doc", 0, [1.0, 0.0])))

        assert exc_info.value.expected == 3
        assert exc_info.value.actual == 2
        assert _run(index.list_sources()) == {}

    def test_query_wrong_dimension_rejected(self):
        index = _make_index()
        with pytest.raises(DimensionMismatchError):
            _run(index.search([1.0, 0.0, 0.0, 0.0], 1))

    @pytest.mark.parametrize("top_k", [0, -2])
    def test_non_positive_top_k_rejected(self, top_k):
        index = _make_index()
        with pytest.raises(ValueError):
            _run(index.search([1.0, 0.0, 0.0], top_k))

    def test_delete_then_list(self):
        index = _make_index()
        _run(index.insert(_entry("keep", 0, [1.0, 0.0, 0.0])))
        _run(index.insert(_entry("drop", 0, [0.0, 1.0, 0.0])))
        _run(index.insert(_entry("drop", 1, [0.0, 0.0, 1.0])))

        removed = _run(index.delete_by_source("drop"))

        assert removed == 2
        assert _run(index.list_sources()) == {"keep": 1}
        assert all(r.source_id == "keep" for r in _run(index.search([0.0, 1.0, 0.0], 5)))

    def test_delete_unknown_source_is_noop(self):
        index = _make_index()
        _run(index.insert(_entry("doc", 0, [1.0, 0.0, 0.0])))

        assert _run(index.delete_by_source("missing")) == 0
        assert _run(index.list_sources()) == {"doc": 1}

    def test_create_schema_is_idempotent(self):
        name = f"test_{uuid.uuid4().hex}"
        index = _make_index(name=name)
        _run(index.insert(_entry("doc", 0, [1.0, 0.0, 0.0])))

        reopened = _make_index(name=name)

        assert _run(reopened.list_sources()) == {"doc": 1}

    def test_reopen_with_other_dimension_rejected(self):
        name = f"test_{uuid.uuid4().hex}"
        _make_index(dimensions=3, name=name)

        with pytest.raises(DimensionMismatchError):
            _make_index(dimensions=4, name=name)


class _FailingCollection:
    """Collection stand-in whose count() raises the given exception."""

    metadata: dict = {}

    def __init__(self, exc: Exception) -> None:
        self.exc = exc

    def count(self) -> int:
        raise self.exc


class TestChromaFailures:
    def _index_with(self, exc: Exception) -> ChromaVectorIndex:
        index = ChromaVectorIndex(client=None, collection_name="unused", dimensions=3)
        index._collection = _FailingCollection(exc)
        return index

    def test_connection_failure_marks_index_unavailable(self):
        index = self._index_with(ConnectionRefusedError("connection refused"))

        with pytest.raises(IndexUnavailableError, match="count failed"):
            _run(index.search([1.0, 0.0, 0.0], 3))

    def test_transport_error_marks_index_unavailable(self):
        index = self._index_with(httpx.ConnectError("no route to host"))

        with pytest.raises(IndexUnavailableError):
            _run(index.search([1.0, 0.0, 0.0], 3))

    def test_programming_error_propagates(self):
        index = self._index_with(TypeError("count() got an unexpected keyword"))

        with pytest.raises(TypeError):
            _run(index.search([1.0, 0.0, 0.0], 3))


# ---------------------------------------------------------------------------
# Test: Factory
# ---------------------------------------------------------------------------


class TestCreateVectorIndex:
    def test_chroma_is_default(self):
        index = create_vector_index(Settings(embedding_dimensions=8))
        assert isinstance(index, ChromaVectorIndex)
        assert index.dimensions == 8

    def test_pgvector_uses_given_engine(self):
        settings = Settings(
            vectorstore_type="pgvector",
            database_url="postgresql+asyncpg://u:p@db.internal:5433/vectors",
        )
        engine = create_engine(settings)
        index = create_vector_index(settings, engine=engine)
        assert isinstance(index, PgVectorIndex)
        assert index._engine is engine
        assert index._session_factory.kw["bind"] is engine
        _run(engine.dispose())

    def test_pgvector_requires_engine(self):
        with pytest.raises(ValueError, match="needs a database engine"):
            create_vector_index(Settings(vectorstore_type="pgvector"))

    def test_unknown_backend(self):
        with pytest.raises(ValueError, match="Unknown vectorstore_type"):
            create_vector_index(Settings(vectorstore_type="elasticsearch"))
