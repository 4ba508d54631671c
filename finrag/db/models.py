# =============================================================================
# Database Models — SQLAlchemy ORM
# =============================================================================
#
# SCHEMA OVERVIEW:
#
# ┌──────────────────────────────────┐   ┌──────────────────────────────┐
# │  indexed_chunks (pgvector only)  │   │  portfolios                  │
# ├──────────────────────────────────┤   ├──────────────────────────────┤
# │ id (PK) "<source_id>_chunk_<n>"  │   │ id (PK) "<user>_<file>_<ms>" │
# │ source_id (indexed)              │   │ user_id (indexed)            │
# │ ordinal (int)                    │   │ filename                     │
# │ content (text)                   │   │ holdings (jsonb)             │
# │ embedding (vector(D))            │   │ summary (jsonb)              │
# │ inserted_at (timestamptz)        │   │ risk_analysis (jsonb)        │
# └──────────────────────────────────┘   │ upload_date (timestamptz)    │
#                                        └──────────────────────────────┘
#
# The two tables are independent: indexed_chunks holds derived text and
# vectors only, with no link back to the uploaded file. Deleting a source
# means deleting every row with that source_id.
#
# Tables are created per component (PgVectorIndex.create_schema,
# PortfolioRepository.create_schema), not all at once, so the portfolio
# table never requires the pgvector extension.
# =============================================================================

from datetime import datetime

from pgvector.sqlalchemy import Vector
from sqlalchemy import DateTime, Index, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from finrag.config import settings


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class for all ORM models."""

    pass


class IndexedChunk(Base):
    """
    One embedded chunk of a source document (pgvector backend).

    Rows are written with upsert-by-id, so re-ingesting the same
    source_id + ordinal replaces the previous content and vector.
    """

    __tablename__ = "indexed_chunks"

    id: Mapped[str] = mapped_column(String(600), primary_key=True)

    # Identifier of the ingested document (the stored upload filename)
    source_id: Mapped[str] = mapped_column(String(500), nullable=False)

    # 0-indexed position of the chunk within its document
    ordinal: Mapped[int] = mapped_column(Integer, nullable=False)

    content: Mapped[str] = mapped_column(Text, nullable=False)

    # Fixed dimension D; mismatched vectors are rejected before insert
    embedding: Mapped[list[float]] = mapped_column(
        Vector(settings.embedding_dimensions),
        nullable=False,
    )

    # Secondary ordering key for equal scores (most recent first)
    inserted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<IndexedChunk(id='{self.id}', source_id='{self.source_id}', "
            f"ordinal={self.ordinal})>"
        )


# HNSW index with cosine ops, matching the cosine scoring in search()
indexed_chunk_embedding_idx = Index(
    "idx_indexed_chunk_embedding_hnsw",
    IndexedChunk.embedding,
    postgresql_using="hnsw",
    postgresql_with={"m": 16, "ef_construction": 64},
    postgresql_ops={"embedding": "vector_cosine_ops"},
)

# B-tree index for delete_by_source and the per-source aggregation
indexed_chunk_source_idx = Index(
    "idx_indexed_chunk_source_id",
    IndexedChunk.source_id,
)


class Portfolio(Base):
    """
    An analysed portfolio upload.

    holdings / summary / risk_analysis hold the computed metrics as JSON
    so the advice and comparison endpoints can rebuild prompts without
    re-reading the CSV.
    """

    __tablename__ = "portfolios"

    id: Mapped[str] = mapped_column(String(700), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    filename: Mapped[str] = mapped_column(String(500), nullable=False)
    holdings: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    summary: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    risk_analysis: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    upload_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Portfolio(id='{self.id}', user_id='{self.user_id}')>"
