# =============================================================================
# API Dependencies — Shared Components & Error Translation
# =============================================================================
#
# The application lifespan (finrag/main.py) builds every long-lived
# component once and stores it on app.state:
#
#   app.state.settings       — Settings
#   app.state.pipeline       — RetrievalPipeline (embedder + vector index)
#   app.state.llm            — LLMProvider, or None when not configured
#   app.state.portfolios     — PortfolioRepository, or None when the
#                              database was unreachable at startup
#
# Route handlers receive them through the Depends() functions below, which
# also makes them replaceable in tests (set app.state directly or use
# app.dependency_overrides).
#
# http_error_for() is the single mapping from domain exceptions to HTTP
# status codes, so every route reports the same failure the same way.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import HTTPException, Request

from finrag.config import Settings
from finrag.db.portfolios import PortfolioRepository
from finrag.services.errors import (
    ChunkingError,
    DimensionMismatchError,
    EmbeddingServiceError,
    IndexUnavailableError,
    RetrievalError,
    StorageUnavailableError,
)
from finrag.services.llm import LLMProvider, LLMProviderError
from finrag.services.pipeline import RetrievalPipeline

logger = logging.getLogger(__name__)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_pipeline(request: Request) -> RetrievalPipeline:
    return request.app.state.pipeline


def get_llm(request: Request) -> LLMProvider:
    """The configured LLM provider. 503 if none could be built at startup."""
    llm = getattr(request.app.state, "llm", None)
    if llm is None:
        raise HTTPException(
            status_code=503,
            detail="Language model is not configured. Set LLM_API_KEY in .env.",
        )
    return llm


def get_portfolio_repository(request: Request) -> PortfolioRepository:
    """The portfolio repository. 503 if the database was unavailable at startup."""
    repository = getattr(request.app.state, "portfolios", None)
    if repository is None:
        raise HTTPException(
            status_code=503,
            detail="Portfolio storage is unavailable.",
        )
    return repository


def _context(exc: RetrievalError) -> str:
    if exc.source_id is None:
        return ""
    where = f" (source_id={exc.source_id}"
    if exc.ordinal is not None:
        where += f", chunk={exc.ordinal}"
    return where + ")"


def http_error_for(exc: Exception) -> HTTPException:
    """
    Translate a domain exception into the HTTPException to raise.

    ChunkingError           → 400
    EmbeddingServiceError   → 502
    IndexUnavailableError   → 503
    DimensionMismatchError  → 500 (configuration mismatch)
    LLMProviderError        → 502
    StorageUnavailableError → 503
    anything else           → 500
    """
    if isinstance(exc, ChunkingError):
        return HTTPException(status_code=400, detail=exc.message)
    if isinstance(exc, EmbeddingServiceError):
        return HTTPException(
            status_code=502,
            detail=f"Embedding service error: {exc.message}{_context(exc)}",
        )
    if isinstance(exc, IndexUnavailableError):
        return HTTPException(
            status_code=503,
            detail=f"Vector index unavailable: {exc.message}{_context(exc)}",
        )
    if isinstance(exc, DimensionMismatchError):
        return HTTPException(
            status_code=500,
            detail=f"Embedding dimension mismatch: {exc.message}{_context(exc)}",
        )
    if isinstance(exc, LLMProviderError):
        return HTTPException(status_code=502, detail=f"Language model error: {exc}")
    if isinstance(exc, StorageUnavailableError):
        return HTTPException(status_code=503, detail=f"Storage unavailable: {exc}")

    logger.error("Unhandled error translated to 500: %r", exc)
    return HTTPException(status_code=500, detail="Internal server error")
