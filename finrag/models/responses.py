# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# Shapes of data going OUT of the API. Stored vectors never leave the
# service: search hits expose text, source and score only.
# =============================================================================

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class HealthResponse(BaseModel):
    """Response for GET /health — confirms the API is running."""

    status: str = "ok"
    version: str
    service: str


class MessageResponse(BaseModel):
    message: str


# ---------------------------------------------------------------------------
# Documents & Retrieval
# ---------------------------------------------------------------------------


class UploadResponse(BaseModel):
    """Response for POST /upload — the PDF has been chunked and indexed."""

    message: str = "PDF processed successfully"
    filename: str = Field(description="Stored filename, used as the document's source id")
    chunks: int = Field(description="Number of chunks indexed")
    text_length: int = Field(description="Characters of text extracted from the PDF")


class SourceSnippet(BaseModel):
    """A retrieved chunk as cited in an answer."""

    filename: str
    snippet: str = Field(description="Leading characters of the chunk, followed by '...'")
    score: float = Field(description="Cosine similarity + 1.0, in [0, 2]")


class QueryResponse(BaseModel):
    """Response for POST /query — generated answer with its sources."""

    answer: str
    sources: list[SourceSnippet] = Field(default_factory=list)


class SearchHit(BaseModel):
    text: str
    source_id: str
    score: float

    model_config = ConfigDict(from_attributes=True)


class SearchResponse(BaseModel):
    """Response for POST /search — ranked chunks, no generation."""

    results: list[SearchHit]


class DocumentSummary(BaseModel):
    filename: str
    chunks: int


class DocumentListResponse(BaseModel):
    documents: list[DocumentSummary]


# ---------------------------------------------------------------------------
# Portfolios
# ---------------------------------------------------------------------------


class PortfolioRecord(BaseModel):
    """A stored portfolio analysis."""

    id: str
    user_id: str
    filename: str
    holdings: list[dict[str, Any]]
    summary: dict[str, Any]
    risk_analysis: dict[str, str] | None = None
    upload_date: datetime

    model_config = ConfigDict(from_attributes=True)


class PortfolioAnalysis(BaseModel):
    holdings: list[dict[str, Any]]
    summary: dict[str, Any]
    risk_analysis: dict[str, str]
    advice: str
    market_context: str


class PortfolioUploadResponse(BaseModel):
    """Response for POST /upload-portfolio."""

    message: str = "Portfolio analyzed successfully"
    portfolio_id: str
    filename: str
    portfolio: PortfolioAnalysis


class PortfolioResponse(BaseModel):
    portfolio: PortfolioRecord


class PortfolioListResponse(BaseModel):
    portfolios: list[PortfolioRecord]


class AdviceResponse(BaseModel):
    advice: str
    market_context: str
    portfolio_summary: dict[str, Any]


class ComparisonResponse(BaseModel):
    comparison: str
    portfolio1_summary: dict[str, Any]
    portfolio2_summary: dict[str, Any]


class DashboardStats(BaseModel):
    total_portfolios: int
    total_value: int
    total_investment: int
    average_return: float
    total_gain_loss: int


class DashboardResponse(BaseModel):
    dashboard: DashboardStats
