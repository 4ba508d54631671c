# =============================================================================
# Portfolio API — CSV Analysis, Advice and Comparison
# =============================================================================
#
# ENDPOINTS:
#   POST   /upload-portfolio                 — analyse a holdings CSV
#   GET    /portfolios                       — the user's portfolios (≤ 50)
#   GET    /portfolio/{portfolio_id}         — one stored analysis
#   POST   /portfolio/{portfolio_id}/advice  — fresh advice for a portfolio
#   POST   /compare-portfolios               — LLM comparison of two
#   DELETE /portfolio/{portfolio_id}         — remove a stored analysis
#   GET    /analytics/dashboard              — totals across portfolios
#
# Authentication is out of scope, so every record belongs to the
# "anonymous" user.
#
# FLOW (/upload-portfolio):
#   parse CSV → validate → metrics → risk → market context → LLM advice
#   → store → respond. Nothing is stored when any step fails.
# =============================================================================

from __future__ import annotations

import csv
import logging
import time

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile

from finrag.agents.advisor import compare_portfolios, generate_advice, get_market_trends
from finrag.api.deps import (
    get_app_settings,
    get_llm,
    get_portfolio_repository,
    http_error_for,
)
from finrag.config import Settings
from finrag.db.portfolios import MAX_LISTED, PortfolioRepository
from finrag.models.requests import AdviceRequest, ComparePortfoliosRequest
from finrag.models.responses import (
    AdviceResponse,
    ComparisonResponse,
    DashboardResponse,
    DashboardStats,
    MessageResponse,
    PortfolioAnalysis,
    PortfolioListResponse,
    PortfolioRecord,
    PortfolioResponse,
    PortfolioUploadResponse,
)
from finrag.services.errors import StorageUnavailableError
from finrag.services.llm import LLMProviderError
from finrag.services.portfolio import (
    analyze_risk,
    calculate_metrics,
    parse_portfolio_csv,
    validate_portfolio,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Portfolios"])

ANONYMOUS_USER = "anonymous"


def _is_csv(file: UploadFile) -> bool:
    if file.content_type == "text/csv":
        return True
    return bool(file.filename) and file.filename.lower().endswith(".csv")


async def _load(repository: PortfolioRepository, portfolio_id: str):
    try:
        portfolio = await repository.get(portfolio_id)
    except StorageUnavailableError as exc:
        raise http_error_for(exc) from exc
    if portfolio is None:
        raise HTTPException(status_code=404, detail="Portfolio not found")
    return portfolio


# ---------------------------------------------------------------------------
# POST /upload-portfolio — Analyse a holdings CSV
# ---------------------------------------------------------------------------


@router.post(
    "/upload-portfolio",
    response_model=PortfolioUploadResponse,
    summary="Upload a holdings CSV for analysis and advice",
)
async def upload_portfolio(
    request: Request,
    portfolio: UploadFile = File(..., description="CSV with symbol, quantity, purchase_price"),
    repository: PortfolioRepository = Depends(get_portfolio_repository),
    settings: Settings = Depends(get_app_settings),
) -> PortfolioUploadResponse:
    if not _is_csv(portfolio):
        raise HTTPException(status_code=400, detail="Only CSV files are allowed")

    content = await portfolio.read()
    if not content:
        raise HTTPException(status_code=400, detail="No CSV file uploaded")
    if len(content) > settings.max_portfolio_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"CSV exceeds the {settings.max_portfolio_bytes} byte limit",
        )

    filename = f"portfolio_{time.time_ns() // 1_000_000}.csv"
    logger.info("Processing portfolio CSV %s as %s", portfolio.filename, filename)

    try:
        rows = parse_portfolio_csv(content)
    except (UnicodeDecodeError, csv.Error) as exc:
        raise HTTPException(status_code=400, detail=f"Unreadable CSV: {exc}") from exc

    errors = validate_portfolio(rows)
    if errors:
        raise HTTPException(
            status_code=400,
            detail={"error": "Invalid portfolio data", "details": errors},
        )

    metrics = calculate_metrics(rows)
    risk_analysis = analyze_risk(metrics.holdings)
    market_trends = await get_market_trends()

    llm = get_llm(request)
    try:
        advice = await generate_advice(llm, metrics.summary, market_trends)
        record = await repository.save(
            ANONYMOUS_USER, filename, metrics, risk_analysis=risk_analysis,
        )
    except (LLMProviderError, StorageUnavailableError) as exc:
        raise http_error_for(exc) from exc

    return PortfolioUploadResponse(
        portfolio_id=record.id,
        filename=filename,
        portfolio=PortfolioAnalysis(
            holdings=metrics.holdings,
            summary=metrics.summary,
            risk_analysis=risk_analysis,
            advice=advice,
            market_context=market_trends,
        ),
    )


# ---------------------------------------------------------------------------
# Stored portfolios
# ---------------------------------------------------------------------------


@router.get("/portfolios", response_model=PortfolioListResponse)
async def list_portfolios(
    repository: PortfolioRepository = Depends(get_portfolio_repository),
) -> PortfolioListResponse:
    """The caller's portfolios, newest first."""
    try:
        records = await repository.list_for_user(ANONYMOUS_USER, limit=MAX_LISTED)
    except StorageUnavailableError as exc:
        raise http_error_for(exc) from exc

    return PortfolioListResponse(
        portfolios=[PortfolioRecord.model_validate(record) for record in records]
    )


@router.get("/portfolio/{portfolio_id}", response_model=PortfolioResponse)
async def get_portfolio(
    portfolio_id: str,
    repository: PortfolioRepository = Depends(get_portfolio_repository),
) -> PortfolioResponse:
    record = await _load(repository, portfolio_id)
    return PortfolioResponse(portfolio=PortfolioRecord.model_validate(record))


@router.delete("/portfolio/{portfolio_id}", response_model=MessageResponse)
async def delete_portfolio(
    portfolio_id: str,
    repository: PortfolioRepository = Depends(get_portfolio_repository),
) -> MessageResponse:
    try:
        deleted = await repository.delete(portfolio_id)
    except StorageUnavailableError as exc:
        raise http_error_for(exc) from exc

    if not deleted:
        raise HTTPException(status_code=404, detail="Portfolio not found")
    return MessageResponse(message="Portfolio deleted successfully")


# ---------------------------------------------------------------------------
# Advice & comparison
# ---------------------------------------------------------------------------


@router.post("/portfolio/{portfolio_id}/advice", response_model=AdviceResponse)
async def portfolio_advice(
    portfolio_id: str,
    request: Request,
    body: AdviceRequest | None = None,
    repository: PortfolioRepository = Depends(get_portfolio_repository),
) -> AdviceResponse:
    record = await _load(repository, portfolio_id)
    market_trends = await get_market_trends()

    llm = get_llm(request)
    try:
        advice = await generate_advice(
            llm,
            record.summary,
            market_trends,
            specific_question=body.specific_question if body else None,
        )
    except LLMProviderError as exc:
        raise http_error_for(exc) from exc

    return AdviceResponse(
        advice=advice,
        market_context=market_trends,
        portfolio_summary=record.summary,
    )


@router.post("/compare-portfolios", response_model=ComparisonResponse)
async def compare(
    body: ComparePortfoliosRequest,
    request: Request,
    repository: PortfolioRepository = Depends(get_portfolio_repository),
) -> ComparisonResponse:
    try:
        first = await repository.get(body.portfolio1_id)
        second = await repository.get(body.portfolio2_id)
    except StorageUnavailableError as exc:
        raise http_error_for(exc) from exc

    if first is None or second is None:
        raise HTTPException(status_code=404, detail="One or both portfolios not found")

    llm = get_llm(request)
    try:
        comparison = await compare_portfolios(llm, first.summary, second.summary)
    except LLMProviderError as exc:
        raise http_error_for(exc) from exc

    return ComparisonResponse(
        comparison=comparison,
        portfolio1_summary=first.summary,
        portfolio2_summary=second.summary,
    )


# ---------------------------------------------------------------------------
# GET /analytics/dashboard
# ---------------------------------------------------------------------------


@router.get("/analytics/dashboard", response_model=DashboardResponse)
async def dashboard(
    repository: PortfolioRepository = Depends(get_portfolio_repository),
) -> DashboardResponse:
    try:
        stats = await repository.dashboard(ANONYMOUS_USER)
    except StorageUnavailableError as exc:
        raise http_error_for(exc) from exc
    return DashboardResponse(dashboard=DashboardStats(**stats))
