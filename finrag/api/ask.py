# =============================================================================
# Query API — Retrieval-Augmented Answers
# =============================================================================
#
# ENDPOINTS:
#   POST /query  — retrieve the top-k chunks and generate an answer
#   POST /search — retrieve the top-k chunks only (no LLM call)
#
# FLOW (/query):
#   1. Embed the question and search the vector index
#   2. Nothing indexed → canned reply, no LLM call, sources = []
#   3. Otherwise generate an answer from the ranked chunks and cite each
#      chunk with a snippet and its score
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request

from finrag.agents.analyst import NO_RESULTS_MESSAGE, generate_answer
from finrag.api.deps import get_app_settings, get_llm, get_pipeline, http_error_for
from finrag.config import Settings
from finrag.models.requests import QueryRequest
from finrag.models.responses import QueryResponse, SearchHit, SearchResponse, SourceSnippet
from finrag.services.errors import RetrievalError
from finrag.services.llm import LLMProviderError
from finrag.services.pipeline import EmptyResultSet, RetrievalPipeline

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Question Answering"])


@router.post(
    "/query",
    response_model=QueryResponse,
    summary="Ask a question about the uploaded documents",
)
async def query_documents(
    body: QueryRequest,
    request: Request,
    pipeline: RetrievalPipeline = Depends(get_pipeline),
    settings: Settings = Depends(get_app_settings),
) -> QueryResponse:
    logger.info("Processing query: %s", body.question)

    try:
        result = await pipeline.query(body.question, top_k=body.top_k)
    except RetrievalError as exc:
        raise http_error_for(exc) from exc

    if isinstance(result, EmptyResultSet):
        return QueryResponse(answer=NO_RESULTS_MESSAGE, sources=[])

    # Resolved here so the empty-index reply works without an LLM
    llm = get_llm(request)
    try:
        analysis = await generate_answer(llm, body.question, result.results)
    except LLMProviderError as exc:
        raise http_error_for(exc) from exc

    return QueryResponse(
        answer=analysis.answer,
        sources=[
            SourceSnippet(
                filename=hit.source_id,
                snippet=hit.text[: settings.snippet_length] + "...",
                score=hit.score,
            )
            for hit in result.results
        ],
    )


@router.post(
    "/search",
    response_model=SearchResponse,
    summary="Retrieve the closest chunks without generating an answer",
)
async def search_documents(
    body: QueryRequest,
    pipeline: RetrievalPipeline = Depends(get_pipeline),
) -> SearchResponse:
    try:
        result = await pipeline.query(body.question, top_k=body.top_k)
    except RetrievalError as exc:
        raise http_error_for(exc) from exc

    return SearchResponse(
        results=[SearchHit.model_validate(hit) for hit in result.results]
    )
