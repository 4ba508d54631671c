# =============================================================================
# Analyst Agent — Grounded Answer Generation
# =============================================================================
#
# Takes the ranked chunks returned by RetrievalPipeline.query() and the
# user's question, and asks the configured LLM for an answer grounded in
# that context.
#
# DESIGN DECISION: No LLM call without context.
# When retrieval finds nothing, the caller returns NO_RESULTS_MESSAGE
# directly; generate_answer() is only reached with at least one chunk.
#
# Context is presented as numbered blocks ([1], [2], ...) in rank order so
# the model can refer to individual excerpts.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass

from finrag.services.llm import LLMProvider
from finrag.services.vectorstore import SearchResult

logger = logging.getLogger(__name__)

NO_RESULTS_MESSAGE = (
    "I couldn't find any relevant information in the uploaded documents."
)

SYSTEM_PROMPT = (
    "You are a document analyst. Answer the user's question using the "
    "context excerpts from uploaded documents.\n\n"
    "Rules:\n"
    "- Base your answer on the provided context\n"
    "- If the context doesn't contain enough information to answer the "
    "question, say so\n"
    "- Keep your answer concise and directly relevant"
)


@dataclass
class AnalysisResult:
    """Generated answer plus usage metrics."""

    answer: str
    model: str
    input_tokens: int
    output_tokens: int


def build_context(results: list[SearchResult]) -> str:
    """Format ranked chunks as numbered context blocks."""
    return "\n\n".join(
        f"[{i}] (source: {result.source_id})\n{result.text}"
        for i, result in enumerate(results, start=1)
    )


def build_prompt(question: str, results: list[SearchResult]) -> str:
    return (
        "Based on the following context from uploaded documents, please "
        "answer the question. If the context doesn't contain enough "
        "information to answer the question, please say so.\n\n"
        f"Context:\n{build_context(results)}\n\n"
        f"Question: {question}\n\n"
        "Answer:"
    )


async def generate_answer(
    llm: LLMProvider,
    question: str,
    results: list[SearchResult],
) -> AnalysisResult:
    """
    Generate an answer to `question` from the retrieved chunks.

    Raises:
        ValueError: If `results` is empty.
        LLMProviderError: If the completion fails.
    """
    if not results:
        raise ValueError("generate_answer() requires at least one result")

    response = await llm.complete(
        messages=[{"role": "user", "content": build_prompt(question, results)}],
        system=SYSTEM_PROMPT,
    )

    logger.info(
        "Answer generated from %d chunks (model=%s, tokens=%d+%d)",
        len(results), response.model,
        response.input_tokens, response.output_tokens,
    )
    return AnalysisResult(
        answer=response.content,
        model=response.model,
        input_tokens=response.input_tokens,
        output_tokens=response.output_tokens,
    )
