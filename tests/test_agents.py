# =============================================================================
# Unit Tests — Analyst & Advisor Agents
# =============================================================================
#
# Prompt construction and LLM invocation with a mocked provider. No API
# keys or network access required.
# =============================================================================

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from finrag.agents.advisor import (
    build_advice_prompt,
    build_comparison_prompt,
    compare_portfolios,
    generate_advice,
    get_market_trends,
)
from finrag.agents.analyst import (
    AnalysisResult,
    build_context,
    build_prompt,
    generate_answer,
)
from finrag.config import Settings
from finrag.services.llm import (
    AnthropicProvider,
    LLMResponse,
    OpenAICompatibleProvider,
    create_llm_provider,
)
from finrag.services.vectorstore import SearchResult


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _mock_llm(content: str = "Generated text") -> AsyncMock:
    llm = AsyncMock()
    llm.complete.return_value = LLMResponse(
        content=content,
        model="test-model",
        input_tokens=120,
        output_tokens=30,
    )
    return llm


RESULTS = [
    SearchResult(text="Revenue rose 12% to $4.1bn.", source_id="1700000000000.pdf", score=1.93),
    SearchResult(text="Operating costs were flat.", source_id="1700000000001.pdf", score=1.61),
]

SUMMARY = {
    "total_investment": 1000.0,
    "total_value": 1250.0,
    "total_gain_loss": 250.0,
    "total_gain_loss_percent": 25.0,
    "asset_allocation": {"Stock": 80.0, "ETF": 20.0},
    "sector_allocation": {"Unknown": 100.0},
}


# ---------------------------------------------------------------------------
# Test: Analyst
# ---------------------------------------------------------------------------


class TestBuildPrompt:
    def test_context_numbered_in_rank_order(self):
        context = build_context(RESULTS)
        assert context.index("[1]") < context.index("[2]")
        assert "Revenue rose 12%" in context.split("[2]")[0]
        assert "(source: 1700000000001.pdf)" in context

    def test_prompt_contains_question_and_context(self):
        prompt = build_prompt("How did revenue change?", RESULTS)
        assert "Question: How did revenue change?" in prompt
        assert "Operating costs were flat." in prompt
        assert prompt.endswith("Answer:")


class TestGenerateAnswer:
    def test_returns_llm_answer(self):
        llm = _mock_llm("Revenue rose 12% [1].")

        result = _run(generate_answer(llm, "How did revenue change?", RESULTS))

        assert result == AnalysisResult(
            answer="Revenue rose 12% [1].",
            model="test-model",
            input_tokens=120,
            output_tokens=30,
        )
        llm.complete.assert_awaited_once()

    def test_prompt_sent_as_user_message(self):
        llm = _mock_llm()

        _run(generate_answer(llm, "How did revenue change?", RESULTS))

        kwargs = llm.complete.call_args.kwargs
        assert kwargs["messages"][0]["role"] == "user"
        assert "How did revenue change?" in kwargs["messages"][0]["content"]
        assert kwargs["system"]

    def test_requires_results(self):
        llm = _mock_llm()
        with pytest.raises(ValueError):
            _run(generate_answer(llm, "Anything?", []))
        llm.complete.assert_not_awaited()


# ---------------------------------------------------------------------------
# Test: Advisor
# ---------------------------------------------------------------------------


class TestAdvisor:
    def test_market_trends_text(self):
        trends = _run(get_market_trends())
        assert trends.startswith("Current market conditions:")

    def test_advice_prompt_lists_figures_and_allocations(self):
        prompt = build_advice_prompt(SUMMARY, "Calm markets")
        assert "- Total Investment: $1000.0" in prompt
        assert "- Total Gain/Loss: $250.0 (25.0%)" in prompt
        assert "- ETF: 20.0%" in prompt
        assert "- Unknown: 100.0%" in prompt
        assert "Market Context:\nCalm markets" in prompt
        assert "Specific Question" not in prompt

    def test_advice_prompt_appends_specific_question(self):
        prompt = build_advice_prompt(SUMMARY, "Calm markets", "Should I buy bonds?")
        assert prompt.endswith("Specific Question: Should I buy bonds?")

    def test_comparison_prompt(self):
        other = {**SUMMARY, "total_value": 900.0, "total_gain_loss_percent": -10.0}
        prompt = build_comparison_prompt(SUMMARY, other)
        assert "Portfolio 1:\n- Total Value: $1250.0" in prompt
        assert "Portfolio 2:\n- Total Value: $900.0" in prompt
        assert '{"Stock": 80.0, "ETF": 20.0}' in prompt

    def test_generate_advice_passes_question(self):
        llm = _mock_llm("Rebalance towards bonds.")

        advice = _run(generate_advice(llm, SUMMARY, "Calm", specific_question="Bonds?"))

        assert advice == "Rebalance towards bonds."
        content = llm.complete.call_args.kwargs["messages"][0]["content"]
        assert "Specific Question: Bonds?" in content

    def test_compare_portfolios(self):
        llm = _mock_llm("Portfolio 1 outperformed.")
        assert _run(compare_portfolios(llm, SUMMARY, SUMMARY)) == "Portfolio 1 outperformed."


# ---------------------------------------------------------------------------
# Test: LLM provider factory
# ---------------------------------------------------------------------------


class TestCreateLLMProvider:
    def test_openai_compatible_default(self):
        provider = create_llm_provider(Settings(llm_api_key="test-key"))
        assert isinstance(provider, OpenAICompatibleProvider)

    def test_anthropic(self):
        provider = create_llm_provider(
            Settings(llm_provider="anthropic", llm_api_key=None, anthropic_api_key="sk-ant-test")
        )
        assert isinstance(provider, AnthropicProvider)

    def test_missing_key_raises(self):
        with pytest.raises(ValueError, match="No API key"):
            create_llm_provider(Settings(llm_api_key=None, openai_api_key=""))

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown LLM provider"):
            create_llm_provider(Settings(llm_provider="palm", llm_api_key="k"))
