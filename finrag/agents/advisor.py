# =============================================================================
# Advisor Agent — Portfolio Advice & Comparison
# =============================================================================
#
# Builds prompts from a portfolio summary (see services/portfolio.py) and
# asks the configured LLM for coaching-style advice, or for a side-by-side
# comparison of two portfolios.
#
# Market context is static text for now; get_market_trends() is the seam
# where a market-data feed would plug in.
# =============================================================================

from __future__ import annotations

import json
import logging
from typing import Any

from finrag.services.llm import LLMProvider

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a personal investment coach. Give practical, easy to "
    "understand advice based on the portfolio figures provided."
)

_MARKET_TRENDS = (
    "Current market conditions:\n"
    "- Market volatility is moderate\n"
    "- Technology sector showing mixed signals\n"
    "- Financial sector performing well\n"
    "- Inflation concerns affecting bond markets\n"
    "- Energy sector experiencing volatility due to geopolitical factors"
)


async def get_market_trends() -> str:
    """Market context included in every advice prompt."""
    return _MARKET_TRENDS


def _allocation_lines(allocation: dict[str, float]) -> str:
    return "\n".join(f"- {name}: {percent}%" for name, percent in allocation.items())


def build_advice_prompt(
    summary: dict[str, Any],
    market_trends: str,
    specific_question: str | None = None,
) -> str:
    prompt = (
        "As a personal investment coach, analyze this portfolio and provide advice:\n\n"
        "Portfolio Summary:\n"
        f"- Total Investment: ${summary['total_investment']}\n"
        f"- Current Value: ${summary['total_value']}\n"
        f"- Total Gain/Loss: ${summary['total_gain_loss']} "
        f"({summary['total_gain_loss_percent']}%)\n\n"
        "Asset Allocation:\n"
        f"{_allocation_lines(summary.get('asset_allocation', {}))}\n\n"
        "Sector Allocation:\n"
        f"{_allocation_lines(summary.get('sector_allocation', {}))}\n\n"
        "Market Context:\n"
        f"{market_trends}\n\n"
        "Please provide:\n"
        "1. Portfolio Risk Assessment (Low/Medium/High risk level)\n"
        "2. Diversification Analysis\n"
        "3. Specific recommendations for rebalancing\n"
        "4. Suggestions for reducing risk or improving returns\n"
        "5. Any immediate actions the investor should consider\n\n"
        "Keep the advice practical and easy to understand."
    )
    if specific_question:
        prompt += f"\n\nSpecific Question: {specific_question}"
    return prompt


def build_comparison_prompt(
    summary1: dict[str, Any],
    summary2: dict[str, Any],
) -> str:
    def describe(label: str, summary: dict[str, Any]) -> str:
        return (
            f"{label}:\n"
            f"- Total Value: ${summary['total_value']}\n"
            f"- Total Gain/Loss: {summary['total_gain_loss_percent']}%\n"
            f"- Asset Allocation: {json.dumps(summary.get('asset_allocation', {}))}"
        )

    return (
        "Compare these two investment portfolios and provide insights:\n\n"
        f"{describe('Portfolio 1', summary1)}\n\n"
        f"{describe('Portfolio 2', summary2)}\n\n"
        "Provide:\n"
        "1. Performance comparison\n"
        "2. Risk comparison\n"
        "3. Diversification analysis\n"
        "4. Recommendations for improvement"
    )


async def generate_advice(
    llm: LLMProvider,
    summary: dict[str, Any],
    market_trends: str,
    specific_question: str | None = None,
) -> str:
    """
    Ask the LLM for investment advice on a portfolio summary.

    Raises:
        LLMProviderError: If the completion fails.
    """
    response = await llm.complete(
        messages=[{
            "role": "user",
            "content": build_advice_prompt(summary, market_trends, specific_question),
        }],
        system=SYSTEM_PROMPT,
    )
    logger.info("Investment advice generated (model=%s)", response.model)
    return response.content


async def compare_portfolios(
    llm: LLMProvider,
    summary1: dict[str, Any],
    summary2: dict[str, Any],
) -> str:
    """Ask the LLM for a comparison of two portfolio summaries."""
    response = await llm.complete(
        messages=[{
            "role": "user",
            "content": build_comparison_prompt(summary1, summary2),
        }],
        system=SYSTEM_PROMPT,
    )
    logger.info("Portfolio comparison generated (model=%s)", response.model)
    return response.content
