# =============================================================================
# Portfolio Analytics — CSV Holdings → Metrics & Risk
# =============================================================================
#
# Pure functions over an uploaded holdings CSV. No I/O beyond the bytes
# handed in; persistence lives in finrag/db/portfolios.py and the advice
# prompt in finrag/agents/advisor.py.
#
# CSV FORMAT (header names are case/whitespace-insensitive):
#   symbol, quantity, purchase_price [, asset_type] [, any other columns]
#
#   "Purchase Price" → purchase_price, " Asset Type " → asset_type
#
# METRICS:
#   investment     = quantity * purchase_price
#   current_value  = quantity * current_price
#   current_price  = market price when known, else purchase_price
#   allocations    = share of total current value, in percent
#
# All percentages and summary totals are rounded to 2 decimal places.
# A zero denominator yields 0 rather than an error.
# =============================================================================

from __future__ import annotations

import csv
import io
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("symbol", "quantity", "purchase_price")

_WHITESPACE = re.compile(r"\s+")


@dataclass
class PortfolioMetrics:
    """Per-holding figures plus the portfolio-level summary."""

    holdings: list[dict[str, Any]] = field(default_factory=list)
    summary: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Parsing & Validation
# ---------------------------------------------------------------------------


def normalize_key(key: str) -> str:
    """'  Purchase  Price ' → 'purchase_price'."""
    return _WHITESPACE.sub("_", key.lower().strip())


def parse_portfolio_csv(content: bytes | str) -> list[dict[str, str]]:
    """
    Parse a holdings CSV into rows keyed by normalized header names.

    Values are stripped strings; missing trailing cells become "".
    Blank lines are skipped.

    Raises:
        UnicodeDecodeError: If bytes are not valid UTF-8.
        csv.Error: If the CSV is malformed.
    """
    if isinstance(content, bytes):
        content = content.decode("utf-8-sig")

    reader = csv.DictReader(io.StringIO(content))
    rows: list[dict[str, str]] = []
    for raw in reader:
        rows.append({
            normalize_key(key): (value or "").strip()
            for key, value in raw.items()
            # Surplus cells beyond the header land under a None key
            if key is not None
        })

    logger.debug("Parsed portfolio CSV: %d rows", len(rows))
    return rows


def _parse_number(value: str | None) -> float | None:
    """float(value), or None when the value is not a finite number."""
    if value is None:
        return None
    try:
        number = float(value)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def validate_portfolio(rows: list[dict[str, str]]) -> list[str]:
    """
    Check every row for required fields and numeric values.

    Returns:
        Human-readable error messages ("Row 1: Missing symbol"), numbered
        from 1. An empty list means the data is valid.
    """
    if not rows:
        return ["Portfolio file contains no holdings"]

    errors: list[str] = []
    for number, row in enumerate(rows, start=1):
        for name in REQUIRED_FIELDS:
            if not row.get(name):
                errors.append(f"Row {number}: Missing {name}")

        if row.get("quantity") and _parse_number(row["quantity"]) is None:
            errors.append(f"Row {number}: Quantity must be a number")

        if row.get("purchase_price") and _parse_number(row["purchase_price"]) is None:
            errors.append(f"Row {number}: Purchase price must be a number")

    return errors


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


def _percent(part: float, whole: float) -> float:
    return round(part / whole * 100, 2) if whole else 0.0


def calculate_metrics(
    rows: list[dict[str, str]],
    market_data: dict[str, dict[str, Any]] | None = None,
) -> PortfolioMetrics:
    """
    Compute per-holding values and the portfolio summary.

    Args:
        rows: Validated rows from parse_portfolio_csv().
        market_data: Optional {SYMBOL: {"price": float, "sector": str}}.
            Symbols without an entry are valued at purchase price with
            sector "Unknown".
    """
    market_data = market_data or {}

    total_value = 0.0
    total_investment = 0.0
    asset_totals: dict[str, float] = {}
    sector_totals: dict[str, float] = {}
    holdings: list[dict[str, Any]] = []

    for row in rows:
        symbol = row["symbol"].upper()
        quantity = float(row["quantity"])
        purchase_price = float(row["purchase_price"])
        quote = market_data.get(symbol, {})
        current_price = quote.get("price") or purchase_price
        sector = quote.get("sector") or "Unknown"
        asset_type = row.get("asset_type") or "Stock"

        investment = quantity * purchase_price
        current_value = quantity * current_price
        gain_loss = current_value - investment

        total_investment += investment
        total_value += current_value
        asset_totals[asset_type] = asset_totals.get(asset_type, 0.0) + current_value
        sector_totals[sector] = sector_totals.get(sector, 0.0) + current_value

        holdings.append({
            **row,
            "symbol": symbol,
            "quantity": quantity,
            "purchase_price": purchase_price,
            "current_price": current_price,
            "investment": investment,
            "current_value": current_value,
            "gain_loss": gain_loss,
            "gain_loss_percent": _percent(gain_loss, investment),
            "sector": sector,
            "asset_type": asset_type,
        })

    total_gain_loss = total_value - total_investment
    summary = {
        "total_investment": round(total_investment, 2),
        "total_value": round(total_value, 2),
        "total_gain_loss": round(total_gain_loss, 2),
        "total_gain_loss_percent": _percent(total_gain_loss, total_investment),
        "asset_allocation": {
            name: _percent(value, total_value) for name, value in asset_totals.items()
        },
        "sector_allocation": {
            name: _percent(value, total_value) for name, value in sector_totals.items()
        },
    }

    logger.info(
        "Portfolio metrics: %d holdings, value=%.2f, investment=%.2f",
        len(holdings), total_value, total_investment,
    )
    return PortfolioMetrics(holdings=holdings, summary=summary)


# ---------------------------------------------------------------------------
# Risk
# ---------------------------------------------------------------------------


def analyze_risk(holdings: list[dict[str, Any]]) -> dict[str, str]:
    """
    Rate concentration and diversification of a set of holdings.

    Concentration: largest holding's share of total value
        > 20% High, > 10% Medium, otherwise Low.
    Diversification: < 5 holdings or < 3 sectors Low,
        < 10 holdings or < 5 sectors Medium, otherwise High.
    """
    total_value = sum(h["current_value"] for h in holdings)
    largest = max((h["current_value"] for h in holdings), default=0.0)
    ratio = largest / total_value * 100 if total_value else 0.0

    if ratio > 20:
        concentration = "High - Single holding exceeds 20% of portfolio"
    elif ratio > 10:
        concentration = f"Medium - Largest holding is {ratio:.1f}%"
    else:
        concentration = "Low - Well distributed holdings"

    sectors = len({h["sector"] for h in holdings})
    count = len(holdings)
    if count < 5 or sectors < 3:
        diversification = "Low - Consider adding more holdings across different sectors"
    elif count < 10 or sectors < 5:
        diversification = "Medium - Reasonably diversified"
    else:
        diversification = "High - Well diversified portfolio"

    return {"concentration": concentration, "diversification": diversification}
