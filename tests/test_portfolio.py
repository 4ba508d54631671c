# =============================================================================
# Unit Tests — Portfolio Analytics
# =============================================================================
#
# CSV parsing, validation, metrics and risk rating. Pure functions, no
# database or LLM required.
# =============================================================================

import pytest

from finrag.db.portfolios import make_portfolio_id
from finrag.services.portfolio import (
    analyze_risk,
    calculate_metrics,
    normalize_key,
    parse_portfolio_csv,
    validate_portfolio,
)

CSV = (
    "Symbol, Quantity ,Purchase Price,Asset Type\n"
    "aapl,10,150,Stock\n"
    "vti,5,200,ETF\n"
    "msft,2,300,\n"
)


class TestParsePortfolioCsv:
    def test_headers_normalized(self):
        rows = parse_portfolio_csv(CSV)
        assert set(rows[0]) == {"symbol", "quantity", "purchase_price", "asset_type"}

    def test_values_kept_as_strings(self):
        rows = parse_portfolio_csv(CSV)
        assert rows[0] == {
            "symbol": "aapl",
            "quantity": "10",
            "purchase_price": "150",
            "asset_type": "Stock",
        }
        assert rows[2]["asset_type"] == ""

    def test_bytes_with_bom(self):
        rows = parse_portfolio_csv(("\ufeff" + CSV).encode("utf-8"))
        assert rows[0]["symbol"] == "aapl"
        assert len(rows) == 3

    def test_missing_trailing_cells(self):
        rows = parse_portfolio_csv("symbol,quantity,purchase_price\nAAPL,1\n")
        assert rows == [{"symbol": "AAPL", "quantity": "1", "purchase_price": ""}]

    def test_header_only_has_no_rows(self):
        assert parse_portfolio_csv("symbol,quantity,purchase_price\n") == []

    def test_invalid_utf8_raises(self):
        with pytest.raises(UnicodeDecodeError):
            parse_portfolio_csv(b"symbol\n\xff\xfe\n")

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("Purchase Price", "purchase_price"), ("  ASSET   type ", "asset_type"), ("symbol", "symbol")],
    )
    def test_normalize_key(self, raw, expected):
        assert normalize_key(raw) == expected


class TestValidatePortfolio:
    def test_valid_rows(self):
        assert validate_portfolio(parse_portfolio_csv(CSV)) == []

    def test_empty_portfolio(self):
        assert validate_portfolio([]) == ["Portfolio file contains no holdings"]

    def test_missing_fields_reported_per_row(self):
        rows = [
            {"symbol": "AAPL", "quantity": "1", "purchase_price": "10"},
            {"symbol": "", "quantity": "1"},
        ]
        assert validate_portfolio(rows) == [
            "Row 2: Missing symbol",
            "Row 2: Missing purchase_price",
        ]

    def test_non_numeric_values(self):
        rows = [{"symbol": "AAPL", "quantity": "ten", "purchase_price": "abc"}]
        assert validate_portfolio(rows) == [
            "Row 1: Quantity must be a number",
            "Row 1: Purchase price must be a number",
        ]

    def test_non_finite_rejected(self):
        rows = [{"symbol": "AAPL", "quantity": "nan", "purchase_price": "inf"}]
        assert len(validate_portfolio(rows)) == 2


class TestCalculateMetrics:
    def test_without_market_data(self):
        metrics = calculate_metrics(parse_portfolio_csv(CSV))

        first = metrics.holdings[0]
        assert first["symbol"] == "AAPL"
        assert first["quantity"] == 10.0
        assert first["current_price"] == 150.0
        assert first["investment"] == 1500.0
        assert first["gain_loss"] == 0.0
        assert first["sector"] == "Unknown"
        assert metrics.holdings[2]["asset_type"] == "Stock"

        assert metrics.summary["total_investment"] == 3100.0
        assert metrics.summary["total_value"] == 3100.0
        assert metrics.summary["total_gain_loss_percent"] == 0.0
        assert metrics.summary["sector_allocation"] == {"Unknown": 100.0}
        assert metrics.summary["asset_allocation"] == {"Stock": 67.74, "ETF": 32.26}

    def test_with_market_data(self):
        market = {
            "AAPL": {"price": 180.0, "sector": "Technology"},
            "VTI": {"price": 190.0, "sector": "Broad Market"},
        }
        metrics = calculate_metrics(parse_portfolio_csv(CSV), market)

        aapl = metrics.holdings[0]
        assert aapl["current_value"] == 1800.0
        assert aapl["gain_loss"] == 300.0
        assert aapl["gain_loss_percent"] == 20.0
        assert aapl["sector"] == "Technology"

        vti = metrics.holdings[1]
        assert vti["gain_loss_percent"] == -5.0

        # 1800 + 950 + 600 = 3350 against 3100 invested
        assert metrics.summary["total_value"] == 3350.0
        assert metrics.summary["total_gain_loss"] == 250.0
        assert metrics.summary["total_gain_loss_percent"] == 8.06

    def test_zero_investment_gives_zero_percent(self):
        rows = [{"symbol": "FREE", "quantity": "0", "purchase_price": "10"}]
        metrics = calculate_metrics(rows)
        assert metrics.holdings[0]["gain_loss_percent"] == 0.0
        assert metrics.summary["total_gain_loss_percent"] == 0.0
        assert metrics.summary["asset_allocation"] == {"Stock": 0.0}


def _holding(value: float, sector: str) -> dict:
    return {"current_value": value, "sector": sector}


class TestAnalyzeRisk:
    def test_concentrated_and_undiversified(self):
        risk = analyze_risk([_holding(900, "Tech"), _holding(100, "Tech")])
        assert risk["concentration"].startswith("High")
        assert risk["diversification"].startswith("Low")

    def test_medium_concentration_reports_percentage(self):
        holdings = [_holding(15, "A")] + [_holding(85 / 6, s) for s in "BCDEFG"]
        risk = analyze_risk(holdings)
        assert risk["concentration"] == "Medium - Largest holding is 15.0%"
        assert risk["diversification"].startswith("Medium")

    def test_well_distributed(self):
        holdings = [_holding(10, f"S{i % 5}") for i in range(11)]
        risk = analyze_risk(holdings)
        assert risk["concentration"] == "Low - Well distributed holdings"
        assert risk["diversification"] == "High - Well diversified portfolio"

    def test_empty_holdings(self):
        risk = analyze_risk([])
        assert risk["concentration"].startswith("Low")
        assert risk["diversification"].startswith("Low")


class TestPortfolioId:
    def test_format(self):
        assert make_portfolio_id("anonymous", "portfolio_1.csv", 1700000000000) == (
            "anonymous_portfolio_1.csv_1700000000000"
        )

    def test_defaults_to_current_time(self):
        pid = make_portfolio_id("u", "f.csv")
        assert pid.startswith("u_f.csv_")
        assert pid.rsplit("_", 1)[1].isdigit()
