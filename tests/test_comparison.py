"""
Tests for cross-fund comparison.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

import pytest

from mf_pilot.analytics.comparison import (
    best_fund,
    category_averages,
    portfolio_period_average,
    rank_by_xirr,
    worst_fund,
)
from mf_pilot.exceptions import InvalidInputError
from mf_pilot.models import AssetClass, FundMetrics, FundRecord


def _metrics(fund_id: str, category: str, xirr: Optional[str]) -> FundMetrics:
    return FundMetrics(
        fund_id=fund_id,
        category=category,
        as_of_date=date(2024, 1, 1),
        current_nav=Decimal("10"),
        invested_amount=Decimal("1000"),
        current_value=Decimal("1100"),
        units_held=Decimal("110"),
        profit_loss=Decimal("100"),
        profit_loss_percentage=Decimal("10"),
        xirr=Decimal(xirr) if xirr is not None else None,
        cagr=None,
        rolling_returns=None,
        holding_period_days=365,
        is_long_term=False,
        tax_rate=Decimal("20"),
        estimated_tax=Decimal("20.00"),
    )


def _record(fund_id: str, returns: list[str]) -> FundRecord:
    return FundRecord(
        fund_id=fund_id,
        fund_name=fund_id,
        category="",
        amc="",
        asset_class=AssetClass.EQUITY,
        current_nav=Decimal("10"),
        rating=Decimal("3"),
        rank="",
        transactions=[],
        historical_returns=[Decimal(r) for r in returns],
    )


@pytest.fixture
def funds() -> list[FundMetrics]:
    return [
        _metrics("A", "Large Cap", "10"),
        _metrics("B", "Large Cap", "20"),
        _metrics("C", "Debt", None),
        _metrics("D", "Mid Cap", "-3"),
    ]


class TestBestWorst:
    """Tests for best_fund, worst_fund and rank_by_xirr."""

    def test_best_and_worst(self, funds):
        """Extremes by XIRR, ignoring unknown XIRR."""
        assert best_fund(funds).fund_id == "B"
        assert worst_fund(funds).fund_id == "D"

    def test_no_xirr_known(self):
        """None when no fund has an XIRR."""
        funds = [_metrics("C", "Debt", None)]
        assert best_fund(funds) is None
        assert worst_fund(funds) is None

    def test_rank(self, funds):
        """Highest XIRR first, unknown XIRR excluded."""
        assert [f.fund_id for f in rank_by_xirr(funds)] == ["B", "A", "D"]


class TestCategoryAverages:
    """Tests for the category_averages function."""

    def test_grouping(self, funds):
        """Averages per category, sorted by name."""
        records = [_record("A", ["10", "20"]), _record("B", ["5"])]

        result = category_averages(funds, records)

        assert list(result) == ["Debt", "Large Cap", "Mid Cap"]
        assert result["Large Cap"] == {
            "fund_count": 2,
            "avg_xirr": Decimal("15.0000"),
            "avg_return": Decimal("10.0000"),
        }
        assert result["Debt"]["avg_xirr"] is None
        assert result["Debt"]["avg_return"] is None

    def test_uncategorized(self):
        """Funds without a category are grouped together."""
        result = category_averages([_metrics("X", "", "5")])
        assert result["Uncategorized"]["fund_count"] == 1


class TestPortfolioPeriodAverage:
    """Tests for the portfolio_period_average function."""

    def test_one_year(self, sample_records):
        """Mean of each fund's latest yearly return."""
        assert portfolio_period_average(sample_records, 1) == Decimal("8.6667")

    def test_short_histories_use_what_exists(self, sample_records):
        """Funds with less history contribute the mean of what they have."""
        assert portfolio_period_average(sample_records, 3) == Decimal("8.9167")

    def test_no_history(self):
        """None when no fund has history."""
        assert portfolio_period_average([_record("A", [])], 1) is None

    def test_unsupported_window(self, sample_records):
        """Only 1, 3 and 5 year windows are supported."""
        with pytest.raises(InvalidInputError):
            portfolio_period_average(sample_records, 2)
