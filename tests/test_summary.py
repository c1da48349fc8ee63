"""
Tests for investment summaries, fund metrics and portfolio totals.
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from mf_pilot.analytics.summary import (
    build_fund_metrics,
    compute_investment_summary,
    profit_loss_percentage,
    summarize_portfolio,
)
from mf_pilot.exceptions import InvalidInputError
from mf_pilot.models import (
    AssetClass,
    DataSourceKind,
    EngineConfig,
    FundPosition,
    SolverConfig,
    Transaction,
)


class TestComputeInvestmentSummary:
    """Tests for the compute_investment_summary function."""

    def test_basic_summary(self):
        """Sums amounts and units, values at the current NAV."""
        txns = [
            Transaction(date=date(2023, 1, 1), amount=Decimal("10000"), units=Decimal("100"), nav=Decimal("100")),
            Transaction(date=date(2023, 6, 1), amount=Decimal("5000"), units=Decimal("40"), nav=Decimal("125")),
        ]

        summary = compute_investment_summary(txns, Decimal("150"))

        assert summary.invested_amount == Decimal("15000")
        assert summary.units_held == Decimal("140")
        assert summary.current_value == Decimal("21000")
        assert summary.profit_loss == Decimal("6000")
        assert summary.profit_loss_percentage == Decimal("40.0000")

    def test_loss(self, single_purchase):
        """A falling NAV gives a negative P&L."""
        summary = compute_investment_summary(single_purchase, Decimal("90"))
        assert summary.profit_loss == Decimal("-1000")
        assert summary.profit_loss_percentage == Decimal("-10.0000")

    def test_order_independent(self, sample_transactions):
        """Totals do not depend on transaction order."""
        forward = compute_investment_summary(sample_transactions, Decimal("100"))
        backward = compute_investment_summary(list(reversed(sample_transactions)), Decimal("100"))
        assert forward == backward

    def test_amount_within_tolerance_accepted(self):
        """Rounding differences up to the tolerance are allowed."""
        txn = Transaction(
            date=date(2023, 1, 1),
            amount=Decimal("10000.00"),
            units=Decimal("123.457"),
            nav=Decimal("81.0"),
        )
        summary = compute_investment_summary([txn], Decimal("81"))
        assert summary.invested_amount == Decimal("10000.00")

    def test_empty_transactions_rejected(self):
        """An empty transaction list is invalid."""
        with pytest.raises(InvalidInputError):
            compute_investment_summary([], Decimal("100"))

    @pytest.mark.parametrize("nav", [Decimal("0"), Decimal("-5")])
    def test_non_positive_nav_rejected(self, single_purchase, nav):
        """current_nav must be positive."""
        with pytest.raises(InvalidInputError):
            compute_investment_summary(single_purchase, nav)

    def test_redemption_rejected(self):
        """Negative units (redemptions) are not supported."""
        txn = Transaction(date=date(2023, 1, 1), amount=Decimal("1000"), units=Decimal("-10"), nav=Decimal("100"))
        with pytest.raises(InvalidInputError):
            compute_investment_summary([txn], Decimal("100"))

    def test_amount_mismatch_rejected(self):
        """Amount far from units * nav is rejected."""
        txn = Transaction(date=date(2023, 1, 1), amount=Decimal("10000"), units=Decimal("100"), nav=Decimal("90"))
        with pytest.raises(InvalidInputError) as exc_info:
            compute_investment_summary([txn], Decimal("100"))
        assert "differs" in str(exc_info.value)


class TestProfitLossPercentage:
    """Tests for the profit_loss_percentage function."""

    def test_zero_invested_rejected(self):
        """Percentage of a zero investment is an error, never NaN."""
        with pytest.raises(InvalidInputError):
            profit_loss_percentage(Decimal("10"), Decimal("0"))

    def test_rounding(self):
        """Rounds half-up to four places."""
        assert profit_loss_percentage(Decimal("1"), Decimal("3")) == Decimal("33.3333")


class TestBuildFundMetrics:
    """Tests for the build_fund_metrics function."""

    def test_one_year_holding(self, single_purchase):
        """Metrics for a single purchase held 365 days."""
        position = FundPosition(
            fund_id="F1",
            transactions=single_purchase,
            current_nav=Decimal("110"),
            fund_name="Fund One",
            category="Large Cap",
        )

        metrics = build_fund_metrics(position, date(2024, 1, 1))

        assert metrics.fund_id == "F1"
        assert metrics.fund_name == "Fund One"
        assert metrics.invested_amount == Decimal("10000")
        assert metrics.current_value == Decimal("11000")
        assert metrics.profit_loss == Decimal("1000")
        assert abs(metrics.xirr - Decimal("10")) < Decimal("0.0001")
        assert metrics.cagr == Decimal("10.0000")
        assert metrics.holding_period_days == 365
        # Long term only after more than 365 days
        assert metrics.is_long_term is False
        assert metrics.tax_rate == Decimal("20")
        assert metrics.estimated_tax == Decimal("200.00")
        assert metrics.rolling_returns is None

    def test_rolling_returns_included(self, sample_position):
        """Historical returns produce rolling returns."""
        metrics = build_fund_metrics(
            sample_position,
            date(2024, 1, 1),
            historical_returns=[Decimal("20"), Decimal("10"), Decimal("0")],
        )
        assert metrics.rolling_returns.one_year == Decimal("20.0000")
        assert metrics.rolling_returns.three_year == Decimal("10.0000")

    def test_long_term_multi_purchase(self, sample_position):
        """Holding period runs from the first purchase."""
        metrics = build_fund_metrics(sample_position, date(2024, 1, 1))

        assert metrics.units_held == Decimal("510")
        assert metrics.invested_amount == Decimal("32000")
        assert metrics.current_value == Decimal("51000")
        assert metrics.holding_period_days == 1095
        assert metrics.is_long_term is True
        # 19000 gain is under the 1,25,000 exemption
        assert metrics.estimated_tax == Decimal("0.00")
        assert metrics.xirr > Decimal("0")
        assert metrics.cagr > Decimal("0")

    def test_same_day_purchase_has_no_rates(self, single_purchase):
        """XIRR and CAGR are absent, not zero, when no time has elapsed."""
        position = FundPosition(fund_id="F1", transactions=single_purchase, current_nav=Decimal("100"))

        metrics = build_fund_metrics(position, date(2023, 1, 1))

        assert metrics.xirr is None
        assert metrics.cagr is None
        assert metrics.holding_period_days == 0

    def test_non_convergence_reported_as_none(self, single_purchase):
        """An XIRR that does not converge is None."""
        position = FundPosition(fund_id="F1", transactions=single_purchase, current_nav=Decimal("100000"))
        config = EngineConfig(solver=SolverConfig(max_iterations=3))

        metrics = build_fund_metrics(position, date(2024, 1, 1), config=config)

        assert metrics.xirr is None
        assert metrics.cagr is not None

    def test_debt_fund_tax_rule(self):
        """Debt funds use the debt holding period and rates."""
        position = FundPosition(
            fund_id="D1",
            transactions=[
                Transaction(date=date(2022, 1, 1), amount=Decimal("10000"), units=Decimal("1000"), nav=Decimal("10")),
            ],
            current_nav=Decimal("11"),
            asset_class=AssetClass.DEBT,
        )

        metrics = build_fund_metrics(position, date(2023, 6, 1))

        assert metrics.is_long_term is False
        assert metrics.tax_rate == Decimal("30")
        assert metrics.estimated_tax == Decimal("300.00")

    def test_currency_places_applied_to_tax(self, single_purchase):
        """Tax amounts follow the configured currency precision."""
        position = FundPosition(fund_id="F1", transactions=single_purchase, current_nav=Decimal("110.0037"))
        as_of = date(2023, 6, 1)

        default = build_fund_metrics(position, as_of)
        whole_rupees = build_fund_metrics(position, as_of, config=EngineConfig(currency_places=0))

        assert default.estimated_tax == Decimal("200.07")
        assert whole_rupees.estimated_tax == Decimal("200")
        assert whole_rupees.profit_loss == Decimal("1000.37")

    def test_reproducible(self, sample_position):
        """Re-running on the same inputs reproduces the result exactly."""
        as_of = date(2024, 1, 1)
        assert build_fund_metrics(sample_position, as_of) == build_fund_metrics(sample_position, as_of)

    def test_as_of_before_purchase_rejected(self, sample_position):
        """Valuing before the first purchase is invalid."""
        with pytest.raises(InvalidInputError):
            build_fund_metrics(sample_position, date(2020, 1, 1))

    def test_to_dict(self, single_purchase):
        """Serialization uses strings for decimals and None for absent values."""
        position = FundPosition(fund_id="F1", transactions=single_purchase, current_nav=Decimal("100"))
        data = build_fund_metrics(position, date(2023, 1, 1)).to_dict()

        assert data["fundId"] == "F1"
        assert data["investedAmount"] == "10000"
        assert data["xirr"] is None
        assert data["tax"]["isLongTerm"] is False


class TestSummarizePortfolio:
    """Tests for the summarize_portfolio function."""

    def test_totals(self, sample_position, single_purchase):
        """Totals sum across funds."""
        as_of = date(2024, 1, 1)
        other = FundPosition(fund_id="F2", transactions=single_purchase, current_nav=Decimal("110"))
        funds = [build_fund_metrics(sample_position, as_of), build_fund_metrics(other, as_of)]

        summary = summarize_portfolio("ABCDE1234F", funds, fetched_at=datetime(2024, 1, 1, 9, 0))

        assert summary.total_invested_amount == Decimal("42000")
        assert summary.total_current_value == Decimal("62000")
        assert summary.total_profit_loss == Decimal("20000")
        assert summary.total_profit_loss_percentage == Decimal("47.6190")
        assert summary.source == DataSourceKind.LIVE
        assert len(summary.funds) == 2

    def test_empty_portfolio(self):
        """An empty portfolio has zero totals and no percentage."""
        summary = summarize_portfolio("ABCDE1234F", [])
        assert summary.total_invested_amount == Decimal("0")
        assert summary.total_profit_loss_percentage is None

    def test_source_carried_to_dict(self):
        """The serving data source is part of the serialized summary."""
        summary = summarize_portfolio("ABCDE1234F", [], source=DataSourceKind.FALLBACK)
        assert summary.to_dict()["source"] == "FALLBACK"
