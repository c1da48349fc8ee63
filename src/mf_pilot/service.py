"""
Request handlers for portfolio metrics, fund evaluation and market data.

FundAnalyticsService is transport-agnostic: an HTTP layer, the CLI or a
notebook call the same methods. Data comes from injected data sources and
every response that used fallback data says so.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional

from mf_pilot.analytics.benchmark import benchmark_returns_by_period, compute_benchmark_return
from mf_pilot.analytics.comparison import (
    best_fund,
    category_averages,
    portfolio_period_average,
    worst_fund,
)
from mf_pilot.analytics.evaluation import evaluate_fund
from mf_pilot.analytics.returns import ROLLING_WINDOWS
from mf_pilot.analytics.summary import build_fund_metrics, summarize_portfolio
from mf_pilot.data.providers.base import DataSource
from mf_pilot.data.providers.chain import FallbackChain
from mf_pilot.exceptions import MissingDataError
from mf_pilot.logging.decision_log import DecisionLogger
from mf_pilot.models import (
    BenchmarkSeries,
    EngineConfig,
    Evaluation,
    FundMetrics,
    FundRecord,
    FundSearchCriteria,
    PortfolioSummary,
    RollingReturns,
    SourcedData,
)
from mf_pilot.validation import normalize_pan


DEFAULT_BENCHMARK = "NIFTY 50"


class FundAnalyticsService:
    """
    Portfolio analytics over injectable data sources.

    Attributes:
        data_source: Chain serving portfolios and holdings
        benchmark_source: Chain serving benchmark history
        config: Engine configuration
        decision_logger: Optional audit log
    """

    def __init__(
        self,
        data_source: DataSource | FallbackChain,
        benchmark_source: Optional[DataSource | FallbackChain] = None,
        config: Optional[EngineConfig] = None,
        decision_logger: Optional[DecisionLogger] = None,
    ):
        """
        Initialize the service.

        Args:
            data_source: Source of portfolios and holdings; a bare DataSource
                is used without fallback
            benchmark_source: Source of benchmark history (default: data_source)
            config: Engine configuration (default: India defaults)
            decision_logger: Decision logger for computed results and fallbacks
        """
        self.decision_logger = decision_logger
        self.data_source = self._as_chain(data_source)
        self.benchmark_source = (
            self._as_chain(benchmark_source) if benchmark_source is not None else self.data_source
        )
        self.config = config or EngineConfig()

    def _as_chain(self, source: DataSource | FallbackChain) -> FallbackChain:
        if isinstance(source, FallbackChain):
            return source
        return FallbackChain(source, decision_logger=self.decision_logger)

    def portfolio_summary(
        self,
        pan: str,
        as_of_date: Optional[date] = None,
    ) -> PortfolioSummary:
        """
        Compute metrics for every fund held under a PAN.

        Args:
            pan: Investor PAN (any case)
            as_of_date: Valuation date (default: today)

        Returns:
            PortfolioSummary tagged with the data source that served it

        Raises:
            InvalidInputError: If the PAN is malformed or a fund record is invalid
            DataProviderError, MissingDataError: If no source can serve the portfolio
        """
        pan = normalize_pan(pan)
        as_of_date = as_of_date or date.today()

        fetched = self.data_source.fetch_portfolio(pan)
        funds = [self._fund_metrics(record, as_of_date) for record in fetched.data]

        summary = summarize_portfolio(pan, funds, source=fetched.source, config=self.config)
        if self.decision_logger is not None:
            self.decision_logger.log_portfolio_summarized(summary)
        return summary

    def evaluate(
        self,
        pan: str,
        fund_id: str,
        as_of_date: Optional[date] = None,
        benchmark_name: str = DEFAULT_BENCHMARK,
        years: Optional[int] = None,
    ) -> Evaluation:
        """
        Recommend BUY, HOLD or EXIT for one fund in a portfolio.

        The benchmark return is annualized over a trailing window matching
        the fund's history (its number of yearly returns, capped at 5 years)
        unless years is given.

        Args:
            pan: Investor PAN (any case)
            fund_id: Fund to evaluate
            as_of_date: Valuation date (default: today)
            benchmark_name: Benchmark to compare against
            years: Benchmark window length in years

        Returns:
            Evaluation

        Raises:
            InvalidInputError: If the PAN is malformed or the fund has no history
            MissingDataError: If the fund, benchmark or benchmark window is
                unavailable, or the benchmark was served by a fallback source
        """
        pan = normalize_pan(pan)
        as_of_date = as_of_date or date.today()

        record = self._find_fund(self.data_source.fetch_portfolio(pan).data, fund_id)
        metrics = self._fund_metrics(record, as_of_date)

        series = self._benchmark_series(benchmark_name)
        window = years or min(max(len(record.historical_returns), 1), max(ROLLING_WINDOWS))
        benchmark_return = compute_benchmark_return(series, as_of_date, window, self.config)

        evaluation = evaluate_fund(
            metrics,
            benchmark_return,
            record.historical_returns,
            record.rating,
            config=self.config,
        )
        if self.decision_logger is not None:
            self.decision_logger.log_fund_evaluated(evaluation, benchmark_name)
        return evaluation

    def benchmarks(self) -> SourcedData[dict[str, BenchmarkSeries]]:
        """Fetch benchmark series, tagged with the serving source."""
        fetched = self.benchmark_source.fetch_benchmarks()
        if self.decision_logger is not None:
            self.decision_logger.log_benchmarks_fetched(fetched.data, fetched.provider_name)
        return fetched

    def market_data(
        self,
        as_of_date: Optional[date] = None,
    ) -> SourcedData[dict[str, RollingReturns]]:
        """
        Trailing 1, 3 and 5 year returns of every benchmark.

        Args:
            as_of_date: Last date considered (default: latest point)

        Returns:
            Returns by benchmark name, tagged with the serving source
        """
        fetched = self.benchmarks()
        returns = {
            name: benchmark_returns_by_period(series, as_of_date, self.config)
            for name, series in fetched.data.items()
        }
        return SourcedData(data=returns, source=fetched.source, provider_name=fetched.provider_name)

    def holdings(self, fund_id: str) -> SourcedData[dict]:
        """Fetch holdings detail for a fund, passed through unchanged."""
        return self.data_source.fetch_holdings(fund_id)

    def search_funds(
        self,
        criteria: Optional[FundSearchCriteria] = None,
    ) -> SourcedData[list[dict]]:
        """
        Search the fund catalogue, passed through unchanged.

        Raises:
            DataProviderError, MissingDataError: If no source can search funds
        """
        return self.data_source.search_funds(criteria or FundSearchCriteria())

    def compare(
        self,
        pan: str,
        as_of_date: Optional[date] = None,
    ) -> dict[str, Any]:
        """
        Cross-fund comparison for a portfolio.

        Returns:
            Dictionary with:
            - summary: PortfolioSummary
            - best_fund / worst_fund: FundMetrics by XIRR (None if unknown)
            - category_averages: per-category fund count, avg XIRR, avg return
            - period_averages: portfolio average return over 1, 3 and 5 years
        """
        pan = normalize_pan(pan)
        as_of_date = as_of_date or date.today()

        fetched = self.data_source.fetch_portfolio(pan)
        records = fetched.data
        funds = [self._fund_metrics(record, as_of_date) for record in records]
        summary = summarize_portfolio(pan, funds, source=fetched.source, config=self.config)

        period_averages: dict[int, Optional[Decimal]] = {
            window: portfolio_period_average(records, window) for window in ROLLING_WINDOWS
        }

        return {
            "summary": summary,
            "best_fund": best_fund(funds),
            "worst_fund": worst_fund(funds),
            "category_averages": category_averages(funds, records),
            "period_averages": period_averages,
        }

    def _fund_metrics(self, record: FundRecord, as_of_date: date) -> FundMetrics:
        metrics = build_fund_metrics(
            record.to_position(),
            as_of_date,
            record.historical_returns or None,
            self.config,
        )
        if self.decision_logger is not None:
            self.decision_logger.log_metrics_computed(metrics)
        return metrics

    def _find_fund(self, records: list[FundRecord], fund_id: str) -> FundRecord:
        for record in records:
            if record.fund_id == fund_id:
                return record
        raise MissingDataError(f"Fund {fund_id} is not held in this portfolio")

    def _benchmark_series(self, name: str) -> BenchmarkSeries:
        fetched = self.benchmarks()
        # Placeholder levels must not drive a recommendation
        if fetched.is_fallback:
            raise MissingDataError(
                f"Benchmark {name} is unavailable: only placeholder data from "
                f"{fetched.provider_name}"
            )
        series = fetched.data
        if name not in series:
            available = ", ".join(sorted(series)) or "none"
            raise MissingDataError(f"Benchmark {name} is not available (have: {available})")
        return series[name]
