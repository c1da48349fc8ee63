"""
Analytics module for the mutual fund metrics engine.

Provides investment summaries, XIRR/CAGR/rolling returns, capital-gains tax
estimates, benchmark returns, fund evaluation and cross-fund comparison.
"""

from mf_pilot.analytics.summary import (
    build_fund_metrics,
    compute_investment_summary,
    summarize_portfolio,
)
from mf_pilot.analytics.returns import (
    compute_cagr,
    compute_rolling_returns,
    compute_xirr,
    holding_period_days,
)
from mf_pilot.analytics.tax import (
    compute_tax_liability,
    determine_gain_type,
    post_tax_gain,
)
from mf_pilot.analytics.benchmark import (
    benchmark_returns_by_period,
    compute_benchmark_return,
)
from mf_pilot.analytics.evaluation import evaluate_fund
from mf_pilot.analytics.comparison import (
    best_fund,
    category_averages,
    portfolio_period_average,
    worst_fund,
)

__all__ = [
    "build_fund_metrics",
    "compute_investment_summary",
    "summarize_portfolio",
    "compute_cagr",
    "compute_rolling_returns",
    "compute_xirr",
    "holding_period_days",
    "compute_tax_liability",
    "determine_gain_type",
    "post_tax_gain",
    "benchmark_returns_by_period",
    "compute_benchmark_return",
    "evaluate_fund",
    "best_fund",
    "category_averages",
    "portfolio_period_average",
    "worst_fund",
]
