"""
Cross-fund comparison for a portfolio.

Ranks funds by XIRR and groups them by category. Funds whose XIRR could not
be computed are left out of rankings and averages rather than counted as zero.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Optional, Sequence

from mf_pilot.analytics.returns import ROLLING_WINDOWS
from mf_pilot.analytics.rounding import mean, quantize, to_decimal
from mf_pilot.exceptions import InvalidInputError
from mf_pilot.models import FundMetrics, FundRecord


PERCENT_PLACES = 4


def best_fund(funds: Sequence[FundMetrics]) -> Optional[FundMetrics]:
    """Fund with the highest XIRR, or None if no fund has one."""
    ranked = _with_xirr(funds)
    if not ranked:
        return None
    return max(ranked, key=lambda f: f.xirr)


def worst_fund(funds: Sequence[FundMetrics]) -> Optional[FundMetrics]:
    """Fund with the lowest XIRR, or None if no fund has one."""
    ranked = _with_xirr(funds)
    if not ranked:
        return None
    return min(ranked, key=lambda f: f.xirr)


def rank_by_xirr(funds: Sequence[FundMetrics]) -> list[FundMetrics]:
    """Funds with a known XIRR, highest first."""
    return sorted(_with_xirr(funds), key=lambda f: f.xirr, reverse=True)


def category_averages(
    funds: Sequence[FundMetrics],
    records: Optional[Sequence[FundRecord]] = None,
) -> dict[str, dict]:
    """
    Average XIRR and average yearly return per fund category.

    Args:
        funds: Fund metrics
        records: Matching fund records supplying historical returns (by fund id)

    Returns:
        Dictionary mapping category to:
        - fund_count: Number of funds in the category
        - avg_xirr: Mean XIRR of funds with a known XIRR (None if none)
        - avg_return: Mean of per-fund average yearly returns (None if none)
    """
    returns_by_fund = {}
    for record in records or []:
        if record.historical_returns:
            returns_by_fund[record.fund_id] = [to_decimal(r) for r in record.historical_returns]

    grouped: dict[str, list[FundMetrics]] = defaultdict(list)
    for fund in funds:
        grouped[fund.category or "Uncategorized"].append(fund)

    result: dict[str, dict] = {}
    for category in sorted(grouped):
        members = grouped[category]
        xirrs = [f.xirr for f in members if f.xirr is not None]
        avg_returns = [
            mean(returns_by_fund[f.fund_id])
            for f in members
            if f.fund_id in returns_by_fund
        ]
        result[category] = {
            "fund_count": len(members),
            "avg_xirr": quantize(mean(xirrs), PERCENT_PLACES) if xirrs else None,
            "avg_return": quantize(mean(avg_returns), PERCENT_PLACES) if avg_returns else None,
        }

    return result


def portfolio_period_average(
    records: Sequence[FundRecord],
    years: int,
) -> Optional[Decimal]:
    """
    Average over funds of each fund's mean return across its most recent years.

    Funds with fewer yearly returns than the window contribute the mean of
    what they have; funds with no history are skipped.

    Args:
        records: Fund records with historical returns (most recent first)
        years: Window length, one of 1, 3 or 5

    Returns:
        Portfolio average as a percentage, or None if no fund has history

    Raises:
        InvalidInputError: If years is not a supported window
    """
    if years not in ROLLING_WINDOWS:
        raise InvalidInputError(f"years must be one of {ROLLING_WINDOWS}, got {years}")

    per_fund = [
        mean([to_decimal(r) for r in record.historical_returns[:years]])
        for record in records
        if record.historical_returns
    ]
    if not per_fund:
        return None
    return quantize(mean(per_fund), PERCENT_PLACES)


def _with_xirr(funds: Sequence[FundMetrics]) -> list[FundMetrics]:
    return [f for f in funds if f.xirr is not None]
