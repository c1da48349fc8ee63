"""
Investment summary and full fund metrics.

Aggregates purchase transactions into invested amount, current value and
P&L, then composes the return and tax calculations into FundMetrics.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Sequence

from mf_pilot.analytics.returns import (
    compute_cagr,
    compute_rolling_returns,
    compute_xirr,
    holding_period_days,
    years_between,
)
from mf_pilot.analytics.rounding import quantize
from mf_pilot.analytics.tax import compute_tax_liability
from mf_pilot.exceptions import InvalidInputError, NonConvergenceError
from mf_pilot.models import (
    DataSourceKind,
    EngineConfig,
    FundMetrics,
    FundPosition,
    InvestmentSummary,
    PortfolioSummary,
    RollingReturns,
    Transaction,
)
from mf_pilot.validation import check_positive, check_transactions


def compute_investment_summary(
    transactions: Sequence[Transaction],
    current_nav: Decimal,
    config: Optional[EngineConfig] = None,
) -> InvestmentSummary:
    """
    Sum transactions into invested amount, value and P&L.

    The result does not depend on transaction order.

    Args:
        transactions: Non-empty purchase transactions
        current_nav: Latest NAV per unit (positive)
        config: Engine configuration (precision, amount tolerance)

    Returns:
        InvestmentSummary

    Raises:
        InvalidInputError: If transactions is empty, any transaction has a
            non-positive amount, units or nav, or current_nav is not positive
    """
    config = config or EngineConfig()
    check_transactions(transactions, config.amount_tolerance)
    check_positive(current_nav, "current_nav")

    invested_amount = sum((t.amount for t in transactions), Decimal("0"))
    units_held = sum((t.units for t in transactions), Decimal("0"))
    current_value = units_held * current_nav
    profit_loss = current_value - invested_amount

    return InvestmentSummary(
        invested_amount=invested_amount,
        current_value=current_value,
        units_held=units_held,
        profit_loss=profit_loss,
        profit_loss_percentage=profit_loss_percentage(profit_loss, invested_amount, config),
    )


def profit_loss_percentage(
    profit_loss: Decimal,
    invested_amount: Decimal,
    config: Optional[EngineConfig] = None,
) -> Decimal:
    """
    P&L as a percentage of the invested amount.

    Raises:
        InvalidInputError: If invested_amount is zero
    """
    config = config or EngineConfig()
    if invested_amount == Decimal("0"):
        raise InvalidInputError("profit/loss percentage is undefined for a zero invested amount")
    return quantize(profit_loss / invested_amount * Decimal("100"), config.percent_places)


def build_fund_metrics(
    position: FundPosition,
    as_of_date: date,
    historical_returns: Optional[Sequence[Decimal]] = None,
    config: Optional[EngineConfig] = None,
) -> FundMetrics:
    """
    Compute every metric for one fund position.

    XIRR that does not converge and CAGR over a zero-day holding are reported
    as None. Rolling returns are None when no historical returns are given.

    Args:
        position: Fund position (transactions and current NAV)
        as_of_date: Valuation date
        historical_returns: Yearly percentage returns, most recent first
        config: Engine configuration

    Returns:
        FundMetrics for the position

    Raises:
        InvalidInputError: If the position's transactions or NAV are invalid,
            or as_of_date precedes the first transaction
    """
    config = config or EngineConfig()
    summary = compute_investment_summary(position.transactions, position.current_nav, config)
    days_held = holding_period_days(position.transactions, as_of_date)

    xirr = _optional_xirr(position.transactions, summary.current_value, as_of_date, config)

    cagr: Optional[Decimal] = None
    if days_held > 0:
        cagr = compute_cagr(
            summary.invested_amount,
            summary.current_value,
            years_between(position.first_purchase_date, as_of_date),
            config,
        )

    rolling: Optional[RollingReturns] = None
    if historical_returns:
        rolling = compute_rolling_returns(historical_returns, config)

    tax = compute_tax_liability(
        summary.profit_loss,
        days_held,
        position.asset_class,
        config.tax,
        config.currency_places,
    )

    return FundMetrics(
        fund_id=position.fund_id,
        fund_name=position.fund_name,
        category=position.category,
        as_of_date=as_of_date,
        current_nav=position.current_nav,
        invested_amount=summary.invested_amount,
        current_value=summary.current_value,
        units_held=summary.units_held,
        profit_loss=summary.profit_loss,
        profit_loss_percentage=summary.profit_loss_percentage,
        xirr=xirr,
        cagr=cagr,
        rolling_returns=rolling,
        holding_period_days=days_held,
        is_long_term=tax.is_long_term,
        tax_rate=tax.tax_rate,
        estimated_tax=tax.estimated_tax,
    )


def _optional_xirr(
    transactions: Sequence[Transaction],
    current_value: Decimal,
    as_of_date: date,
    config: EngineConfig,
) -> Optional[Decimal]:
    # All purchases on as_of_date leave no elapsed time to annualize over
    if not any(t.date < as_of_date for t in transactions):
        return None
    try:
        return compute_xirr(transactions, current_value, as_of_date, config)
    except NonConvergenceError:
        return None


def summarize_portfolio(
    pan: str,
    funds: Sequence[FundMetrics],
    source: DataSourceKind = DataSourceKind.LIVE,
    fetched_at: Optional[datetime] = None,
    config: Optional[EngineConfig] = None,
) -> PortfolioSummary:
    """
    Total invested amount, value and P&L across funds.

    Args:
        pan: Investor PAN
        funds: Metrics for each fund
        source: Data source that supplied the underlying records
        fetched_at: When the records were fetched (default: now)
        config: Engine configuration (precision)

    Returns:
        PortfolioSummary; the total percentage is None for an empty portfolio
    """
    config = config or EngineConfig()
    total_invested = sum((f.invested_amount for f in funds), Decimal("0"))
    total_value = sum((f.current_value for f in funds), Decimal("0"))
    total_pnl = total_value - total_invested

    total_pct: Optional[Decimal] = None
    if total_invested != Decimal("0"):
        total_pct = profit_loss_percentage(total_pnl, total_invested, config)

    return PortfolioSummary(
        pan=pan,
        funds=tuple(funds),
        total_invested_amount=total_invested,
        total_current_value=total_value,
        total_profit_loss=total_pnl,
        total_profit_loss_percentage=total_pct,
        fetched_at=fetched_at or datetime.now(),
        source=source,
    )
