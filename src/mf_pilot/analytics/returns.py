"""
Return calculations: XIRR, CAGR, rolling returns and holding period.

XIRR is solved in float arithmetic (Newton-Raphson with a bisection
fallback) and converted back to Decimal; every other calculation stays in
Decimal. All results are percentages already multiplied by 100.
"""

import math
from datetime import date
from decimal import Decimal
from typing import Optional, Sequence

from mf_pilot.analytics.rounding import mean, quantize, to_decimal
from mf_pilot.exceptions import InvalidInputError, NonConvergenceError
from mf_pilot.models import (
    EngineConfig,
    RollingReturns,
    ShortHistoryPolicy,
    SolverConfig,
    Transaction,
)
from mf_pilot.validation import check_positive, check_transactions


DAYS_PER_YEAR = 365

# Window lengths (years) reported as rolling returns
ROLLING_WINDOWS = (1, 3, 5)


def compute_xirr(
    transactions: Sequence[Transaction],
    current_value: Decimal,
    as_of_date: date,
    config: Optional[EngineConfig] = None,
) -> Decimal:
    """
    Calculate the annualized internal rate of return of dated cash flows.

    Each transaction is an outflow on its date and current_value is a single
    inflow on as_of_date. Solves sum(CF_i / (1 + r) ** (t_i / 365)) = 0 where
    t_i is days since the earliest cash flow.

    Args:
        transactions: Purchase transactions
        current_value: Value of the holding on as_of_date
        as_of_date: Date of the terminal inflow
        config: Engine configuration (solver settings, precision)

    Returns:
        XIRR as a percentage (e.g. Decimal("12.3456"))

    Raises:
        InvalidInputError: If there are no transactions, any is invalid, one is
            dated after as_of_date, or none is strictly before it
        NonConvergenceError: If neither solver converges within its budget
    """
    config = config or EngineConfig()
    check_transactions(transactions)

    if current_value < Decimal("0"):
        raise InvalidInputError(f"current_value must be non-negative, got {current_value}")
    if any(t.date > as_of_date for t in transactions):
        raise InvalidInputError(f"Transactions dated after {as_of_date} cannot be valued")
    if not any(t.date < as_of_date for t in transactions):
        raise InvalidInputError(
            f"XIRR requires at least one transaction before {as_of_date}"
        )

    flows = _build_cash_flows(transactions, current_value, as_of_date)
    rate = solve_rate(flows, config.solver)
    return quantize(to_decimal(rate) * Decimal("100"), config.percent_places)


def _build_cash_flows(
    transactions: Sequence[Transaction],
    current_value: Decimal,
    as_of_date: date,
) -> list[tuple[float, float]]:
    """Return (years_from_start, amount) pairs, outflows negative."""
    start = min(t.date for t in transactions)
    flows = [
        ((t.date - start).days / DAYS_PER_YEAR, -float(t.amount))
        for t in transactions
    ]
    flows.append(((as_of_date - start).days / DAYS_PER_YEAR, float(current_value)))
    return flows


def _npv(rate: float, flows: list[tuple[float, float]]) -> float:
    return sum(amount / (1.0 + rate) ** years for years, amount in flows)


def _npv_derivative(rate: float, flows: list[tuple[float, float]]) -> float:
    return sum(-years * amount / (1.0 + rate) ** (years + 1.0) for years, amount in flows)


def solve_rate(
    flows: list[tuple[float, float]],
    solver: SolverConfig,
) -> float:
    """
    Find the rate that sets the NPV of flows to zero.

    Tries Newton-Raphson from solver.seed first, then bisection over
    [solver.lower_bound, solver.upper_bound].

    Args:
        flows: (years_from_start, amount) pairs
        solver: Solver settings

    Returns:
        Rate as a fraction (0.12 = 12%)

    Raises:
        NonConvergenceError: If both methods fail
    """
    rate = _newton(flows, solver)
    if rate is not None:
        return rate
    return _bisect(flows, solver)


def _newton(flows: list[tuple[float, float]], solver: SolverConfig) -> Optional[float]:
    rate = solver.seed
    for _ in range(solver.max_iterations):
        try:
            npv = _npv(rate, flows)
            if abs(npv) < solver.tolerance:
                return rate
            derivative = _npv_derivative(rate, flows)
        except (OverflowError, ZeroDivisionError):
            return None

        if derivative == 0 or not math.isfinite(derivative):
            return None

        next_rate = rate - npv / derivative
        # Rates at or below -100% have no meaning for (1 + r) ** t
        if not math.isfinite(next_rate) or next_rate <= -1.0:
            return None
        rate = next_rate

    try:
        if abs(_npv(rate, flows)) < solver.tolerance:
            return rate
    except (OverflowError, ZeroDivisionError):
        pass
    return None


def _bisect(flows: list[tuple[float, float]], solver: SolverConfig) -> float:
    low, high = solver.lower_bound, solver.upper_bound
    npv_low, npv_high = _npv(low, flows), _npv(high, flows)

    if abs(npv_low) < solver.tolerance:
        return low
    if abs(npv_high) < solver.tolerance:
        return high
    if npv_low * npv_high > 0:
        raise NonConvergenceError(
            f"XIRR has no root in [{low}, {high}]: NPV does not change sign",
            iterations=0,
        )

    mid = low
    for iteration in range(1, solver.max_iterations + 1):
        mid = (low + high) / 2.0
        npv_mid = _npv(mid, flows)
        if abs(npv_mid) < solver.tolerance:
            return mid
        if (npv_mid < 0) == (npv_low < 0):
            low, npv_low = mid, npv_mid
        else:
            high = mid

    raise NonConvergenceError(
        f"XIRR did not converge within {solver.max_iterations} iterations",
        iterations=solver.max_iterations,
        last_rate=mid,
    )


def compute_cagr(
    invested_value_at_start: Decimal,
    current_value: Decimal,
    years: Decimal | float | int,
    config: Optional[EngineConfig] = None,
) -> Decimal:
    """
    Calculate compound annual growth rate between two values.

    Args:
        invested_value_at_start: Starting value (positive)
        current_value: Ending value (non-negative)
        years: Elapsed time in years (positive)
        config: Engine configuration (precision)

    Returns:
        CAGR as a percentage; compute_cagr(100, 200, 1) == 100

    Raises:
        InvalidInputError: If years <= 0, start <= 0 or current < 0
    """
    config = config or EngineConfig()
    start = to_decimal(invested_value_at_start)
    end = to_decimal(current_value)
    span = to_decimal(years)

    if span <= Decimal("0"):
        raise InvalidInputError(f"years must be positive, got {years}")
    check_positive(start, "invested_value_at_start")
    if end < Decimal("0"):
        raise InvalidInputError(f"current_value must be non-negative, got {current_value}")

    growth = (end / start) ** (Decimal("1") / span)
    return quantize((growth - Decimal("1")) * Decimal("100"), config.percent_places)


def compute_rolling_returns(
    historical_returns: Sequence[Decimal | float],
    config: Optional[EngineConfig] = None,
) -> RollingReturns:
    """
    Average the most recent 1, 3 and 5 yearly returns.

    Args:
        historical_returns: Yearly percentage returns, most recent first
        config: Engine configuration (short-history policy, precision)

    Returns:
        RollingReturns; under REQUIRE_FULL_WINDOW a period with too little
        history is None, under AVERAGE_AVAILABLE it averages what exists

    Raises:
        InvalidInputError: If historical_returns is empty
    """
    config = config or EngineConfig()
    returns = [to_decimal(r) for r in historical_returns]
    if not returns:
        raise InvalidInputError("At least one historical return is required")

    periods: list[Optional[Decimal]] = []
    for window in ROLLING_WINDOWS:
        if (
            len(returns) < window
            and config.short_history_policy == ShortHistoryPolicy.REQUIRE_FULL_WINDOW
        ):
            periods.append(None)
            continue
        periods.append(quantize(mean(returns[:window]), config.percent_places))

    one_year, three_year, five_year = periods
    return RollingReturns(one_year=one_year, three_year=three_year, five_year=five_year)


def holding_period_days(
    transactions: Sequence[Transaction],
    as_of_date: date,
) -> int:
    """
    Days from the earliest transaction to as_of_date.

    Raises:
        InvalidInputError: If there are no transactions or the earliest is
            after as_of_date
    """
    if not transactions:
        raise InvalidInputError("At least one transaction is required")
    days = (as_of_date - min(t.date for t in transactions)).days
    if days < 0:
        raise InvalidInputError(f"as_of_date {as_of_date} precedes the first transaction")
    return days


def years_between(start: date, end: date) -> Decimal:
    """Elapsed years between two dates on a 365-day year."""
    return Decimal((end - start).days) / Decimal(DAYS_PER_YEAR)
