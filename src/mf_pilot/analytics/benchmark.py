"""
Benchmark return calculations.

Turns a BenchmarkSeries (index level by date) into annualized percentage
returns that fund returns can be compared against.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

import pandas as pd

from mf_pilot.analytics.returns import ROLLING_WINDOWS, compute_cagr, years_between
from mf_pilot.exceptions import MissingDataError
from mf_pilot.models import BenchmarkPoint, BenchmarkSeries, EngineConfig, RollingReturns


def series_to_frame(series: BenchmarkSeries) -> pd.DataFrame:
    """
    Convert a benchmark series to a DataFrame indexed by date.

    Returns:
        DataFrame with a DatetimeIndex and an 'index_value' column (Decimal)
    """
    df = pd.DataFrame(
        {
            "date": pd.to_datetime([p.date for p in series.points]),
            "index_value": [p.index_value for p in series.points],
        }
    )
    return df.set_index("date").sort_index()


def _point_asof(df: pd.DataFrame, when: pd.Timestamp) -> Optional[BenchmarkPoint]:
    """Most recent point dated on or before when, or None."""
    label = df.index.asof(when)
    if pd.isna(label):
        return None
    return BenchmarkPoint(date=label.date(), index_value=df.loc[label, "index_value"])


def compute_benchmark_return(
    series: Optional[BenchmarkSeries],
    as_of_date: Optional[date] = None,
    years: Optional[int] = None,
    config: Optional[EngineConfig] = None,
) -> Decimal:
    """
    Calculate the annualized return of a benchmark index.

    Args:
        series: Benchmark index history
        as_of_date: Last date to consider (default: last point in the series)
        years: Trailing window length; None uses the whole series
        config: Engine configuration (precision)

    Returns:
        Annualized return as a percentage

    Raises:
        MissingDataError: If the series is missing, has fewer than two usable
            points, or does not cover the requested window
    """
    if series is None or len(series) == 0:
        raise MissingDataError("Benchmark series is not available")

    df = series_to_frame(series)
    if as_of_date is not None:
        df = df[df.index <= pd.Timestamp(as_of_date)]
    if len(df) < 2:
        raise MissingDataError(
            f"Benchmark {series.name} needs at least two points to compute a return"
        )

    end_label = df.index[-1]
    end = BenchmarkPoint(date=end_label.date(), index_value=df["index_value"].iloc[-1])

    if years is None:
        start_label = df.index[0]
        start = BenchmarkPoint(date=start_label.date(), index_value=df["index_value"].iloc[0])
    else:
        start = _point_asof(df, end_label - pd.DateOffset(years=years))
        if start is None:
            raise MissingDataError(
                f"Benchmark {series.name} has less than {years} year(s) of history "
                f"before {end.date}"
            )

    span = years_between(start.date, end.date)
    if span <= Decimal("0"):
        raise MissingDataError(f"Benchmark {series.name} covers no elapsed time")

    return compute_cagr(start.index_value, end.index_value, span, config)


def benchmark_returns_by_period(
    series: BenchmarkSeries,
    as_of_date: Optional[date] = None,
    config: Optional[EngineConfig] = None,
) -> RollingReturns:
    """
    Trailing 1, 3 and 5 year annualized benchmark returns.

    Periods the series does not cover are None rather than an error, so a
    short index history still yields the periods it can.
    """
    periods: list[Optional[Decimal]] = []
    for window in ROLLING_WINDOWS:
        try:
            periods.append(compute_benchmark_return(series, as_of_date, window, config))
        except MissingDataError:
            periods.append(None)

    one_year, three_year, five_year = periods
    return RollingReturns(one_year=one_year, three_year=three_year, five_year=five_year)
