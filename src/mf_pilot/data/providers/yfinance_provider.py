"""
Yahoo Finance benchmark source.

Uses the yfinance library to fetch daily closes for the Indian market
indices funds are compared against.
"""

import time
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

import pandas as pd
import yfinance as yf

from mf_pilot.exceptions import InvalidInputError
from mf_pilot.models import BenchmarkPoint, BenchmarkSeries, FundRecord
from mf_pilot.data.providers.base import DataSource, DataProviderError


# Benchmark name -> Yahoo Finance ticker
DEFAULT_BENCHMARKS = {
    "NIFTY 50": "^NSEI",
    "SENSEX": "^BSESN",
}


class YFinanceBenchmarkSource(DataSource):
    """
    Benchmark-only data source using Yahoo Finance index closes.

    Features:
    - Fetches daily closes for NIFTY 50 and SENSEX by default
    - Looks back far enough to cover the 5 year rolling window
    - Does not serve portfolios or holdings
    """

    def __init__(
        self,
        tickers: Optional[dict[str, str]] = None,
        lookback_years: int = 6,
        end_date: Optional[date] = None,
        max_retries: int = 3,
        retry_delay: float = 2.0,
    ):
        """
        Initialize Yahoo Finance benchmark source.

        Args:
            tickers: Benchmark name to ticker mapping (default: NIFTY 50, SENSEX)
            lookback_years: Years of history to request
            end_date: Last date to request (default: today)
            max_retries: Maximum retries for failed requests
            retry_delay: Delay between retries (seconds)
        """
        self._tickers = dict(tickers or DEFAULT_BENCHMARKS)
        self._lookback_years = lookback_years
        self._end_date = end_date
        self._max_retries = max_retries
        self._retry_delay = retry_delay

    @property
    def name(self) -> str:
        return "YahooFinance"

    def fetch_portfolio(self, pan: str) -> list[FundRecord]:
        raise DataProviderError("Yahoo Finance does not provide investor portfolios")

    def fetch_holdings(self, fund_id: str) -> dict:
        raise DataProviderError("Yahoo Finance does not provide fund holdings")

    def fetch_benchmarks(self) -> dict[str, BenchmarkSeries]:
        """
        Fetch daily index closes for every configured benchmark.

        Returns:
            Dictionary mapping benchmark name to BenchmarkSeries

        Raises:
            DataProviderError: If any benchmark cannot be fetched or is empty
        """
        end_date = self._end_date or date.today()
        start_date = end_date - timedelta(days=366 * self._lookback_years)

        return {
            name: self._fetch_series(name, ticker, start_date, end_date)
            for name, ticker in self._tickers.items()
        }

    def _fetch_series(
        self,
        name: str,
        ticker: str,
        start_date: date,
        end_date: date,
    ) -> BenchmarkSeries:
        """Fetch one index with retries."""
        last_error = None

        for attempt in range(self._max_retries):
            try:
                # yfinance expects end_date to be exclusive, so add 1 day
                df = yf.Ticker(ticker).history(
                    start=start_date.isoformat(),
                    end=(end_date + timedelta(days=1)).isoformat(),
                    auto_adjust=True,
                )
                return _frame_to_series(name, df)
            except DataProviderError:
                raise
            except Exception as e:
                # yfinance surfaces network and parsing failures as assorted types
                last_error = e

            if attempt < self._max_retries - 1:
                time.sleep(self._retry_delay * (attempt + 1))

        raise DataProviderError(
            f"Failed to fetch {name} ({ticker}) after {self._max_retries} attempts: {last_error}"
        )


def _frame_to_series(name: str, df: pd.DataFrame) -> BenchmarkSeries:
    """Convert a yfinance history frame into a BenchmarkSeries."""
    if df is None or df.empty or "Close" not in df.columns:
        raise DataProviderError(f"No index data returned for {name}")

    closes = df["Close"].dropna()
    if closes.empty:
        raise DataProviderError(f"No index data returned for {name}")

    points = tuple(
        BenchmarkPoint(
            date=idx.date() if hasattr(idx, "date") else idx,
            index_value=Decimal(str(round(float(close), 4))),
        )
        for idx, close in closes.items()
    )
    try:
        return BenchmarkSeries(name=name, points=points)
    except InvalidInputError as e:
        raise DataProviderError(f"Unusable index data for {name}: {e}")
