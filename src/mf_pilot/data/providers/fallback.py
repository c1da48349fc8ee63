"""
Explicit fallback data source.

Serves clearly labelled placeholder data when a live source is
unavailable. Placeholder holdings are deterministic per fund id so repeated
requests agree with each other. No placeholder portfolio is ever invented:
an investor's transactions and fund search results only come from a live
source.
"""

import random
import zlib
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional, Sequence

from mf_pilot.exceptions import MissingDataError
from mf_pilot.models import (
    BenchmarkPoint,
    BenchmarkSeries,
    DataSourceKind,
    FundRecord,
    FundSearchCriteria,
)
from mf_pilot.data.providers.base import DataSource


# Representative large-cap constituents: (company, sector, allocation %)
PLACEHOLDER_COMPANIES = [
    ("Reliance Industries Ltd", "Energy", 8.5),
    ("HDFC Bank Ltd", "Banking", 7.2),
    ("Infosys Ltd", "Information Technology", 6.8),
    ("ICICI Bank Ltd", "Banking", 5.9),
    ("TCS Ltd", "Information Technology", 5.4),
    ("Bharti Airtel Ltd", "Telecom", 4.8),
    ("ITC Ltd", "FMCG", 4.2),
    ("Kotak Mahindra Bank", "Banking", 3.9),
    ("HUL Ltd", "FMCG", 3.5),
    ("Axis Bank Ltd", "Banking", 3.2),
    ("Larsen & Toubro", "Infrastructure", 2.8),
    ("Asian Paints Ltd", "Consumer Goods", 2.5),
    ("Maruti Suzuki", "Automobile", 2.2),
    ("Titan Company", "Consumer Goods", 2.0),
    ("Sun Pharma", "Pharmaceuticals", 1.8),
]

# Notional fund size (INR) used to turn allocations into values
PLACEHOLDER_AUM = 50_000_000

RISK_FREE_RATE = 6.5

DEFAULT_BENCHMARK_NAMES = ("NIFTY 50", "SENSEX")


class FallbackDataSource(DataSource):
    """
    Data source of last resort.

    - fetch_portfolio always raises MissingDataError
    - fetch_holdings returns seeded placeholder holdings flagged
      with "placeholder": True
    - fetch_benchmarks returns flat series (0% return over every window)
    """

    def __init__(
        self,
        benchmark_names: Sequence[str] = DEFAULT_BENCHMARK_NAMES,
        reference_date: Optional[date] = None,
        history_years: int = 6,
        flat_level: Decimal = Decimal("100"),
    ):
        """
        Initialize the fallback source.

        Args:
            benchmark_names: Names of the placeholder benchmark series
            reference_date: Last date of placeholder series (default: today)
            history_years: Years of placeholder benchmark history
            flat_level: Constant index level of placeholder series
        """
        self._benchmark_names = tuple(benchmark_names)
        self._reference_date = reference_date
        self._history_years = history_years
        self._flat_level = flat_level

    @property
    def name(self) -> str:
        return "Placeholder"

    @property
    def kind(self) -> DataSourceKind:
        return DataSourceKind.FALLBACK

    def fetch_portfolio(self, pan: str) -> list[FundRecord]:
        raise MissingDataError(
            f"No portfolio data available for {pan}: the live source is required"
        )

    def search_funds(self, criteria: FundSearchCriteria) -> list[dict]:
        raise MissingDataError(
            "No fund search results available: the live source is required"
        )

    def fetch_benchmarks(self) -> dict[str, BenchmarkSeries]:
        end = self._reference_date or date.today()
        # 366-day steps so every trailing calendar-year window is covered
        points = tuple(
            BenchmarkPoint(date=end - timedelta(days=366 * n), index_value=self._flat_level)
            for n in range(self._history_years + 1)
        )
        return {
            name: BenchmarkSeries(name=name, points=points)
            for name in self._benchmark_names
        }

    def fetch_holdings(self, fund_id: str) -> dict:
        """
        Build placeholder holdings for a fund.

        The same fund id always yields the same payload.
        """
        rng = random.Random(zlib.crc32(fund_id.encode("utf-8")))

        top_holdings = [
            {
                "companyName": company,
                "sector": sector,
                "allocation": allocation,
                "shares": rng.randint(100_000, 599_999),
                "value": round(allocation / 100 * PLACEHOLDER_AUM, 2),
                "changeFromLastMonth": round((rng.random() - 0.5) * 3, 2),
            }
            for company, sector, allocation in PLACEHOLDER_COMPANIES
        ]

        sectors: dict[str, dict[str, float]] = {}
        for holding in top_holdings:
            entry = sectors.setdefault(holding["sector"], {"allocation": 0.0, "value": 0.0})
            entry["allocation"] += holding["allocation"]
            entry["value"] += holding["value"]

        sector_allocation = [
            {
                "sector": sector,
                "allocation": round(data["allocation"], 2),
                # Crores
                "value": round(data["value"] / 10_000_000, 2),
            }
            for sector, data in sectors.items()
        ]

        return {
            "fundId": fund_id,
            "placeholder": True,
            "asOfDate": (self._reference_date or date.today()).isoformat(),
            "totalHoldings": len(top_holdings),
            "topHoldings": top_holdings,
            "sectorAllocation": sector_allocation,
            "riskMetrics": {
                "sharpeRatio": round(1.2 + rng.random() * 0.8, 2),
                "beta": round(0.9 + rng.random() * 0.4, 2),
                "sortinoRatio": round(1.5 + rng.random() * 0.7, 2),
                "standardDeviation": round(12 + rng.random() * 8, 2),
                "downwardDeviation": round(8 + rng.random() * 4, 2),
                "riskFreeRate": RISK_FREE_RATE,
                "benchmarkCorrelation": round(0.75 + rng.random() * 0.2, 2),
            },
        }
