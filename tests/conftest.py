"""
Pytest fixtures for the mutual fund metrics engine tests.

Provides common test data and utilities used across test modules.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

import pytest

from mf_pilot.data.providers.base import DataProviderError, DataSource
from mf_pilot.models import (
    AssetClass,
    BenchmarkPoint,
    BenchmarkSeries,
    DataSourceKind,
    FundPosition,
    FundRecord,
    FundSearchCriteria,
    Transaction,
)


class StaticDataSource(DataSource):
    """In-memory data source serving fixed records."""

    def __init__(
        self,
        records: Optional[list[FundRecord]] = None,
        benchmarks: Optional[dict[str, BenchmarkSeries]] = None,
        holdings: Optional[dict] = None,
        catalogue: Optional[list[dict]] = None,
        source_name: str = "Static",
        source_kind: DataSourceKind = DataSourceKind.LIVE,
    ):
        self.records = records or []
        self.benchmarks = benchmarks or {}
        self.holdings = holdings or {}
        self.catalogue = catalogue or []
        self.searches: list[FundSearchCriteria] = []
        self._name = source_name
        self._kind = source_kind

    @property
    def name(self) -> str:
        return self._name

    @property
    def kind(self) -> DataSourceKind:
        return self._kind

    def fetch_portfolio(self, pan: str) -> list[FundRecord]:
        return list(self.records)

    def fetch_benchmarks(self) -> dict[str, BenchmarkSeries]:
        return dict(self.benchmarks)

    def fetch_holdings(self, fund_id: str) -> dict:
        return {"fundId": fund_id, **self.holdings}

    def search_funds(self, criteria: FundSearchCriteria) -> list[dict]:
        self.searches.append(criteria)
        return list(self.catalogue)


class FailingDataSource(DataSource):
    """Data source whose every call fails like an unreachable backend."""

    @property
    def name(self) -> str:
        return "Failing"

    def fetch_portfolio(self, pan: str) -> list[FundRecord]:
        raise DataProviderError("backend unreachable")

    def fetch_benchmarks(self) -> dict[str, BenchmarkSeries]:
        raise DataProviderError("backend unreachable")

    def fetch_holdings(self, fund_id: str) -> dict:
        raise DataProviderError("backend unreachable")


@pytest.fixture
def single_purchase() -> list[Transaction]:
    """One purchase of 100 units at NAV 100 on 2023-01-01."""
    return [
        Transaction(
            date=date(2023, 1, 1),
            amount=Decimal("10000"),
            units=Decimal("100"),
            nav=Decimal("100"),
        )
    ]


@pytest.fixture
def sample_transactions() -> list[Transaction]:
    """Three SIP-style purchases at rising NAVs."""
    return [
        Transaction(date=date(2021, 1, 1), amount=Decimal("10000"), units=Decimal("200"), nav=Decimal("50")),
        Transaction(date=date(2022, 1, 1), amount=Decimal("10000"), units=Decimal("160"), nav=Decimal("62.5")),
        Transaction(date=date(2023, 1, 1), amount=Decimal("12000"), units=Decimal("150"), nav=Decimal("80")),
    ]


@pytest.fixture
def sample_position(sample_transactions: list[Transaction]) -> FundPosition:
    """Equity fund position built from sample_transactions."""
    return FundPosition(
        fund_id="AXIS-BLUECHIP",
        transactions=sample_transactions,
        current_nav=Decimal("100"),
        fund_name="Axis Bluechip Fund",
        category="Large Cap",
    )


@pytest.fixture
def benchmark_series() -> BenchmarkSeries:
    """Index growing exactly 10% between each 1 January from 2019 to 2024."""
    values = ["100", "110", "121", "133.1", "146.41", "161.051"]
    return BenchmarkSeries(
        name="NIFTY 50",
        points=tuple(
            BenchmarkPoint(date=date(2019 + i, 1, 1), index_value=Decimal(v))
            for i, v in enumerate(values)
        ),
    )


@pytest.fixture
def sample_records() -> list[FundRecord]:
    """Three funds across two categories, as the backend would deliver them."""
    return [
        FundRecord(
            fund_id="AXIS-BLUECHIP",
            fund_name="Axis Bluechip Fund",
            category="Large Cap",
            amc="Axis Mutual Fund",
            asset_class=AssetClass.EQUITY,
            current_nav=Decimal("60"),
            rating=Decimal("4.5"),
            rank="3/45",
            transactions=[
                Transaction(date=date(2021, 1, 1), amount=Decimal("20000"), units=Decimal("500"), nav=Decimal("40")),
                Transaction(date=date(2022, 1, 1), amount=Decimal("10000"), units=Decimal("200"), nav=Decimal("50")),
            ],
            historical_returns=[Decimal("15"), Decimal("18"), Decimal("12"), Decimal("20"), Decimal("10")],
        ),
        FundRecord(
            fund_id="HDFC-TOP100",
            fund_name="HDFC Top 100 Fund",
            category="Large Cap",
            amc="HDFC Mutual Fund",
            asset_class=AssetClass.EQUITY,
            current_nav=Decimal("95"),
            rating=Decimal("2"),
            rank="30/45",
            transactions=[
                Transaction(date=date(2022, 6, 1), amount=Decimal("10000"), units=Decimal("100"), nav=Decimal("100")),
            ],
            historical_returns=[Decimal("4"), Decimal("6"), Decimal("5")],
        ),
        FundRecord(
            fund_id="SBI-CORP-BOND",
            fund_name="SBI Corporate Bond Fund",
            category="Debt",
            amc="SBI Mutual Fund",
            asset_class=AssetClass.DEBT,
            current_nav=Decimal("11"),
            rating=Decimal("3"),
            rank="8/20",
            transactions=[
                Transaction(date=date(2022, 1, 1), amount=Decimal("10000"), units=Decimal("1000"), nav=Decimal("10")),
            ],
            historical_returns=[Decimal("7"), Decimal("6.5")],
        ),
    ]


@pytest.fixture
def static_source(sample_records, benchmark_series) -> StaticDataSource:
    """Live-tagged in-memory source with sample records and benchmark."""
    return StaticDataSource(
        records=sample_records,
        benchmarks={benchmark_series.name: benchmark_series},
        holdings={"topHoldings": [{"companyName": "HDFC Bank Ltd", "allocation": 7.2}]},
        catalogue=[
            {"id": "PPFAS-FLEXI", "fundName": "Parag Parikh Flexi Cap Fund", "category": "Flexi Cap",
             "riskLevel": "Very High", "rating": 5, "returns": {"threeYear": 21.4}},
            {"id": "AXIS-BLUECHIP", "fundName": "Axis Bluechip Fund", "category": "Large Cap",
             "riskLevel": "Moderate to High", "rating": 4, "returns": {"threeYear": 12.1}},
        ],
    )


@pytest.fixture
def failing_source() -> FailingDataSource:
    """Source standing in for an unreachable backend."""
    return FailingDataSource()


@pytest.fixture
def placeholder_benchmark_source(benchmark_series) -> StaticDataSource:
    """Source serving a usable-looking series but tagged as fallback data."""
    return StaticDataSource(
        benchmarks={benchmark_series.name: benchmark_series},
        source_name="Placeholder",
        source_kind=DataSourceKind.FALLBACK,
    )


@pytest.fixture
def backend_portfolio_payload() -> dict:
    """Portfolio response body as served by the backend API."""
    return {
        "pan": "ABCDE1234F",
        "funds": [
            {
                "id": "AXIS-BLUECHIP",
                "fundName": "Axis Bluechip Fund",
                "category": "Large Cap",
                "amc": "Axis Mutual Fund",
                "currentNav": 60.25,
                "rating": 4,
                "rank": "3/45",
                "transactions": [
                    {"date": "2021-01-01", "amount": 20000, "units": 500, "nav": 40},
                    {"date": "2022-01-01T00:00:00Z", "amount": 10000, "units": 200, "nav": 50},
                ],
                "historicalReturns": [15.2, 18.1, 12.4],
            },
            {
                "id": "SBI-CORP-BOND",
                "fundName": "SBI Corporate Bond Fund",
                "category": "Debt",
                "amc": "SBI Mutual Fund",
                "currentNav": 11,
                "rating": 3,
                "rank": "8/20",
                "transactions": [
                    {"date": "2022-01-01", "amount": 10000, "units": 1000, "nav": 10},
                ],
                "historicalReturns": [7.0],
            },
        ],
        "totalInvestedAmount": 40000,
        "fetchedAt": "2024-01-01T10:00:00Z",
    }
