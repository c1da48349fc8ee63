"""
Data ingestion module for the mutual fund metrics engine.

Provides functionality for loading purchase transactions, benchmark index
history and yearly fund returns from CSV files, and saving computed metrics.
"""

from mf_pilot.data.loaders import (
    DataLoadError,
    load_benchmark_series,
    load_historical_returns,
    load_positions,
    load_transactions,
    save_fund_metrics,
)
from mf_pilot.data.schemas import (
    BENCHMARK_SCHEMA,
    FUND_METRICS_SCHEMA,
    HISTORICAL_RETURNS_SCHEMA,
    TRANSACTIONS_SCHEMA,
)

__all__ = [
    "DataLoadError",
    "load_benchmark_series",
    "load_historical_returns",
    "load_positions",
    "load_transactions",
    "save_fund_metrics",
    "BENCHMARK_SCHEMA",
    "FUND_METRICS_SCHEMA",
    "HISTORICAL_RETURNS_SCHEMA",
    "TRANSACTIONS_SCHEMA",
]
