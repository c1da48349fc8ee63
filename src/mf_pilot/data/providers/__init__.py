"""
Data sources for portfolio records, fund holdings and benchmark history.

Provides a pluggable interface with a live backend source, a Yahoo Finance
benchmark source and an explicit, labelled fallback.
"""

from mf_pilot.data.providers.base import DataSource, DataProviderError
from mf_pilot.data.providers.backend_provider import BackendDataSource
from mf_pilot.data.providers.chain import FallbackChain
from mf_pilot.data.providers.fallback import FallbackDataSource
from mf_pilot.data.providers.yfinance_provider import YFinanceBenchmarkSource

__all__ = [
    "DataSource",
    "DataProviderError",
    "BackendDataSource",
    "FallbackChain",
    "FallbackDataSource",
    "YFinanceBenchmarkSource",
]
