"""
Abstract base class for portfolio data sources.

Defines the interface that every data source must implement so the
service layer can be pointed at a live backend, a market-data library or
an explicit fallback without changing any calculation code.
"""

from abc import ABC, abstractmethod

from mf_pilot.models import BenchmarkSeries, DataSourceKind, FundRecord, FundSearchCriteria


class DataProviderError(Exception):
    """Raised when a data source cannot serve a request."""
    pass


class DataSource(ABC):
    """
    Abstract base class for portfolio and market data sources.

    Implementations provide methods to fetch:
    - The funds and transactions held under a PAN
    - Benchmark index history
    - Opaque holdings detail for a fund
    - Fund search results (optional)
    """

    @abstractmethod
    def fetch_portfolio(self, pan: str) -> list[FundRecord]:
        """
        Fetch every fund held under a PAN.

        Args:
            pan: Normalized (upper case) PAN

        Returns:
            List of FundRecord objects

        Raises:
            DataProviderError: If the source cannot be reached or responds badly
            MissingDataError: If the source has no portfolio data to offer
        """
        pass

    @abstractmethod
    def fetch_benchmarks(self) -> dict[str, BenchmarkSeries]:
        """
        Fetch benchmark index history.

        Returns:
            Dictionary mapping benchmark name to BenchmarkSeries

        Raises:
            DataProviderError: If data cannot be fetched
        """
        pass

    @abstractmethod
    def fetch_holdings(self, fund_id: str) -> dict:
        """
        Fetch holdings detail for a fund.

        The payload is passed through to callers without interpretation.

        Args:
            fund_id: Scheme identifier

        Returns:
            Holdings dictionary

        Raises:
            DataProviderError: If data cannot be fetched
        """
        pass

    def search_funds(self, criteria: FundSearchCriteria) -> list[dict]:
        """
        Search the fund universe.

        Results are passed through to callers without interpretation. Sources
        without a fund catalogue keep this default.

        Args:
            criteria: Filters and ordering

        Returns:
            List of fund dictionaries, in the requested order

        Raises:
            DataProviderError: If the source cannot search funds
        """
        raise DataProviderError(f"{self.name} does not offer fund search")

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the name of this data source."""
        pass

    @property
    def kind(self) -> DataSourceKind:
        """Whether this source serves live or fallback data."""
        return DataSourceKind.LIVE
