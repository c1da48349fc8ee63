"""
Provider chain: try the primary source, then an explicit fallback.

Every response is wrapped in SourcedData so callers always know whether
live or fallback data was served. Only data-availability errors trigger the
fallback; anything else propagates unchanged.
"""

from typing import Callable, Optional, TypeVar

from mf_pilot.exceptions import MissingDataError
from mf_pilot.logging.decision_log import DecisionLogger
from mf_pilot.models import BenchmarkSeries, FundRecord, FundSearchCriteria, SourcedData
from mf_pilot.data.providers.base import DataSource, DataProviderError


T = TypeVar("T")

# Errors that mean "this source has no data for you right now"
FALLBACK_ERRORS = (DataProviderError, MissingDataError)


class FallbackChain:
    """
    Primary data source with an optional fallback.

    Attributes:
        primary: Source tried first
        fallback: Source used when the primary fails (None disables fallback)
        last_sources: Operation name -> provider name that served it last
    """

    def __init__(
        self,
        primary: DataSource,
        fallback: Optional[DataSource] = None,
        decision_logger: Optional[DecisionLogger] = None,
    ):
        self.primary = primary
        self.fallback = fallback
        self.decision_logger = decision_logger
        self.last_sources: dict[str, str] = {}

    def fetch_portfolio(self, pan: str) -> SourcedData[list[FundRecord]]:
        return self._call("fetch_portfolio", lambda s: s.fetch_portfolio(pan), subject=pan)

    def fetch_benchmarks(self) -> SourcedData[dict[str, BenchmarkSeries]]:
        return self._call("fetch_benchmarks", lambda s: s.fetch_benchmarks())

    def fetch_holdings(self, fund_id: str) -> SourcedData[dict]:
        return self._call(
            "fetch_holdings", lambda s: s.fetch_holdings(fund_id), subject=fund_id
        )

    def search_funds(self, criteria: FundSearchCriteria) -> SourcedData[list[dict]]:
        return self._call("search_funds", lambda s: s.search_funds(criteria))

    def _call(
        self,
        operation: str,
        fetch: Callable[[DataSource], T],
        subject: Optional[str] = None,
    ) -> SourcedData[T]:
        """
        Run fetch against the primary, falling back on availability errors.

        Raises:
            DataProviderError, MissingDataError: If the primary fails and there
                is no fallback, or the fallback fails too (chained to the
                primary's error)
        """
        try:
            data = fetch(self.primary)
        except FALLBACK_ERRORS as primary_error:
            if self.fallback is None:
                raise
            try:
                data = fetch(self.fallback)
            except FALLBACK_ERRORS as fallback_error:
                raise fallback_error from primary_error

            if self.decision_logger is not None:
                self.decision_logger.log_fallback_used(
                    operation=operation,
                    primary_name=self.primary.name,
                    fallback_name=self.fallback.name,
                    error=primary_error,
                    subject=subject,
                )
            return self._tag(operation, data, self.fallback)

        return self._tag(operation, data, self.primary)

    def _tag(self, operation: str, data: T, source: DataSource) -> SourcedData[T]:
        self.last_sources[operation] = source.name
        return SourcedData(data=data, source=source.kind, provider_name=source.name)
