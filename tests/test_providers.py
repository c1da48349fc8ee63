"""
Tests for the data sources and the fallback chain.

Unit tests use mocked HTTP responses and a mocked yfinance Ticker.
"""

from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pandas as pd
import pytest
import requests

from mf_pilot.data.providers.backend_provider import (
    BackendDataSource,
    parse_benchmark_series,
    parse_fund_record,
)
from mf_pilot.data.providers.base import DataProviderError
from mf_pilot.data.providers.chain import FallbackChain
from mf_pilot.data.providers.fallback import FallbackDataSource
from mf_pilot.data.providers.yfinance_provider import YFinanceBenchmarkSource
from mf_pilot.exceptions import MissingDataError
from mf_pilot.logging.decision_log import DecisionLogger
from mf_pilot.models import (
    ActionType,
    AssetClass,
    DataSourceKind,
    FundSearchCriteria,
    FundSortKey,
)


def _response(status_code: int = 200, body=None) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body
    return response


# =============================================================================
# Backend data source
# =============================================================================


class TestBackendInit:
    """Tests for BackendDataSource initialization."""

    def test_explicit_url(self):
        source = BackendDataSource(base_url="https://api.example/", api_key="k")
        assert source._base_url == "https://api.example"
        assert source.name == "PortfolioBackend"
        assert source.kind == DataSourceKind.LIVE

    def test_missing_url(self):
        with patch("mf_pilot.data.providers.backend_provider.load_backend_settings") as mock_load:
            mock_load.return_value = {}
            with pytest.raises(DataProviderError) as exc_info:
                BackendDataSource()
        assert "MF_BACKEND_URL" in str(exc_info.value)

    def test_url_from_settings(self):
        with patch("mf_pilot.data.providers.backend_provider.load_backend_settings") as mock_load:
            mock_load.return_value = {"backend_url": "https://cfg.example", "api_key": "cfg-key"}
            source = BackendDataSource()
        assert source._base_url == "https://cfg.example"
        assert source._api_key == "cfg-key"


class TestBackendFetchPortfolio:
    """Tests for fetching portfolios from the backend."""

    @pytest.fixture
    def source(self):
        return BackendDataSource(base_url="https://api.example", api_key="secret", retry_delay=0)

    def test_posts_pan(self, source, backend_portfolio_payload):
        with patch("requests.post") as mock_post:
            mock_post.return_value = _response(200, backend_portfolio_payload)

            records = source.fetch_portfolio("ABCDE1234F")

        args, kwargs = mock_post.call_args
        assert args[0] == "https://api.example/portfolio/summary"
        assert kwargs["json"] == {"pan": "ABCDE1234F"}
        assert kwargs["headers"]["Authorization"] == "Bearer secret"

        assert [r.fund_id for r in records] == ["AXIS-BLUECHIP", "SBI-CORP-BOND"]
        axis = records[0]
        assert axis.current_nav == Decimal("60.25")
        assert axis.transactions[1].date == date(2022, 1, 1)
        assert axis.historical_returns == [Decimal("15.2"), Decimal("18.1"), Decimal("12.4")]
        assert records[1].asset_class == AssetClass.DEBT

    def test_missing_funds_list(self, source):
        with patch("requests.post") as mock_post:
            mock_post.return_value = _response(200, {"pan": "ABCDE1234F"})
            with pytest.raises(DataProviderError) as exc_info:
                source.fetch_portfolio("ABCDE1234F")
        assert "funds" in str(exc_info.value)

    def test_error_body(self, source):
        with patch("requests.post") as mock_post:
            mock_post.return_value = _response(200, {"error": "PAN not found"})
            with pytest.raises(DataProviderError) as exc_info:
                source.fetch_portfolio("ABCDE1234F")
        assert "PAN not found" in str(exc_info.value)

    def test_client_error_not_retried(self, source):
        with patch("requests.post") as mock_post:
            mock_post.return_value = _response(404, {"error": "Not found"})
            with pytest.raises(DataProviderError) as exc_info:
                source.fetch_portfolio("ABCDE1234F")
        assert mock_post.call_count == 1
        assert "HTTP 404" in str(exc_info.value)

    def test_retries_connection_errors(self, source, backend_portfolio_payload):
        with patch("requests.post") as mock_post:
            mock_post.side_effect = [
                requests.exceptions.ConnectionError("refused"),
                requests.exceptions.Timeout(),
                _response(200, backend_portfolio_payload),
            ]
            records = source.fetch_portfolio("ABCDE1234F")
        assert mock_post.call_count == 3
        assert len(records) == 2

    def test_gives_up_after_max_retries(self, source):
        with patch("requests.post") as mock_post:
            mock_post.side_effect = requests.exceptions.ConnectionError("refused")
            with pytest.raises(DataProviderError) as exc_info:
                source.fetch_portfolio("ABCDE1234F")
        assert mock_post.call_count == 3
        assert "after 3 attempts" in str(exc_info.value)

    def test_server_error_retried(self, source, backend_portfolio_payload):
        failing = _response(500)
        failing.raise_for_status.side_effect = requests.exceptions.HTTPError("500 Server Error")
        with patch("requests.post") as mock_post:
            mock_post.side_effect = [failing, _response(200, backend_portfolio_payload)]
            records = source.fetch_portfolio("ABCDE1234F")
        assert len(records) == 2

    def test_rate_limit_retried(self, source, backend_portfolio_payload):
        with patch("requests.post") as mock_post, patch("time.sleep") as mock_sleep:
            mock_post.side_effect = [_response(429), _response(200, backend_portfolio_payload)]
            records = source.fetch_portfolio("ABCDE1234F")
        assert len(records) == 2
        mock_sleep.assert_called_once_with(BackendDataSource.RATE_LIMIT_DELAY)

    def test_invalid_json(self, source):
        response = _response(200)
        response.json.side_effect = ValueError("Expecting value")
        with patch("requests.post") as mock_post:
            mock_post.return_value = response
            with pytest.raises(DataProviderError):
                source.fetch_portfolio("ABCDE1234F")
        assert mock_post.call_count == 1


class TestBackendOtherEndpoints:
    """Tests for benchmark and holdings endpoints."""

    @pytest.fixture
    def source(self):
        return BackendDataSource(base_url="https://api.example", retry_delay=0)

    def test_fetch_benchmarks(self, source):
        body = {
            "benchmarks": [
                {
                    "name": "NIFTY 50",
                    "points": [
                        {"date": "2024-01-01", "indexValue": 21731.4},
                        {"date": "2023-01-02", "indexValue": 18197.45},
                    ],
                }
            ]
        }
        with patch("requests.get") as mock_get:
            mock_get.return_value = _response(200, body)
            result = source.fetch_benchmarks()

        assert mock_get.call_args[0][0] == "https://api.example/market/benchmarks"
        series = result["NIFTY 50"]
        assert series.points[0].date == date(2023, 1, 2)
        assert series.points[1].index_value == Decimal("21731.4")

    def test_fetch_holdings_passthrough(self, source):
        body = {"fundId": "AXIS", "topHoldings": [], "custom": {"x": 1}}
        with patch("requests.post") as mock_post:
            mock_post.return_value = _response(200, body)
            assert source.fetch_holdings("AXIS") == body
        assert mock_post.call_args[1]["json"] == {"fundId": "AXIS"}

    def test_search_funds_posts_criteria(self, source):
        body = {"funds": [{"id": "PPFAS-FLEXI", "rating": 5}, {"id": "AXIS", "rating": 4}]}
        criteria = FundSearchCriteria(
            query="  flexi ",
            category="Flexi Cap",
            min_rating=Decimal("4"),
            sort_by=FundSortKey.RATING,
        )
        with patch("requests.post") as mock_post:
            mock_post.return_value = _response(200, body)
            result = source.search_funds(criteria)

        args, kwargs = mock_post.call_args
        assert args[0] == "https://api.example/fund/search"
        assert kwargs["json"] == {
            "query": "flexi",
            "category": "Flexi Cap",
            "riskLevel": None,
            "minRating": 4.0,
            "sortBy": "rating",
        }
        assert result == body["funds"]

    def test_search_funds_without_list(self, source):
        with patch("requests.post") as mock_post:
            mock_post.return_value = _response(200, {"funds": "none"})
            with pytest.raises(DataProviderError) as exc_info:
                source.search_funds(FundSearchCriteria())
        assert "'funds' list" in str(exc_info.value)


class TestParsing:
    """Tests for backend payload parsing."""

    def test_explicit_asset_class(self):
        record = parse_fund_record(
            {"id": "X", "category": "Hybrid", "assetClass": "debt", "currentNav": 10}
        )
        assert record.asset_class == AssetClass.DEBT
        assert record.transactions == []

    def test_malformed_record(self):
        with pytest.raises(DataProviderError) as exc_info:
            parse_fund_record({"id": "X", "transactions": [{"date": "2024-01-01"}]})
        assert "Malformed fund record X" in str(exc_info.value)

    def test_malformed_series(self):
        with pytest.raises(DataProviderError):
            parse_benchmark_series({"name": "NIFTY 50"})

    def test_series_with_duplicate_dates(self):
        raw = {
            "name": "NIFTY 50",
            "points": [
                {"date": "2022-01-01", "indexValue": 100},
                {"date": "2022-01-01T15:30:00Z", "indexValue": 101},
                {"date": "2023-01-02", "indexValue": 110},
            ],
        }
        with pytest.raises(DataProviderError) as exc_info:
            parse_benchmark_series(raw)
        assert "duplicate dates" in str(exc_info.value)


# =============================================================================
# Yahoo Finance benchmark source
# =============================================================================


class TestYFinanceBenchmarkSource:
    """Tests for YFinanceBenchmarkSource with a mocked Ticker."""

    @staticmethod
    def _history() -> pd.DataFrame:
        index = pd.to_datetime(["2023-12-28", "2023-12-29", "2024-01-01"])
        return pd.DataFrame({"Close": [21778.7, 21731.4, 21741.9]}, index=index)

    def test_fetch_benchmarks(self):
        source = YFinanceBenchmarkSource(end_date=date(2024, 1, 1), retry_delay=0)
        with patch("mf_pilot.data.providers.yfinance_provider.yf.Ticker") as mock_ticker:
            mock_ticker.return_value.history.return_value = self._history()
            result = source.fetch_benchmarks()

        assert set(result) == {"NIFTY 50", "SENSEX"}
        tickers = [c.args[0] for c in mock_ticker.call_args_list]
        assert tickers == ["^NSEI", "^BSESN"]
        history_kwargs = mock_ticker.return_value.history.call_args.kwargs
        assert history_kwargs["end"] == "2024-01-02"
        nifty = result["NIFTY 50"]
        assert len(nifty) == 3
        assert nifty.points[-1].date == date(2024, 1, 1)
        assert nifty.points[-1].index_value == Decimal("21741.9")

    def test_empty_history(self):
        source = YFinanceBenchmarkSource(tickers={"NIFTY 50": "^NSEI"}, retry_delay=0)
        with patch("mf_pilot.data.providers.yfinance_provider.yf.Ticker") as mock_ticker:
            mock_ticker.return_value.history.return_value = pd.DataFrame()
            with pytest.raises(DataProviderError) as exc_info:
                source.fetch_benchmarks()
        assert "No index data" in str(exc_info.value)
        assert mock_ticker.call_count == 1

    def test_duplicate_rows_not_retried(self):
        source = YFinanceBenchmarkSource(tickers={"NIFTY 50": "^NSEI"}, retry_delay=0)
        index = pd.to_datetime(["2023-12-29", "2024-01-01 09:15", "2024-01-01 15:30"], format="mixed")
        history = pd.DataFrame({"Close": [21731.4, 21700.0, 21741.9]}, index=index)
        with patch("mf_pilot.data.providers.yfinance_provider.yf.Ticker") as mock_ticker:
            mock_ticker.return_value.history.return_value = history
            with pytest.raises(DataProviderError) as exc_info:
                source.fetch_benchmarks()
        assert "Unusable index data for NIFTY 50" in str(exc_info.value)
        assert mock_ticker.call_count == 1

    def test_retries_then_fails(self):
        source = YFinanceBenchmarkSource(tickers={"NIFTY 50": "^NSEI"}, retry_delay=0)
        with patch("mf_pilot.data.providers.yfinance_provider.yf.Ticker") as mock_ticker:
            mock_ticker.return_value.history.side_effect = RuntimeError("network down")
            with pytest.raises(DataProviderError) as exc_info:
                source.fetch_benchmarks()
        assert mock_ticker.call_count == 3
        assert "network down" in str(exc_info.value)

    def test_no_portfolios(self):
        source = YFinanceBenchmarkSource()
        with pytest.raises(DataProviderError):
            source.fetch_portfolio("ABCDE1234F")
        with pytest.raises(DataProviderError):
            source.fetch_holdings("AXIS")
        with pytest.raises(DataProviderError) as exc_info:
            source.search_funds(FundSearchCriteria())
        assert "does not offer fund search" in str(exc_info.value)


# =============================================================================
# Fallback source
# =============================================================================


class TestFallbackDataSource:
    """Tests for the placeholder data source."""

    def test_is_labelled_fallback(self):
        source = FallbackDataSource()
        assert source.kind == DataSourceKind.FALLBACK
        assert source.name == "Placeholder"

    def test_never_invents_portfolios(self):
        with pytest.raises(MissingDataError):
            FallbackDataSource().fetch_portfolio("ABCDE1234F")

    def test_never_invents_search_results(self):
        with pytest.raises(MissingDataError):
            FallbackDataSource().search_funds(FundSearchCriteria(query="flexi"))

    def test_holdings_deterministic(self):
        source = FallbackDataSource(reference_date=date(2024, 1, 1))
        first = source.fetch_holdings("AXIS-BLUECHIP")

        assert first == source.fetch_holdings("AXIS-BLUECHIP")
        assert first != source.fetch_holdings("HDFC-TOP100")
        assert first["placeholder"] is True
        assert first["asOfDate"] == "2024-01-01"
        assert first["totalHoldings"] == len(first["topHoldings"]) == 15

    def test_sector_allocation_sums_holdings(self):
        holdings = FallbackDataSource().fetch_holdings("AXIS")
        banking = next(s for s in holdings["sectorAllocation"] if s["sector"] == "Banking")
        assert banking["allocation"] == pytest.approx(7.2 + 5.9 + 3.9 + 3.2)

    def test_flat_benchmarks(self):
        from mf_pilot.analytics.benchmark import benchmark_returns_by_period

        series = FallbackDataSource(reference_date=date(2024, 1, 1)).fetch_benchmarks()

        assert set(series) == {"NIFTY 50", "SENSEX"}
        returns = benchmark_returns_by_period(series["NIFTY 50"])
        assert returns.one_year == Decimal("0.0000")
        assert returns.five_year == Decimal("0.0000")


# =============================================================================
# Fallback chain
# =============================================================================


class TestFallbackChain:
    """Tests for FallbackChain."""

    def test_primary_success_is_live(self, static_source):
        chain = FallbackChain(static_source, FallbackDataSource())

        result = chain.fetch_portfolio("ABCDE1234F")

        assert result.source == DataSourceKind.LIVE
        assert result.provider_name == "Static"
        assert result.is_fallback is False
        assert len(result.data) == 3

    def test_falls_back_and_logs(self, tmp_path, failing_source):
        logger = DecisionLogger(tmp_path / "log.jsonl")
        chain = FallbackChain(failing_source, FallbackDataSource(), logger)

        result = chain.fetch_holdings("AXIS")

        assert result.is_fallback is True
        assert result.provider_name == "Placeholder"
        assert chain.last_sources["fetch_holdings"] == "Placeholder"

        entries = logger.filter_by_action_type(ActionType.FALLBACK_USED)
        assert len(entries) == 1
        assert entries[0].subject == "AXIS"
        assert entries[0].details["primary"] == "Failing"
        assert entries[0].details["error"] == "backend unreachable"

    def test_no_fallback_reraises(self, failing_source):
        chain = FallbackChain(failing_source)
        with pytest.raises(DataProviderError):
            chain.fetch_benchmarks()

    def test_both_fail(self, failing_source):
        chain = FallbackChain(failing_source, FallbackDataSource())
        with pytest.raises(MissingDataError) as exc_info:
            chain.fetch_portfolio("ABCDE1234F")
        assert isinstance(exc_info.value.__cause__, DataProviderError)

    def test_search_served_by_primary(self, static_source):
        chain = FallbackChain(static_source, FallbackDataSource())

        result = chain.search_funds(FundSearchCriteria(category="Flexi Cap"))

        assert result.source == DataSourceKind.LIVE
        assert [f["id"] for f in result.data] == ["PPFAS-FLEXI", "AXIS-BLUECHIP"]
        assert static_source.searches[0].category == "Flexi Cap"
        assert chain.last_sources["search_funds"] == "Static"

    def test_search_has_no_placeholder(self, failing_source):
        chain = FallbackChain(failing_source, FallbackDataSource())
        with pytest.raises(MissingDataError) as exc_info:
            chain.search_funds(FundSearchCriteria())
        assert "does not offer fund search" in str(exc_info.value.__cause__)

    def test_other_errors_propagate(self, static_source):
        primary = static_source
        primary.fetch_benchmarks = MagicMock(side_effect=KeyError("bug"))
        chain = FallbackChain(primary, FallbackDataSource())
        with pytest.raises(KeyError):
            chain.fetch_benchmarks()
