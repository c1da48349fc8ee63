"""
Portfolio backend data source.

Fetches an investor's funds and transactions, fund holdings and benchmark
index history from the portfolio backend's HTTP API.
"""

import decimal
import time
from datetime import date
from decimal import Decimal
from typing import Any, Optional

import requests

from mf_pilot.config import load_backend_settings
from mf_pilot.models import (
    AssetClass,
    BenchmarkPoint,
    BenchmarkSeries,
    FundRecord,
    FundSearchCriteria,
    Transaction,
)
from mf_pilot.data.providers.base import DataSource, DataProviderError


class BackendDataSource(DataSource):
    """
    Data source backed by the portfolio backend API.

    Features:
    - POST /portfolio/summary with the PAN for funds and transactions
    - POST /fund/holdings with the fund id for holdings detail
    - GET /market/benchmarks for index history
    - POST /fund/search with filters and a sort key for fund discovery
    - Retries with linear backoff on timeouts, connection errors and 429s
    - Requires MF_BACKEND_URL (and optionally MF_BACKEND_API_KEY)
    """

    PORTFOLIO_ENDPOINT = "/portfolio/summary"
    HOLDINGS_ENDPOINT = "/fund/holdings"
    BENCHMARKS_ENDPOINT = "/market/benchmarks"
    SEARCH_ENDPOINT = "/fund/search"

    # Rate limit retry settings
    RATE_LIMIT_RETRIES = 3
    RATE_LIMIT_DELAY = 5.0  # seconds

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        max_retries: int = 3,
        retry_delay: float = 2.0,
        timeout: float = 30.0,
    ):
        """
        Initialize the backend data source.

        Args:
            base_url: Backend base URL (defaults to loading from config sources)
            api_key: Bearer token (defaults to loading from config sources)
            max_retries: Maximum attempts per request
            retry_delay: Base delay between retries (seconds)
            timeout: Per-request timeout (seconds)

        Raises:
            DataProviderError: If no backend URL is provided or configured
        """
        if base_url is None or api_key is None:
            settings = load_backend_settings()
            base_url = base_url or settings.get("backend_url")
            api_key = api_key or settings.get("api_key")

        if not base_url:
            raise DataProviderError(
                "Portfolio backend URL is not configured. Please set it using one of:\n"
                "  1. Pass base_url to BackendDataSource\n"
                "  2. Environment variable: export MF_BACKEND_URL=https://...\n"
                "  3. .env file: MF_BACKEND_URL=https://...\n"
                "  4. config/backend.yaml: backend_url: https://..."
            )

        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._timeout = timeout

    @property
    def name(self) -> str:
        return "PortfolioBackend"

    def fetch_portfolio(self, pan: str) -> list[FundRecord]:
        """
        Fetch every fund held under a PAN.

        Response format:
            {"pan": "...", "funds": [{"id", "fundName", "category", "amc",
             "currentNav", "rating", "rank", "transactions": [...],
             "historicalReturns": [...]}]}
        """
        data = self._make_request(self.PORTFOLIO_ENDPOINT, payload={"pan": pan})

        funds = data.get("funds")
        if not isinstance(funds, list):
            raise DataProviderError("Backend portfolio response has no 'funds' list")

        return [parse_fund_record(raw) for raw in funds]

    def fetch_benchmarks(self) -> dict[str, BenchmarkSeries]:
        """
        Fetch benchmark index history.

        Response format:
            {"benchmarks": [{"name": "NIFTY 50",
             "points": [{"date": "2024-01-01", "indexValue": 21700.5}]}]}
        """
        data = self._make_request(self.BENCHMARKS_ENDPOINT)

        benchmarks = data.get("benchmarks")
        if not isinstance(benchmarks, list):
            raise DataProviderError("Backend benchmark response has no 'benchmarks' list")

        result = {}
        for raw in benchmarks:
            series = parse_benchmark_series(raw)
            result[series.name] = series
        return result

    def fetch_holdings(self, fund_id: str) -> dict:
        return self._make_request(self.HOLDINGS_ENDPOINT, payload={"fundId": fund_id})

    def search_funds(self, criteria: FundSearchCriteria) -> list[dict]:
        """
        Search the backend's fund catalogue.

        Response format:
            {"funds": [{"id", "fundName", "category", "amc", "currentNav",
             "riskLevel", "rating", "returns": {...}, ...}]}
        """
        data = self._make_request(self.SEARCH_ENDPOINT, payload=criteria.to_payload())

        funds = data.get("funds")
        if not isinstance(funds, list) or not all(isinstance(f, dict) for f in funds):
            raise DataProviderError("Backend search response has no 'funds' list")
        return funds

    def _make_request(
        self,
        endpoint: str,
        payload: Optional[dict] = None,
    ) -> dict:
        """
        Make an HTTP request to the backend with retry logic.

        A payload sends a JSON POST; no payload sends a GET.

        Args:
            endpoint: API path relative to the base URL
            payload: JSON body for POST requests

        Returns:
            Parsed JSON object

        Raises:
            DataProviderError: On request failure or a malformed response
        """
        url = f"{self._base_url}{endpoint}"
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        last_error = None

        for attempt in range(self._max_retries):
            try:
                if payload is not None:
                    response = requests.post(
                        url, json=payload, headers=headers, timeout=self._timeout
                    )
                else:
                    response = requests.get(url, headers=headers, timeout=self._timeout)

                # Handle rate limiting
                if response.status_code == 429:
                    if attempt < self.RATE_LIMIT_RETRIES - 1:
                        time.sleep(self.RATE_LIMIT_DELAY * (attempt + 1))
                        continue
                    raise DataProviderError(
                        f"Backend rate limit exceeded after {self.RATE_LIMIT_RETRIES} retries"
                    )

                # Client errors will not succeed on retry
                if 400 <= response.status_code < 500:
                    raise DataProviderError(
                        f"Backend rejected request to {endpoint} "
                        f"(HTTP {response.status_code}): {_error_message(response)}"
                    )

                response.raise_for_status()

                data = response.json()
                if not isinstance(data, dict):
                    raise DataProviderError(
                        f"Unexpected response from {endpoint}: expected a JSON object"
                    )
                if "error" in data:
                    raise DataProviderError(f"Backend error: {data['error']}")

                return data

            except requests.exceptions.Timeout:
                last_error = "Request timeout"
            except ValueError as e:
                # Bad JSON or a malformed URL; neither improves on retry
                raise DataProviderError(f"Invalid request or response for {endpoint}: {e}")
            except requests.exceptions.RequestException as e:
                last_error = str(e)

            if attempt < self._max_retries - 1:
                time.sleep(self._retry_delay * (attempt + 1))

        raise DataProviderError(
            f"Failed to fetch {endpoint} after {self._max_retries} attempts: {last_error}"
        )


def parse_fund_record(raw: dict[str, Any]) -> FundRecord:
    """
    Convert a backend fund object into a FundRecord.

    Args:
        raw: Fund object from the portfolio response

    Returns:
        FundRecord

    Raises:
        DataProviderError: If required fields are missing or malformed
    """
    try:
        fund_id = str(raw["id"])
        category = str(raw.get("category", ""))
        transactions = [
            Transaction(
                date=date.fromisoformat(str(t["date"])[:10]),
                amount=_to_decimal(t["amount"]),
                units=_to_decimal(t["units"]),
                nav=_to_decimal(t["nav"]),
            )
            for t in raw.get("transactions", [])
        ]
        return FundRecord(
            fund_id=fund_id,
            fund_name=str(raw.get("fundName", "")),
            category=category,
            amc=str(raw.get("amc", "")),
            asset_class=_asset_class(raw.get("assetClass"), category),
            current_nav=_to_decimal(raw["currentNav"]),
            rating=_to_decimal(raw.get("rating", 0)),
            rank=str(raw.get("rank", "")),
            transactions=transactions,
            historical_returns=[_to_decimal(r) for r in raw.get("historicalReturns", [])],
        )
    except (KeyError, TypeError, ValueError, decimal.InvalidOperation) as e:
        raise DataProviderError(
            f"Malformed fund record {raw.get('id', '?') if isinstance(raw, dict) else '?'}: {e}"
        )


def parse_benchmark_series(raw: dict[str, Any]) -> BenchmarkSeries:
    """
    Convert a backend benchmark object into a BenchmarkSeries.

    Raises:
        DataProviderError: If required fields are missing or malformed
    """
    try:
        points = tuple(
            BenchmarkPoint(
                date=date.fromisoformat(str(p["date"])[:10]),
                index_value=_to_decimal(p["indexValue"]),
            )
            for p in raw["points"]
        )
        return BenchmarkSeries(name=str(raw["name"]), points=points)
    except (KeyError, TypeError, ValueError, decimal.InvalidOperation) as e:
        raise DataProviderError(f"Malformed benchmark series: {e}")


def _to_decimal(value: Any) -> Decimal:
    # Go through str so JSON floats keep their printed digits
    return Decimal(str(value))


def _asset_class(value: Optional[str], category: str) -> AssetClass:
    if value:
        return AssetClass(str(value).upper())
    if "debt" in category.lower():
        return AssetClass.DEBT
    return AssetClass.EQUITY


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict) and "error" in body:
        return str(body["error"])
    return str(body)[:200]
