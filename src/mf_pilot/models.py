"""
Core data models for the mutual fund portfolio metrics engine.

This module defines the fundamental data structures used throughout the system,
including purchase transactions, fund positions, computed fund metrics,
benchmark series and fund evaluations. All monetary, unit and NAV quantities
use Decimal for precision. Percentages are stored already multiplied by 100
(Decimal("12.34") means 12.34%).
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from mf_pilot.exceptions import InvalidInputError


T = TypeVar("T")


class Recommendation(Enum):
    """Outcome of a fund evaluation."""
    BUY = "BUY"
    HOLD = "HOLD"
    EXIT = "EXIT"


class AssetClass(Enum):
    """Asset class of a fund, used to pick the capital-gains rule."""
    EQUITY = "EQUITY"
    DEBT = "DEBT"


class GainType(Enum):
    """Classification of capital gain/loss for tax purposes."""
    SHORT_TERM = "SHORT_TERM"
    LONG_TERM = "LONG_TERM"


class ShortHistoryPolicy(Enum):
    """How rolling windows behave when fewer yearly returns exist than the window."""
    AVERAGE_AVAILABLE = "AVERAGE_AVAILABLE"      # Mean of whatever entries exist
    REQUIRE_FULL_WINDOW = "REQUIRE_FULL_WINDOW"  # Period reported as absent


class DataSourceKind(Enum):
    """Which kind of data source served a response."""
    LIVE = "LIVE"
    FALLBACK = "FALLBACK"


class FundSortKey(Enum):
    """Ordering requested from the backend fund search."""
    RETURNS_1Y = "returns1y"
    RETURNS_3Y = "returns3y"
    RETURNS_5Y = "returns5y"
    RATING = "rating"
    AUM = "aum"
    EXPENSE = "expense"


class ActionType(Enum):
    """Types of logged actions for the decision log."""
    CONFIG_LOADED = "CONFIG_LOADED"
    METRICS_COMPUTED = "METRICS_COMPUTED"
    FUND_EVALUATED = "FUND_EVALUATED"
    PORTFOLIO_SUMMARIZED = "PORTFOLIO_SUMMARIZED"
    BENCHMARKS_FETCHED = "BENCHMARKS_FETCHED"
    FALLBACK_USED = "FALLBACK_USED"


@dataclass(frozen=True)
class Transaction:
    """
    A single purchase of fund units.

    Transactions are immutable once recorded. Only purchases are modelled;
    redemptions are out of scope.

    Attributes:
        date: Date the units were allotted
        amount: Amount invested (currency units, positive)
        units: Units allotted (positive)
        nav: NAV per unit at allotment (positive)
    """
    date: date
    amount: Decimal
    units: Decimal
    nav: Decimal

    @classmethod
    def from_units(cls, txn_date: date, units: Decimal, nav: Decimal) -> "Transaction":
        """Factory method deriving the amount from units and NAV."""
        return cls(date=txn_date, amount=units * nav, units=units, nav=nav)


@dataclass
class FundPosition:
    """
    A holding in one fund, aggregated from its purchase transactions.

    Derived values are recomputed on every access so the position always
    reflects its current transactions and NAV.

    Attributes:
        fund_id: Identifier of the fund scheme
        transactions: Purchase transactions (any order)
        current_nav: Latest NAV per unit
        fund_name: Display name of the scheme
        category: Fund category (e.g. "Large Cap")
        asset_class: Asset class driving the tax rule
    """
    fund_id: str
    transactions: list[Transaction]
    current_nav: Decimal
    fund_name: str = ""
    category: str = ""
    asset_class: AssetClass = AssetClass.EQUITY

    @property
    def units_held(self) -> Decimal:
        """Total units across all transactions."""
        return sum((t.units for t in self.transactions), Decimal("0"))

    @property
    def invested_amount(self) -> Decimal:
        """Total amount invested across all transactions."""
        return sum((t.amount for t in self.transactions), Decimal("0"))

    @property
    def first_purchase_date(self) -> Optional[date]:
        """Date of the earliest transaction, or None if there are none."""
        if not self.transactions:
            return None
        return min(t.date for t in self.transactions)


@dataclass(frozen=True)
class InvestmentSummary:
    """Invested amount, value and P&L for a set of transactions."""
    invested_amount: Decimal
    current_value: Decimal
    units_held: Decimal
    profit_loss: Decimal
    profit_loss_percentage: Decimal


@dataclass(frozen=True)
class RollingReturns:
    """
    Average yearly return over the most recent 1, 3 and 5 year windows.

    A period is None when it could not be computed under the configured
    short-history policy.
    """
    one_year: Optional[Decimal]
    three_year: Optional[Decimal]
    five_year: Optional[Decimal]

    def to_dict(self) -> dict[str, Optional[str]]:
        return {
            "oneYear": _decimal_or_none(self.one_year),
            "threeYear": _decimal_or_none(self.three_year),
            "fiveYear": _decimal_or_none(self.five_year),
        }


@dataclass(frozen=True)
class TaxLiability:
    """
    Estimated capital-gains tax if the position were redeemed today.

    Attributes:
        is_long_term: Whether the holding period qualifies as long term
        tax_rate: Applicable rate as a percentage
        taxable_gain: Gain subject to tax after any exemption
        estimated_tax: Tax amount in currency units
    """
    is_long_term: bool
    tax_rate: Decimal
    taxable_gain: Decimal
    estimated_tax: Decimal

    @property
    def gain_type(self) -> GainType:
        return GainType.LONG_TERM if self.is_long_term else GainType.SHORT_TERM


@dataclass(frozen=True)
class FundMetrics:
    """
    Engine output for one fund.

    Metrics that could not be computed (e.g. XIRR did not converge) are None,
    never a placeholder zero, so consumers cannot mistake "unknown" for
    "zero return".
    """
    fund_id: str
    as_of_date: date
    current_nav: Decimal
    invested_amount: Decimal
    current_value: Decimal
    units_held: Decimal
    profit_loss: Decimal
    profit_loss_percentage: Decimal
    xirr: Optional[Decimal]
    cagr: Optional[Decimal]
    rolling_returns: Optional[RollingReturns]
    holding_period_days: int
    is_long_term: bool
    tax_rate: Decimal
    estimated_tax: Decimal
    fund_name: str = ""
    category: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Serialize with the field names the dashboard consumes."""
        return {
            "fundId": self.fund_id,
            "fundName": self.fund_name,
            "category": self.category,
            "asOfDate": self.as_of_date.isoformat(),
            "currentNav": str(self.current_nav),
            "investedAmount": str(self.invested_amount),
            "currentValue": str(self.current_value),
            "units": str(self.units_held),
            "profitLoss": str(self.profit_loss),
            "profitLossPercentage": str(self.profit_loss_percentage),
            "xirr": _decimal_or_none(self.xirr),
            "cagr": _decimal_or_none(self.cagr),
            "rollingReturns": self.rolling_returns.to_dict() if self.rolling_returns else None,
            "holdingPeriodDays": self.holding_period_days,
            "tax": {
                "isLongTerm": self.is_long_term,
                "taxRate": str(self.tax_rate),
                "estimatedTax": str(self.estimated_tax),
            },
        }


@dataclass(frozen=True)
class BenchmarkPoint:
    """Index level on a given date."""
    date: date
    index_value: Decimal


@dataclass(frozen=True)
class BenchmarkSeries:
    """
    Read-only index history for a reference benchmark.

    Points are sorted ascending by date on construction; two points on the
    same date raise InvalidInputError.

    Attributes:
        name: Benchmark name (e.g. "NIFTY 50")
        points: Index levels by date
    """
    name: str
    points: tuple[BenchmarkPoint, ...]

    def __post_init__(self) -> None:
        points = tuple(sorted(self.points, key=lambda p: p.date))
        duplicated = sorted({a.date for a, b in zip(points, points[1:]) if a.date == b.date})
        if duplicated:
            raise InvalidInputError(
                f"Benchmark {self.name} has duplicate dates: "
                f"{[d.isoformat() for d in duplicated[:5]]}"
            )
        object.__setattr__(self, "points", points)

    def __len__(self) -> int:
        return len(self.points)

    def points_until(self, as_of_date: date) -> tuple[BenchmarkPoint, ...]:
        """Points dated on or before as_of_date."""
        return tuple(p for p in self.points if p.date <= as_of_date)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "points": [
                {"date": p.date.isoformat(), "indexValue": str(p.index_value)}
                for p in self.points
            ],
        }


@dataclass(frozen=True)
class EvaluationMetrics:
    """
    Statistics behind a fund recommendation.

    Attributes:
        avg_return: Mean of yearly returns (percentage)
        volatility: Population standard deviation of yearly returns (percentage)
        consistency_score: 0-100 score, higher is more consistent
        benchmark_return: Benchmark return the fund is compared against
        outperforms_benchmark: avg_return > benchmark_return
        rating: Fund rating (0-5)
        xirr: Fund XIRR, if known
    """
    avg_return: Decimal
    volatility: Decimal
    consistency_score: Decimal
    benchmark_return: Decimal
    outperforms_benchmark: bool
    rating: Decimal
    xirr: Optional[Decimal] = None


@dataclass(frozen=True)
class Evaluation:
    """BUY/HOLD/EXIT recommendation with its ordered reasoning."""
    fund_id: str
    recommendation: Recommendation
    reasoning: tuple[str, ...]
    metrics: EvaluationMetrics

    def to_dict(self) -> dict[str, Any]:
        return {
            "fundId": self.fund_id,
            "recommendation": self.recommendation.value,
            "reasoning": list(self.reasoning),
            "metrics": {
                "rating": str(self.metrics.rating),
                "avgReturn": str(self.metrics.avg_return),
                "volatility": str(self.metrics.volatility),
                "consistencyScore": str(self.metrics.consistency_score),
                "benchmarkReturn": str(self.metrics.benchmark_return),
                "outperformsBenchmark": self.metrics.outperforms_benchmark,
                "xirr": _decimal_or_none(self.metrics.xirr),
            },
        }


@dataclass
class FundRecord:
    """
    One fund in an investor's portfolio as delivered by the backend.

    Attributes:
        fund_id: Scheme identifier
        fund_name: Scheme name
        category: Fund category
        amc: Asset management company
        asset_class: Asset class for tax purposes
        current_nav: Latest NAV
        rating: Fund rating (0-5)
        rank: Category rank label (e.g. "3/45")
        transactions: Purchase transactions
        historical_returns: Yearly percentage returns, most recent first
    """
    fund_id: str
    fund_name: str
    category: str
    amc: str
    asset_class: AssetClass
    current_nav: Decimal
    rating: Decimal
    rank: str
    transactions: list[Transaction]
    historical_returns: list[Decimal] = field(default_factory=list)

    def to_position(self) -> FundPosition:
        """View this record as a FundPosition."""
        return FundPosition(
            fund_id=self.fund_id,
            transactions=list(self.transactions),
            current_nav=self.current_nav,
            fund_name=self.fund_name,
            category=self.category,
            asset_class=self.asset_class,
        )


@dataclass(frozen=True)
class FundSearchCriteria:
    """
    Filters and ordering for a fund search.

    None (or an empty query) means "no filter" for that field.

    Attributes:
        query: Free text matched against fund name, AMC or category
        category: Fund category (e.g. "Large Cap")
        risk_level: Risk level label (e.g. "Moderate to High")
        min_rating: Minimum fund rating (0-5)
        sort_by: Result ordering
    """
    query: str = ""
    category: Optional[str] = None
    risk_level: Optional[str] = None
    min_rating: Optional[Decimal] = None
    sort_by: FundSortKey = FundSortKey.RETURNS_3Y

    def __post_init__(self) -> None:
        if self.min_rating is not None and not Decimal("0") <= self.min_rating <= Decimal("5"):
            raise InvalidInputError(f"min_rating must be between 0 and 5, got {self.min_rating}")

    def to_payload(self) -> dict[str, Any]:
        """Request body for the backend search endpoint."""
        return {
            "query": self.query.strip(),
            "category": self.category,
            "riskLevel": self.risk_level,
            "minRating": float(self.min_rating) if self.min_rating is not None else None,
            "sortBy": self.sort_by.value,
        }


@dataclass(frozen=True)
class PortfolioSummary:
    """Totals across every fund held under one PAN."""
    pan: str
    funds: tuple[FundMetrics, ...]
    total_invested_amount: Decimal
    total_current_value: Decimal
    total_profit_loss: Decimal
    total_profit_loss_percentage: Optional[Decimal]
    fetched_at: datetime
    source: DataSourceKind = DataSourceKind.LIVE

    def to_dict(self) -> dict[str, Any]:
        return {
            "pan": self.pan,
            "funds": [f.to_dict() for f in self.funds],
            "totalInvestedAmount": str(self.total_invested_amount),
            "totalCurrentValue": str(self.total_current_value),
            "totalProfitLoss": str(self.total_profit_loss),
            "totalProfitLossPercentage": _decimal_or_none(self.total_profit_loss_percentage),
            "fetchedAt": self.fetched_at.isoformat(),
            "source": self.source.value,
        }


@dataclass(frozen=True)
class SourcedData(Generic[T]):
    """
    A response tagged with the data source that served it.

    Attributes:
        data: The payload
        source: LIVE or FALLBACK
        provider_name: Name of the concrete provider
    """
    data: T
    source: DataSourceKind
    provider_name: str

    @property
    def is_fallback(self) -> bool:
        return self.source == DataSourceKind.FALLBACK


@dataclass
class DecisionLogEntry:
    """
    Entry for the append-only decision log.

    Attributes:
        timestamp: When the action occurred
        action_type: Type of action
        subject: PAN or fund id involved (if applicable)
        details: JSON-serializable details dictionary
    """
    timestamp: datetime
    action_type: ActionType
    subject: Optional[str]
    details: dict

    @classmethod
    def create(
        cls,
        action_type: ActionType,
        subject: Optional[str],
        details: dict,
    ) -> "DecisionLogEntry":
        """Factory method with auto-generated timestamp."""
        return cls(
            timestamp=datetime.now(),
            action_type=action_type,
            subject=subject,
            details=details,
        )


def _decimal_or_none(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)


@dataclass(frozen=True)
class TaxRule:
    """
    Capital-gains rule for one asset class.

    Attributes:
        long_term_days: Holding period (days) that must be exceeded for long term
        long_term_rate: LTCG rate as a percentage
        short_term_rate: STCG rate as a percentage
        exemption_threshold: Long-term gain exempt from tax (currency units)
    """
    long_term_days: int
    long_term_rate: Decimal
    short_term_rate: Decimal
    exemption_threshold: Decimal = Decimal("0")


def _default_tax_rules() -> dict[AssetClass, TaxRule]:
    return {
        AssetClass.EQUITY: TaxRule(
            long_term_days=365,
            long_term_rate=Decimal("12.5"),
            short_term_rate=Decimal("20"),
            exemption_threshold=Decimal("125000"),
        ),
        AssetClass.DEBT: TaxRule(
            long_term_days=730,
            long_term_rate=Decimal("12.5"),
            short_term_rate=Decimal("30"),
            exemption_threshold=Decimal("0"),
        ),
    }


@dataclass(frozen=True)
class TaxConfig:
    """Capital-gains rules by asset class (India defaults)."""
    rules: dict[AssetClass, TaxRule] = field(default_factory=_default_tax_rules)

    def rule_for(self, asset_class: AssetClass) -> Optional[TaxRule]:
        return self.rules.get(asset_class)


@dataclass(frozen=True)
class ConsistencyWeights:
    """
    Weights of the consistency score components (must sum to 1).

    Attributes:
        positive_years: Weight of the fraction of years with a positive return
        stability: Weight of the inverse-volatility component
        average_return: Weight of the average-return component
    """
    positive_years: Decimal = Decimal("0.4")
    stability: Decimal = Decimal("0.4")
    average_return: Decimal = Decimal("0.2")


@dataclass(frozen=True)
class EvaluationConfig:
    """
    Thresholds for the BUY/HOLD/EXIT decision table.

    Attributes:
        exit_rating: Rating at or below which an underperformer is exited
        buy_rating: Rating at or above which an outperformer is bought
        high_volatility_threshold: Volatility (percentage) considered high
        volatility_scale: Volatility at which the stability component halves
        return_scale: Average return at which the return component reaches 0.75
        weights: Default consistency score weights
    """
    exit_rating: Decimal = Decimal("2")
    buy_rating: Decimal = Decimal("4")
    high_volatility_threshold: Decimal = Decimal("20")
    volatility_scale: Decimal = Decimal("10")
    return_scale: Decimal = Decimal("10")
    weights: ConsistencyWeights = field(default_factory=ConsistencyWeights)


@dataclass(frozen=True)
class SolverConfig:
    """
    Root-finding settings for XIRR.

    Attributes:
        seed: Newton-Raphson starting rate (0.1 = 10%)
        lower_bound: Bisection bracket lower rate
        upper_bound: Bisection bracket upper rate
        tolerance: Absolute NPV error accepted as converged
        max_iterations: Iteration cap per method
    """
    seed: float = 0.1
    lower_bound: float = -0.99
    upper_bound: float = 10.0
    tolerance: float = 1e-6
    max_iterations: int = 100


@dataclass(frozen=True)
class EngineConfig:
    """
    Configuration passed into the engine's entry points.

    Attributes:
        tax: Capital-gains rules
        evaluation: Recommendation thresholds
        solver: XIRR solver settings
        short_history_policy: Rolling-return behaviour for short histories
        percent_places: Decimal places kept for percentages
        currency_places: Decimal places kept for currency amounts
        amount_tolerance: Allowed |amount - units * nav| per transaction
    """
    tax: TaxConfig = field(default_factory=TaxConfig)
    evaluation: EvaluationConfig = field(default_factory=EvaluationConfig)
    solver: SolverConfig = field(default_factory=SolverConfig)
    short_history_policy: ShortHistoryPolicy = ShortHistoryPolicy.AVERAGE_AVAILABLE
    percent_places: int = 4
    currency_places: int = 2
    amount_tolerance: Decimal = Decimal("1.00")
