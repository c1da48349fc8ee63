"""
Fund evaluation and BUY/HOLD/EXIT recommendation.

The recommendation is a first-match decision table over the fund rating,
the volatility of its yearly returns, and whether its average return beats
the benchmark:

    rating <= exit_rating AND underperforms        -> EXIT
    volatility > high threshold AND underperforms  -> EXIT
    rating >= buy_rating AND outperforms           -> BUY
    otherwise                                      -> HOLD

Reasoning lines are built only from the inputs, so identical inputs always
produce an identical Evaluation.
"""

from decimal import Decimal
from typing import Optional, Sequence

import numpy as np

from mf_pilot.analytics.rounding import mean, quantize, to_decimal
from mf_pilot.exceptions import InvalidInputError
from mf_pilot.models import (
    ConsistencyWeights,
    EngineConfig,
    Evaluation,
    EvaluationConfig,
    EvaluationMetrics,
    FundMetrics,
    Recommendation,
)


MAX_RATING = Decimal("5")
SCORE_PLACES = 2


def calculate_volatility(returns: Sequence[Decimal]) -> Decimal:
    """Population standard deviation of yearly returns."""
    values = np.array([float(r) for r in returns], dtype=float)
    return to_decimal(float(np.std(values, ddof=0)))


def calculate_consistency_score(
    returns: Sequence[Decimal],
    avg_return: Decimal,
    volatility: Decimal,
    evaluation_config: Optional[EvaluationConfig] = None,
    weights: Optional[ConsistencyWeights] = None,
) -> Decimal:
    """
    Score how consistently a fund has delivered, on a 0-100 scale.

    Combines three components, each in [0, 1]:
    - fraction of years with a positive return
    - stability: 1 / (1 + volatility / volatility_scale)
    - return: (1 + avg / (|avg| + return_scale)) / 2

    The score rises with average return and falls with volatility.

    Args:
        returns: Yearly percentage returns
        avg_return: Mean of returns
        volatility: Population standard deviation of returns
        evaluation_config: Scales for the stability and return components
        weights: Component weights (default from evaluation_config)

    Returns:
        Score rounded to two decimal places
    """
    evaluation_config = evaluation_config or EvaluationConfig()
    weights = weights or evaluation_config.weights
    _check_weights(weights)

    positive_fraction = Decimal(sum(1 for r in returns if r > 0)) / Decimal(len(returns))
    stability = Decimal("1") / (Decimal("1") + volatility / evaluation_config.volatility_scale)
    return_component = (
        Decimal("1") + avg_return / (abs(avg_return) + evaluation_config.return_scale)
    ) / Decimal("2")

    score = Decimal("100") * (
        weights.positive_years * positive_fraction
        + weights.stability * stability
        + weights.average_return * return_component
    )
    score = min(Decimal("100"), max(Decimal("0"), score))
    return quantize(score, SCORE_PLACES)


def evaluate_fund(
    metrics: Optional[FundMetrics],
    benchmark_return: Decimal | float,
    historical_returns: Sequence[Decimal | float],
    rating: Decimal | float | int,
    weights: Optional[ConsistencyWeights] = None,
    config: Optional[EngineConfig] = None,
    fund_id: Optional[str] = None,
) -> Evaluation:
    """
    Evaluate a fund against its benchmark and recommend BUY, HOLD or EXIT.

    Args:
        metrics: Computed metrics for the fund (supplies fund id and XIRR)
        benchmark_return: Benchmark return as a percentage
        historical_returns: Yearly percentage returns, most recent first
        rating: Fund rating from 0 to 5
        weights: Optional consistency score weights
        config: Engine configuration (thresholds, precision)
        fund_id: Fund identifier when metrics is not available

    Returns:
        Evaluation with recommendation, ordered reasoning and metrics

    Raises:
        InvalidInputError: If historical_returns is empty, rating is out of
            range, or weights are invalid
    """
    config = config or EngineConfig()
    thresholds = config.evaluation
    returns = [to_decimal(r) for r in historical_returns]
    if not returns:
        raise InvalidInputError("At least one historical return is required to evaluate a fund")

    fund_rating = to_decimal(rating)
    if fund_rating < Decimal("0") or fund_rating > MAX_RATING:
        raise InvalidInputError(f"rating must be between 0 and {MAX_RATING}, got {rating}")

    raw_benchmark = to_decimal(benchmark_return)
    raw_avg = mean(returns)
    raw_volatility = calculate_volatility(returns)
    # Decisions use unrounded values; rounding is for display only
    outperforms = raw_avg > raw_benchmark
    volatile = raw_volatility > thresholds.high_volatility_threshold

    benchmark = quantize(raw_benchmark, config.percent_places)
    avg_return = quantize(raw_avg, config.percent_places)
    volatility = quantize(raw_volatility, config.percent_places)
    consistency = calculate_consistency_score(
        returns, avg_return, volatility, thresholds, weights
    )

    recommendation, reasoning = _decide(
        fund_rating, avg_return, volatility, benchmark, outperforms, volatile, thresholds
    )

    return Evaluation(
        fund_id=metrics.fund_id if metrics is not None else (fund_id or ""),
        recommendation=recommendation,
        reasoning=tuple(reasoning),
        metrics=EvaluationMetrics(
            avg_return=avg_return,
            volatility=volatility,
            consistency_score=consistency,
            benchmark_return=benchmark,
            outperforms_benchmark=outperforms,
            rating=fund_rating,
            xirr=metrics.xirr if metrics is not None else None,
        ),
    )


def _decide(
    rating: Decimal,
    avg_return: Decimal,
    volatility: Decimal,
    benchmark: Decimal,
    outperforms: bool,
    volatile: bool,
    thresholds: EvaluationConfig,
) -> tuple[Recommendation, list[str]]:
    comparison = _benchmark_reason(avg_return, benchmark, outperforms)

    if rating <= thresholds.exit_rating and not outperforms:
        return Recommendation.EXIT, [
            f"Rating of {rating} is at or below the exit threshold of {thresholds.exit_rating}",
            comparison,
        ]

    if volatile and not outperforms:
        return Recommendation.EXIT, [
            f"Volatility of {volatility:.2f}% exceeds the high-volatility threshold "
            f"of {thresholds.high_volatility_threshold:.2f}%",
            comparison,
        ]

    if rating >= thresholds.buy_rating and outperforms:
        return Recommendation.BUY, [
            f"Rating of {rating} meets the buy threshold of {thresholds.buy_rating}",
            comparison,
        ]

    return Recommendation.HOLD, [
        comparison,
        f"Rating of {rating} with volatility of {volatility:.2f}% meets neither "
        f"the buy nor the exit criteria",
    ]


def _benchmark_reason(avg_return: Decimal, benchmark: Decimal, outperforms: bool) -> str:
    if outperforms:
        return (
            f"Average return of {avg_return:.2f}% outperforms the benchmark "
            f"return of {benchmark:.2f}%"
        )
    return (
        f"Average return of {avg_return:.2f}% does not beat the benchmark "
        f"return of {benchmark:.2f}%"
    )


def _check_weights(weights: ConsistencyWeights) -> None:
    parts = (weights.positive_years, weights.stability, weights.average_return)
    if any(w < Decimal("0") for w in parts):
        raise InvalidInputError(f"Consistency weights must be non-negative: {weights}")
    if abs(sum(parts, Decimal("0")) - Decimal("1")) > Decimal("0.000001"):
        raise InvalidInputError(f"Consistency weights must sum to 1: {weights}")
