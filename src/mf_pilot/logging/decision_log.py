"""
Append-only decision logging for the mutual fund metrics engine.

Computed metrics, evaluations and every use of fallback data are logged
with timestamps to support auditability and reproducibility.
"""

import json
from datetime import datetime, date
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

from mf_pilot.models import (
    ActionType,
    BenchmarkSeries,
    DecisionLogEntry,
    EngineConfig,
    Evaluation,
    FundMetrics,
    PortfolioSummary,
)


class DecisionLogger:
    """
    Append-only decision logger.

    Writes all decisions to a JSONL file for audit purposes.
    Each line is a complete JSON object representing one action.
    """

    def __init__(self, log_path: str | Path):
        """
        Initialize the decision logger.

        Args:
            log_path: Path to the log file (will be created if not exists)
        """
        self.log_path = Path(log_path)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

    def log(self, entry: DecisionLogEntry) -> None:
        """
        Write a decision log entry.

        Args:
            entry: DecisionLogEntry to write
        """
        record = {
            "timestamp": entry.timestamp.isoformat(),
            "action_type": entry.action_type.value,
            "subject": entry.subject,
            "details": entry.details,
        }

        with open(self.log_path, "a") as f:
            f.write(json.dumps(record, cls=DecimalEncoder) + "\n")

    def log_config_loaded(
        self,
        config: EngineConfig,
        config_path: str,
    ) -> None:
        """
        Log configuration loading.

        Args:
            config: Loaded configuration
            config_path: Path to configuration file
        """
        details = {
            "config_path": config_path,
            "short_history_policy": config.short_history_policy.value,
            "percent_places": config.percent_places,
            "exit_rating": str(config.evaluation.exit_rating),
            "buy_rating": str(config.evaluation.buy_rating),
            "high_volatility_threshold": str(config.evaluation.high_volatility_threshold),
            "asset_classes": sorted(a.value for a in config.tax.rules),
        }

        entry = DecisionLogEntry.create(
            action_type=ActionType.CONFIG_LOADED,
            subject=None,
            details=details,
        )
        self.log(entry)

    def log_metrics_computed(self, metrics: FundMetrics) -> None:
        """
        Log the metrics computed for one fund.

        Args:
            metrics: Fund metrics result
        """
        details = {
            "as_of_date": metrics.as_of_date.isoformat(),
            "invested_amount": metrics.invested_amount,
            "current_value": metrics.current_value,
            "profit_loss": metrics.profit_loss,
            "xirr": metrics.xirr,
            "cagr": metrics.cagr,
            "holding_period_days": metrics.holding_period_days,
            "is_long_term": metrics.is_long_term,
            "estimated_tax": metrics.estimated_tax,
        }

        entry = DecisionLogEntry.create(
            action_type=ActionType.METRICS_COMPUTED,
            subject=metrics.fund_id,
            details=details,
        )
        self.log(entry)

    def log_fund_evaluated(
        self,
        evaluation: Evaluation,
        benchmark_name: Optional[str] = None,
    ) -> None:
        """
        Log a fund recommendation and the reasoning behind it.

        Args:
            evaluation: Evaluation result
            benchmark_name: Benchmark the fund was compared against
        """
        details = {
            "recommendation": evaluation.recommendation.value,
            "reasoning": list(evaluation.reasoning),
            "benchmark": benchmark_name,
            "rating": evaluation.metrics.rating,
            "avg_return": evaluation.metrics.avg_return,
            "volatility": evaluation.metrics.volatility,
            "consistency_score": evaluation.metrics.consistency_score,
            "benchmark_return": evaluation.metrics.benchmark_return,
        }

        entry = DecisionLogEntry.create(
            action_type=ActionType.FUND_EVALUATED,
            subject=evaluation.fund_id,
            details=details,
        )
        self.log(entry)

    def log_portfolio_summarized(self, summary: PortfolioSummary) -> None:
        """
        Log a portfolio summary.

        Args:
            summary: Portfolio summary result
        """
        details = {
            "source": summary.source.value,
            "fund_count": len(summary.funds),
            "total_invested_amount": summary.total_invested_amount,
            "total_current_value": summary.total_current_value,
            "total_profit_loss": summary.total_profit_loss,
            "fund_ids": [f.fund_id for f in summary.funds],
        }

        entry = DecisionLogEntry.create(
            action_type=ActionType.PORTFOLIO_SUMMARIZED,
            subject=summary.pan,
            details=details,
        )
        self.log(entry)

    def log_benchmarks_fetched(
        self,
        series: dict[str, BenchmarkSeries],
        provider_name: str,
    ) -> None:
        """
        Log a benchmark fetch.

        Args:
            series: Benchmark series by name
            provider_name: Provider that served the series
        """
        details = {
            "provider": provider_name,
            "benchmarks": {
                name: {
                    "points": len(s),
                    "first_date": s.points[0].date if s.points else None,
                    "last_date": s.points[-1].date if s.points else None,
                }
                for name, s in series.items()
            },
        }

        entry = DecisionLogEntry.create(
            action_type=ActionType.BENCHMARKS_FETCHED,
            subject=None,
            details=details,
        )
        self.log(entry)

    def log_fallback_used(
        self,
        operation: str,
        primary_name: str,
        fallback_name: str,
        error: Exception,
        subject: Optional[str] = None,
    ) -> None:
        """
        Log that a primary data source failed and fallback data was served.

        Args:
            operation: Data source method that failed over
            primary_name: Name of the failed source
            fallback_name: Name of the source that served the response
            error: Error raised by the primary source
            subject: PAN or fund id involved (if applicable)
        """
        details = {
            "operation": operation,
            "primary": primary_name,
            "fallback": fallback_name,
            "error_type": type(error).__name__,
            "error": str(error),
        }

        entry = DecisionLogEntry.create(
            action_type=ActionType.FALLBACK_USED,
            subject=subject,
            details=details,
        )
        self.log(entry)

    def read_log(self) -> list[DecisionLogEntry]:
        """
        Read all entries from the log file.

        Returns:
            List of DecisionLogEntry objects
        """
        if not self.log_path.exists():
            return []

        entries = []
        with open(self.log_path, "r") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                record = json.loads(line)
                entries.append(
                    DecisionLogEntry(
                        timestamp=datetime.fromisoformat(record["timestamp"]),
                        action_type=ActionType(record["action_type"]),
                        subject=record.get("subject"),
                        details=record.get("details", {}),
                    )
                )

        return entries

    def filter_by_subject(self, subject: str) -> list[DecisionLogEntry]:
        """
        Get log entries for a specific PAN or fund.

        Args:
            subject: PAN or fund id to filter by

        Returns:
            Filtered list of entries
        """
        return [e for e in self.read_log() if e.subject == subject]

    def filter_by_action_type(
        self,
        action_type: ActionType,
    ) -> list[DecisionLogEntry]:
        """
        Get log entries of a specific action type.

        Args:
            action_type: Action type to filter by

        Returns:
            Filtered list of entries
        """
        return [e for e in self.read_log() if e.action_type == action_type]


class DecimalEncoder(json.JSONEncoder):
    """JSON encoder that handles Decimal and date types."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, (date, datetime)):
            return obj.isoformat()
        return super().default(obj)


# Global logger instance (initialized on first use)
_global_logger: Optional[DecisionLogger] = None


def get_logger(log_path: Optional[str | Path] = None) -> DecisionLogger:
    """
    Get or create the global decision logger.

    Args:
        log_path: Optional path to initialize logger

    Returns:
        DecisionLogger instance
    """
    global _global_logger

    if _global_logger is None:
        if log_path is None:
            log_path = "output/decision_log.jsonl"
        _global_logger = DecisionLogger(log_path)
    elif log_path is not None:
        # Allow reinitializing with new path
        _global_logger = DecisionLogger(log_path)

    return _global_logger


def log_action(
    action_type: ActionType,
    subject: Optional[str],
    details: dict,
    log_path: Optional[str | Path] = None,
) -> None:
    """
    Convenience function to log an action.

    Args:
        action_type: Type of action
        subject: PAN or fund id (optional)
        details: Action details dictionary
        log_path: Optional path to log file
    """
    logger = get_logger(log_path)
    entry = DecisionLogEntry.create(
        action_type=action_type,
        subject=subject,
        details=details,
    )
    logger.log(entry)
