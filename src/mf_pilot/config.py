"""
Configuration loading and management for the mutual fund metrics engine.

This module handles loading engine configuration (tax rules, evaluation
thresholds, solver settings) from YAML files, backend connection settings
from YAML/.env/environment, and validation of configuration parameters.
"""

import os
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import dotenv_values

from mf_pilot.models import (
    AssetClass,
    ConsistencyWeights,
    EngineConfig,
    EvaluationConfig,
    ShortHistoryPolicy,
    SolverConfig,
    TaxConfig,
    TaxRule,
)


# Default paths for configuration files
PROJECT_ROOT = Path(__file__).parent.parent.parent
DEFAULT_ENV_FILE = PROJECT_ROOT / ".env"
DEFAULT_BACKEND_FILE = PROJECT_ROOT / "config" / "backend.yaml"

# Environment variable names for backend settings
BACKEND_URL_VAR = "MF_BACKEND_URL"
BACKEND_API_KEY_VAR = "MF_BACKEND_API_KEY"


class ConfigurationError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""
    pass


def load_backend_settings(
    env_file: str | Path | None = None,
    backend_file: str | Path | None = None,
) -> dict[str, str]:
    """
    Load backend connection settings from multiple sources with priority.

    Sources are checked in this order (later sources override earlier):
    1. config/backend.yaml file
    2. .env file in project root
    3. Environment variables

    Args:
        env_file: Path to .env file (defaults to project root .env)
        backend_file: Path to backend.yaml (defaults to config/backend.yaml)

    Returns:
        Dictionary with any of:
        - backend_url: Base URL of the portfolio backend
        - api_key: Bearer token for the backend

    Raises:
        ConfigurationError: If backend.yaml exists but is not valid YAML
    """
    settings: dict[str, str] = {}

    # 1. Load from config/backend.yaml
    yaml_path = Path(backend_file) if backend_file else DEFAULT_BACKEND_FILE
    if yaml_path.exists():
        try:
            with open(yaml_path, "r") as f:
                yaml_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in backend configuration: {e}")
        if isinstance(yaml_config, dict):
            for key in ("backend_url", "api_key"):
                if yaml_config.get(key):
                    settings[key] = str(yaml_config[key])

    # 2. Load from .env file
    env_path = Path(env_file) if env_file else DEFAULT_ENV_FILE
    if env_path.exists():
        env_values = dotenv_values(env_path)
        if env_values.get(BACKEND_URL_VAR):
            settings["backend_url"] = str(env_values[BACKEND_URL_VAR])
        if env_values.get(BACKEND_API_KEY_VAR):
            settings["api_key"] = str(env_values[BACKEND_API_KEY_VAR])

    # 3. Override with environment variables (highest priority)
    if os.environ.get(BACKEND_URL_VAR):
        settings["backend_url"] = os.environ[BACKEND_URL_VAR]
    if os.environ.get(BACKEND_API_KEY_VAR):
        settings["api_key"] = os.environ[BACKEND_API_KEY_VAR]

    return settings


def get_backend_url() -> str:
    """
    Get the portfolio backend base URL from available configuration sources.

    Returns:
        The backend base URL without a trailing slash

    Raises:
        ConfigurationError: If MF_BACKEND_URL is not configured
    """
    settings = load_backend_settings()
    if not settings.get("backend_url"):
        raise ConfigurationError(
            "Portfolio backend URL is not configured. Please set it using one of:\n"
            f"  1. Environment variable: export {BACKEND_URL_VAR}=https://...\n"
            f"  2. .env file: {BACKEND_URL_VAR}=https://...\n"
            "  3. config/backend.yaml: backend_url: https://..."
        )
    return settings["backend_url"].rstrip("/")


def load_engine_config(config_path: str | Path) -> EngineConfig:
    """
    Load engine configuration from a YAML file.

    Every key is optional; missing keys keep their defaults.

    Args:
        config_path: Path to the YAML configuration file

    Returns:
        EngineConfig with validated settings

    Raises:
        ConfigurationError: If the file cannot be loaded or is invalid
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, "r") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in configuration file: {e}")

    return parse_engine_config(raw_config or {})


def parse_engine_config(raw: dict[str, Any]) -> EngineConfig:
    """
    Parse and validate a raw configuration dictionary into EngineConfig.

    Args:
        raw: Dictionary loaded from YAML

    Returns:
        Validated EngineConfig

    Raises:
        ConfigurationError: If any field is invalid
    """
    if not isinstance(raw, dict):
        raise ConfigurationError("Configuration root must be a mapping")

    defaults = EngineConfig()

    policy_name = str(raw.get("short_history_policy", defaults.short_history_policy.value))
    try:
        policy = ShortHistoryPolicy(policy_name.upper())
    except ValueError:
        valid = ", ".join(p.value for p in ShortHistoryPolicy)
        raise ConfigurationError(
            f"Invalid short_history_policy: {policy_name}. Expected one of: {valid}"
        )

    return EngineConfig(
        tax=_parse_tax_config(raw.get("tax") or {}),
        evaluation=_parse_evaluation_config(raw.get("evaluation") or {}),
        solver=_parse_solver_config(raw.get("solver") or {}),
        short_history_policy=policy,
        percent_places=_parse_int(
            raw.get("percent_places", defaults.percent_places), "percent_places", 0, 10
        ),
        currency_places=_parse_int(
            raw.get("currency_places", defaults.currency_places), "currency_places", 0, 10
        ),
        amount_tolerance=_parse_decimal(
            raw.get("amount_tolerance", defaults.amount_tolerance),
            "amount_tolerance",
            min_val=Decimal("0"),
        ),
    )


def _parse_tax_config(raw: dict[str, Any]) -> TaxConfig:
    """Parse per-asset-class tax rules, starting from the defaults."""
    rules = dict(TaxConfig().rules)

    for class_name, rule_raw in raw.items():
        try:
            asset_class = AssetClass(str(class_name).upper())
        except ValueError:
            raise ConfigurationError(f"Unknown asset class in tax config: {class_name}")

        base = rules.get(asset_class) or TaxRule(
            long_term_days=365,
            long_term_rate=Decimal("0"),
            short_term_rate=Decimal("0"),
        )
        rule_raw = rule_raw or {}
        prefix = f"tax.{asset_class.value}"
        rules[asset_class] = TaxRule(
            long_term_days=_parse_int(
                rule_raw.get("long_term_days", base.long_term_days),
                f"{prefix}.long_term_days",
                min_val=0,
            ),
            long_term_rate=_parse_decimal(
                rule_raw.get("long_term_rate", base.long_term_rate),
                f"{prefix}.long_term_rate",
                min_val=Decimal("0"),
                max_val=Decimal("100"),
            ),
            short_term_rate=_parse_decimal(
                rule_raw.get("short_term_rate", base.short_term_rate),
                f"{prefix}.short_term_rate",
                min_val=Decimal("0"),
                max_val=Decimal("100"),
            ),
            exemption_threshold=_parse_decimal(
                rule_raw.get("exemption_threshold", base.exemption_threshold),
                f"{prefix}.exemption_threshold",
                min_val=Decimal("0"),
            ),
        )

    return TaxConfig(rules=rules)


def _parse_evaluation_config(raw: dict[str, Any]) -> EvaluationConfig:
    """Parse recommendation thresholds and consistency weights."""
    defaults = EvaluationConfig()
    weights_raw = raw.get("weights") or {}

    weights = ConsistencyWeights(
        positive_years=_parse_decimal(
            weights_raw.get("positive_years", defaults.weights.positive_years),
            "evaluation.weights.positive_years",
            min_val=Decimal("0"),
            max_val=Decimal("1"),
        ),
        stability=_parse_decimal(
            weights_raw.get("stability", defaults.weights.stability),
            "evaluation.weights.stability",
            min_val=Decimal("0"),
            max_val=Decimal("1"),
        ),
        average_return=_parse_decimal(
            weights_raw.get("average_return", defaults.weights.average_return),
            "evaluation.weights.average_return",
            min_val=Decimal("0"),
            max_val=Decimal("1"),
        ),
    )
    total = weights.positive_years + weights.stability + weights.average_return
    if total != Decimal("1"):
        raise ConfigurationError(f"evaluation.weights must sum to 1, got {total}")

    exit_rating = _parse_decimal(
        raw.get("exit_rating", defaults.exit_rating),
        "evaluation.exit_rating",
        min_val=Decimal("0"),
        max_val=Decimal("5"),
    )
    buy_rating = _parse_decimal(
        raw.get("buy_rating", defaults.buy_rating),
        "evaluation.buy_rating",
        min_val=Decimal("0"),
        max_val=Decimal("5"),
    )
    if exit_rating >= buy_rating:
        raise ConfigurationError(
            f"evaluation.exit_rating ({exit_rating}) must be below buy_rating ({buy_rating})"
        )

    return EvaluationConfig(
        exit_rating=exit_rating,
        buy_rating=buy_rating,
        high_volatility_threshold=_parse_decimal(
            raw.get("high_volatility_threshold", defaults.high_volatility_threshold),
            "evaluation.high_volatility_threshold",
            min_val=Decimal("0"),
        ),
        volatility_scale=_parse_decimal(
            raw.get("volatility_scale", defaults.volatility_scale),
            "evaluation.volatility_scale",
            min_val=Decimal("0.0001"),
        ),
        return_scale=_parse_decimal(
            raw.get("return_scale", defaults.return_scale),
            "evaluation.return_scale",
            min_val=Decimal("0.0001"),
        ),
        weights=weights,
    )


def _parse_solver_config(raw: dict[str, Any]) -> SolverConfig:
    """Parse XIRR solver settings."""
    defaults = SolverConfig()
    try:
        seed = float(raw.get("seed", defaults.seed))
        lower_bound = float(raw.get("lower_bound", defaults.lower_bound))
        upper_bound = float(raw.get("upper_bound", defaults.upper_bound))
        tolerance = float(raw.get("tolerance", defaults.tolerance))
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid solver setting: {e}")

    if lower_bound <= -1.0 or lower_bound >= upper_bound:
        raise ConfigurationError(
            f"solver bracket must satisfy -1 < lower_bound < upper_bound, "
            f"got [{lower_bound}, {upper_bound}]"
        )
    if seed <= -1.0:
        raise ConfigurationError(f"solver.seed must be greater than -1, got {seed}")
    if tolerance <= 0:
        raise ConfigurationError(f"solver.tolerance must be positive, got {tolerance}")

    return SolverConfig(
        seed=seed,
        lower_bound=lower_bound,
        upper_bound=upper_bound,
        tolerance=tolerance,
        max_iterations=_parse_int(
            raw.get("max_iterations", defaults.max_iterations),
            "solver.max_iterations",
            min_val=1,
        ),
    )


def _parse_decimal(
    value: Any,
    field_name: str,
    min_val: Decimal | None = None,
    max_val: Decimal | None = None,
) -> Decimal:
    """
    Parse a decimal value with optional range validation.

    Args:
        value: The value to parse
        field_name: Name of the field for error messages
        min_val: Minimum allowed value (inclusive)
        max_val: Maximum allowed value (inclusive)

    Returns:
        Parsed Decimal

    Raises:
        ConfigurationError: If the value is invalid or out of range
    """
    try:
        decimal_value = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ConfigurationError(f"Invalid decimal value for {field_name}: {value}")

    if not decimal_value.is_finite():
        raise ConfigurationError(f"Invalid decimal value for {field_name}: {value}")

    if min_val is not None and decimal_value < min_val:
        raise ConfigurationError(
            f"{field_name} must be >= {min_val}, got {decimal_value}"
        )

    if max_val is not None and decimal_value > max_val:
        raise ConfigurationError(
            f"{field_name} must be <= {max_val}, got {decimal_value}"
        )

    return decimal_value


def _parse_int(
    value: Any,
    field_name: str,
    min_val: Optional[int] = None,
    max_val: Optional[int] = None,
) -> int:
    """Parse an integer value with optional range validation."""
    try:
        int_value = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Invalid integer value for {field_name}: {value}")

    if min_val is not None and int_value < min_val:
        raise ConfigurationError(f"{field_name} must be >= {min_val}, got {int_value}")
    if max_val is not None and int_value > max_val:
        raise ConfigurationError(f"{field_name} must be <= {max_val}, got {int_value}")

    return int_value


def config_to_dict(config: EngineConfig) -> dict[str, Any]:
    """Convert an EngineConfig to the YAML-ready dictionary layout."""
    return {
        "short_history_policy": config.short_history_policy.value,
        "percent_places": config.percent_places,
        "currency_places": config.currency_places,
        "amount_tolerance": str(config.amount_tolerance),
        "tax": {
            asset_class.value: {
                "long_term_days": rule.long_term_days,
                "long_term_rate": str(rule.long_term_rate),
                "short_term_rate": str(rule.short_term_rate),
                "exemption_threshold": str(rule.exemption_threshold),
            }
            for asset_class, rule in config.tax.rules.items()
        },
        "evaluation": {
            "exit_rating": str(config.evaluation.exit_rating),
            "buy_rating": str(config.evaluation.buy_rating),
            "high_volatility_threshold": str(config.evaluation.high_volatility_threshold),
            "volatility_scale": str(config.evaluation.volatility_scale),
            "return_scale": str(config.evaluation.return_scale),
            "weights": {
                "positive_years": str(config.evaluation.weights.positive_years),
                "stability": str(config.evaluation.weights.stability),
                "average_return": str(config.evaluation.weights.average_return),
            },
        },
        "solver": {
            "seed": config.solver.seed,
            "lower_bound": config.solver.lower_bound,
            "upper_bound": config.solver.upper_bound,
            "tolerance": config.solver.tolerance,
            "max_iterations": config.solver.max_iterations,
        },
    }


def write_config(config: EngineConfig, output_path: str | Path) -> None:
    """
    Write an EngineConfig to a YAML file.

    Args:
        config: The configuration to write
        output_path: Path to write the YAML file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, "w") as f:
        yaml.dump(config_to_dict(config), f, default_flow_style=False, sort_keys=False)
