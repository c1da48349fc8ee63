"""
Data loading and saving functions for CSV files.

Handles ingestion of purchase transactions, benchmark index history and
yearly fund returns, as well as output of computed fund metrics.
"""

import decimal
from collections import defaultdict
from decimal import Decimal
from pathlib import Path
from typing import Optional, Sequence

import pandas as pd

from mf_pilot.models import (
    BenchmarkPoint,
    BenchmarkSeries,
    FundMetrics,
    FundPosition,
    Transaction,
)
from mf_pilot.data.schemas import (
    BENCHMARK_SCHEMA,
    FUND_METRICS_SCHEMA,
    HISTORICAL_RETURNS_SCHEMA,
    TRANSACTIONS_SCHEMA,
    FileSchema,
)


class DataLoadError(Exception):
    """Raised when data cannot be loaded or is invalid."""
    pass


def load_transactions(
    file_path: str | Path,
    fund_id: Optional[str] = None,
) -> dict[str, list[Transaction]]:
    """
    Load purchase transactions from CSV file.

    A blank amount is derived as units * nav.

    Args:
        file_path: Path to CSV file with columns: fund_id, date, amount, units, nav
        fund_id: If provided, load only this fund's transactions

    Returns:
        Dictionary mapping fund_id -> transactions sorted by date

    Raises:
        DataLoadError: If file cannot be loaded, is invalid, or contains no
            transactions for the requested fund
    """
    file_path = Path(file_path)
    df = _load_csv(file_path, TRANSACTIONS_SCHEMA)
    df["fund_id"] = df["fund_id"].str.strip()

    if fund_id is not None:
        df = df[df["fund_id"] == fund_id].copy()
        if df.empty:
            raise DataLoadError(f"No transactions for fund {fund_id} in {file_path}")

    df["date"] = _parse_dates(df["date"], file_path)

    transactions: dict[str, list[Transaction]] = defaultdict(list)
    for row_num, row in df.iterrows():
        units = _to_decimal(row["units"], "units", file_path, row_num)
        nav = _to_decimal(row["nav"], "nav", file_path, row_num)
        if pd.isna(row["amount"]):
            txn = Transaction.from_units(row["date"], units, nav)
        else:
            txn = Transaction(
                date=row["date"],
                amount=_to_decimal(row["amount"], "amount", file_path, row_num),
                units=units,
                nav=nav,
            )
        transactions[str(row["fund_id"])].append(txn)

    return {fid: sorted(txns, key=lambda t: t.date) for fid, txns in transactions.items()}


def load_positions(
    file_path: str | Path,
    current_navs: dict[str, Decimal],
) -> list[FundPosition]:
    """
    Load transactions and build a FundPosition per fund.

    Args:
        file_path: Transactions CSV (optional fund_name, category columns)
        current_navs: Latest NAV by fund_id

    Returns:
        List of FundPosition objects, in fund_id order

    Raises:
        DataLoadError: If a fund has no current NAV
    """
    file_path = Path(file_path)
    by_fund = load_transactions(file_path)
    labels = _fund_labels(file_path)

    positions = []
    for fid in sorted(by_fund):
        if fid not in current_navs:
            raise DataLoadError(f"No current NAV provided for fund {fid}")
        name, category = labels.get(fid, ("", ""))
        positions.append(
            FundPosition(
                fund_id=fid,
                transactions=by_fund[fid],
                current_nav=current_navs[fid],
                fund_name=name,
                category=category,
            )
        )
    return positions


def load_benchmark_series(
    file_path: str | Path,
    name: Optional[str] = None,
) -> BenchmarkSeries:
    """
    Load benchmark index history from CSV file.

    Args:
        file_path: Path to CSV file with columns: date, index_value
        name: Benchmark name (default: file stem)

    Returns:
        BenchmarkSeries sorted by date

    Raises:
        DataLoadError: If file cannot be loaded, is invalid, or has duplicate dates
    """
    file_path = Path(file_path)
    df = _load_csv(file_path, BENCHMARK_SCHEMA)
    df["date"] = _parse_dates(df["date"], file_path)

    duplicated = df["date"][df["date"].duplicated()]
    if not duplicated.empty:
        raise DataLoadError(
            f"File {file_path} has duplicate dates: {sorted(set(duplicated))[:5]}"
        )

    points = tuple(
        BenchmarkPoint(
            date=row["date"],
            index_value=_to_decimal(row["index_value"], "index_value", file_path, row_num),
        )
        for row_num, row in df.iterrows()
    )
    return BenchmarkSeries(name=name or file_path.stem, points=points)


def load_historical_returns(file_path: str | Path) -> dict[str, list[Decimal]]:
    """
    Load yearly fund returns from CSV file.

    Args:
        file_path: Path to CSV file with columns: fund_id, year, return_pct

    Returns:
        Dictionary mapping fund_id -> returns ordered most recent year first

    Raises:
        DataLoadError: If file cannot be loaded or is invalid
    """
    file_path = Path(file_path)
    df = _load_csv(file_path, HISTORICAL_RETURNS_SCHEMA)
    df["fund_id"] = df["fund_id"].str.strip()

    try:
        df["year"] = df["year"].astype(int)
    except ValueError as e:
        raise DataLoadError(f"Invalid year in {file_path}: {e}")

    df = df.sort_values(["fund_id", "year"], ascending=[True, False])

    returns: dict[str, list[Decimal]] = defaultdict(list)
    for row_num, row in df.iterrows():
        returns[str(row["fund_id"])].append(
            _to_decimal(row["return_pct"], "return_pct", file_path, row_num)
        )
    return dict(returns)


def save_fund_metrics(
    metrics: Sequence[FundMetrics],
    output_path: str | Path,
) -> Path:
    """
    Save fund metrics to CSV file.

    Decimals are written as strings so no precision is lost; metrics that
    could not be computed are left blank.

    Args:
        metrics: FundMetrics to save
        output_path: Path for output CSV file

    Returns:
        Path to the saved file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    records = []
    for m in metrics:
        rolling = m.rolling_returns
        records.append({
            "fund_id": m.fund_id,
            "fund_name": m.fund_name,
            "category": m.category,
            "as_of_date": m.as_of_date.isoformat(),
            "current_nav": str(m.current_nav),
            "invested_amount": str(m.invested_amount),
            "current_value": str(m.current_value),
            "units_held": str(m.units_held),
            "profit_loss": str(m.profit_loss),
            "profit_loss_pct": str(m.profit_loss_percentage),
            "xirr": _str_or_blank(m.xirr),
            "cagr": _str_or_blank(m.cagr),
            "return_1y": _str_or_blank(rolling.one_year if rolling else None),
            "return_3y": _str_or_blank(rolling.three_year if rolling else None),
            "return_5y": _str_or_blank(rolling.five_year if rolling else None),
            "holding_period_days": m.holding_period_days,
            "gain_type": "LONG_TERM" if m.is_long_term else "SHORT_TERM",
            "tax_rate": str(m.tax_rate),
            "estimated_tax": str(m.estimated_tax),
        })

    df = pd.DataFrame(records, columns=FUND_METRICS_SCHEMA.all_columns)
    df.to_csv(output_path, index=False)

    return output_path


def _fund_labels(file_path: Path) -> dict[str, tuple[str, str]]:
    """First non-blank fund_name/category per fund, if the columns exist."""
    df = _load_csv(file_path, TRANSACTIONS_SCHEMA)
    labels: dict[str, tuple[str, str]] = {}
    for _, row in df.iterrows():
        fid = str(row["fund_id"]).strip()
        if fid in labels:
            continue
        name = row.get("fund_name")
        category = row.get("category")
        labels[fid] = (
            "" if name is None or pd.isna(name) else str(name),
            "" if category is None or pd.isna(category) else str(category),
        )
    return labels


def _parse_dates(column: pd.Series, file_path: Path) -> pd.Series:
    try:
        return pd.to_datetime(column, format="%Y-%m-%d").dt.date
    except (ValueError, TypeError) as e:
        raise DataLoadError(f"Invalid date in {file_path}: {e}")


def _to_decimal(value, field_name: str, file_path: Path, row_num) -> Decimal:
    try:
        result = Decimal(str(value).strip())
    except (decimal.InvalidOperation, ValueError):
        raise DataLoadError(
            f"Invalid {field_name} '{value}' in {file_path} (row {row_num})"
        )
    if not result.is_finite():
        raise DataLoadError(
            f"Invalid {field_name} '{value}' in {file_path} (row {row_num})"
        )
    return result


def _str_or_blank(value: Optional[Decimal]) -> str:
    return "" if value is None else str(value)


def _load_csv(file_path: Path, schema: FileSchema) -> pd.DataFrame:
    """
    Load a CSV file and validate against schema.

    Every column is read as text so decimal values keep their exact digits.

    Args:
        file_path: Path to CSV file
        schema: Expected file schema

    Returns:
        Loaded DataFrame

    Raises:
        DataLoadError: If file cannot be loaded, has missing columns, or has
            blank values in a non-nullable column
    """
    if not file_path.exists():
        raise DataLoadError(f"File not found: {file_path}")

    try:
        df = pd.read_csv(file_path, dtype=str)
    except Exception as e:
        raise DataLoadError(f"Failed to load CSV file {file_path}: {e}")

    # Validate columns
    is_valid, missing = schema.validate_columns(df.columns.tolist())
    if not is_valid:
        raise DataLoadError(
            f"File {file_path} is missing required columns: {missing}"
        )

    for column in schema.non_nullable_columns:
        blank = df[column].isna()
        if blank.any():
            raise DataLoadError(
                f"File {file_path} has blank '{column}' values "
                f"(rows {list(df.index[blank])[:5]})"
            )

    return df
