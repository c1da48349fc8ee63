"""
Data schemas for CSV file validation.

Defines expected columns and data types for all input and output files.
"""

from dataclasses import dataclass


@dataclass
class ColumnSchema:
    """Schema definition for a single column."""
    name: str
    dtype: str  # pandas dtype string
    required: bool = True
    nullable: bool = False


@dataclass
class FileSchema:
    """Schema definition for a file."""
    name: str
    columns: list[ColumnSchema]
    description: str

    @property
    def required_columns(self) -> list[str]:
        """Get list of required column names."""
        return [c.name for c in self.columns if c.required]

    @property
    def non_nullable_columns(self) -> list[str]:
        """Required columns that must have a value on every row."""
        return [c.name for c in self.columns if c.required and not c.nullable]

    @property
    def all_columns(self) -> list[str]:
        """Get list of all column names."""
        return [c.name for c in self.columns]

    def validate_columns(self, df_columns: list[str]) -> tuple[bool, list[str]]:
        """
        Validate that a dataframe has the required columns.

        Args:
            df_columns: List of column names from the dataframe

        Returns:
            Tuple of (is_valid, list of missing columns)
        """
        missing = [col for col in self.required_columns if col not in df_columns]
        return len(missing) == 0, missing


# Purchase Transactions Schema
TRANSACTIONS_SCHEMA = FileSchema(
    name="transactions",
    description="Purchase transactions by fund (amount may be blank to derive units * nav)",
    columns=[
        ColumnSchema(name="fund_id", dtype="str", required=True),
        ColumnSchema(name="date", dtype="datetime64[ns]", required=True),
        ColumnSchema(name="amount", dtype="str", required=True, nullable=True),
        ColumnSchema(name="units", dtype="str", required=True),
        ColumnSchema(name="nav", dtype="str", required=True),
        ColumnSchema(name="fund_name", dtype="str", required=False, nullable=True),
        ColumnSchema(name="category", dtype="str", required=False, nullable=True),
    ],
)

# Benchmark Index History Schema
BENCHMARK_SCHEMA = FileSchema(
    name="benchmark",
    description="Benchmark index level by date",
    columns=[
        ColumnSchema(name="date", dtype="datetime64[ns]", required=True),
        ColumnSchema(name="index_value", dtype="str", required=True),
    ],
)

# Yearly Historical Returns Schema
HISTORICAL_RETURNS_SCHEMA = FileSchema(
    name="historical_returns",
    description="Calendar-year percentage returns by fund",
    columns=[
        ColumnSchema(name="fund_id", dtype="str", required=True),
        ColumnSchema(name="year", dtype="int64", required=True),
        ColumnSchema(name="return_pct", dtype="str", required=True),
    ],
)

# Fund Metrics Output Schema
FUND_METRICS_SCHEMA = FileSchema(
    name="fund_metrics",
    description="Computed metrics, one row per fund",
    columns=[
        ColumnSchema(name="fund_id", dtype="str", required=True),
        ColumnSchema(name="fund_name", dtype="str", required=True, nullable=True),
        ColumnSchema(name="category", dtype="str", required=True, nullable=True),
        ColumnSchema(name="as_of_date", dtype="datetime64[ns]", required=True),
        ColumnSchema(name="current_nav", dtype="str", required=True),
        ColumnSchema(name="invested_amount", dtype="str", required=True),
        ColumnSchema(name="current_value", dtype="str", required=True),
        ColumnSchema(name="units_held", dtype="str", required=True),
        ColumnSchema(name="profit_loss", dtype="str", required=True),
        ColumnSchema(name="profit_loss_pct", dtype="str", required=True),
        ColumnSchema(name="xirr", dtype="str", required=True, nullable=True),
        ColumnSchema(name="cagr", dtype="str", required=True, nullable=True),
        ColumnSchema(name="return_1y", dtype="str", required=True, nullable=True),
        ColumnSchema(name="return_3y", dtype="str", required=True, nullable=True),
        ColumnSchema(name="return_5y", dtype="str", required=True, nullable=True),
        ColumnSchema(name="holding_period_days", dtype="int64", required=True),
        ColumnSchema(name="gain_type", dtype="str", required=True),
        ColumnSchema(name="tax_rate", dtype="str", required=True),
        ColumnSchema(name="estimated_tax", dtype="str", required=True),
    ],
)
