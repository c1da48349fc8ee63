"""
Command-line interface for the mutual fund metrics engine.

Provides commands for:
- metrics: Compute fund metrics from a transactions CSV
- xirr: Calculate XIRR for one fund
- tax: Estimate capital-gains tax on a gain
- evaluate: Recommend BUY/HOLD/EXIT from yearly returns and a rating
- portfolio: Summarize an investor's portfolio from the backend
- search: Search the backend's fund catalogue
- init-config: Write a default engine configuration file
"""

import json
import sys
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

import click

from mf_pilot.analytics import (
    build_fund_metrics,
    compute_benchmark_return,
    compute_tax_liability,
    compute_xirr,
    evaluate_fund,
    post_tax_gain,
)
from mf_pilot.analytics.summary import compute_investment_summary
from mf_pilot.config import ConfigurationError, load_engine_config, write_config
from mf_pilot.data import (
    load_benchmark_series,
    load_historical_returns,
    load_positions,
    load_transactions,
    save_fund_metrics,
)
from mf_pilot.data.loaders import DataLoadError
from mf_pilot.data.providers import (
    BackendDataSource,
    DataProviderError,
    FallbackChain,
    FallbackDataSource,
    YFinanceBenchmarkSource,
)
from mf_pilot.exceptions import MetricsError, MissingDataError
from mf_pilot.logging import get_logger
from mf_pilot.models import AssetClass, EngineConfig, FundSearchCriteria, FundSortKey
from mf_pilot.service import DEFAULT_BENCHMARK, FundAnalyticsService


@click.group()
@click.version_option(version="0.1.0", prog_name="mf-pilot")
def main():
    """
    Mutual Fund Portfolio Metrics Engine.

    Computes XIRR, CAGR, rolling returns and capital-gains tax for mutual
    fund holdings, and recommends BUY, HOLD or EXIT against a benchmark.
    """
    pass


@main.command()
@click.option(
    "--transactions", "-t",
    required=True,
    type=click.Path(exists=True),
    help="Path to transactions CSV file (fund_id,date,amount,units,nav)",
)
@click.option(
    "--nav", "-n",
    "navs",
    required=True,
    multiple=True,
    help="Current NAV as FUND_ID=NAV (repeatable); a bare NAV is allowed for a single fund",
)
@click.option(
    "--date", "-d",
    type=str,
    default=None,
    help="Valuation date (YYYY-MM-DD). Defaults to today.",
)
@click.option(
    "--returns", "-r",
    type=click.Path(exists=True),
    default=None,
    help="Optional yearly returns CSV (fund_id,year,return_pct)",
)
@click.option(
    "--config", "-c",
    type=click.Path(exists=True),
    default=None,
    help="Engine configuration YAML file",
)
@click.option(
    "--output-dir", "-o",
    type=click.Path(),
    default="output",
    help="Output directory",
)
def metrics(
    transactions: str,
    navs: tuple[str, ...],
    date: Optional[str],
    returns: Optional[str],
    config: Optional[str],
    output_dir: str,
):
    """
    Compute metrics for every fund in a transactions file.

    Reports invested amount, value, P&L, XIRR, CAGR, rolling returns and
    estimated tax, and saves them to fund_metrics_<date>.csv.
    """
    as_of_date = _parse_date(date)
    out_dir = Path(output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    logger = get_logger(out_dir / "decision_log.jsonl")
    engine_config = _load_config(config, logger)

    try:
        fund_ids = sorted(load_transactions(transactions))
        current_navs = _parse_navs(navs, fund_ids)
        positions = load_positions(transactions, current_navs)
        history = load_historical_returns(returns) if returns else {}
    except DataLoadError as e:
        click.echo(f"Error loading data: {e}", err=True)
        sys.exit(1)

    results = []
    for position in positions:
        try:
            fund_metrics = build_fund_metrics(
                position,
                as_of_date,
                history.get(position.fund_id),
                engine_config,
            )
        except MetricsError as e:
            click.echo(f"Error computing metrics for {position.fund_id}: {e}", err=True)
            sys.exit(1)
        logger.log_metrics_computed(fund_metrics)
        results.append(fund_metrics)

    click.echo(f"Fund metrics as of {as_of_date}:")
    for m in results:
        click.echo()
        click.echo(f"  {m.fund_id}{' - ' + m.fund_name if m.fund_name else ''}")
        click.echo(f"    Invested:       {_money(m.invested_amount)}")
        click.echo(f"    Current value:  {_money(m.current_value)}")
        click.echo(f"    P&L:            {_money(m.profit_loss)} ({m.profit_loss_percentage:.2f}%)")
        click.echo(f"    XIRR:           {_pct(m.xirr)}")
        click.echo(f"    CAGR:           {_pct(m.cagr)}")
        if m.rolling_returns is not None:
            r = m.rolling_returns
            click.echo(
                f"    Rolling (1/3/5): {_pct(r.one_year)} / {_pct(r.three_year)} / {_pct(r.five_year)}"
            )
        gain_type = "long term" if m.is_long_term else "short term"
        click.echo(f"    Held:           {m.holding_period_days} days ({gain_type})")
        click.echo(f"    Estimated tax:  {_money(m.estimated_tax)} at {m.tax_rate}%")

    output_path = save_fund_metrics(results, out_dir / f"fund_metrics_{as_of_date}.csv")
    click.echo()
    click.echo(f"Metrics saved: {output_path}")


@main.command()
@click.option(
    "--transactions", "-t",
    required=True,
    type=click.Path(exists=True),
    help="Path to transactions CSV file",
)
@click.option(
    "--fund-id", "-f",
    required=True,
    help="Fund to calculate",
)
@click.option(
    "--nav", "-n",
    required=True,
    type=str,
    help="Current NAV of the fund",
)
@click.option(
    "--date", "-d",
    type=str,
    default=None,
    help="Valuation date (YYYY-MM-DD). Defaults to today.",
)
@click.option(
    "--config", "-c",
    type=click.Path(exists=True),
    default=None,
    help="Engine configuration YAML file",
)
def xirr(transactions: str, fund_id: str, nav: str, date: Optional[str], config: Optional[str]):
    """
    Calculate the XIRR of one fund's purchases.

    The current value (units held x NAV) is the terminal inflow.
    """
    as_of_date = _parse_date(date)
    engine_config = _load_config(config)
    current_nav = _parse_decimal(nav, "NAV")

    try:
        txns = load_transactions(transactions, fund_id=fund_id)[fund_id]
    except DataLoadError as e:
        click.echo(f"Error loading transactions: {e}", err=True)
        sys.exit(1)

    try:
        summary = compute_investment_summary(txns, current_nav, engine_config)
        rate = compute_xirr(txns, summary.current_value, as_of_date, engine_config)
    except MetricsError as e:
        click.echo(f"Error calculating XIRR: {e}", err=True)
        sys.exit(1)

    click.echo(f"{fund_id}: {len(txns)} purchase(s), value {_money(summary.current_value)}")
    click.echo(f"XIRR as of {as_of_date}: {rate:.2f}%")


@main.command()
@click.option(
    "--profit-loss", "-p",
    required=True,
    type=str,
    help="Unrealized gain (negative for a loss)",
)
@click.option(
    "--days", "-d",
    required=True,
    type=int,
    help="Holding period in days",
)
@click.option(
    "--asset-class", "-a",
    type=click.Choice([a.value for a in AssetClass], case_sensitive=False),
    default=AssetClass.EQUITY.value,
    help="Asset class selecting the tax rule",
)
@click.option(
    "--config", "-c",
    type=click.Path(exists=True),
    default=None,
    help="Engine configuration YAML file",
)
def tax(profit_loss: str, days: int, asset_class: str, config: Optional[str]):
    """
    Estimate capital-gains tax if a holding were redeemed today.
    """
    engine_config = _load_config(config)
    gain = _parse_decimal(profit_loss, "profit/loss")

    try:
        liability = compute_tax_liability(
            gain,
            days,
            AssetClass(asset_class.upper()),
            engine_config.tax,
            engine_config.currency_places,
        )
    except MetricsError as e:
        click.echo(f"Error estimating tax: {e}", err=True)
        sys.exit(1)

    gain_type = "Long-term" if liability.is_long_term else "Short-term"
    click.echo(f"{gain_type} capital gain ({days} days held)")
    click.echo(f"  Tax rate:       {liability.tax_rate}%")
    click.echo(f"  Taxable gain:   {_money(liability.taxable_gain)}")
    click.echo(f"  Estimated tax:  {_money(liability.estimated_tax)}")
    click.echo(f"  Post-tax gain:  {_money(post_tax_gain(gain, liability))}")


@main.command()
@click.option(
    "--returns", "-r",
    required=True,
    type=str,
    help="Yearly returns in percent, most recent first (e.g. 12.5,8.1,-3.2)",
)
@click.option(
    "--rating",
    required=True,
    type=str,
    help="Fund rating (0-5)",
)
@click.option(
    "--benchmark-return", "-b",
    type=str,
    default=None,
    help="Benchmark return in percent",
)
@click.option(
    "--benchmark-file",
    type=click.Path(exists=True),
    default=None,
    help="Benchmark CSV (date,index_value) used instead of --benchmark-return",
)
@click.option(
    "--years", "-y",
    type=int,
    default=None,
    help="Benchmark window in years (with --benchmark-file)",
)
@click.option(
    "--fund-id", "-f",
    default="",
    help="Fund identifier for the report",
)
@click.option(
    "--config", "-c",
    type=click.Path(exists=True),
    default=None,
    help="Engine configuration YAML file",
)
def evaluate(
    returns: str,
    rating: str,
    benchmark_return: Optional[str],
    benchmark_file: Optional[str],
    years: Optional[int],
    fund_id: str,
    config: Optional[str],
):
    """
    Recommend BUY, HOLD or EXIT for a fund.
    """
    engine_config = _load_config(config)
    history = [_parse_decimal(r, "return") for r in returns.split(",") if r.strip()]
    fund_rating = _parse_decimal(rating, "rating")

    if benchmark_file:
        try:
            series = load_benchmark_series(benchmark_file)
            benchmark = compute_benchmark_return(series, years=years, config=engine_config)
        except (DataLoadError, MetricsError) as e:
            click.echo(f"Error computing benchmark return: {e}", err=True)
            sys.exit(1)
    elif benchmark_return is not None:
        benchmark = _parse_decimal(benchmark_return, "benchmark return")
    else:
        click.echo("Provide --benchmark-return or --benchmark-file", err=True)
        sys.exit(1)

    try:
        evaluation = evaluate_fund(
            None, benchmark, history, fund_rating, config=engine_config, fund_id=fund_id
        )
    except MetricsError as e:
        click.echo(f"Error evaluating fund: {e}", err=True)
        sys.exit(1)

    m = evaluation.metrics
    click.echo(f"Recommendation: {evaluation.recommendation.value}")
    for line in evaluation.reasoning:
        click.echo(f"  - {line}")
    click.echo()
    click.echo(f"  Average return:    {m.avg_return:.2f}%")
    click.echo(f"  Volatility:        {m.volatility:.2f}%")
    click.echo(f"  Consistency score: {m.consistency_score}")
    click.echo(f"  Benchmark return:  {m.benchmark_return:.2f}%")


@main.command()
@click.option(
    "--pan", "-p",
    required=True,
    help="Investor PAN (e.g. ABCDE1234F)",
)
@click.option(
    "--date", "-d",
    type=str,
    default=None,
    help="Valuation date (YYYY-MM-DD). Defaults to today.",
)
@click.option(
    "--evaluate-fund", "-e",
    "evaluate_fund_id",
    default=None,
    help="Also evaluate this fund against the benchmark",
)
@click.option(
    "--benchmark",
    default=DEFAULT_BENCHMARK,
    help="Benchmark to evaluate against",
)
@click.option(
    "--benchmarks-from",
    type=click.Choice(["backend", "yahoo"], case_sensitive=False),
    default="yahoo",
    help="Where benchmark history comes from",
)
@click.option(
    "--backend-url",
    default=None,
    help="Portfolio backend URL (defaults to MF_BACKEND_URL)",
)
@click.option(
    "--config", "-c",
    type=click.Path(exists=True),
    default=None,
    help="Engine configuration YAML file",
)
@click.option(
    "--json", "as_json",
    is_flag=True,
    default=False,
    help="Print the summary as JSON",
)
@click.option(
    "--output-dir", "-o",
    type=click.Path(),
    default="output",
    help="Output directory for the decision log",
)
def portfolio(
    pan: str,
    date: Optional[str],
    evaluate_fund_id: Optional[str],
    benchmark: str,
    benchmarks_from: str,
    backend_url: Optional[str],
    config: Optional[str],
    as_json: bool,
    output_dir: str,
):
    """
    Summarize an investor's portfolio from the backend.

    Benchmarks fall back to a labelled placeholder when the benchmark
    source is unavailable, in which case the fund evaluation is reported
    as N/A; the portfolio itself never falls back.
    """
    as_of_date = _parse_date(date)
    logger = get_logger(Path(output_dir) / "decision_log.jsonl")
    engine_config = _load_config(config, logger)

    try:
        backend = BackendDataSource(base_url=backend_url)
    except DataProviderError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    primary_benchmarks = backend if benchmarks_from.lower() == "backend" else YFinanceBenchmarkSource()
    service = FundAnalyticsService(
        data_source=FallbackChain(backend, FallbackDataSource(), logger),
        benchmark_source=FallbackChain(primary_benchmarks, FallbackDataSource(), logger),
        config=engine_config,
        decision_logger=logger,
    )

    try:
        summary = service.portfolio_summary(pan, as_of_date)
    except (MetricsError, DataProviderError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    evaluation = None
    evaluation_error = None
    if evaluate_fund_id:
        try:
            evaluation = service.evaluate(pan, evaluate_fund_id, as_of_date, benchmark)
        except MissingDataError as e:
            evaluation_error = str(e)
        except (MetricsError, DataProviderError) as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

    if as_json:
        payload = summary.to_dict()
        if evaluate_fund_id:
            payload["evaluation"] = evaluation.to_dict() if evaluation is not None else None
        if evaluation_error is not None:
            payload["evaluationError"] = evaluation_error
        click.echo(json.dumps(payload, indent=2))
        return

    click.echo(f"Portfolio {summary.pan} as of {as_of_date} ({summary.source.value})")
    for m in summary.funds:
        click.echo(
            f"  {m.fund_id:<12} {_money(m.current_value):>16}  "
            f"P&L {_money(m.profit_loss):>14}  XIRR {_pct(m.xirr):>9}"
        )
    click.echo()
    click.echo(f"  Total invested: {_money(summary.total_invested_amount)}")
    click.echo(f"  Total value:    {_money(summary.total_current_value)}")
    click.echo(
        f"  Total P&L:      {_money(summary.total_profit_loss)} "
        f"({_pct(summary.total_profit_loss_percentage)})"
    )

    if evaluation_error is not None:
        click.echo()
        click.echo(f"{evaluate_fund_id}: N/A ({evaluation_error})")
    if evaluation is not None:
        click.echo()
        click.echo(f"{evaluation.fund_id}: {evaluation.recommendation.value}")
        for line in evaluation.reasoning:
            click.echo(f"  - {line}")


@main.command()
@click.option(
    "--query", "-q",
    default="",
    help="Text matched against fund name, AMC or category",
)
@click.option(
    "--category",
    default=None,
    help="Fund category (e.g. 'Large Cap')",
)
@click.option(
    "--risk-level",
    default=None,
    help="Risk level (e.g. 'Moderate to High')",
)
@click.option(
    "--min-rating",
    type=str,
    default=None,
    help="Minimum fund rating (0-5)",
)
@click.option(
    "--sort-by",
    type=click.Choice([k.value for k in FundSortKey], case_sensitive=False),
    default=FundSortKey.RETURNS_3Y.value,
    help="Result ordering",
)
@click.option(
    "--backend-url",
    default=None,
    help="Portfolio backend URL (defaults to MF_BACKEND_URL)",
)
@click.option(
    "--json", "as_json",
    is_flag=True,
    default=False,
    help="Print the results as JSON",
)
def search(
    query: str,
    category: Optional[str],
    risk_level: Optional[str],
    min_rating: Optional[str],
    sort_by: str,
    backend_url: Optional[str],
    as_json: bool,
):
    """
    Search the backend's fund catalogue.
    """
    rating = _parse_decimal(min_rating, "minimum rating") if min_rating is not None else None

    try:
        criteria = FundSearchCriteria(
            query=query,
            category=category,
            risk_level=risk_level,
            min_rating=rating,
            sort_by=FundSortKey(sort_by.lower()),
        )
        service = FundAnalyticsService(BackendDataSource(base_url=backend_url))
        result = service.search_funds(criteria)
    except (MetricsError, DataProviderError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps({"funds": result.data, "source": result.source.value}, indent=2))
        return

    click.echo(f"{len(result.data)} fund(s) found")
    for fund in result.data:
        returns = fund.get("returns") or {}
        click.echo(
            f"  {fund.get('fundName', fund.get('id', '?'))} "
            f"[{fund.get('category', '-')}, {fund.get('riskLevel', '-')}] "
            f"rating {fund.get('rating', '-')}, 3Y {returns.get('threeYear', '-')}%"
        )


@main.command("init-config")
@click.option(
    "--output", "-o",
    type=click.Path(),
    default="config/engine.yaml",
    help="Path to write the configuration file",
)
@click.option(
    "--force",
    is_flag=True,
    default=False,
    help="Overwrite an existing file",
)
def init_config(output: str, force: bool):
    """
    Write the default engine configuration (India tax rules) to YAML.
    """
    output_path = Path(output)
    if output_path.exists() and not force:
        click.echo(f"{output_path} already exists (use --force to overwrite)", err=True)
        sys.exit(1)

    write_config(EngineConfig(), output_path)
    click.echo(f"Configuration written: {output_path}")


def _load_config(config_path: Optional[str], logger=None) -> EngineConfig:
    """Load engine config, or defaults when no path is given."""
    if config_path is None:
        return EngineConfig()
    try:
        engine_config = load_engine_config(config_path)
    except ConfigurationError as e:
        click.echo(f"Error loading config: {e}", err=True)
        sys.exit(1)
    if logger is not None:
        logger.log_config_loaded(engine_config, config_path)
    return engine_config


def _parse_date(value: Optional[str]) -> date:
    if not value:
        return date.today()
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        click.echo(f"Invalid date format: {value}. Use YYYY-MM-DD.", err=True)
        sys.exit(1)


def _parse_decimal(value: str, label: str) -> Decimal:
    try:
        result = Decimal(value.strip())
    except InvalidOperation:
        click.echo(f"Invalid {label}: {value}", err=True)
        sys.exit(1)
    if not result.is_finite():
        click.echo(f"Invalid {label}: {value}", err=True)
        sys.exit(1)
    return result


def _parse_navs(navs: tuple[str, ...], fund_ids: list[str]) -> dict[str, Decimal]:
    """Parse FUND_ID=NAV pairs; a single bare NAV applies to a single fund."""
    if len(navs) == 1 and "=" not in navs[0]:
        if len(fund_ids) != 1:
            click.echo(
                f"A bare --nav needs exactly one fund in the file, found {len(fund_ids)}. "
                "Use FUND_ID=NAV.",
                err=True,
            )
            sys.exit(1)
        return {fund_ids[0]: _parse_decimal(navs[0], "NAV")}

    result = {}
    for item in navs:
        if "=" not in item:
            click.echo(f"Invalid --nav '{item}'. Use FUND_ID=NAV.", err=True)
            sys.exit(1)
        fund_id, value = item.split("=", 1)
        result[fund_id.strip()] = _parse_decimal(value, f"NAV for {fund_id}")
    return result


def _money(value: Optional[Decimal]) -> str:
    if value is None:
        return "N/A"
    return f"₹{value:,.2f}"


def _pct(value: Optional[Decimal]) -> str:
    if value is None:
        return "N/A"
    return f"{value:.2f}%"


if __name__ == "__main__":
    main()
