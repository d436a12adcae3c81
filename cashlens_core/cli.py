from __future__ import annotations

import contextlib
import dataclasses
import datetime as dt
import json
import math
import time
from pathlib import Path
from typing import Iterator, List, Optional

import typer
from rich.console import Console
from rich.table import Table

from cashlens_core.domain.exceptions import CashlensError
from cashlens_core.domain.models import (
    BudgetConfig,
    ForecastConfig,
    RecurringConfig,
    SimulationConfig,
    StabilityConfig,
    TransactionInput,
)
from cashlens_core.io import config as config_io
from cashlens_core.io import ledger as ledger_io
from cashlens_core.observability.logging import log_command, setup_logging
from cashlens_core.services import budget, forecaster, recurring, simulator, stability, stats

app = typer.Typer(help="Cashlens CLI: recurring payments, forecasts, stability, budgets and projections.")


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", help="Log level for JSON logs on stderr"),
):
    setup_logging(log_level)


def _json_default(value):
    if isinstance(value, (dt.date, dt.datetime)):
        return value.isoformat()
    raise TypeError(f"Cannot serialise {type(value).__name__}")


def _to_payload(result):
    if isinstance(result, list):
        return [_to_payload(r) for r in result]
    if dataclasses.is_dataclass(result):
        return dataclasses.asdict(result)
    return result


def _strict_json(value):
    """Non-finite floats become strings (or null for NaN) so the output is RFC 8259 JSON."""
    if isinstance(value, float) and not math.isfinite(value):
        if math.isnan(value):
            return None
        return "Infinity" if value > 0 else "-Infinity"
    if isinstance(value, dict):
        return {k: _strict_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_strict_json(v) for v in value]
    return value


def _save_json(path: Path, payload):
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, default=_json_default, allow_nan=False)


def _emit(result, out: Optional[Path], label: str):
    payload = _strict_json(_to_payload(result))
    if out:
        _save_json(out, payload)
        typer.echo(f"{label} written to {out}")
    else:
        typer.echo(json.dumps(payload, indent=2, default=_json_default, allow_nan=False))


@contextlib.contextmanager
def _command(name: str, transactions: int = 0) -> Iterator[None]:
    """Turn engine and input errors into a one-line message and exit code 1."""
    started = time.perf_counter()
    try:
        yield
    except (CashlensError, FileNotFoundError, ValueError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)
    log_command(name, transactions, (time.perf_counter() - started) * 1000)


def _load(ledger: Path) -> List[TransactionInput]:
    with _command("load-ledger"):
        return ledger_io.load_ledger(ledger)


def _parse_date(raw: Optional[str]) -> dt.date:
    if not raw:
        return dt.date.today()
    try:
        return dt.date.fromisoformat(raw)
    except ValueError:
        raise typer.BadParameter(f"Expected YYYY-MM-DD, got {raw!r}")


@app.command("recurring")
def recurring_cmd(
    ledger: Path = typer.Option(..., help="CSV ledger with date,description,category,amount,kind"),
    config: Optional[Path] = typer.Option(None, help="Recurring detection config JSON"),
    out: Optional[Path] = typer.Option(None, help="Output path for detected patterns JSON"),
):
    """Detect subscriptions, bills and paychecks."""
    transactions = _load(ledger)
    with _command("recurring", len(transactions)):
        cfg = config_io.load_recurring_config(config) if config else RecurringConfig()
        patterns = recurring.detect_recurring_patterns(transactions, cfg)
        total = recurring.calculate_recurring_total(patterns, cfg)
    _emit({"patterns": _to_payload(patterns), "total": _to_payload(total)}, out, "Recurring patterns")


@app.command()
def duplicates(
    ledger: Path = typer.Option(..., help="CSV ledger with date,description,category,amount,kind"),
    out: Optional[Path] = typer.Option(None, help="Output path for duplicates JSON"),
):
    """List transactions that repeat merchant, amount and day."""
    transactions = _load(ledger)
    with _command("duplicates", len(transactions)):
        matches = recurring.detect_duplicates(transactions)
    _emit(matches, out, "Duplicates")


@app.command()
def forecast(
    ledger: Path = typer.Option(..., help="CSV ledger with date,description,category,amount,kind"),
    category: Optional[str] = typer.Option(None, help="Forecast a single category"),
    override: Optional[float] = typer.Option(None, help="Your own estimate, blended into a single-category forecast"),
    total: bool = typer.Option(False, help="Forecast total expenses instead of per category"),
    config: Optional[Path] = typer.Option(None, help="Forecast config JSON"),
    out: Optional[Path] = typer.Option(None, help="Output path for forecast JSON"),
):
    """Forecast next month's spending."""
    transactions = _load(ledger)
    with _command("forecast", len(transactions)):
        cfg = config_io.load_forecast_config(config) if config else ForecastConfig()
        if category:
            result = forecaster.forecast_category(transactions, category, cfg, override)
        elif total:
            result = forecaster.forecast_total_expenses(transactions, cfg)
        else:
            result = forecaster.forecast_all_categories(transactions, cfg)
    _emit(result, out, "Forecast")


@app.command("stability")
def stability_cmd(
    ledger: Path = typer.Option(..., help="CSV ledger with date,description,category,amount,kind"),
    use_patterns: bool = typer.Option(False, help="Use detected recurring patterns for the recurring share"),
    config: Optional[Path] = typer.Option(None, help="Stability config JSON"),
    out: Optional[Path] = typer.Option(None, help="Output path for stability JSON"),
):
    """Score how predictable monthly cash flow is."""
    transactions = _load(ledger)
    with _command("stability", len(transactions)):
        cfg = config_io.load_stability_config(config) if config else StabilityConfig()
        split = None
        if use_patterns:
            monthly = stats.get_sorted_monthly_aggregates(transactions)[-cfg.lookback_months :]
            split = recurring.recurring_split(recurring.detect_recurring_patterns(transactions), monthly)
        result = stability.analyze_cash_flow_stability(transactions, cfg, split)
        sources = stability.analyze_volatility_sources(
            stats.get_sorted_monthly_aggregates(transactions)[-cfg.lookback_months :], cfg
        )
    _emit({"stability": _to_payload(result), "volatility_sources": _to_payload(sources)}, out, "Stability")


@app.command("budget")
def budget_cmd(
    ledger: Path = typer.Option(..., help="CSV ledger with date,description,category,amount,kind"),
    budgets: Path = typer.Option(..., help="Budgets JSON (list of lines or category->amount)"),
    month: str = typer.Option(..., help="Month to report, YYYY-MM"),
    income: Optional[float] = typer.Option(None, help="Month income; defaults to income transactions"),
    config: Optional[Path] = typer.Option(None, help="Budget config JSON"),
    out: Optional[Path] = typer.Option(None, help="Output path for budget report JSON"),
):
    """Compare a month's spending against budgets."""
    transactions = _load(ledger)
    with _command("budget", len(transactions)):
        cfg = config_io.load_budget_config(config) if config else BudgetConfig()
        lines = config_io.load_budgets(budgets)
        report = budget.generate_monthly_budget_report(month, lines, transactions, income, cfg)
    _emit(report, out, "Budget report")


@app.command()
def ytd(
    ledger: Path = typer.Option(..., help="CSV ledger with date,description,category,amount,kind"),
    budgets: Path = typer.Option(..., help="Budgets JSON (list of lines or category->amount)"),
    as_of: Optional[str] = typer.Option(None, help="Reference date YYYY-MM-DD (default today)"),
    year: Optional[int] = typer.Option(None, help="Year to track (default year of --as-of)"),
    out: Optional[Path] = typer.Option(None, help="Output path for year-to-date JSON"),
):
    """Year-to-date budget tracking with a year-end projection."""
    reference = _parse_date(as_of)
    transactions = _load(ledger)
    with _command("ytd", len(transactions)):
        lines = config_io.load_budgets(budgets)
        report = budget.get_ytd_tracking(lines, transactions, reference, year)
    _emit(report, out, "Year-to-date report")


@app.command("suggest-budget")
def suggest_budget(
    ledger: Path = typer.Option(..., help="CSV ledger with date,description,category,amount,kind"),
    category: List[str] = typer.Option(..., help="Category to suggest for (repeatable)"),
    out: Optional[Path] = typer.Option(None, help="Output path for suggestions JSON"),
):
    """Suggest starting budgets from spending history."""
    transactions = _load(ledger)
    with _command("suggest-budget", len(transactions)):
        suggestions = [budget.suggest_initial_budget(transactions, c) for c in category]
    _emit(suggestions, out, "Budget suggestions")


def _simulation_config(
    horizon_months: Optional[int],
    simulations: Optional[int],
    annual_mean: Optional[float],
    annual_std_dev: Optional[float],
    goal: Optional[float],
    seed: Optional[int],
    config: Optional[Path],
) -> SimulationConfig:
    base = config_io.load_simulation_config(config) if config else SimulationConfig()
    return dataclasses.replace(
        base,
        horizon_months=horizon_months if horizon_months is not None else base.horizon_months,
        num_simulations=simulations if simulations is not None else base.num_simulations,
        annual_mean=annual_mean if annual_mean is not None else base.annual_mean,
        annual_std_dev=annual_std_dev if annual_std_dev is not None else base.annual_std_dev,
        goal_amount=goal if goal is not None else base.goal_amount,
        seed=seed if seed is not None else base.seed,
    )


@app.command()
def simulate(
    initial: float = typer.Option(0.0, help="Starting portfolio value"),
    contribution: float = typer.Option(0.0, help="Monthly contribution"),
    horizon_months: Optional[int] = typer.Option(None, help="Months to simulate (default 12 or from --config)"),
    simulations: Optional[int] = typer.Option(None, help="Monte Carlo paths (default 1000 or from --config)"),
    annual_mean: Optional[float] = typer.Option(None, help="Annual return mean (needs --annual-std-dev)"),
    annual_std_dev: Optional[float] = typer.Option(None, help="Annual return volatility"),
    goal: Optional[float] = typer.Option(None, help="Goal value at the end of the horizon"),
    seed: Optional[int] = typer.Option(None, help="Random seed"),
    config: Optional[Path] = typer.Option(None, help="Simulation config JSON (allocation, asset classes)"),
    out: Optional[Path] = typer.Option(None, help="Output path for simulation JSON"),
):
    """Monte Carlo projection of a portfolio."""
    with _command("simulate"):
        cfg = _simulation_config(horizon_months, simulations, annual_mean, annual_std_dev, goal, seed, config)
        result = simulator.run_monte_carlo(initial, contribution, cfg)
    payload = _to_payload(result)
    payload["disclaimer"] = simulator.INVESTMENT_DISCLAIMER
    _emit(payload, out, "Simulation")


@app.command()
def scenarios(
    initial: float = typer.Option(0.0, help="Starting portfolio value"),
    contribution: float = typer.Option(0.0, help="Monthly contribution"),
    horizon_months: Optional[int] = typer.Option(None, help="Months to simulate (default 12)"),
    simulations: Optional[int] = typer.Option(None, help="Monte Carlo paths per profile (default 1000)"),
    goal: Optional[float] = typer.Option(None, help="Goal value at the end of the horizon"),
    seed: Optional[int] = typer.Option(None, help="Random seed"),
    out: Optional[Path] = typer.Option(None, help="Output path for scenario JSON"),
):
    """Compare conservative, moderate and aggressive profiles."""
    with _command("scenarios"):
        cfg = _simulation_config(horizon_months, simulations, None, None, goal, seed, None)
        comparison = simulator.compare_scenarios(initial, contribution, cfg)
    _emit(comparison, out, "Scenario comparison")


@app.command()
def contribution(
    current: float = typer.Option(..., help="Current portfolio value"),
    goal: float = typer.Option(..., help="Goal value"),
    horizon_months: int = typer.Option(..., help="Months until the goal"),
    annual_mean: float = typer.Option(0.07, help="Assumed annual return"),
    out: Optional[Path] = typer.Option(None, help="Output path for contribution JSON"),
):
    """Monthly contribution needed to reach a goal."""
    with _command("contribution"):
        result = simulator.calculate_required_contribution(current, goal, horizon_months, annual_mean)
    _emit(result, out, "Required contribution")


@app.command()
def retirement(
    current_age: int = typer.Option(..., help="Current age"),
    retirement_age: int = typer.Option(..., help="Planned retirement age"),
    savings: float = typer.Option(0.0, help="Current retirement savings"),
    contribution: float = typer.Option(0.0, help="Monthly contribution"),
    simulations: int = typer.Option(1000, help="Monte Carlo paths"),
    seed: Optional[int] = typer.Option(None, help="Random seed"),
    out: Optional[Path] = typer.Option(None, help="Output path for retirement JSON"),
):
    """Project the balance at retirement and the income it supports."""
    with _command("retirement"):
        cfg = SimulationConfig(num_simulations=simulations, seed=seed)
        projection = simulator.project_retirement(current_age, retirement_age, savings, contribution, cfg)
    _emit(projection, out, "Retirement projection")


@app.command()
def report(
    ledger: Path = typer.Option(..., help="CSV ledger with date,description,category,amount,kind"),
):
    """Readable overview: cash flow stability, next-month forecast and recurring payments."""
    console = Console()
    transactions = _load(ledger)
    with _command("report", len(transactions)):
        patterns = recurring.detect_recurring_patterns(transactions)
        monthly = stats.get_sorted_monthly_aggregates(transactions)
        split = recurring.recurring_split(patterns, monthly[-StabilityConfig().lookback_months :])
        health = stability.analyze_cash_flow_stability(transactions, recurring=split)
        total = forecaster.forecast_total_expenses(transactions)

    console.print("[bold cyan]== Cash Flow ==[/bold cyan]")
    console.print(
        f"Stability index: [bold]{health.stability_index}[/bold] ({health.rating}, {health.confidence} confidence)"
    )
    console.print(f"Mean monthly net: [bold]{health.mean_net_cash_flow:,.2f}[/bold]")
    console.print(health.explanation)

    console.print("\n[bold cyan]== Next Month ==[/bold cyan]")
    console.print(
        f"Expected spending: [bold]{total.forecast:,.2f}[/bold] "
        f"([yellow]{total.interval.lower:,.2f}[/yellow] - [yellow]{total.interval.upper:,.2f}[/yellow]), "
        f"trend {total.trend}, {total.confidence} confidence"
    )

    table = Table(title="Recurring payments")
    table.add_column("Merchant")
    table.add_column("Period")
    table.add_column("Amount", justify="right")
    table.add_column("Next", justify="right")
    table.add_column("Status")
    for p in patterns:
        table.add_row(p.merchant, p.period, f"{p.avg_amount:,.2f}", p.next_expected.isoformat(), p.status)
    console.print(table)


if __name__ == "__main__":
    app()
