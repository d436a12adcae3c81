from __future__ import annotations

import dataclasses
import json
from pathlib import Path
from typing import Any, Dict, List

from cashlens_core.domain.models import (
    DEFAULT_ASSET_CLASSES,
    BudgetConfig,
    BudgetLine,
    ForecastConfig,
    PeriodWindow,
    RecurringConfig,
    ReturnAssumption,
    RiskProfile,
    SimulationConfig,
    StabilityConfig,
)


def load_recurring_config(path: str | Path) -> RecurringConfig:
    data = _read_json(path)
    if "period_windows" in data:
        data["period_windows"] = tuple(PeriodWindow(**w) for w in data["period_windows"])
    return _build(RecurringConfig, data)


def load_forecast_config(path: str | Path) -> ForecastConfig:
    return _build(ForecastConfig, _read_json(path))


def load_stability_config(path: str | Path) -> StabilityConfig:
    return _build(StabilityConfig, _read_json(path))


def load_budget_config(path: str | Path) -> BudgetConfig:
    data = _read_json(path)
    if "excluded_categories" in data:
        data["excluded_categories"] = tuple(data["excluded_categories"])
    return _build(BudgetConfig, data)


def load_simulation_config(path: str | Path) -> SimulationConfig:
    """Asset classes given in the file are layered over the built-in table."""
    data = _read_json(path)
    if "asset_classes" in data:
        table = dict(DEFAULT_ASSET_CLASSES)
        for name, values in data["asset_classes"].items():
            table[name] = ReturnAssumption(float(values["mean"]), float(values["std_dev"]))
        data["asset_classes"] = table
    if "risk_profiles" in data:
        data["risk_profiles"] = tuple(RiskProfile(**p) for p in data["risk_profiles"])
    return _build(SimulationConfig, data)


def load_budgets(path: str | Path) -> List[BudgetLine]:
    """
    Either a list of {"category", "amount", "period"} objects or a plain
    {"category": monthly_amount} mapping.
    """
    data = _read_json(path)
    if isinstance(data, dict):
        return [BudgetLine(category=str(c), amount=float(a)) for c, a in data.items()]
    return [
        BudgetLine(
            category=str(item["category"]),
            amount=float(item["amount"]),
            period=str(item.get("period", "monthly")),
        )
        for item in data
    ]


def _build(cls, data: Dict[str, Any]):
    known = {f.name for f in dataclasses.fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown {cls.__name__} keys: {sorted(unknown)}")
    return cls(**data)


def _read_json(path: str | Path) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)
