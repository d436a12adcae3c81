import json
from pathlib import Path

import pytest

from cashlens_core.domain.exceptions import InvalidConfigurationError
from cashlens_core.io import config as config_io
from cashlens_core.io import ledger as ledger_io


FIXTURE = Path(__file__).parent / "data" / "ledger.csv"


def test_load_ledger_fixture():
    transactions = ledger_io.load_ledger(FIXTURE)
    assert len(transactions) == 32
    first = transactions[0]
    assert first.id == "1"
    assert first.kind == "income"
    assert first.account == "checking"
    assert first.note is None
    assert {t.kind for t in transactions} == {"income", "expense", "transfer"}


def test_load_ledger_accepts_type_column(tmp_path: Path):
    path = tmp_path / "ledger.csv"
    path.write_text("date,description,category,amount,type\n2024-01-05,Cafe,Dining,-4.5,Expense\n")
    [transaction] = ledger_io.load_ledger(path)
    assert transaction.kind == "expense"
    assert transaction.id == 1


def test_load_ledger_rejects_bad_files(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        ledger_io.load_ledger(tmp_path / "missing.csv")

    path = tmp_path / "ledger.csv"
    path.write_text("date,amount\n2024-01-05,-4.5\n")
    with pytest.raises(ValueError):
        ledger_io.load_ledger(path)


def test_config_loaders(tmp_path: Path):
    path = tmp_path / "sim.json"
    path.write_text(json.dumps({"num_simulations": 50, "asset_classes": {"GOLD": {"mean": 0.04, "std_dev": 0.12}}}))
    config = config_io.load_simulation_config(path)
    assert config.num_simulations == 50
    assert config.asset_classes["GOLD"].mean == 0.04
    assert "DEFAULT" in config.asset_classes

    budget_path = tmp_path / "budget.json"
    budget_path.write_text(json.dumps({"excluded_categories": ["Transfer"], "on_track_band": 0.1}))
    assert config_io.load_budget_config(budget_path).excluded_categories == ("Transfer",)

    bad = tmp_path / "forecast.json"
    bad.write_text(json.dumps({"alpha": 2}))
    with pytest.raises(InvalidConfigurationError):
        config_io.load_forecast_config(bad)

    unknown = tmp_path / "stability.json"
    unknown.write_text(json.dumps({"lookback": 6}))
    with pytest.raises(ValueError):
        config_io.load_stability_config(unknown)


def test_load_budgets_both_shapes(tmp_path: Path):
    mapping = tmp_path / "a.json"
    mapping.write_text(json.dumps({"Food": 300}))
    assert [(b.category, b.amount, b.period) for b in config_io.load_budgets(mapping)] == [("Food", 300.0, "monthly")]

    lines = tmp_path / "b.json"
    lines.write_text(json.dumps([{"category": "Insurance", "amount": 1200, "period": "annual"}]))
    assert config_io.load_budgets(lines)[0].period == "annual"
