from cashlens_core.io.ledger import load_ledger  # noqa: F401
from cashlens_core.io.config import (  # noqa: F401
    load_budget_config,
    load_budgets,
    load_forecast_config,
    load_recurring_config,
    load_simulation_config,
    load_stability_config,
)

__all__ = [
    "load_ledger",
    "load_budget_config",
    "load_budgets",
    "load_forecast_config",
    "load_recurring_config",
    "load_simulation_config",
    "load_stability_config",
]
