from cashlens_core.services.budget import (  # noqa: F401
    generate_monthly_budget_report,
    get_ytd_tracking,
    suggest_initial_budget,
)
from cashlens_core.services.forecaster import (  # noqa: F401
    forecast_all_categories,
    forecast_category,
    forecast_total_expenses,
)
from cashlens_core.services.recurring import (  # noqa: F401
    calculate_recurring_total,
    detect_duplicates,
    detect_recurring_patterns,
    recurring_split,
)
from cashlens_core.services.simulator import (  # noqa: F401
    calculate_required_contribution,
    compare_scenarios,
    project_retirement,
    run_monte_carlo,
)
from cashlens_core.services.stability import (  # noqa: F401
    analyze_cash_flow_stability,
    analyze_volatility_sources,
)

__all__ = [
    "analyze_cash_flow_stability",
    "analyze_volatility_sources",
    "calculate_recurring_total",
    "calculate_required_contribution",
    "compare_scenarios",
    "detect_duplicates",
    "detect_recurring_patterns",
    "forecast_all_categories",
    "forecast_category",
    "forecast_total_expenses",
    "generate_monthly_budget_report",
    "get_ytd_tracking",
    "project_retirement",
    "recurring_split",
    "run_monte_carlo",
    "suggest_initial_budget",
]
