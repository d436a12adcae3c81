from cashlens_core.domain.exceptions import (  # noqa: F401
    CashlensError,
    InputLimitExceededError,
    InvalidConfigurationError,
)
from cashlens_core.domain.models import (  # noqa: F401
    BudgetConfig,
    BudgetLine,
    BudgetSuggestion,
    CashFlowStabilityResult,
    CategoryVariance,
    ConfidenceInterval,
    DuplicateMatch,
    ForecastConfig,
    ForecastResult,
    MonthlyAggregate,
    MonthlyAmount,
    MonthlyBudgetReport,
    RecurringConfig,
    RecurringPattern,
    RecurringSplit,
    RecurringTotal,
    RequiredContribution,
    RetirementProjection,
    ReturnAssumption,
    RiskProfile,
    ScenarioComparison,
    ScenarioOutcome,
    SeasonalityProfile,
    SimulationConfig,
    SimulationResult,
    StabilityConfig,
    TransactionInput,
    VolatilitySources,
    YearToDateReport,
)

__all__ = [
    "BudgetConfig",
    "BudgetLine",
    "BudgetSuggestion",
    "CashFlowStabilityResult",
    "CashlensError",
    "CategoryVariance",
    "ConfidenceInterval",
    "DuplicateMatch",
    "ForecastConfig",
    "ForecastResult",
    "InputLimitExceededError",
    "InvalidConfigurationError",
    "MonthlyAggregate",
    "MonthlyAmount",
    "MonthlyBudgetReport",
    "RecurringConfig",
    "RecurringPattern",
    "RecurringSplit",
    "RecurringTotal",
    "RequiredContribution",
    "RetirementProjection",
    "ReturnAssumption",
    "RiskProfile",
    "ScenarioComparison",
    "ScenarioOutcome",
    "SeasonalityProfile",
    "SimulationConfig",
    "SimulationResult",
    "StabilityConfig",
    "TransactionInput",
    "VolatilitySources",
    "YearToDateReport",
]
