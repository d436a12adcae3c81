from __future__ import annotations

import dataclasses
import datetime as dt
import types
from typing import Dict, Mapping, Optional, Tuple, Union

from cashlens_core.domain.exceptions import InvalidConfigurationError

DEFAULT_MAX_TRANSACTIONS = 500_000


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise InvalidConfigurationError(message)


def _unit_interval(name: str, value: float, allow_zero: bool = False) -> None:
    lower_ok = value >= 0 if allow_zero else value > 0
    _require(lower_ok and value <= 1, f"{name} must be in {'[0, 1]' if allow_zero else '(0, 1]'}, got {value}")


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclasses.dataclass(frozen=True)
class TransactionInput:
    id: Union[int, str]
    date: dt.date
    description: str
    category: str
    amount: float
    kind: str  # "income", "expense" or "transfer"; sign of amount is not trusted
    account: Optional[str] = None
    note: Optional[str] = None

    @property
    def magnitude(self) -> float:
        return abs(self.amount)


@dataclasses.dataclass(frozen=True)
class BudgetLine:
    category: str
    amount: float
    period: str = "monthly"  # "monthly" or "annual"


@dataclasses.dataclass(frozen=True)
class MonthlyAggregate:
    month: str  # YYYY-MM
    income: float
    expenses: float
    transaction_count: int = 0

    @property
    def net(self) -> float:
        return self.income - self.expenses

    @property
    def savings_rate(self) -> float:
        return (self.net / self.income) * 100 if self.income > 0 else 0.0


@dataclasses.dataclass(frozen=True)
class MonthlyAmount:
    month: str
    amount: float


# ---------------------------------------------------------------------------
# Recurring detection
# ---------------------------------------------------------------------------


@dataclasses.dataclass(frozen=True)
class PeriodWindow:
    name: str
    expected_days: int
    tolerance_days: int
    # Optional literal range that also counts as a match (e.g. 28-31 days for monthly)
    min_days: Optional[int] = None
    max_days: Optional[int] = None

    def matches(self, interval_days: float) -> bool:
        if abs(interval_days - self.expected_days) <= self.tolerance_days:
            return True
        if self.min_days is not None and self.max_days is not None:
            return self.min_days <= interval_days <= self.max_days
        return False


DEFAULT_PERIOD_WINDOWS: Tuple[PeriodWindow, ...] = (
    PeriodWindow("Weekly", 7, 1),
    PeriodWindow("Bi-weekly", 14, 2),
    PeriodWindow("Monthly", 30, 3, min_days=28, max_days=31),
    PeriodWindow("Quarterly", 90, 5),
    PeriodWindow("Annual", 365, 10),
)

DEFAULT_MONTHLY_FACTORS: Mapping[str, float] = types.MappingProxyType(
    {
        "Weekly": 4.33,
        "Bi-weekly": 2.17,
        "Monthly": 1.0,
        "Quarterly": 1 / 3,
        "Annual": 1 / 12,
    }
)


@dataclasses.dataclass(frozen=True)
class RecurringConfig:
    amount_tolerance: float = 0.15
    outlier_z: float = 2.0
    min_occurrences_confirmed: int = 4
    min_occurrences_unconfirmed: int = 2
    min_consistency: float = 0.7
    fuzzy_max_distance: int = 2
    period_windows: Tuple[PeriodWindow, ...] = DEFAULT_PERIOD_WINDOWS
    monthly_factors: Mapping[str, float] = dataclasses.field(default_factory=lambda: DEFAULT_MONTHLY_FACTORS)
    max_transactions: int = DEFAULT_MAX_TRANSACTIONS

    def __post_init__(self) -> None:
        _require(self.amount_tolerance >= 0, "amount_tolerance must be >= 0")
        _require(self.outlier_z > 0, "outlier_z must be > 0")
        _require(self.min_occurrences_unconfirmed >= 2, "min_occurrences_unconfirmed must be >= 2")
        _require(
            self.min_occurrences_confirmed >= self.min_occurrences_unconfirmed,
            "min_occurrences_confirmed must be >= min_occurrences_unconfirmed",
        )
        _unit_interval("min_consistency", self.min_consistency, allow_zero=True)
        _require(self.fuzzy_max_distance >= 0, "fuzzy_max_distance must be >= 0")
        _require(self.max_transactions > 0, "max_transactions must be > 0")


@dataclasses.dataclass(frozen=True)
class PeriodMatch:
    period: str
    tolerance: int
    expected_interval: int


@dataclasses.dataclass(frozen=True)
class RecurringPattern:
    merchant: str
    category: str
    kind: str
    avg_amount: float
    period: str
    confidence: int  # 0-100
    status: str  # "Confirmed" or "Unconfirmed"
    last_occurrence: dt.date
    next_expected: dt.date
    occurrences: int
    consistency: float
    median_interval_days: float
    transactions: Tuple[TransactionInput, ...]


@dataclasses.dataclass(frozen=True)
class DuplicateMatch:
    transaction: TransactionInput
    duplicate_of: TransactionInput


@dataclasses.dataclass(frozen=True)
class RecurringTotal:
    monthly: float
    annual: float


@dataclasses.dataclass(frozen=True)
class PatternMatch:
    matches: bool
    reason: str


@dataclasses.dataclass(frozen=True)
class RecurringSplit:
    recurring_expenses: float
    non_recurring_expenses: float
    recurring_ratio: float
    non_recurring_ratio: float


# ---------------------------------------------------------------------------
# Forecasting
# ---------------------------------------------------------------------------


@dataclasses.dataclass(frozen=True)
class ForecastConfig:
    alpha: float = 0.3
    beta: float = 0.1
    gamma: float = 0.1
    season_length: int = 12
    horizon_months: int = 1
    z_multiplier: float = 1.96
    high_confidence_cv: float = 0.2
    medium_confidence_cv: float = 0.4
    trend_threshold: float = 0.10
    override_weight: float = 0.4
    min_months_for_smoothing: int = 3
    simple_average_band: float = 0.5
    max_transactions: int = DEFAULT_MAX_TRANSACTIONS

    def __post_init__(self) -> None:
        _unit_interval("alpha", self.alpha)
        _unit_interval("beta", self.beta)
        _unit_interval("gamma", self.gamma)
        _require(self.season_length >= 2, "season_length must be >= 2")
        _require(self.horizon_months >= 1, "horizon_months must be >= 1")
        _require(self.z_multiplier >= 0, "z_multiplier must be >= 0")
        _require(
            0 <= self.high_confidence_cv <= self.medium_confidence_cv,
            "confidence CV thresholds must satisfy 0 <= high <= medium",
        )
        _require(self.trend_threshold >= 0, "trend_threshold must be >= 0")
        _unit_interval("override_weight", self.override_weight, allow_zero=True)
        _require(self.min_months_for_smoothing >= 2, "min_months_for_smoothing must be >= 2")
        _unit_interval("simple_average_band", self.simple_average_band, allow_zero=True)
        _require(self.max_transactions > 0, "max_transactions must be > 0")


@dataclasses.dataclass(frozen=True)
class ConfidenceInterval:
    lower: float
    upper: float


@dataclasses.dataclass(frozen=True)
class SmoothingFit:
    forecast: float
    smoothed: Tuple[float, ...]
    trend: float = 0.0
    seasonal_indices: Tuple[float, ...] = ()


@dataclasses.dataclass(frozen=True)
class ForecastResult:
    category: str
    forecast: float
    interval: ConfidenceInterval
    confidence: str  # insufficient | low | medium | high
    trend: str  # increasing | decreasing | stable
    monthly_history: Tuple[MonthlyAmount, ...]
    method: str  # insufficient_data | simple_average | exponential_smoothing


# ---------------------------------------------------------------------------
# Cash flow stability
# ---------------------------------------------------------------------------


@dataclasses.dataclass(frozen=True)
class StabilityConfig:
    lookback_months: int = 12
    min_months: int = 3
    very_stable_index: int = 80
    stable_index: int = 60
    moderate_index: int = 40
    high_volatility_cv: float = 0.5
    negative_probability_note: float = 0.1
    volatility_source_cv: float = 0.2
    medium_confidence_months: int = 6
    high_confidence_months: int = 12
    max_transactions: int = DEFAULT_MAX_TRANSACTIONS

    def __post_init__(self) -> None:
        _require(self.lookback_months >= 1, "lookback_months must be >= 1")
        _require(self.min_months >= 2, "min_months must be >= 2")
        _require(
            0 <= self.moderate_index <= self.stable_index <= self.very_stable_index <= 100,
            "rating cut-offs must satisfy 0 <= moderate <= stable <= very_stable <= 100",
        )
        _require(self.volatility_source_cv >= 0, "volatility_source_cv must be >= 0")
        _require(
            self.medium_confidence_months <= self.high_confidence_months,
            "medium_confidence_months must be <= high_confidence_months",
        )
        _require(self.max_transactions > 0, "max_transactions must be > 0")


@dataclasses.dataclass(frozen=True)
class CashFlowStabilityResult:
    stability_index: int  # 0-100, higher is more stable
    rating: str  # Volatile | Moderate | Stable | Very Stable
    coefficient_of_variation: Optional[float]
    mean_net_cash_flow: float
    std_dev_net_cash_flow: float
    recurring_ratio: float
    probability_negative_3_months: Optional[float]
    confidence: str
    explanation: str


@dataclasses.dataclass(frozen=True)
class VolatilitySources:
    income_volatility: Optional[float]  # CV as a percentage
    expense_volatility: Optional[float]
    primary_source: str  # income | expenses | both | neither
    explanation: str


# ---------------------------------------------------------------------------
# Budget variance
# ---------------------------------------------------------------------------


@dataclasses.dataclass(frozen=True)
class BudgetConfig:
    on_track_band: float = 0.20
    red_flag_threshold: float = 0.20
    excluded_categories: Tuple[str, ...] = ("Transfer", "Credit Card Payment", "Internal Transfer")
    suggestion_min_months: int = 2
    suggestion_lookback_months: int = 3
    rounding_increment: float = 10.0
    seasonality_min_months: int = 12
    seasonality_swing: float = 0.4
    max_transactions: int = DEFAULT_MAX_TRANSACTIONS

    def __post_init__(self) -> None:
        _require(self.on_track_band >= 0, "on_track_band must be >= 0")
        _require(self.red_flag_threshold >= 0, "red_flag_threshold must be >= 0")
        _require(self.suggestion_min_months >= 1, "suggestion_min_months must be >= 1")
        _require(
            self.suggestion_lookback_months >= self.suggestion_min_months,
            "suggestion_lookback_months must be >= suggestion_min_months",
        )
        _require(self.rounding_increment > 0, "rounding_increment must be > 0")
        _require(self.seasonality_min_months >= 2, "seasonality_min_months must be >= 2")
        _require(self.max_transactions > 0, "max_transactions must be > 0")


@dataclasses.dataclass(frozen=True)
class CategoryVariance:
    category: str
    budgeted: float
    actual: float
    variance_pct: float  # (actual - budget) / budget * 100, inf for unbudgeted spend
    variance_amount: float
    status: str  # On Track | Over Budget | Under Budget
    is_red_flag: bool


@dataclasses.dataclass(frozen=True)
class MonthlyBudgetReport:
    month: str
    total_budgeted: float
    total_actual: float
    total_variance: float
    surplus: float
    red_flag_count: int
    categories: Tuple[CategoryVariance, ...]


@dataclasses.dataclass(frozen=True)
class BudgetSuggestion:
    category: str
    suggested: float
    confidence: str
    months_observed: int
    note: str


@dataclasses.dataclass(frozen=True)
class YearToDateCategory:
    variance: CategoryVariance
    ytd_actual: float
    annual_budget: float


@dataclasses.dataclass(frozen=True)
class YearToDateReport:
    year: int
    months_elapsed: int
    ytd_budgeted: float
    ytd_actual: float
    ytd_variance: float
    projected_year_end: float
    categories: Tuple[YearToDateCategory, ...]


@dataclasses.dataclass(frozen=True)
class SeasonalityProfile:
    has_seasonal: bool
    factors: Dict[int, float]  # calendar month (1-12) -> factor vs overall mean


# ---------------------------------------------------------------------------
# Investment simulation
# ---------------------------------------------------------------------------


@dataclasses.dataclass(frozen=True)
class ReturnAssumption:
    mean: float
    std_dev: float


@dataclasses.dataclass(frozen=True)
class RiskProfile:
    name: str
    label: str
    annual_mean: float
    annual_std_dev: float


DEFAULT_ASSET_CLASSES: Mapping[str, ReturnAssumption] = types.MappingProxyType(
    {
        "US_LARGE_CAP": ReturnAssumption(0.10, 0.16),
        "US_SMALL_CAP": ReturnAssumption(0.12, 0.20),
        "INTERNATIONAL": ReturnAssumption(0.08, 0.17),
        "BONDS": ReturnAssumption(0.05, 0.05),
        "CASH": ReturnAssumption(0.02, 0.01),
        "REIT": ReturnAssumption(0.09, 0.18),
        "DEFAULT": ReturnAssumption(0.07, 0.15),  # balanced portfolio
    }
)

DEFAULT_RISK_PROFILES: Tuple[RiskProfile, ...] = (
    RiskProfile("conservative", "Conservative (60% Bonds, 40% Stocks)", 0.06, 0.08),
    RiskProfile("moderate", "Moderate (40% Bonds, 60% Stocks)", 0.08, 0.12),
    RiskProfile("aggressive", "Aggressive (20% Bonds, 80% Stocks)", 0.10, 0.16),
)


@dataclasses.dataclass(frozen=True)
class SimulationConfig:
    horizon_months: int = 12
    num_simulations: int = 1000
    annual_mean: Optional[float] = None
    annual_std_dev: Optional[float] = None
    allocation: Optional[Mapping[str, float]] = None  # asset class -> weight
    goal_amount: Optional[float] = None
    seed: Optional[int] = None
    max_simulations: int = 100_000
    max_horizon_months: int = 1200
    asset_classes: Mapping[str, ReturnAssumption] = dataclasses.field(default_factory=lambda: DEFAULT_ASSET_CLASSES)
    risk_profiles: Tuple[RiskProfile, ...] = DEFAULT_RISK_PROFILES

    def __post_init__(self) -> None:
        _require(self.max_simulations > 0, "max_simulations must be > 0")
        _require(
            0 < self.num_simulations <= self.max_simulations,
            f"num_simulations must be in 1..{self.max_simulations}, got {self.num_simulations}",
        )
        _require(
            0 <= self.horizon_months <= self.max_horizon_months,
            f"horizon_months must be in 0..{self.max_horizon_months}, got {self.horizon_months}",
        )
        _require(
            (self.annual_mean is None) == (self.annual_std_dev is None),
            "annual_mean and annual_std_dev must be given together",
        )
        if self.annual_std_dev is not None:
            _require(self.annual_std_dev >= 0, "annual_std_dev must be >= 0")
        if self.allocation:
            _require(all(w >= 0 for w in self.allocation.values()), "allocation weights must be >= 0")
        _require("DEFAULT" in self.asset_classes, "asset_classes must define a DEFAULT entry")
        _require(len(self.risk_profiles) == 3, "risk_profiles must hold exactly three profiles")


@dataclasses.dataclass(frozen=True)
class SimulationResult:
    mean: float
    std_dev: float
    percentiles: Dict[str, float]  # keys "p10","p25","p50","p75","p90"
    confidence_interval: Tuple[float, float]  # (p10, p90)
    goal_success_prob: Optional[float]
    simulations_run: int
    horizon_months: int
    assumptions: str


@dataclasses.dataclass(frozen=True)
class ScenarioOutcome:
    name: str
    label: str
    result: SimulationResult


@dataclasses.dataclass(frozen=True)
class ScenarioComparison:
    conservative: ScenarioOutcome
    moderate: ScenarioOutcome
    aggressive: ScenarioOutcome

    def outcomes(self) -> Tuple[ScenarioOutcome, ...]:
        return (self.conservative, self.moderate, self.aggressive)


@dataclasses.dataclass(frozen=True)
class RequiredContribution:
    required_monthly_contribution: float
    assumptions: str


@dataclasses.dataclass(frozen=True)
class RetirementProjection:
    age_at_retirement: int
    years_until_retirement: int
    projected_balance: SimulationResult
    monthly_income_from_portfolio: float  # 4% rule on the median
