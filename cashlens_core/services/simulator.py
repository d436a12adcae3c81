from __future__ import annotations

import dataclasses
import logging
import math
from typing import Optional

import numpy as np

from cashlens_core.domain.exceptions import InvalidConfigurationError
from cashlens_core.domain.models import (
    RequiredContribution,
    RetirementProjection,
    ReturnAssumption,
    ScenarioComparison,
    ScenarioOutcome,
    SimulationConfig,
    SimulationResult,
)

logger = logging.getLogger(__name__)

SAFE_WITHDRAWAL_RATE = 0.04

INVESTMENT_DISCLAIMER = (
    "This simulation is for educational and planning purposes only. It does not constitute "
    "financial advice. Past performance does not guarantee future results."
)


def _generator(config: SimulationConfig, rng: Optional[np.random.Generator]) -> np.random.Generator:
    return rng if rng is not None else np.random.default_rng(config.seed)


def box_muller(rng: np.random.Generator, size: int) -> np.ndarray:
    """Standard normal draws via the Box-Muller transform."""
    u1 = 1.0 - rng.random(size)  # (0, 1], keeps log finite
    u2 = rng.random(size)
    return np.sqrt(-2.0 * np.log(u1)) * np.cos(2.0 * np.pi * u2)


def calculate_expected_return(config: SimulationConfig) -> ReturnAssumption:
    """
    Explicit mean/stddev win; otherwise blend the allocation over the asset-class
    table (unknown classes use DEFAULT). Portfolio stddev assumes independent
    asset classes: sqrt(sum(w^2 * sigma^2)).
    """
    if config.annual_mean is not None and config.annual_std_dev is not None:
        return ReturnAssumption(config.annual_mean, config.annual_std_dev)

    default = config.asset_classes["DEFAULT"]
    if not config.allocation:
        return default

    weighted_mean = 0.0
    weighted_var = 0.0
    for asset_class, weight in config.allocation.items():
        assumption = config.asset_classes.get(asset_class, default)
        weighted_mean += assumption.mean * weight
        weighted_var += (assumption.std_dev ** 2) * (weight ** 2)
    return ReturnAssumption(weighted_mean, math.sqrt(weighted_var))


def simulate_final_values(
    initial_value: float,
    monthly_contribution: float,
    horizon_months: int,
    annual_mean: float,
    annual_std_dev: float,
    num_paths: int,
    rng: np.random.Generator,
) -> np.ndarray:
    """
    All paths stepped together: contribution at the start of each month, then a
    normal monthly return (mean/12, stddev/sqrt(12)), then a floor at zero.
    """
    mu_m = annual_mean / 12
    sigma_m = annual_std_dev / math.sqrt(12)

    values = np.full(num_paths, float(initial_value))
    for _ in range(horizon_months):
        values += monthly_contribution
        values *= 1.0 + (mu_m + sigma_m * box_muller(rng, num_paths))
        np.maximum(values, 0.0, out=values)
    return values


def run_single_simulation(
    initial_value: float,
    monthly_contribution: float,
    horizon_months: int,
    annual_mean: float,
    annual_std_dev: float,
    rng: Optional[np.random.Generator] = None,
) -> float:
    rng = rng if rng is not None else np.random.default_rng()
    values = simulate_final_values(
        initial_value, monthly_contribution, horizon_months, annual_mean, annual_std_dev, 1, rng
    )
    return float(values[0])


def _assumptions(expected: ReturnAssumption, monthly_contribution: float, num_simulations: int) -> str:
    return (
        f"Expected annual return: {expected.mean * 100:.1f}%, "
        f"Volatility (std dev): {expected.std_dev * 100:.1f}%, "
        f"Monthly contribution: ${monthly_contribution:.0f}, "
        f"Simulations: {num_simulations}"
    )


def run_monte_carlo(
    initial_value: float,
    monthly_contribution: float,
    config: Optional[SimulationConfig] = None,
    rng: Optional[np.random.Generator] = None,
) -> SimulationResult:
    """
    Distribution of portfolio value after config.horizon_months. Pass a seeded
    Generator (or set config.seed) for reproducible runs.
    """
    config = config or SimulationConfig()
    rng = _generator(config, rng)
    expected = calculate_expected_return(config)

    finals = simulate_final_values(
        initial_value,
        monthly_contribution,
        config.horizon_months,
        expected.mean,
        expected.std_dev,
        config.num_simulations,
        rng,
    )

    p10, p25, p50, p75, p90 = (float(v) for v in np.percentile(finals, [10, 25, 50, 75, 90]))

    goal_success_prob = None
    if config.goal_amount is not None:
        goal_success_prob = round(float(np.mean(finals >= config.goal_amount)), 3)

    logger.debug(
        "monte carlo: %d paths over %d months, p50=%.2f", config.num_simulations, config.horizon_months, p50
    )
    return SimulationResult(
        mean=round(float(finals.mean()), 2),
        std_dev=round(float(finals.std()), 2),
        percentiles={
            "p10": round(p10, 2),
            "p25": round(p25, 2),
            "p50": round(p50, 2),
            "p75": round(p75, 2),
            "p90": round(p90, 2),
        },
        confidence_interval=(round(p10, 2), round(p90, 2)),
        goal_success_prob=goal_success_prob,
        simulations_run=config.num_simulations,
        horizon_months=config.horizon_months,
        assumptions=_assumptions(expected, monthly_contribution, config.num_simulations),
    )


def compare_scenarios(
    initial_value: float,
    monthly_contribution: float,
    config: Optional[SimulationConfig] = None,
    rng: Optional[np.random.Generator] = None,
) -> ScenarioComparison:
    """Run the conservative, moderate and aggressive profiles over the same horizon and goal."""
    config = config or SimulationConfig()
    rng = _generator(config, rng)

    outcomes = []
    for profile in config.risk_profiles:
        profile_config = dataclasses.replace(
            config,
            annual_mean=profile.annual_mean,
            annual_std_dev=profile.annual_std_dev,
            allocation=None,
        )
        outcomes.append(
            ScenarioOutcome(
                name=profile.name,
                label=profile.label,
                result=run_monte_carlo(initial_value, monthly_contribution, profile_config, rng),
            )
        )
    conservative, moderate, aggressive = outcomes
    return ScenarioComparison(conservative=conservative, moderate=moderate, aggressive=aggressive)


def calculate_required_contribution(
    current_value: float,
    goal_amount: float,
    horizon_months: int,
    annual_mean: float = 0.07,
) -> RequiredContribution:
    """
    Closed-form monthly payment for an annuity due (contribution at the start of
    each month):
        FV = PV(1+r)^n + PMT * ((1+r)^n - 1) / r * (1+r)
    With r = 0 the annuity factor is simply n. Floored at 0.
    """
    if horizon_months <= 0:
        raise InvalidConfigurationError(f"horizon_months must be > 0, got {horizon_months}")

    r = annual_mean / 12
    growth = math.pow(1 + r, horizon_months)
    remaining = goal_amount - current_value * growth
    if r == 0:
        annuity_factor = float(horizon_months)
    else:
        annuity_factor = (growth - 1) / r * (1 + r)

    payment = max(0.0, remaining / annuity_factor)
    return RequiredContribution(
        required_monthly_contribution=round(payment, 2),
        assumptions=f"Assumes {annual_mean * 100:.1f}% annual return, {horizon_months} month horizon",
    )


def project_retirement(
    current_age: int,
    retirement_age: int,
    current_savings: float,
    monthly_contribution: float,
    config: Optional[SimulationConfig] = None,
    rng: Optional[np.random.Generator] = None,
) -> RetirementProjection:
    """Balance at retirement plus the monthly income a 4% withdrawal of the median would pay."""
    config = config or SimulationConfig()
    years = max(0, retirement_age - current_age)
    retirement_config = dataclasses.replace(config, horizon_months=years * 12)

    projection = run_monte_carlo(current_savings, monthly_contribution, retirement_config, rng)
    monthly_income = projection.percentiles["p50"] * SAFE_WITHDRAWAL_RATE / 12
    return RetirementProjection(
        age_at_retirement=retirement_age,
        years_until_retirement=years,
        projected_balance=projection,
        monthly_income_from_portfolio=round(monthly_income, 2),
    )
