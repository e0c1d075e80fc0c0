"""Invariant tests — properties that must hold regardless of parameters.

Covers forecast trend direction, Monte Carlo convergence and coverage,
elasticity zero-guard, correlation symmetry, decomposition identity and
schedule determinism.
"""
from datetime import date

import numpy as np
import pytest

from scenario_engine.ml.correlation import CorrelationAnalyzer
from scenario_engine.ml.forecaster import TimeSeriesForecaster
from scenario_engine.ml.registry import ModelRegistry
from scenario_engine.ml.seasonal import SeasonalDecomposer
from scenario_engine.models.results import KPIBaseline
from scenario_engine.models.series import KPISeries
from scenario_engine.models.simulation import (
    ActionAssumption,
    ActionImpact,
    ActionPlan,
    MonteCarloSettings,
    Scenario,
    SensitivityParameter,
    SensitivitySpec,
    TimeHorizon,
)
from scenario_engine.simulation.engine import MonteCarloSimulator
from scenario_engine.simulation.optimizer import optimize_action_sequence
from scenario_engine.simulation.scenarios import compile_scenario
from scenario_engine.simulation.sensitivity import SensitivityAnalyzer


def _compiled(completion=50.0):
    baselines = {
        "oee": KPIBaseline(
            kpi_id="oee", current_value=60.0, baseline_value=60.0, target=100.0,
            baseline_achievement=60.0, source="current",
        ),
    }
    scenario = Scenario(
        id="s", name="S", actions=[ActionAssumption(action_id="a1", assumed_completion=completion)],
    )
    impacts = [ActionImpact(action_id="a1", kpi_id="oee", impact_score=0.5)]
    return [compile_scenario(scenario, impacts, baselines)], baselines


def _simulate(iterations, seed=42, variability=50.0, level=0.95):
    compiled, baselines = _compiled()
    settings = MonteCarloSettings(
        iterations=iterations, confidence_level=level,
        variability_factor=variability, random_seed=seed, include_draws=True,
    )
    return MonteCarloSimulator(workers=4, batch_size=500).run(compiled, settings, baselines)[0][0]


# ---------------------------------------------------------------------------
# Forecast invariants
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("values", [
    [50, 55, 60, 65, 70, 75, 80, 85],
    [10, 12, 11, 15, 14, 18, 17, 21],
    [3, 3, 4, 4, 5, 5],
])
def test_increasing_series_never_forecasts_down(values):
    registry = ModelRegistry()
    model_id = TimeSeriesForecaster(registry).train_linear_regression(KPISeries.from_values(values))
    assert registry.get(model_id).parameters["coefficients"][1] >= 0


def test_end_to_end_forecast_rises_past_history():
    series = KPISeries.from_values([50, 55, 60, 65, 70, 75, 80, 85])
    forecast = TimeSeriesForecaster(ModelRegistry()).generate_forecast(series, 4)
    values = [p.value for p in forecast.points]
    assert len(values) == 4
    assert all(v > 85 for v in values)
    assert all(b > a for a, b in zip(values, values[1:]))


# ---------------------------------------------------------------------------
# Monte Carlo invariants
# ---------------------------------------------------------------------------


def test_monte_carlo_converges():
    small = _simulate(100)
    large = _simulate(10_000)
    # outcome is Uniform(5, 15): mean 10
    assert abs(small.mean - large.mean) < 1.5
    assert abs(large.mean - 10.0) < 0.2
    ratio = small.standard_error / large.standard_error
    assert 7.0 < ratio < 13.0


def test_confidence_interval_coverage():
    result = _simulate(5_000)
    draws = np.array(result.draws)
    ci = result.confidence_interval
    inside = np.mean((draws >= ci.lower) & (draws <= ci.upper))
    assert abs(inside - 0.95) <= 0.02


def test_draws_within_outcome_bounds():
    result = _simulate(2_000, variability=500.0)
    # completion stays in [0, 100], so the outcome stays in [0, 0.5 * 40]
    assert min(result.draws) >= 0.0
    assert max(result.draws) <= 20.0


# ---------------------------------------------------------------------------
# Sensitivity invariants
# ---------------------------------------------------------------------------


def test_zero_variation_elasticity_is_zero():
    compiled, _ = _compiled()
    spec = SensitivitySpec(parameters=[
        SensitivityParameter(name=name, variations=[-25.0, 0.0, 25.0])
        for name in ("completion_rate", "impact_score", "achievement", "budget")
    ])
    for parameter in SensitivityAnalyzer(workers=2).analyze(compiled, spec).parameters:
        zero = next(e for e in parameter.entries if e.variation == 0.0)
        assert zero.elasticity == 0.0


# ---------------------------------------------------------------------------
# Correlation invariants
# ---------------------------------------------------------------------------


def test_correlation_symmetric_and_bounded():
    rng = np.random.default_rng(5)
    series = [
        KPISeries.from_values(list(rng.normal(50, 10, 10)), kpi_id=f"kpi_{i}")
        for i in range(5)
    ]
    forward = CorrelationAnalyzer().analyze(series)
    backward = CorrelationAnalyzer().analyze(list(reversed(series)))
    assert len(forward.pairs) == 10
    for pair in forward.pairs:
        assert -1.0 <= pair.coefficient <= 1.0
        assert pair.kpi_a != pair.kpi_b
        assert backward.coefficient(pair.kpi_b, pair.kpi_a) == pair.coefficient


# ---------------------------------------------------------------------------
# Decomposition invariants
# ---------------------------------------------------------------------------


def test_seasonal_components_sum_to_original():
    rng = np.random.default_rng(9)
    values = [40 + 0.8 * t + 6 * np.sin(t * np.pi / 2) + rng.normal(0, 1) for t in range(16)]
    series = KPISeries.from_values(values)
    result = SeasonalDecomposer(period=4).decompose(series)
    for i, original in enumerate(values):
        if result.trend[i] is None:
            continue
        rebuilt = result.trend[i] + result.seasonal[i] + result.residual[i]
        assert rebuilt == pytest.approx(original, abs=1e-6)


# ---------------------------------------------------------------------------
# Scheduling invariants
# ---------------------------------------------------------------------------


def test_schedule_is_deterministic():
    plans = [
        ActionPlan(action_id=f"a{i}", priority=p, estimated_impact=p, estimated_effort=e)
        for i, (p, e) in enumerate([(9, 3), (6, 2), (3, 1)])
    ]
    horizon = TimeHorizon(start=date(2024, 1, 1), end=date(2024, 9, 30))
    runs = [
        optimize_action_sequence(plans, horizon, max_concurrent=1, interval_capacity=1.0)
        for _ in range(5)
    ]
    assert all(run == runs[0] for run in runs)
    first = runs[0].actions[0]
    assert first.action_id == "a0"
    assert first.start_interval == 0
    assert runs[0].horizon_intervals == 3
    assert runs[0].overflow == ["a1", "a2"]
