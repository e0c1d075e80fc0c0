"""Tests for the Monte Carlo engine — perturbation, batching, seeding, summaries."""
import numpy as np
import pytest

from scenario_engine.exceptions import SimulationCancelledError, ValidationError
from scenario_engine.models.results import KPIBaseline
from scenario_engine.models.simulation import (
    ActionAssumption,
    ActionImpact,
    MonteCarloSettings,
    Scenario,
)
from scenario_engine.simulation.engine import (
    CancellationToken,
    MonteCarloSimulator,
    batch_sizes,
    build_histogram,
    perturbation_width,
    weighted_percentile,
)
from scenario_engine.simulation.scenarios import compile_scenario, deterministic_outcome


def _baselines():
    return {
        "oee": KPIBaseline(
            kpi_id="oee", current_value=60.0, baseline_value=60.0, target=100.0,
            baseline_achievement=60.0, source="current",
        ),
    }


def _compile(completion=50.0, probability=1.0, scenario_id="s1", impact=0.5):
    scenario = Scenario(
        id=scenario_id,
        name=scenario_id.upper(),
        probability=probability,
        actions=[ActionAssumption(action_id="a1", assumed_completion=completion)],
    )
    impacts = [ActionImpact(action_id="a1", kpi_id="oee", impact_score=impact)]
    return compile_scenario(scenario, impacts, _baselines())


def _run(compiled, simulator=None, **mc):
    settings = MonteCarloSettings(**{"iterations": 1000, "random_seed": 7, "include_draws": True, **mc})
    simulator = simulator or MonteCarloSimulator(workers=2, batch_size=250)
    return simulator.run(compiled, settings, _baselines())


# --- Scenario model tests ---


def test_deterministic_outcome_uses_headroom():
    # 0.5 impact x 100% completion x (100 - 60) headroom
    assert deterministic_outcome(_compile(completion=100.0)) == pytest.approx(20.0)


def test_unmapped_action_is_noted():
    scenario = Scenario(id="s", name="S", actions=[ActionAssumption(action_id="ghost", assumed_completion=80)])
    compiled = compile_scenario(scenario, [], _baselines())
    assert not compiled.has_impact
    assert deterministic_outcome(compiled) == 0.0
    assert any("ghost" in note for note in compiled.notes)


# --- Perturbation tests ---


def test_perturbation_stays_within_bounds():
    widths = perturbation_width(np.array([0.0, 10.0, 95.0, 100.0]), 50.0)
    assert list(widths) == pytest.approx([0.0, 5.0, 2.5, 0.0])


def test_zero_variability_is_degenerate():
    outcomes, summary = _run([_compile(completion=100.0)], variability_factor=0.0)
    result = outcomes[0]
    assert result.std == 0.0
    assert result.mean == pytest.approx(20.0)
    assert len(result.histogram) == 1
    assert result.histogram[0].probability == 1.0
    assert summary.mean == pytest.approx(20.0)


def test_draws_are_sorted_and_complete():
    result = _run([_compile()], iterations=1001)[0][0]
    assert result.iterations == 1001
    assert len(result.draws) == 1001
    assert result.draws == sorted(result.draws)
    assert result.confidence_interval.lower <= result.median <= result.confidence_interval.upper


def test_batch_sizes_cover_iterations():
    assert batch_sizes(1001, 250) == [250, 250, 250, 250, 1]
    assert batch_sizes(10, 250) == [10]


def test_draws_omitted_unless_requested():
    result = _run([_compile()], include_draws=False)[0][0]
    assert result.draws == []
    assert result.iterations == 1000
    assert sum(b.probability for b in result.histogram) == pytest.approx(1.0)


@pytest.mark.parametrize("iterations", [0, -5])
def test_non_positive_iterations_rejected(iterations):
    with pytest.raises(ValidationError, match="iterations"):
        _run([_compile()], iterations=iterations)


def test_no_scenarios_rejected():
    with pytest.raises(ValidationError):
        _run([])


# --- Risk tests ---


def test_degenerate_run_has_no_downside():
    risk = _run([_compile(completion=100.0)], variability_factor=0.0)[0][0].risk
    assert risk.downside_probability == 0.0
    assert risk.lower_tail_mean == pytest.approx(20.0)
    assert risk.expected_shortfall == pytest.approx(0.0)
    assert risk.execution_risk == 0.0


def test_symmetric_perturbation_downside():
    # completion ~ Uniform(25, 75), outcome ~ Uniform(5, 15), expected 10
    result = _run([_compile(completion=50.0)], variability_factor=50.0)[0][0]
    risk = result.risk
    assert 0.4 < risk.downside_probability < 0.6
    assert 5.0 <= risk.lower_tail_mean <= 5.5
    assert 4.5 <= risk.expected_shortfall <= 5.0
    assert risk.execution_risk == pytest.approx(50.0)


# --- Seeding tests ---


def test_seeded_runs_reproducible():
    first = _run([_compile()])[0][0]
    second = _run([_compile()])[0][0]
    assert first.draws == second.draws


def test_worker_count_does_not_change_result():
    serial = _run([_compile()], MonteCarloSimulator(workers=1, batch_size=100))[0][0]
    parallel = _run([_compile()], MonteCarloSimulator(workers=8, batch_size=100))[0][0]
    assert serial.draws == parallel.draws


def test_different_seeds_differ():
    a = _run([_compile()], random_seed=1)[0][0]
    b = _run([_compile()], random_seed=2)[0][0]
    assert a.draws != b.draws


# --- Projection & mixture tests ---


def test_kpi_projection_tracks_improvement():
    result = _run([_compile(completion=100.0)], variability_factor=0.0)[0][0]
    projection = result.kpi_projections[0]
    assert projection.kpi_id == "oee"
    assert projection.mean_improvement == pytest.approx(20.0)
    assert projection.projected_achievement == pytest.approx(80.0)
    assert projection.projected_value == pytest.approx(80.0)
    assert projection.contributing_actions == ["a1"]


def test_zero_probability_scenario_excluded_from_mixture():
    likely = _compile(completion=100.0, scenario_id="likely")
    never = _compile(completion=0.0, probability=0.0, scenario_id="never")
    outcomes, summary = _run([likely, never], variability_factor=0.0)
    assert [o.scenario_id for o in outcomes] == ["likely", "never"]
    assert summary.iterations == 2000
    assert summary.mean == pytest.approx(20.0)
    assert summary.median == pytest.approx(20.0)


def test_mixture_histogram_probabilities_sum_to_one():
    _, summary = _run([_compile(), _compile(completion=80.0, probability=0.5, scenario_id="s2")])
    assert sum(b.probability for b in summary.histogram) == pytest.approx(1.0)
    assert len(summary.histogram) == 20


def test_weighted_percentile_respects_weights():
    values = np.array([1.0, 2.0, 3.0])
    weights = np.array([0.1, 0.1, 0.8])
    assert weighted_percentile(values, weights, 0.5) == 3.0
    assert weighted_percentile(values, weights, 0.05) == 1.0


def test_histogram_of_constant_values():
    bins = build_histogram(np.array([4.0, 4.0]), 20)
    assert len(bins) == 1
    assert bins[0].value == 4.0


# --- Cancellation tests ---


def test_cancelled_token_aborts_run():
    token = CancellationToken()
    token.cancel()
    with pytest.raises(SimulationCancelledError):
        MonteCarloSimulator(workers=2, batch_size=100).run(
            [_compile()], MonteCarloSettings(iterations=500), _baselines(), token,
        )
