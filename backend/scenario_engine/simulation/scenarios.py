"""Scenario outcome model.

A scenario is compiled into an action × KPI impact matrix plus the
achievement headroom of each impacted KPI. For completion c (0-100):

    improvement[k] = Σ_a impact[a, k] · c[a] / 100 · max(0, 100 - achievement[k])
    outcome        = mean_k improvement[k]

Both the Monte Carlo draws and the deterministic sensitivity runs evaluate
this same function, so their outcomes are directly comparable.
"""
from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from scenario_engine.models.results import KPIBaseline
from scenario_engine.models.simulation import ActionImpact, Scenario


@dataclass
class CompiledScenario:
    """Array form of one scenario, ready for vectorised evaluation."""
    scenario: Scenario
    action_ids: list[str]
    kpi_ids: list[str]
    completion: np.ndarray  # (A,)
    impact: np.ndarray  # (A, K)
    achievement: np.ndarray  # (K,)
    notes: list[str] = field(default_factory=list)

    @property
    def has_impact(self) -> bool:
        return bool(self.kpi_ids)


def compile_scenario(
    scenario: Scenario,
    impacts: list[ActionImpact],
    baselines: dict[str, KPIBaseline],
) -> CompiledScenario:
    """Resolve a scenario's actions against the impact mapping and KPI baselines."""
    notes: list[str] = []
    action_ids = [a.action_id for a in scenario.actions]
    by_action: dict[str, list[ActionImpact]] = {}
    for impact in impacts:
        by_action.setdefault(impact.action_id, []).append(impact)

    kpi_ids: list[str] = []
    for action_id in action_ids:
        mapped = by_action.get(action_id, [])
        if not mapped:
            notes.append(f"action {action_id} has no KPI impact mapping")
        for impact in mapped:
            if impact.kpi_id not in baselines:
                notes.append(f"KPI {impact.kpi_id} has no target, impact of {action_id} ignored")
                continue
            if impact.kpi_id not in kpi_ids:
                kpi_ids.append(impact.kpi_id)

    matrix = np.zeros((len(action_ids), len(kpi_ids)))
    for a, action_id in enumerate(action_ids):
        for impact in by_action.get(action_id, []):
            if impact.kpi_id in kpi_ids:
                matrix[a, kpi_ids.index(impact.kpi_id)] += impact.impact_score

    if action_ids and not kpi_ids:
        notes.append(f"scenario {scenario.id} impacts no KPI with a target, outcome is 0")

    return CompiledScenario(
        scenario=scenario,
        action_ids=action_ids,
        kpi_ids=kpi_ids,
        completion=np.array([a.assumed_completion for a in scenario.actions], dtype=float),
        impact=matrix,
        achievement=np.array([baselines[k].baseline_achievement for k in kpi_ids], dtype=float),
        notes=notes,
    )


def improvements(
    compiled: CompiledScenario,
    completion: np.ndarray,
    impact_factor: float = 1.0,
    achievement_factor: float = 1.0,
) -> np.ndarray:
    """Achievement-point improvement per KPI.

    `completion` is (A,) for one evaluation or (N, A) for N draws; the result
    is (K,) or (N, K) respectively.
    """
    impact = np.clip(compiled.impact * impact_factor, 0.0, 1.0)
    headroom = np.maximum(0.0, 100.0 - compiled.achievement * achievement_factor)
    return (np.asarray(completion, dtype=float) / 100.0) @ impact * headroom


def outcome(compiled: CompiledScenario, per_kpi: np.ndarray) -> np.ndarray | float:
    """Mean improvement across the impacted KPIs (0 when there are none)."""
    if not compiled.has_impact:
        if per_kpi.ndim == 2:
            return np.zeros(per_kpi.shape[0])
        return 0.0
    return per_kpi.mean(axis=-1)


def deterministic_outcome(
    compiled: CompiledScenario,
    completion_factor: float = 1.0,
    impact_factor: float = 1.0,
    achievement_factor: float = 1.0,
) -> float:
    """Outcome at the assumed completions, with optional parameter shifts."""
    completion = np.clip(compiled.completion * completion_factor, 0.0, 100.0)
    per_kpi = improvements(compiled, completion, impact_factor, achievement_factor)
    return float(outcome(compiled, per_kpi))


def weighted_outcome(compiled: list[CompiledScenario], **factors: float) -> float:
    """Probability-weighted deterministic outcome across scenarios."""
    weights = np.array([c.scenario.probability for c in compiled], dtype=float)
    values = np.array([deterministic_outcome(c, **factors) for c in compiled])
    if weights.sum() <= 0:
        return float(values.mean()) if values.size else 0.0
    return float(np.average(values, weights=weights))
