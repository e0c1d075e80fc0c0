"""Sensitivity analysis — one-at-a-time parameter shifts on the deterministic outcome.

For a variation v (percent) the parameter is scaled by

    linear:       f = 1 + v/100
    exponential:  f = (1 + v/100) ** k

completion_rate, impact_score and achievement feed back into the scenario
model; any other parameter scales the outcome directly by f.
"""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor

import numpy as np

from scenario_engine.config import settings
from scenario_engine.exceptions import NumericDegeneracyError
from scenario_engine.ml.correlation import pearson
from scenario_engine.models.results import (
    ParameterSensitivity,
    SensitivityEntry,
    SensitivityResult,
)
from scenario_engine.models.simulation import (
    ImpactModel,
    ParameterRange,
    SensitivityParameter,
    SensitivitySpec,
)
from scenario_engine.simulation.engine import CancellationToken
from scenario_engine.simulation.scenarios import CompiledScenario, weighted_outcome

logger = logging.getLogger(__name__)

WIRED_PARAMETERS = {
    "completion_rate": "completion_factor",
    "impact_score": "impact_factor",
    "achievement": "achievement_factor",
}
_RANKED_COUNT = 3


def shift_factor(variation: float, impact: ImpactModel, exponent: float) -> float:
    base = 1.0 + variation / 100.0
    if impact == ImpactModel.exponential:
        return base ** exponent
    return base


def expand_range(sweep: ParameterRange) -> list[float]:
    """min..max inclusive in `step` increments."""
    count = int(np.floor((sweep.max - sweep.min) / sweep.step + 1e-9)) + 1
    return [round(sweep.min + i * sweep.step, 10) for i in range(count)]


def _with_ranges(spec: SensitivitySpec, notes: list[str]) -> list[tuple[SensitivityParameter, list[float]]]:
    """Each parameter with its variations plus any matching sweeps, deduplicated."""
    expanded: dict[str, tuple[SensitivityParameter, list[float]]] = {}
    for parameter in spec.parameters:
        expanded[parameter.name] = (parameter, list(parameter.variations))
    for sweep in spec.ranges:
        if sweep.parameter not in expanded:
            notes.append(f"range for unlisted parameter {sweep.parameter}: analysed as linear, baseline 1")
            expanded[sweep.parameter] = (SensitivityParameter(name=sweep.parameter), [])
        expanded[sweep.parameter][1].extend(expand_range(sweep))

    result = []
    for parameter, variations in expanded.values():
        unique: list[float] = []
        for v in variations:
            if v not in unique:
                unique.append(v)
        result.append((parameter, unique))
    return result


class SensitivityAnalyzer:
    def __init__(self, workers: int | None = None, exponent: float | None = None) -> None:
        self.workers = workers or settings.MC_WORKERS
        self.exponent = exponent if exponent is not None else settings.SENSITIVITY_EXPONENT

    def analyze(
        self,
        compiled: list[CompiledScenario],
        spec: SensitivitySpec,
        cancel_token: CancellationToken | None = None,
    ) -> SensitivityResult:
        """Elasticity of the probability-weighted outcome to each parameter.

        Parameters are ranked by |elasticity| descending; equal magnitudes
        keep their input order.
        """
        token = cancel_token or CancellationToken()
        notes: list[str] = []
        baseline = weighted_outcome(compiled)
        if baseline == 0.0:
            notes.append("baseline outcome is 0: elasticities reported as 0")

        plan = _with_ranges(spec, notes)
        combos = [(p, v) for p, variations in plan for v in variations]
        logger.info("Sensitivity: %d parameters, %d combinations", len(plan), len(combos))

        token.raise_if_cancelled()
        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            outcomes = list(executor.map(
                lambda combo: self._outcome(compiled, baseline, *combo), combos,
            ))
        token.raise_if_cancelled()

        by_name: dict[str, list[SensitivityEntry]] = {p.name: [] for p, _ in plan}
        for (parameter, variation), shifted in zip(combos, outcomes):
            by_name[parameter.name].append(self._entry(parameter, variation, baseline, shifted))

        parameters = [self._summarize(p, by_name[p.name]) for p, _ in plan]
        ranked = sorted(parameters, key=lambda p: abs(p.elasticity), reverse=True)
        names = [p.parameter for p in ranked]
        return SensitivityResult(
            baseline_outcome=baseline,
            parameters=ranked,
            most_sensitive=names[:_RANKED_COUNT],
            least_sensitive=list(reversed(names[-_RANKED_COUNT:])),
            notes=notes,
        )

    def _outcome(
        self,
        compiled: list[CompiledScenario],
        baseline: float,
        parameter: SensitivityParameter,
        variation: float,
    ) -> float:
        factor = shift_factor(variation, parameter.impact, self.exponent)
        wired = WIRED_PARAMETERS.get(parameter.name)
        if wired is None:
            return baseline * factor
        return weighted_outcome(compiled, **{wired: factor})

    def _entry(
        self,
        parameter: SensitivityParameter,
        variation: float,
        baseline: float,
        shifted: float,
    ) -> SensitivityEntry:
        if baseline == 0.0:
            change, elasticity = 0.0, 0.0
        else:
            change = (shifted - baseline) / baseline
            elasticity = 0.0 if variation == 0 else change / (variation / 100.0)
        return SensitivityEntry(
            variation=variation,
            parameter_value=parameter.baseline * shift_factor(variation, parameter.impact, self.exponent),
            outcome=shifted,
            outcome_change_pct=change * 100.0,
            elasticity=elasticity,
        )

    @staticmethod
    def _summarize(parameter: SensitivityParameter, entries: list[SensitivityEntry]) -> ParameterSensitivity:
        moving = [e.elasticity for e in entries if e.variation != 0]
        try:
            correlation = pearson(
                np.array([e.variation for e in entries]), np.array([e.outcome for e in entries]),
            ) if len(entries) >= 2 else 0.0
        except NumericDegeneracyError:
            correlation = 0.0
        outcomes = [e.outcome for e in entries]
        return ParameterSensitivity(
            parameter=parameter.name,
            impact=parameter.impact,
            baseline=parameter.baseline,
            elasticity=sum(moving) / len(moving) if moving else 0.0,
            correlation=correlation,
            swing_low=min(outcomes) if outcomes else 0.0,
            swing_high=max(outcomes) if outcomes else 0.0,
            entries=entries,
        )


def analyze_sensitivity(compiled: list[CompiledScenario], spec: SensitivitySpec) -> SensitivityResult:
    return SensitivityAnalyzer().analyze(compiled, spec)
