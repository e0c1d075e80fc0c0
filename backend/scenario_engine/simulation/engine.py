"""Monte Carlo simulation engine.

Runs N perturbed draws per scenario, producing a ScenarioOutcome per
scenario and a probability-weighted mixture summary across scenarios.

Perturbation: each action's completion is drawn from
Uniform(c - w, c + w) with w = min(c·v/100, c, 100 - c), which is zero-mean
around the assumed completion and never leaves [0, 100].

Iterations are split into fixed-size batches run on a thread pool. Every
batch owns a numpy Generator spawned from a single SeedSequence and results
are merged by batch index, so a seeded run is reproducible regardless of
which batch finishes first.
"""
from __future__ import annotations

import logging
import math
import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed

import numpy as np

from scenario_engine.config import settings
from scenario_engine.exceptions import SimulationCancelledError, ValidationError
from scenario_engine.guards import guard
from scenario_engine.models.results import (
    ConfidenceInterval,
    HistogramBin,
    KPIBaseline,
    KPIProjection,
    MonteCarloSummary,
    ScenarioOutcome,
    ScenarioRisk,
)
from scenario_engine.models.simulation import MonteCarloSettings
from scenario_engine.simulation.scenarios import (
    CompiledScenario,
    deterministic_outcome,
    improvements,
    outcome,
)

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative cancellation flag shared between a caller and a run."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise SimulationCancelledError("Simulation run cancelled")


def batch_sizes(iterations: int, batch_size: int) -> list[int]:
    full, remainder = divmod(iterations, batch_size)
    return [batch_size] * full + ([remainder] if remainder else [])


def perturbation_width(completion: np.ndarray, variability: float) -> np.ndarray:
    return np.minimum.reduce([completion * variability / 100.0, completion, 100.0 - completion])


def _run_batch(
    compiled: CompiledScenario,
    size: int,
    seed: np.random.SeedSequence,
    variability: float,
    token: CancellationToken,
) -> tuple[np.ndarray, np.ndarray]:
    """Draw `size` perturbed completions and evaluate them."""
    token.raise_if_cancelled()
    rng = np.random.default_rng(seed)
    c = compiled.completion
    w = perturbation_width(c, variability)
    draws = rng.uniform(c - w, c + w, size=(size, len(c)))
    per_kpi = improvements(compiled, draws)
    return outcome(compiled, per_kpi), per_kpi


def percentile_interval(values: np.ndarray, level: float) -> tuple[float, float]:
    tail = (1.0 - level) / 2.0 * 100.0
    lower, upper = np.percentile(values, [tail, 100.0 - tail])
    return float(lower), float(upper)


def weighted_percentile(values: np.ndarray, weights: np.ndarray, q: float) -> float:
    """Smallest value whose cumulative normalised weight reaches q (0-1)."""
    order = np.argsort(values, kind="stable")
    cumulative = np.cumsum(weights[order])
    cumulative /= cumulative[-1]
    index = int(np.searchsorted(cumulative, q - 1e-12, side="left"))
    return float(values[order][min(index, len(values) - 1)])


def build_histogram(values: np.ndarray, bins: int, weights: np.ndarray | None = None) -> list[HistogramBin]:
    """Probability histogram; a degenerate distribution becomes one bin."""
    low, high = float(values.min()), float(values.max())
    if high == low:
        return [HistogramBin(lower=low, upper=high, value=low, probability=1.0)]
    counts, edges = np.histogram(values, bins=bins, range=(low, high), weights=weights)
    total = counts.sum()
    return [
        HistogramBin(
            lower=float(edges[i]),
            upper=float(edges[i + 1]),
            value=float((edges[i] + edges[i + 1]) / 2.0),
            probability=float(counts[i] / total),
        )
        for i in range(len(counts))
    ]


def scenario_risk(
    compiled: CompiledScenario, draws: np.ndarray, expected: float, lower: float,
) -> ScenarioRisk:
    """Downside metrics of one scenario from its draws."""
    # lower is a percentile of draws, so the tail holds at least the minimum
    tail_mean = float(draws[draws <= lower].mean())
    c = compiled.completion
    return ScenarioRisk(
        downside_probability=float(np.mean(draws < expected - 1e-9)),
        lower_tail_mean=tail_mean,
        expected_shortfall=max(0.0, expected - tail_mean),
        execution_risk=float(np.mean(100.0 - c)) if len(c) else 0.0,
    )


class MonteCarloSimulator:
    """Batch-parallel Monte Carlo over compiled scenarios."""

    def __init__(
        self,
        workers: int | None = None,
        batch_size: int | None = None,
        histogram_bins: int | None = None,
    ) -> None:
        self.workers = workers or settings.MC_WORKERS
        self.batch_size = batch_size or settings.MC_BATCH_SIZE
        self.histogram_bins = histogram_bins or settings.MC_HISTOGRAM_BINS

    def run(
        self,
        compiled: list[CompiledScenario],
        mc: MonteCarloSettings,
        baselines: dict[str, KPIBaseline],
        cancel_token: CancellationToken | None = None,
    ) -> tuple[list[ScenarioOutcome], MonteCarloSummary]:
        if mc.iterations < 1:
            raise ValidationError(f"Monte Carlo iterations must be > 0, got {mc.iterations}")
        if not compiled:
            raise ValidationError("Monte Carlo needs at least one scenario")
        token = cancel_token or CancellationToken()
        sizes = batch_sizes(mc.iterations, self.batch_size)
        root = np.random.SeedSequence(mc.random_seed)
        scenario_seeds = root.spawn(len(compiled))

        logger.info(
            "Monte Carlo: %d scenarios x %d iterations in %d batches (%d workers)",
            len(compiled), mc.iterations, len(sizes), self.workers,
        )

        results: list[list[tuple[np.ndarray, np.ndarray] | None]] = [
            [None] * len(sizes) for _ in compiled
        ]
        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            future_to_batch: dict[Future, tuple[int, int]] = {}
            for s, (scenario, seed) in enumerate(zip(compiled, scenario_seeds)):
                for b, (size, batch_seed) in enumerate(zip(sizes, seed.spawn(len(sizes)))):
                    future = executor.submit(
                        _run_batch, scenario, size, batch_seed, mc.variability_factor, token,
                    )
                    future_to_batch[future] = (s, b)

            try:
                for future in as_completed(future_to_batch):
                    token.raise_if_cancelled()
                    s, b = future_to_batch[future]
                    results[s][b] = future.result()
            except SimulationCancelledError:
                for future in future_to_batch:
                    future.cancel()
                logger.warning("Monte Carlo run cancelled")
                raise

        outcomes, all_draws = [], []
        for scenario, batches in zip(compiled, results):
            draws = np.sort(np.concatenate([batch[0] for batch in batches]))
            per_kpi = np.concatenate([batch[1] for batch in batches])
            outcomes.append(self._summarize_scenario(scenario, draws, per_kpi, mc, baselines))
            all_draws.append(draws)

        return outcomes, self._mixture(outcomes, all_draws, mc)

    def _summarize_scenario(
        self,
        compiled: CompiledScenario,
        draws: np.ndarray,
        per_kpi: np.ndarray,
        mc: MonteCarloSettings,
        baselines: dict[str, KPIBaseline],
    ) -> ScenarioOutcome:
        notes = list(compiled.notes)
        label = f"scenario {compiled.scenario.id}"
        n = len(draws)
        std = float(np.std(draws, ddof=1)) if n > 1 else 0.0
        lower, upper = percentile_interval(draws, mc.confidence_level)

        projections = []
        for k, kpi_id in enumerate(compiled.kpi_ids):
            baseline = baselines[kpi_id]
            gained = per_kpi[:, k]
            values = baseline.baseline_value + gained / 100.0 * baseline.target
            mean_gain = float(gained.mean())
            v_low, v_high = percentile_interval(values, mc.confidence_level)
            projections.append(KPIProjection(
                kpi_id=kpi_id,
                baseline_value=baseline.baseline_value,
                baseline_achievement=baseline.baseline_achievement,
                mean_improvement=guard(mean_gain, notes, f"{kpi_id} improvement", minimum=0.0),
                projected_achievement=guard(
                    baseline.baseline_achievement + mean_gain, notes, f"{kpi_id} achievement",
                    minimum=0.0,
                ),
                projected_value=guard(float(values.mean()), notes, f"{kpi_id} value", minimum=0.0),
                confidence_interval=ConfidenceInterval(
                    lower=guard(v_low, notes, f"{kpi_id} lower", minimum=0.0),
                    upper=guard(v_high, notes, f"{kpi_id} upper", minimum=0.0),
                    level=mc.confidence_level,
                ),
                contributing_actions=[
                    compiled.action_ids[a]
                    for a in range(len(compiled.action_ids))
                    if compiled.impact[a, k] > 0
                ],
            ))

        expected = guard(deterministic_outcome(compiled), notes, f"{label} expected")
        return ScenarioOutcome(
            scenario_id=compiled.scenario.id,
            scenario_name=compiled.scenario.name,
            probability=compiled.scenario.probability,
            iterations=n,
            expected_outcome=expected,
            mean=guard(float(draws.mean()), notes, f"{label} mean"),
            median=guard(float(np.median(draws)), notes, f"{label} median"),
            std=guard(std, notes, f"{label} std"),
            standard_error=guard(std / math.sqrt(n), notes, f"{label} standard error"),
            confidence_interval=ConfidenceInterval(
                lower=guard(lower, notes, f"{label} lower"),
                upper=guard(upper, notes, f"{label} upper"),
                level=mc.confidence_level,
            ),
            histogram=build_histogram(draws, self.histogram_bins),
            risk=scenario_risk(compiled, draws, expected, lower),
            draws=draws.tolist() if mc.include_draws else [],
            kpi_projections=projections,
            notes=notes,
        )

    def _mixture(
        self, outcomes: list[ScenarioOutcome], draws: list[np.ndarray], mc: MonteCarloSettings,
    ) -> MonteCarloSummary:
        """Mix scenario draws, each scenario weighted by its probability."""
        probabilities = np.array([o.probability for o in outcomes], dtype=float)
        if probabilities.sum() <= 0:
            probabilities = np.ones(len(outcomes))
        values = np.concatenate(draws)
        weights = np.concatenate([
            np.full(o.iterations, p / o.iterations) for o, p in zip(outcomes, probabilities)
        ])
        weights /= weights.sum()

        mean = float(np.sum(weights * values))
        std = math.sqrt(float(np.sum(weights * (values - mean) ** 2)))
        tail = (1.0 - mc.confidence_level) / 2.0
        return MonteCarloSummary(
            iterations=len(values),
            mean=mean,
            median=weighted_percentile(values, weights, 0.5),
            std=std,
            confidence_interval=ConfidenceInterval(
                lower=weighted_percentile(values, weights, tail),
                upper=weighted_percentile(values, weights, 1.0 - tail),
                level=mc.confidence_level,
            ),
            histogram=build_histogram(values, self.histogram_bins, weights),
        )
