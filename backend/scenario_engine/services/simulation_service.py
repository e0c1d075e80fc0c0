"""Simulation orchestration service.

Drives one advanced simulation run through its stages:

    validating -> forecasting -> simulating -> analyzing_sensitivity
               -> optimizing -> completed

Any error moves the run to `failed` (or `cancelled`) and is re-raised; a
SimulationResult only exists for completed runs.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from uuid import uuid4

from scenario_engine.exceptions import SimulationCancelledError
from scenario_engine.guards import achievement_rate, guard
from scenario_engine.ml.correlation import CorrelationAnalyzer
from scenario_engine.ml.forecaster import (
    MIN_SEASONAL_POINTS,
    MIN_TRAINING_POINTS,
    TimeSeriesForecaster,
)
from scenario_engine.ml.registry import ModelRegistry
from scenario_engine.models.correlation import CorrelationReport
from scenario_engine.models.results import KPIBaseline, RunState, SimulationResult, StateTransition
from scenario_engine.models.series import KPISeries, parse_period
from scenario_engine.models.simulation import ActionPlan, SimulationRequest
from scenario_engine.simulation.engine import CancellationToken, MonteCarloSimulator
from scenario_engine.simulation.optimizer import ActionSequenceOptimizer
from scenario_engine.simulation.scenarios import compile_scenario
from scenario_engine.simulation.sensitivity import SensitivityAnalyzer
from scenario_engine.simulation.validation import validate_request

logger = logging.getLogger(__name__)


def quarters_ahead(last_period: str, horizon_end: date) -> int:
    """Quarters from the last observed period to the quarter containing horizon_end."""
    year, quarter = parse_period(last_period)
    end_quarter = (horizon_end.month - 1) // 3 + 1
    return (horizon_end.year * 4 + end_quarter) - (year * 4 + quarter)


class SimulationOrchestrator:
    """Runs the full pipeline for one request. One instance per run."""

    def __init__(
        self,
        registry: ModelRegistry,
        simulator: MonteCarloSimulator | None = None,
        sensitivity: SensitivityAnalyzer | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        self.registry = registry
        self.simulator = simulator or MonteCarloSimulator()
        self.sensitivity = sensitivity or SensitivityAnalyzer()
        self.cancel_token = cancel_token or CancellationToken()
        self.run_id = f"run_{uuid4().hex[:12]}"
        self.state: RunState | None = None
        self.history: list[StateTransition] = []

    def _transition(self, state: RunState) -> None:
        self.state = state
        self.history.append(StateTransition(state=state, at=datetime.now(timezone.utc)))
        logger.info("Run %s -> %s", self.run_id, state.value)

    def run(self, request: SimulationRequest) -> SimulationResult:
        try:
            return self._run(request)
        except SimulationCancelledError:
            self._transition(RunState.cancelled)
            raise
        except Exception as e:
            self._transition(RunState.failed)
            logger.warning("Run %s failed: %s", self.run_id, e)
            raise

    def _run(self, request: SimulationRequest) -> SimulationResult:
        diagnostics: list[str] = []

        self._transition(RunState.validating)
        validate_request(request)

        self._transition(RunState.forecasting)
        baselines = self._baselines(request, diagnostics)
        correlations = self._correlations(request.kpi_series, baselines)
        self.cancel_token.raise_if_cancelled()

        self._transition(RunState.simulating)
        by_kpi = {b.kpi_id: b for b in baselines}
        compiled = [compile_scenario(s, request.impacts, by_kpi) for s in request.scenarios]
        scenario_results, summary = self.simulator.run(
            compiled, request.monte_carlo, by_kpi, self.cancel_token,
        )

        self._transition(RunState.analyzing_sensitivity)
        sensitivity = self.sensitivity.analyze(compiled, request.sensitivity, self.cancel_token)

        self._transition(RunState.optimizing)
        optimizer = ActionSequenceOptimizer(request.interval_capacity, request.max_concurrent)
        timeline = optimizer.optimize(self._action_plans(request, diagnostics), request.time_horizon)
        self.cancel_token.raise_if_cancelled()

        self._transition(RunState.completed)
        return SimulationResult(
            run_id=self.run_id,
            state=RunState.completed,
            scenario_results=scenario_results,
            monte_carlo=summary,
            sensitivity=sensitivity,
            timeline=timeline,
            baselines=baselines,
            correlations=correlations,
            settings=request.monte_carlo,
            history=list(self.history),
            diagnostics=diagnostics,
            computed_at=datetime.now(timezone.utc),
        )

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------
    def _baselines(self, request: SimulationRequest, diagnostics: list[str]) -> list[KPIBaseline]:
        """Forecast each targeted KPI to the end of the horizon where history allows."""
        forecaster = TimeSeriesForecaster(self.registry)
        series_by_kpi = {s.kpi_id: s for s in request.kpi_series}

        baselines = []
        for target in request.kpi_targets:
            series = series_by_kpi.get(target.kpi_id)
            value, source, model_id = target.current_value, "current", None
            if series is not None and len(series) >= MIN_TRAINING_POINTS:
                seasonal = request.include_seasonality and len(series) >= MIN_SEASONAL_POINTS
                if request.include_seasonality and not seasonal:
                    diagnostics.append(
                        f"{target.kpi_id}: {len(series)} periods, seasonality needs {MIN_SEASONAL_POINTS}"
                    )
                periods_ahead = quarters_ahead(series.periods[-1], request.time_horizon.end)
                if periods_ahead < 1:
                    diagnostics.append(
                        f"{target.kpi_id}: history runs to {series.periods[-1]}, past the horizon end; "
                        f"forecasting one quarter ahead"
                    )
                    periods_ahead = 1
                forecast = forecaster.generate_forecast(series, periods_ahead, seasonal)
                value = forecast.points[-1].value
                source = "seasonal_forecast" if seasonal else "forecast"
                model_id = forecast.model_id
                diagnostics.extend(f"{target.kpi_id}: {note}" for note in forecast.notes)
            elif series is not None:
                diagnostics.append(
                    f"{target.kpi_id}: {len(series)} periods, using current value as baseline"
                )

            value = guard(value, diagnostics, f"{target.kpi_id} baseline", minimum=0.0)
            baselines.append(KPIBaseline(
                kpi_id=target.kpi_id,
                current_value=target.current_value,
                baseline_value=value,
                target=target.target,
                baseline_achievement=achievement_rate(value, target.target),
                source=source,
                model_id=model_id,
            ))
        return baselines

    @staticmethod
    def _correlations(
        series: list[KPISeries], baselines: list[KPIBaseline],
    ) -> CorrelationReport | None:
        if len(series) < 2:
            return None
        report = CorrelationAnalyzer().analyze(series)
        for baseline in baselines:
            baseline.related_kpis = report.related_kpis(baseline.kpi_id)
        return report

    @staticmethod
    def _action_plans(request: SimulationRequest, diagnostics: list[str]) -> list[ActionPlan]:
        """One plan per distinct action referenced by any scenario, first-seen order."""
        known = {a.action_id: a for a in request.actions}
        plans: dict[str, ActionPlan] = {}
        for scenario in request.scenarios:
            for assumption in scenario.actions:
                if assumption.action_id in plans:
                    continue
                plan = known.get(assumption.action_id)
                if plan is None:
                    diagnostics.append(
                        f"action {assumption.action_id}: no plan, assuming effort 1 "
                        f"and impact {assumption.estimated_impact}"
                    )
                    plan = ActionPlan(
                        action_id=assumption.action_id,
                        estimated_effort=1.0,
                        estimated_impact=assumption.estimated_impact,
                    )
                plans[assumption.action_id] = plan
        return list(plans.values())


def run_advanced_simulation(
    request: SimulationRequest,
    registry: ModelRegistry | None = None,
    cancel_token: CancellationToken | None = None,
) -> SimulationResult:
    """Run the full forecasting + simulation pipeline for one request."""
    orchestrator = SimulationOrchestrator(
        registry if registry is not None else ModelRegistry(),
        cancel_token=cancel_token,
    )
    return orchestrator.run(request)
