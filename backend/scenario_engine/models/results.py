from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from scenario_engine.models.correlation import CorrelationReport
from scenario_engine.models.simulation import ImpactModel, MonteCarloSettings


class RunState(str, Enum):
    """Orchestrator lifecycle of a single simulation run."""
    validating = "validating"
    forecasting = "forecasting"
    simulating = "simulating"
    analyzing_sensitivity = "analyzing_sensitivity"
    optimizing = "optimizing"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"


class ConfidenceInterval(BaseModel):
    lower: float
    upper: float
    level: float


class HistogramBin(BaseModel):
    lower: float
    upper: float
    value: float  # bin centre
    probability: float


class KPIBaseline(BaseModel):
    """Baseline a KPI is simulated from, forecast or observed."""
    kpi_id: str
    current_value: float
    baseline_value: float
    target: float
    baseline_achievement: float
    source: str  # "forecast" | "seasonal_forecast" | "current"
    model_id: Optional[str] = None
    related_kpis: list[str] = []


class KPIProjection(BaseModel):
    """Per-KPI baseline vs with-actions projection for one scenario."""
    kpi_id: str
    baseline_value: float
    baseline_achievement: float
    mean_improvement: float  # achievement points
    projected_achievement: float
    projected_value: float
    confidence_interval: ConfidenceInterval  # on projected_value
    contributing_actions: list[str]


class ScenarioRisk(BaseModel):
    """Downside of one scenario, read off its Monte Carlo draws."""
    downside_probability: float  # share of draws below expected_outcome
    lower_tail_mean: float  # mean of draws at or below the interval lower bound
    expected_shortfall: float  # expected_outcome - lower_tail_mean, floored at 0
    execution_risk: float  # mean of (100 - assumed completion) over actions


class ScenarioOutcome(BaseModel):
    """Monte Carlo distribution of one scenario's outcome."""
    scenario_id: str
    scenario_name: str
    probability: float
    iterations: int
    expected_outcome: float  # deterministic, at assumed completion
    mean: float
    median: float
    std: float
    standard_error: float
    confidence_interval: ConfidenceInterval
    histogram: list[HistogramBin]
    risk: ScenarioRisk
    draws: list[float] = []  # sorted, only when MonteCarloSettings.include_draws
    kpi_projections: list[KPIProjection]
    notes: list[str] = []


class MonteCarloSummary(BaseModel):
    """Probability-weighted mixture across all scenarios."""
    iterations: int
    mean: float
    median: float
    std: float
    confidence_interval: ConfidenceInterval
    histogram: list[HistogramBin]


class SensitivityEntry(BaseModel):
    variation: float
    parameter_value: float
    outcome: float
    outcome_change_pct: float
    elasticity: float


class ParameterSensitivity(BaseModel):
    parameter: str
    impact: ImpactModel
    baseline: float
    elasticity: float
    correlation: float
    swing_low: float
    swing_high: float
    entries: list[SensitivityEntry]


class SensitivityResult(BaseModel):
    baseline_outcome: float
    parameters: list[ParameterSensitivity]  # ranked by |elasticity| desc
    most_sensitive: list[str]
    least_sensitive: list[str]
    notes: list[str] = []


class ScheduledAction(BaseModel):
    action_id: str
    rank: int
    priority: float
    priority_score: float
    estimated_effort: float
    estimated_impact: float
    start_interval: int
    end_interval: int  # inclusive
    interval_count: int
    start_date: date
    end_date: date
    within_horizon: bool


class IntervalLoad(BaseModel):
    index: int
    start_date: date
    end_date: date
    active_actions: list[str]


class OptimizedTimeline(BaseModel):
    actions: list[ScheduledAction]
    intervals: list[IntervalLoad]
    horizon_intervals: int
    peak_concurrency: int
    total_effort: float
    overflow: list[str]
    critical_path: list[str]
    total_duration_days: int
    alternative_orderings: dict[str, list[str]]
    notes: list[str] = []


class StateTransition(BaseModel):
    state: RunState
    at: datetime


class SimulationResult(BaseModel):
    """Aggregate of one orchestrator run. Built once, never mutated."""
    model_config = ConfigDict(frozen=True)

    run_id: str
    state: RunState
    scenario_results: list[ScenarioOutcome]
    monte_carlo: MonteCarloSummary
    sensitivity: SensitivityResult
    timeline: OptimizedTimeline
    baselines: list[KPIBaseline]
    correlations: Optional[CorrelationReport] = None
    settings: MonteCarloSettings
    history: list[StateTransition]
    diagnostics: list[str] = []
    computed_at: datetime
