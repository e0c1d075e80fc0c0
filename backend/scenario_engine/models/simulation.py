from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from scenario_engine.models.series import KPISeries


class ImpactModel(str, Enum):
    """How a sensitivity parameter shift propagates to the outcome."""
    linear = "linear"
    exponential = "exponential"


class IntervalUnit(str, Enum):
    """Scheduling granularity of a time horizon."""
    monthly = "monthly"
    quarterly = "quarterly"


class ActionAssumption(BaseModel):
    """Assumed completion of one action inside a scenario."""
    action_id: str
    assumed_completion: float  # 0-100
    estimated_impact: float = 0.0
    category: str = "MEDIUM"


class Scenario(BaseModel):
    id: str
    name: str
    probability: float = 1.0  # 0-1
    actions: list[ActionAssumption] = []


class ActionImpact(BaseModel):
    """Action -> KPI impact weight resolved by the calling layer."""
    action_id: str
    kpi_id: str
    impact_score: float  # 0-1


class KPITarget(BaseModel):
    """Current value and target of a KPI; drives achievement headroom."""
    kpi_id: str
    current_value: float
    target: float


class ActionPlan(BaseModel):
    """Scheduling metadata for one action."""
    action_id: str
    priority: float = 0.0
    estimated_effort: float = 1.0
    estimated_impact: float = 0.0


class MonteCarloSettings(BaseModel):
    """Configuration for Monte Carlo simulation runs."""
    iterations: int = 1000
    confidence_level: float = 0.95
    variability_factor: float = 20.0  # percent
    random_seed: Optional[int] = None
    include_draws: bool = False  # return every raw draw per scenario


class SensitivityParameter(BaseModel):
    name: str
    baseline: float = 1.0
    variations: list[float] = []  # percent shifts, e.g. [-20, -10, 0, 10, 20]
    impact: ImpactModel = ImpactModel.linear


class ParameterRange(BaseModel):
    """Sweep appended to the variations of the named parameter."""
    parameter: str
    min: float
    max: float
    step: float


class SensitivitySpec(BaseModel):
    parameters: list[SensitivityParameter] = []
    ranges: list[ParameterRange] = []


class TimeHorizon(BaseModel):
    start: date
    end: date
    intervals: IntervalUnit = IntervalUnit.quarterly


class SimulationRequest(BaseModel):
    """Single request payload for an advanced simulation run."""
    scenarios: list[Scenario]
    monte_carlo: MonteCarloSettings = MonteCarloSettings()
    sensitivity: SensitivitySpec = SensitivitySpec()
    time_horizon: TimeHorizon
    kpi_series: list[KPISeries] = []
    kpi_targets: list[KPITarget] = []
    impacts: list[ActionImpact] = []
    actions: list[ActionPlan] = []
    include_seasonality: bool = False
    max_concurrent: Optional[int] = None
    interval_capacity: Optional[float] = None
