from fastapi import APIRouter, Depends, HTTPException

from scenario_engine.api.deps import get_registry
from scenario_engine.exceptions import EngineError
from scenario_engine.ml.registry import ModelRegistry
from scenario_engine.models.results import SimulationResult
from scenario_engine.models.simulation import SimulationRequest
from scenario_engine.services.simulation_service import run_advanced_simulation

router = APIRouter(tags=["simulation"])


@router.post("/simulations/run", response_model=SimulationResult)
def run_simulation(request: SimulationRequest, registry: ModelRegistry = Depends(get_registry)):
    """Run an advanced simulation on inline scenarios and KPI history.

    Forecasts KPI baselines, runs Monte Carlo per scenario, analyses
    sensitivity and schedules the referenced actions over the horizon.
    """
    try:
        return run_advanced_simulation(request, registry)
    except EngineError as e:
        raise HTTPException(status_code=422, detail=str(e))
