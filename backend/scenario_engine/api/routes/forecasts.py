"""Forecasting API — trend forecasts and seasonal decomposition of inline series."""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from scenario_engine.api.deps import get_registry
from scenario_engine.exceptions import EngineError
from scenario_engine.ml.registry import ModelRegistry
from scenario_engine.models.forecast import Forecast, SeasonalDecomposition
from scenario_engine.models.series import KPISeries
from scenario_engine.services import model_service

router = APIRouter(tags=["forecasts"])


class ForecastRequest(BaseModel):
    series: KPISeries
    periods_ahead: int = 4
    include_seasonality: bool = False


class SeasonalityRequest(BaseModel):
    series: KPISeries
    period: Optional[int] = None


@router.post("/forecasts", response_model=Forecast)
def create_forecast(request: ForecastRequest, registry: ModelRegistry = Depends(get_registry)):
    """Forecast a KPI series `periods_ahead` quarters forward with confidence bands."""
    try:
        return model_service.forecast_kpi(
            registry, request.series, request.periods_ahead, request.include_seasonality,
        )
    except EngineError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.post("/forecasts/seasonality", response_model=SeasonalDecomposition)
def decompose(request: SeasonalityRequest):
    try:
        return model_service.decompose_kpi(request.series, request.period)
    except EngineError as e:
        raise HTTPException(status_code=422, detail=str(e))
