from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from scenario_engine.exceptions import EngineError
from scenario_engine.models.correlation import CorrelationReport
from scenario_engine.models.series import KPISeries
from scenario_engine.services import model_service

router = APIRouter(tags=["correlations"])


class CorrelationRequest(BaseModel):
    series: list[KPISeries]
    threshold: Optional[float] = None


@router.post("/correlations", response_model=CorrelationReport)
def correlate(request: CorrelationRequest):
    """Pairwise Pearson correlations, strong relations and KPI clusters."""
    try:
        return model_service.correlate_kpis(request.series, request.threshold)
    except EngineError as e:
        raise HTTPException(status_code=422, detail=str(e))
