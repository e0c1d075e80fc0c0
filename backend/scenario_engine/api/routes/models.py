from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from scenario_engine.api.deps import get_registry
from scenario_engine.exceptions import EngineError, ModelNotFoundError
from scenario_engine.ml.registry import ModelRegistry
from scenario_engine.models.forecast import FittedModel, Prediction
from scenario_engine.models.series import KPISeries
from scenario_engine.services import model_service

router = APIRouter(tags=["models"])


class TrainRequest(BaseModel):
    """Request body for training one model on an inline series."""
    series: Optional[KPISeries] = None
    kind: str
    order: Optional[int] = None
    alpha: Optional[float] = None
    members: Optional[list[str]] = None


class PredictRequest(BaseModel):
    horizon: int = 1


@router.get("/models/status")
def get_models_status(registry: ModelRegistry = Depends(get_registry)):
    """Return dynamic model status from the model registry."""
    return model_service.get_model_status(registry)


@router.get("/models", response_model=list[FittedModel])
def list_models(registry: ModelRegistry = Depends(get_registry)):
    """All fitted models, best R² first."""
    return model_service.list_models(registry)


@router.post("/models/train", response_model=FittedModel)
def train_model(request: TrainRequest, registry: ModelRegistry = Depends(get_registry)):
    try:
        return model_service.train_model(
            registry,
            request.series,
            request.kind,
            order=request.order,
            alpha=request.alpha,
            members=request.members,
        )
    except ModelNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except EngineError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.post("/models/{model_id}/predict", response_model=Prediction)
def predict(
    model_id: str,
    request: Optional[PredictRequest] = None,
    registry: ModelRegistry = Depends(get_registry),
):
    horizon = request.horizon if request else 1
    try:
        return model_service.predict(registry, model_id, horizon)
    except ModelNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except EngineError as e:
        raise HTTPException(status_code=422, detail=str(e))
