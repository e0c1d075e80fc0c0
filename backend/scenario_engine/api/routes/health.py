from fastapi import APIRouter, Depends

from scenario_engine import __version__
from scenario_engine.api.deps import get_registry
from scenario_engine.ml.registry import ModelRegistry

router = APIRouter(tags=["health"])


@router.get("/health")
def health_check(registry: ModelRegistry = Depends(get_registry)):
    status = registry.get_status()
    return {
        "status": "ok",
        "version": __version__,
        "models": {"status": status["status"], "model_count": status["model_count"]},
    }
