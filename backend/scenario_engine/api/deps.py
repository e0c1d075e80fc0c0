from fastapi import Request

from scenario_engine.ml.registry import ModelRegistry


def get_registry(request: Request) -> ModelRegistry:
    """FastAPI dependency returning the application's model registry."""
    return request.app.state.registry
