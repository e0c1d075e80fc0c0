import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from scenario_engine import __version__
from scenario_engine.config import settings
from scenario_engine.ml.registry import ModelRegistry
from scenario_engine.services.model_service import (
    cleanup_models,
    initialize_models,
    persist_models,
)
from scenario_engine.api.routes import health, models, forecasts, correlations, simulation


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: configure logging and load the registry snapshot
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    registry: ModelRegistry = app.state.registry
    initialize_models(registry)
    cleanup_models(registry)
    yield
    # Shutdown: persist fitted models
    if len(registry):
        persist_models(registry)


def create_app() -> FastAPI:
    app = FastAPI(title="KPI Scenario Engine", version=__version__, lifespan=lifespan)
    app.state.registry = ModelRegistry()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router, prefix="/api")
    app.include_router(models.router, prefix="/api")
    app.include_router(forecasts.router, prefix="/api")
    app.include_router(correlations.router, prefix="/api")
    app.include_router(simulation.router, prefix="/api")
    return app


app = create_app()
