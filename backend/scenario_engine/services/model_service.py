"""Model management service.

Facade for registry loading, status, training, prediction, forecasting,
seasonal decomposition and correlation analysis.
"""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Optional

from scenario_engine.config import settings
from scenario_engine.ml.correlation import CorrelationAnalyzer
from scenario_engine.ml.forecaster import TimeSeriesForecaster
from scenario_engine.ml.registry import ModelRegistry
from scenario_engine.ml.seasonal import SeasonalDecomposer
from scenario_engine.models.correlation import CorrelationReport
from scenario_engine.models.forecast import FittedModel, Forecast, Prediction, SeasonalDecomposition
from scenario_engine.models.series import KPISeries

logger = logging.getLogger(__name__)


def initialize_models(registry: ModelRegistry, model_dir: str | None = None) -> None:
    """Load the registry snapshot at startup."""
    registry.load(model_dir or settings.MODEL_DIR)
    logger.info("Models initialized: status %s", registry.get_status().get("status"))


def cleanup_models(registry: ModelRegistry, max_age_hours: int | None = None) -> int:
    """Drop models older than MODEL_MAX_AGE_HOURS."""
    hours = max_age_hours if max_age_hours is not None else settings.MODEL_MAX_AGE_HOURS
    return registry.cleanup(timedelta(hours=hours))


def persist_models(registry: ModelRegistry, model_dir: str | None = None) -> None:
    registry.save(model_dir or settings.MODEL_DIR)


def get_model_status(registry: ModelRegistry) -> dict[str, Any]:
    """Return current model registry status for API consumption."""
    return registry.get_status()


def list_models(registry: ModelRegistry) -> list[FittedModel]:
    return registry.list_models()


def train_model(
    registry: ModelRegistry,
    series: Optional[KPISeries],
    kind: str,
    **params: Any,
) -> FittedModel:
    """Train one model and return it as stored in the registry."""
    params = {k: v for k, v in params.items() if v is not None}
    model_id = TimeSeriesForecaster(registry).train(series, kind, **params)
    return registry.get(model_id)


def predict(registry: ModelRegistry, model_id: str, horizon: int = 1) -> Prediction:
    return TimeSeriesForecaster(registry).predict(model_id, horizon)


def forecast_kpi(
    registry: ModelRegistry,
    series: KPISeries,
    periods_ahead: int = 4,
    include_seasonality: bool = False,
) -> Forecast:
    return TimeSeriesForecaster(registry).generate_forecast(series, periods_ahead, include_seasonality)


def decompose_kpi(series: KPISeries, period: Optional[int] = None) -> SeasonalDecomposition:
    return SeasonalDecomposer(settings.SEASONAL_PERIOD).decompose(series, period)


def correlate_kpis(series: list[KPISeries], threshold: Optional[float] = None) -> CorrelationReport:
    return CorrelationAnalyzer(threshold).analyze(series)
