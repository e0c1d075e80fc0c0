from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class ModelKind(str, Enum):
    """Supported forecasting model kinds."""
    linear = "linear_regression"
    polynomial = "polynomial_regression"
    exponential_smoothing = "exponential_smoothing"
    ensemble = "ensemble"


class ModelPerformance(BaseModel):
    """In-sample fit quality."""
    r2: float
    mae: float
    mse: float
    residual_std: float


class FittedModel(BaseModel):
    """A trained model. Immutable once registered."""
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    id: str
    kind: ModelKind
    parameters: dict[str, Any]
    performance: ModelPerformance
    n_observations: int
    fingerprint: Optional[str] = None
    trained_at: datetime


class Prediction(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_id: str
    kind: ModelKind
    horizon: int
    value: float
    lower: float
    upper: float
    confidence: float


class ForecastPoint(BaseModel):
    period: str
    value: float
    lower: float
    upper: float


class Forecast(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    kpi_id: str
    model_id: str
    methodology: str
    confidence: float
    points: list[ForecastPoint]
    notes: list[str] = []


class SeasonalIndex(BaseModel):
    position: int
    label: str
    index: float


class SeasonalDecomposition(BaseModel):
    """Classical additive decomposition. Edge trend/residual values are None."""
    period: int
    trend: list[Optional[float]]
    seasonal: list[float]
    residual: list[Optional[float]]
    seasonal_strength: float
    has_seasonality: bool
    seasonal_indices: list[SeasonalIndex]
