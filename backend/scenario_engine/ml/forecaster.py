"""Time series forecaster — trains, stores and evaluates KPI trend models.

Models are registered in the ModelRegistry the forecaster was constructed
with; nothing is kept on the forecaster itself.

Supported kinds:
- linear_regression      value = a + b·t (normal equations)
- polynomial_regression  value = Σ c_k·t^k, order clamped to n - 2
- exponential_smoothing  flat forecast at the final smoothed level
- ensemble               R²-weighted combination of registered members
"""
from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Any, Callable
from uuid import uuid4

import numpy as np
from scipy import stats

from scenario_engine.config import settings
from scenario_engine.exceptions import (
    InsufficientDataError,
    NumericDegeneracyError,
    UnsupportedModelError,
    ValidationError,
)
from scenario_engine.guards import guard
from scenario_engine.ml import regression, smoothing
from scenario_engine.ml.registry import ModelRegistry
from scenario_engine.ml.seasonal import SeasonalDecomposer
from scenario_engine.models.forecast import (
    FittedModel,
    Forecast,
    ForecastPoint,
    ModelKind,
    ModelPerformance,
    Prediction,
)
from scenario_engine.models.series import KPIPoint, KPISeries, shift_period

logger = logging.getLogger(__name__)

MIN_TRAINING_POINTS = 6
MIN_SEASONAL_POINTS = 8
DEFAULT_POLYNOMIAL_ORDER = 2

_ID_PREFIX = {
    ModelKind.linear: "linear",
    ModelKind.polynomial: "poly",
    ModelKind.exponential_smoothing: "exp_smooth",
    ModelKind.ensemble: "ensemble",
}


def _confidence(r2: float) -> float:
    return min(max(r2, 0.1), 0.95)


class TimeSeriesForecaster:
    """Fits regression/smoothing models to a KPI series and extrapolates them."""

    def __init__(
        self,
        registry: ModelRegistry,
        confidence_level: float | None = None,
        seasonal_period: int | None = None,
    ) -> None:
        self.registry = registry
        self.confidence_level = confidence_level or settings.FORECAST_CONFIDENCE_LEVEL
        self.seasonal_period = seasonal_period or settings.SEASONAL_PERIOD
        self._z = float(stats.norm.ppf(0.5 + self.confidence_level / 2.0))

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------
    def train(self, series: KPISeries | None, kind: str, **params: Any) -> str:
        """Train a model of the named kind and return its id."""
        try:
            model_kind = ModelKind(kind)
        except ValueError:
            raise UnsupportedModelError(f"Unsupported model type: {kind}") from None

        if model_kind == ModelKind.ensemble:
            members = params.get("members")
            if not members:
                if series is None:
                    raise ValidationError("Ensemble needs member model ids or a series")
                members = [
                    self.train_linear_regression(series),
                    self.train_polynomial_regression(series, DEFAULT_POLYNOMIAL_ORDER),
                    self.train_exponential_smoothing(series),
                ]
            return self.train_ensemble(members)

        if series is None:
            raise ValidationError(f"{model_kind.value} needs a training series")
        if model_kind == ModelKind.linear:
            return self.train_linear_regression(series)
        if model_kind == ModelKind.polynomial:
            order = params.get("order", DEFAULT_POLYNOMIAL_ORDER)
            return self.train_polynomial_regression(series, order)
        return self.train_exponential_smoothing(series, params.get("alpha"))

    def train_linear_regression(self, series: KPISeries) -> str:
        values = self._require(series, MIN_TRAINING_POINTS)
        parameters: dict[str, Any] = {}
        try:
            coeffs = regression.fit_linear(values)
        except NumericDegeneracyError as e:
            logger.warning("Linear fit on %s degenerate (%s), using mean model", series.kpi_id, e)
            coeffs = regression.mean_model(values, order=1)
            parameters["fallback"] = "mean"
        parameters["coefficients"] = [float(c) for c in coeffs]

        fitted = regression.evaluate(coeffs, regression.time_index(len(values)))
        perf = regression.performance(np.asarray(values), fitted, n_params=2)
        return self._register(ModelKind.linear, parameters, perf, series)

    def train_polynomial_regression(self, series: KPISeries, order: int = DEFAULT_POLYNOMIAL_ORDER) -> str:
        values = self._require(series, MIN_TRAINING_POINTS)
        if order < 1:
            raise ValidationError(f"Polynomial order must be >= 1, got {order}")
        effective = min(order, len(values) - 2)
        if effective < order:
            logger.info("Polynomial order %d clamped to %d for n=%d", order, effective, len(values))

        parameters: dict[str, Any] = {"order": effective, "requested_order": order}
        try:
            coeffs = regression.fit_polynomial(values, effective)
        except NumericDegeneracyError as e:
            logger.warning("Polynomial fit on %s degenerate (%s), using mean model", series.kpi_id, e)
            coeffs = regression.mean_model(values, order=effective)
            parameters["fallback"] = "mean"
        parameters["coefficients"] = [float(c) for c in coeffs]

        fitted = regression.evaluate(coeffs, regression.time_index(len(values)))
        perf = regression.performance(np.asarray(values), fitted, n_params=effective + 1)
        return self._register(ModelKind.polynomial, parameters, perf, series)

    def train_exponential_smoothing(self, series: KPISeries, alpha: float | None = None) -> str:
        values = self._require(series, MIN_TRAINING_POINTS)
        searched = alpha is None
        if searched:
            alpha = smoothing.search_alpha(values)
        elif not 0.0 < alpha <= 1.0:
            raise ValidationError(f"Smoothing alpha must be in (0, 1], got {alpha}")

        level = float(smoothing.smooth(values, alpha)[-1])
        actual, predicted = smoothing.one_step_errors(values, alpha)
        perf = regression.performance(actual, predicted, n_params=1)
        parameters = {"alpha": alpha, "level": level, "alpha_searched": searched}
        return self._register(ModelKind.exponential_smoothing, parameters, perf, series)

    def train_ensemble(self, model_ids: list[str]) -> str:
        if not model_ids:
            raise ValidationError("Ensemble needs at least one member model")
        members = [self.registry.get(mid) for mid in model_ids]

        raw = [max(m.performance.r2, 0.0) for m in members]
        total = sum(raw)
        weights = [w / total for w in raw] if total > 0 else [1.0 / len(members)] * len(members)

        perf = ModelPerformance(
            r2=sum(w * m.performance.r2 for w, m in zip(weights, members)),
            mae=sum(w * m.performance.mae for w, m in zip(weights, members)),
            mse=sum(w * m.performance.mse for w, m in zip(weights, members)),
            residual_std=math.sqrt(
                sum(w * m.performance.residual_std ** 2 for w, m in zip(weights, members))
            ),
        )
        fingerprints = {m.fingerprint for m in members}
        model = FittedModel(
            id=f"ensemble_{uuid4().hex[:12]}",
            kind=ModelKind.ensemble,
            parameters={"members": list(model_ids), "weights": weights},
            performance=perf,
            n_observations=max(m.n_observations for m in members),
            fingerprint=fingerprints.pop() if len(fingerprints) == 1 else None,
            trained_at=datetime.now(timezone.utc),
        )
        self.registry.register(model)
        logger.info("Ensemble model %s built from %d members", model.id, len(members))
        return model.id

    # ------------------------------------------------------------------
    # Prediction
    # ------------------------------------------------------------------
    def predict(self, model_id: str, horizon: int = 1) -> Prediction:
        """Point estimate `horizon` steps past the training window, with a band."""
        if horizon < 1:
            raise ValidationError(f"Prediction horizon must be >= 1, got {horizon}")
        model = self.registry.get(model_id)
        value, sigma = self._evaluate(model, horizon)
        half_width = self._z * sigma * math.sqrt(horizon)
        return Prediction(
            model_id=model.id,
            kind=model.kind,
            horizon=horizon,
            value=value,
            lower=value - half_width,
            upper=value + half_width,
            confidence=_confidence(model.performance.r2),
        )

    def _evaluate(self, model: FittedModel, horizon: int) -> tuple[float, float]:
        """Return (point, residual sigma) for a model at a forward horizon."""
        params = model.parameters
        if model.kind in (ModelKind.linear, ModelKind.polynomial):
            t = model.n_observations - 1 + horizon
            value = float(regression.evaluate(params["coefficients"], t))
            return value, model.performance.residual_std
        if model.kind == ModelKind.exponential_smoothing:
            return float(params["level"]), model.performance.residual_std
        if model.kind == ModelKind.ensemble:
            points = [
                self._evaluate(self.registry.get(mid), horizon)
                for mid in params["members"]
            ]
            weights = params["weights"]
            value = sum(w * v for w, (v, _) in zip(weights, points))
            variance = sum(w * (s ** 2 + (v - value) ** 2) for w, (v, s) in zip(weights, points))
            return value, math.sqrt(variance)
        raise UnsupportedModelError(f"Unsupported model type: {model.kind}")

    # ------------------------------------------------------------------
    # Forecasting
    # ------------------------------------------------------------------
    def generate_forecast(
        self,
        series: KPISeries,
        periods_ahead: int = 4,
        include_seasonality: bool = False,
    ) -> Forecast:
        """Extrapolate the best-fitting model `periods_ahead` quarters forward."""
        if periods_ahead < 1:
            raise ValidationError(f"periods_ahead must be >= 1, got {periods_ahead}")
        n = len(series)
        notes: list[str] = []

        seasonal_indices: list[float] | None = None
        training_series = series
        if include_seasonality:
            if n < MIN_SEASONAL_POINTS:
                raise InsufficientDataError(MIN_SEASONAL_POINTS, n, "seasonal forecasting")
            decomposition = SeasonalDecomposer(self.seasonal_period).decompose(series)
            seasonal_indices = [si.index for si in decomposition.seasonal_indices]
            training_series = KPISeries(
                kpi_id=series.kpi_id,
                factory_id=series.factory_id,
                points=[
                    KPIPoint(period=p.period, value=p.value - s)
                    for p, s in zip(series.points, decomposition.seasonal)
                ],
            )
            if not decomposition.has_seasonality:
                notes.append(
                    f"weak seasonality (strength={decomposition.seasonal_strength:.3f})"
                )
        else:
            self._require(series, MIN_TRAINING_POINTS)

        model = self._best_model(training_series)
        last_period = series.periods[-1]

        points: list[ForecastPoint] = []
        for h in range(1, periods_ahead + 1):
            value, sigma = self._evaluate(model, h)
            if seasonal_indices is not None:
                value += seasonal_indices[(n - 1 + h) % len(seasonal_indices)]
            half_width = self._z * sigma * math.sqrt(h)
            period = shift_period(last_period, h)
            value = guard(value, notes, f"forecast {period}", minimum=0.0)
            lower = guard(value - half_width, notes, f"forecast {period} lower", minimum=0.0)
            upper = guard(value + half_width, notes, f"forecast {period} upper", minimum=0.0)
            points.append(ForecastPoint(period=period, value=value, lower=lower, upper=upper))

        methodology = model.kind.value + ("+seasonal" if seasonal_indices is not None else "")
        logger.info(
            "Forecast %s: %d periods via %s (r2=%.3f)",
            series.kpi_id, periods_ahead, methodology, model.performance.r2,
        )
        return Forecast(
            kpi_id=series.kpi_id,
            model_id=model.id,
            methodology=methodology,
            confidence=_confidence(model.performance.r2),
            points=points,
            notes=notes,
        )

    def _best_model(self, series: KPISeries) -> FittedModel:
        """Lowest in-sample MSE among the candidate kinds; ties keep the simpler one."""
        fingerprint = series.fingerprint()
        candidates = [
            self._reuse_or_train(
                fingerprint, ModelKind.linear, {},
                lambda: self.train_linear_regression(series),
            ),
            self._reuse_or_train(
                fingerprint, ModelKind.polynomial, {"requested_order": DEFAULT_POLYNOMIAL_ORDER},
                lambda: self.train_polynomial_regression(series, DEFAULT_POLYNOMIAL_ORDER),
            ),
            self._reuse_or_train(
                fingerprint, ModelKind.exponential_smoothing, {"alpha_searched": True},
                lambda: self.train_exponential_smoothing(series),
            ),
        ]
        best = candidates[0]
        for candidate in candidates[1:]:
            margin = 1e-9 * max(1.0, best.performance.mse)
            if candidate.performance.mse < best.performance.mse - margin:
                best = candidate
        return best

    def _reuse_or_train(
        self,
        fingerprint: str,
        kind: ModelKind,
        match: dict[str, Any],
        trainer: Callable[[], str],
    ) -> FittedModel:
        existing = self.registry.find(fingerprint, kind, **match)
        if existing is not None:
            logger.debug("Reusing %s model %s", kind.value, existing.id)
            return existing
        return self.registry.get(trainer())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    @staticmethod
    def _require(series: KPISeries, minimum: int) -> list[float]:
        values = series.values
        if len(values) < minimum:
            raise InsufficientDataError(minimum, len(values))
        return values

    def _register(
        self,
        kind: ModelKind,
        parameters: dict[str, Any],
        perf: ModelPerformance,
        series: KPISeries,
    ) -> str:
        model = FittedModel(
            id=f"{_ID_PREFIX[kind]}_{uuid4().hex[:12]}",
            kind=kind,
            parameters=parameters,
            performance=perf,
            n_observations=len(series),
            fingerprint=series.fingerprint(),
            trained_at=datetime.now(timezone.utc),
        )
        self.registry.register(model)
        logger.info("%s model trained: %s, R² = %.3f", kind.value, model.id, perf.r2)
        return model.id
