"""Classical additive seasonal decomposition.

trend    = centered moving average of window `period`
seasonal = per-position mean of the detrended interior values, repeated
residual = value - trend - seasonal

Edge points where the centered window does not fit have no trend; they are
excluded from the seasonal indices and reported as None.
"""
from __future__ import annotations

import logging
import math

import numpy as np

from scenario_engine.exceptions import InsufficientDataError, ValidationError
from scenario_engine.models.forecast import SeasonalDecomposition, SeasonalIndex
from scenario_engine.models.series import KPISeries

logger = logging.getLogger(__name__)

_SEASONALITY_THRESHOLD = 0.1


def centered_moving_average(values: list[float] | np.ndarray, period: int) -> np.ndarray:
    """Centered MA; even windows use the 2×period weighting. Edges are NaN."""
    y = np.asarray(values, dtype=float)
    n = len(y)
    half = period // 2
    if period % 2 == 0:
        weights = np.concatenate(([0.5], np.ones(period - 1), [0.5])) / period
    else:
        weights = np.ones(period) / period
    trend = np.full(n, np.nan)
    if n >= len(weights):
        trend[half:n - half] = np.convolve(y, weights, mode="valid")
    return trend


def _position_label(period_label: str, position: int) -> str:
    parts = period_label.split("-")
    return parts[1] if len(parts) == 2 else f"P{position + 1}"


class SeasonalDecomposer:
    """Splits a KPI series into trend, repeating seasonal pattern and noise."""

    def __init__(self, period: int = 4) -> None:
        self.period = period

    def decompose(self, series: KPISeries, period: int | None = None) -> SeasonalDecomposition:
        period = period or self.period
        if period < 2:
            raise ValidationError(f"Seasonal period must be >= 2, got {period}")
        values = np.asarray(series.values, dtype=float)
        n = len(values)
        if n < 2 * period:
            raise InsufficientDataError(2 * period, n, "seasonal decomposition")

        trend = centered_moving_average(values, period)
        detrended = values - trend
        interior = ~np.isnan(trend)

        indices = np.zeros(period)
        for pos in range(period):
            at_pos = detrended[pos::period]
            at_pos = at_pos[~np.isnan(at_pos)]
            indices[pos] = float(at_pos.mean()) if at_pos.size else 0.0

        seasonal = np.array([indices[i % period] for i in range(n)])
        residual = detrended - seasonal

        var_detrended = float(np.var(detrended[interior]))
        var_residual = float(np.var(residual[interior]))
        if var_detrended > 0:
            strength = 1.0 - var_residual / var_detrended
        else:
            strength = 0.0
        strength = min(max(strength, 0.0), 1.0)

        logger.debug(
            "Decomposed %s (n=%d, period=%d): strength=%.3f",
            series.kpi_id, n, period, strength,
        )

        periods = series.periods
        return SeasonalDecomposition(
            period=period,
            trend=[None if math.isnan(v) else float(v) for v in trend],
            seasonal=[float(v) for v in seasonal],
            residual=[None if math.isnan(v) else float(v) for v in residual],
            seasonal_strength=strength,
            has_seasonality=strength > _SEASONALITY_THRESHOLD,
            seasonal_indices=[
                SeasonalIndex(
                    position=pos,
                    label=_position_label(periods[pos], pos),
                    index=float(indices[pos]),
                )
                for pos in range(period)
            ],
        )


def perform_seasonal_decomposition(series: KPISeries, period: int = 4) -> SeasonalDecomposition:
    return SeasonalDecomposer(period).decompose(series)
