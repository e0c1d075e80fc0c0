"""Least-squares trend fitting over the time index t = 0..n-1.

Linear fits solve the normal equations (XᵀX)β = Xᵀy directly; polynomial
fits use an SVD least-squares solve on the Vandermonde matrix. Degenerate
systems raise NumericDegeneracyError so the forecaster can fall back to
the mean model.
"""
from __future__ import annotations

import math

import numpy as np

from scenario_engine.exceptions import NumericDegeneracyError
from scenario_engine.models.forecast import ModelPerformance

_MAX_CONDITION = 1e12


def time_index(n: int) -> np.ndarray:
    return np.arange(n, dtype=float)


def solve_normal_equations(X: np.ndarray, y: np.ndarray) -> np.ndarray:
    """Solve (XᵀX)β = Xᵀy, refusing singular or constant-target systems."""
    if np.ptp(y) == 0.0:
        raise NumericDegeneracyError("constant series")
    xtx = X.T @ X
    xty = X.T @ y
    cond = np.linalg.cond(xtx)
    if not math.isfinite(cond) or cond > _MAX_CONDITION:
        raise NumericDegeneracyError(f"ill-conditioned design matrix (cond={cond:.3g})")
    try:
        return np.linalg.solve(xtx, xty)
    except np.linalg.LinAlgError as e:
        raise NumericDegeneracyError(str(e)) from e


def fit_linear(values: list[float]) -> np.ndarray:
    """Return [a, b] for value = a + b·t."""
    y = np.asarray(values, dtype=float)
    t = time_index(len(y))
    X = np.column_stack([np.ones_like(t), t])
    return solve_normal_equations(X, y)


def fit_polynomial(values: list[float], order: int) -> np.ndarray:
    """Return ascending coefficients [c0..c_order]."""
    y = np.asarray(values, dtype=float)
    if np.ptp(y) == 0.0:
        raise NumericDegeneracyError("constant series")
    t = time_index(len(y))
    V = np.vander(t, order + 1, increasing=True)
    coeffs, _, rank, _ = np.linalg.lstsq(V, y, rcond=None)
    if rank < order + 1:
        raise NumericDegeneracyError(f"rank-deficient Vandermonde matrix (rank={rank})")
    return coeffs


def mean_model(values: list[float], order: int = 1) -> np.ndarray:
    """Fallback coefficients: intercept = mean, every other term 0."""
    coeffs = np.zeros(order + 1)
    coeffs[0] = float(np.mean(values))
    return coeffs


def evaluate(coeffs: list[float] | np.ndarray, t: float | np.ndarray) -> np.ndarray:
    return np.polynomial.polynomial.polyval(t, np.asarray(coeffs, dtype=float))


def performance(actual: np.ndarray, fitted: np.ndarray, n_params: int) -> ModelPerformance:
    """R², MAE, MSE and residual standard deviation of an in-sample fit."""
    actual = np.asarray(actual, dtype=float)
    fitted = np.asarray(fitted, dtype=float)
    residuals = actual - fitted
    ss_res = float(np.sum(residuals ** 2))
    ss_tot = float(np.sum((actual - actual.mean()) ** 2))
    if ss_tot > 0:
        r2 = 1.0 - ss_res / ss_tot
    else:
        r2 = 1.0 if ss_res <= 1e-12 else 0.0
    dof = max(len(actual) - n_params, 1)
    return ModelPerformance(
        r2=r2,
        mae=float(np.mean(np.abs(residuals))),
        mse=ss_res / len(actual),
        residual_std=math.sqrt(ss_res / dof),
    )
