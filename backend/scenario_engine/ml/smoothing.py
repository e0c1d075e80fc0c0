"""Simple exponential smoothing."""
from __future__ import annotations

import numpy as np

ALPHA_GRID = tuple(round(a / 10, 1) for a in range(1, 10))  # 0.1 .. 0.9


def smooth(values: list[float], alpha: float) -> np.ndarray:
    """S_0 = y_0, S_t = α·y_t + (1-α)·S_{t-1}."""
    y = np.asarray(values, dtype=float)
    s = np.empty_like(y)
    s[0] = y[0]
    for t in range(1, len(y)):
        s[t] = alpha * y[t] + (1.0 - alpha) * s[t - 1]
    return s


def one_step_errors(values: list[float], alpha: float) -> tuple[np.ndarray, np.ndarray]:
    """One-step-ahead predictions S_{t-1} for y_t, t = 1..n-1."""
    y = np.asarray(values, dtype=float)
    s = smooth(values, alpha)
    return y[1:], s[:-1]


def search_alpha(values: list[float]) -> float:
    """Alpha in 0.1..0.9 minimising in-sample one-step MSE. Ties keep the smaller alpha."""
    best_alpha = ALPHA_GRID[0]
    best_mse = float("inf")
    for alpha in ALPHA_GRID:
        actual, predicted = one_step_errors(values, alpha)
        mse = float(np.mean((actual - predicted) ** 2))
        if mse < best_mse:
            best_mse = mse
            best_alpha = alpha
    return best_alpha
