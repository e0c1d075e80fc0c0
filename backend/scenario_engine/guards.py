"""Finite-value guards applied to every numeric output before it is returned."""
from __future__ import annotations

import logging
import math

logger = logging.getLogger(__name__)


def guard(
    value: float,
    notes: list[str],
    label: str,
    minimum: float | None = None,
    maximum: float | None = None,
    fallback: float = 0.0,
) -> float:
    """Replace NaN/Inf with `fallback` and clamp to [minimum, maximum].

    Every correction appends a diagnostic note instead of failing silently.
    """
    value = float(value)
    if not math.isfinite(value):
        notes.append(f"{label}: non-finite value {value!r} replaced with {fallback}")
        logger.warning("Non-finite %s replaced with %s", label, fallback)
        value = fallback
    if minimum is not None and value < minimum:
        notes.append(f"{label}: {value:.6g} clamped to {minimum}")
        value = minimum
    if maximum is not None and value > maximum:
        notes.append(f"{label}: {value:.6g} clamped to {maximum}")
        value = maximum
    return value


def achievement_rate(value: float, target: float) -> float:
    """value / target × 100, clamped non-negative. Zero targets count as met."""
    if target == 0:
        return 100.0 if value >= 0 else 0.0
    rate = value / target * 100.0
    if not math.isfinite(rate):
        return 0.0
    return max(rate, 0.0)
