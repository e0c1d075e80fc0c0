"""Pairwise KPI correlation over aligned periods.

Series are aligned on their common periods with pandas; each unordered pair
gets one Pearson coefficient. Pairs above the threshold are reported as
strong relations and grouped into clusters of connected KPIs.
"""
from __future__ import annotations

import itertools
import logging
import math

import numpy as np
import pandas as pd

from scenario_engine.config import settings
from scenario_engine.exceptions import NumericDegeneracyError
from scenario_engine.models.correlation import (
    CorrelationReport,
    CorrelationStrength,
    KPICluster,
    KPICorrelation,
)
from scenario_engine.models.series import KPISeries

logger = logging.getLogger(__name__)

MIN_COMMON_PERIODS = 3


def classify_strength(coefficient: float) -> CorrelationStrength:
    magnitude = abs(coefficient)
    if magnitude >= 0.7:
        return CorrelationStrength.strong
    if magnitude >= 0.3:
        return CorrelationStrength.moderate
    if magnitude >= 0.1:
        return CorrelationStrength.weak
    return CorrelationStrength.none


def pearson(x: np.ndarray, y: np.ndarray) -> float:
    """Pearson r, symmetric in its arguments and clamped to [-1, 1]."""
    dx = np.asarray(x, dtype=float) - np.mean(x)
    dy = np.asarray(y, dtype=float) - np.mean(y)
    denominator = math.sqrt(float(np.sum(dx * dx)) * float(np.sum(dy * dy)))
    if denominator == 0.0 or not math.isfinite(denominator):
        raise NumericDegeneracyError("zero-variance vector")
    r = float(np.sum(dx * dy)) / denominator
    return min(max(r, -1.0), 1.0)


def align(series_list: list[KPISeries]) -> pd.DataFrame:
    """One column per KPI, indexed by period; missing periods are NaN."""
    frame = pd.DataFrame({
        s.kpi_id: pd.Series(s.values, index=s.periods, dtype=float)
        for s in series_list
    })
    return frame.sort_index()


class CorrelationAnalyzer:
    """Computes KPI-to-KPI relations for annotating simulation baselines."""

    def __init__(self, threshold: float | None = None, min_common_periods: int = MIN_COMMON_PERIODS):
        self.threshold = threshold if threshold is not None else settings.CORRELATION_THRESHOLD
        self.min_common_periods = min_common_periods

    def analyze(self, series_list: list[KPISeries]) -> CorrelationReport:
        notes: list[str] = []
        ids = [s.kpi_id for s in series_list]
        if len(set(ids)) != len(ids):
            notes.append("duplicate kpi_id values: later series replace earlier ones")
        frame = align(series_list)

        pairs: list[KPICorrelation] = []
        for kpi_a, kpi_b in itertools.combinations(sorted(frame.columns), 2):
            common = frame[[kpi_a, kpi_b]].dropna()
            if len(common) < self.min_common_periods:
                notes.append(
                    f"{kpi_a}/{kpi_b}: {len(common)} common periods, "
                    f"need {self.min_common_periods}"
                )
                continue
            try:
                r = pearson(common[kpi_a].to_numpy(), common[kpi_b].to_numpy())
            except NumericDegeneracyError:
                logger.info("Zero variance in %s/%s, correlation set to 0", kpi_a, kpi_b)
                notes.append(f"{kpi_a}/{kpi_b}: zero variance, correlation set to 0")
                r = 0.0
            pairs.append(KPICorrelation(
                kpi_a=kpi_a,
                kpi_b=kpi_b,
                coefficient=r,
                common_periods=len(common),
                strength=classify_strength(r),
                direction="negative" if r < 0 else "positive",
            ))

        strong = [p for p in pairs if abs(p.coefficient) >= self.threshold]
        strong.sort(key=lambda p: abs(p.coefficient), reverse=True)
        logger.info(
            "Correlated %d KPIs: %d pairs, %d strong", len(frame.columns), len(pairs), len(strong),
        )
        return CorrelationReport(
            pairs=pairs,
            strong_relations=strong,
            clusters=self._clusters(strong),
            threshold=self.threshold,
            notes=notes,
        )

    @staticmethod
    def _clusters(strong: list[KPICorrelation]) -> list[KPICluster]:
        """Connected components of the strong-relation graph."""
        adjacency: dict[str, set[str]] = {}
        for pair in strong:
            adjacency.setdefault(pair.kpi_a, set()).add(pair.kpi_b)
            adjacency.setdefault(pair.kpi_b, set()).add(pair.kpi_a)

        clusters: list[KPICluster] = []
        seen: set[str] = set()
        for start in sorted(adjacency):
            if start in seen:
                continue
            component: set[str] = set()
            stack = [start]
            while stack:
                kpi = stack.pop()
                if kpi in component:
                    continue
                component.add(kpi)
                stack.extend(adjacency[kpi] - component)
            seen |= component

            members = sorted(component)
            internal = [
                abs(p.coefficient) for p in strong
                if p.kpi_a in component and p.kpi_b in component
            ]
            clusters.append(KPICluster(
                name=f"cluster_{len(clusters) + 1}",
                kpis=members,
                average_correlation=sum(internal) / len(internal),
            ))
        return clusters


def analyze_correlations(series_list: list[KPISeries], threshold: float | None = None) -> CorrelationReport:
    return CorrelationAnalyzer(threshold).analyze(series_list)
