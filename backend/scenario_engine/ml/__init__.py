"""Forecasting models — registry, trend fitting, seasonality, and correlation."""
from scenario_engine.ml.registry import ModelRegistry
from scenario_engine.ml.forecaster import TimeSeriesForecaster
from scenario_engine.ml.seasonal import SeasonalDecomposer, perform_seasonal_decomposition
from scenario_engine.ml.correlation import CorrelationAnalyzer, analyze_correlations

__all__ = [
    "ModelRegistry",
    "TimeSeriesForecaster",
    "SeasonalDecomposer",
    "perform_seasonal_decomposition",
    "CorrelationAnalyzer",
    "analyze_correlations",
]
