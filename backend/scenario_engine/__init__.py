"""KPI scenario simulation and forecasting engine."""

__version__ = "0.1.0"
