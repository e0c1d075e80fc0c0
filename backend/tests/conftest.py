import pytest

from scenario_engine.ml.registry import ModelRegistry
from scenario_engine.models.series import KPISeries


@pytest.fixture
def registry():
    """A fresh, empty registry per test."""
    return ModelRegistry()


@pytest.fixture
def linear_series():
    return KPISeries.from_values([50, 55, 60, 65, 70, 75, 80, 85], kpi_id="oee")


@pytest.fixture
def seasonal_series():
    """Linear trend plus a zero-sum quarterly pattern, three years."""
    pattern = [5.0, -5.0, 3.0, -3.0]
    values = [100.0 + t + pattern[t % 4] for t in range(12)]
    return KPISeries.from_values(values, kpi_id="throughput")
