from enum import Enum

from pydantic import BaseModel


class CorrelationStrength(str, Enum):
    strong = "strong"
    moderate = "moderate"
    weak = "weak"
    none = "none"


class KPICorrelation(BaseModel):
    """Pearson correlation for one unordered KPI pair (kpi_a < kpi_b)."""
    kpi_a: str
    kpi_b: str
    coefficient: float
    common_periods: int
    strength: CorrelationStrength
    direction: str  # "positive" | "negative"


class KPICluster(BaseModel):
    name: str
    kpis: list[str]
    average_correlation: float


class CorrelationReport(BaseModel):
    pairs: list[KPICorrelation]
    strong_relations: list[KPICorrelation]
    clusters: list[KPICluster]
    threshold: float
    notes: list[str] = []

    def coefficient(self, kpi_a: str, kpi_b: str) -> float | None:
        """Look up r for a pair in either order."""
        a, b = sorted((kpi_a, kpi_b))
        for pair in self.pairs:
            if pair.kpi_a == a and pair.kpi_b == b:
                return pair.coefficient
        return None

    def related_kpis(self, kpi_id: str) -> list[str]:
        """KPIs strongly related to kpi_id."""
        related = []
        for pair in self.strong_relations:
            if pair.kpi_a == kpi_id:
                related.append(pair.kpi_b)
            elif pair.kpi_b == kpi_id:
                related.append(pair.kpi_a)
        return related
