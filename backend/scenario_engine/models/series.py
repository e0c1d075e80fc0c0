import hashlib
import re
from typing import Optional

from pydantic import BaseModel, Field, model_validator

_PERIOD_RE = re.compile(r"^(\d{4})-Q([1-4])$")


def parse_period(period: str) -> tuple[int, int]:
    """Split a 'YYYY-Qn' label into (year, quarter)."""
    match = _PERIOD_RE.match(period)
    if not match:
        raise ValueError(f"Invalid period '{period}', expected YYYY-Qn")
    return int(match.group(1)), int(match.group(2))


def shift_period(period: str, steps: int) -> str:
    """Return the quarter label `steps` quarters after `period`."""
    year, quarter = parse_period(period)
    index = year * 4 + (quarter - 1) + steps
    return f"{index // 4}-Q{index % 4 + 1}"


class KPIPoint(BaseModel):
    period: str = Field(pattern=r"^\d{4}-Q[1-4]$")
    value: float


class KPISeries(BaseModel):
    """Historical values of one KPI for one factory, oldest first."""
    kpi_id: str = "kpi"
    factory_id: Optional[str] = None
    points: list[KPIPoint]

    @model_validator(mode="after")
    def _chronological(self) -> "KPISeries":
        periods = [p.period for p in self.points]
        if len(set(periods)) != len(periods):
            raise ValueError("KPI series periods must be unique")
        self.points.sort(key=lambda p: parse_period(p.period))
        return self

    @classmethod
    def from_values(
        cls, values: list[float], start_period: str = "2023-Q1", kpi_id: str = "kpi",
    ) -> "KPISeries":
        points = [
            KPIPoint(period=shift_period(start_period, i), value=v)
            for i, v in enumerate(values)
        ]
        return cls(kpi_id=kpi_id, points=points)

    @property
    def values(self) -> list[float]:
        return [p.value for p in self.points]

    @property
    def periods(self) -> list[str]:
        return [p.period for p in self.points]

    def __len__(self) -> int:
        return len(self.points)

    def fingerprint(self) -> str:
        """Stable hash of the series contents, used to reuse fitted models."""
        payload = ";".join(f"{p.period}={p.value!r}" for p in self.points)
        return hashlib.sha1(payload.encode("utf-8")).hexdigest()[:16]
