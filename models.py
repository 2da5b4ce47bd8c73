from __future__ import annotations

from datetime import date
from typing import Any, Iterable, Literal, Optional, TypeVar

from pydantic import BaseModel, Field, field_validator, model_validator

Band = Literal["thriving", "healthy", "stable", "concerning", "critical"]
TrendMetric = Literal["tournaments", "entries"]

ModelT = TypeVar("ModelT", bound=BaseModel)


def coerce(model: type[ModelT], item: ModelT | dict) -> ModelT:
    if isinstance(item, model):
        return item
    return model.model_validate(item)


def coerce_list(model: type[ModelT], items: Iterable[ModelT | dict] | None) -> list[ModelT]:
    return [coerce(model, item) for item in items or []]


class AnnualRecord(BaseModel):
    year: int
    tournaments: int
    entries: int


class MonthlyRecord(BaseModel):
    year: int
    month: int
    event_count: int


class MonthlyWeights(BaseModel):
    tournament_weights: list[float] = Field(default_factory=lambda: [0.0] * 12)
    entry_weights: list[float] = Field(default_factory=lambda: [0.0] * 12)
    weight_std: list[float] = Field(default_factory=lambda: [0.0] * 12)


class TrendReference(BaseModel):
    slope: float = 0.0
    intercept: float = 0.0
    r_squared: float = 0.0
    projected_value: int = 0


class ForecastResult(BaseModel):
    target_year: int
    months_of_data: int
    projected_tournaments: int = 0
    projected_entries: int = 0
    ci_68_low_tournaments: int = 0
    ci_68_high_tournaments: int = 0
    ci_95_low_tournaments: int = 0
    ci_95_high_tournaments: int = 0
    ci_68_low_entries: int = 0
    ci_68_high_entries: int = 0
    ci_95_low_entries: int = 0
    ci_95_high_entries: int = 0
    method: Literal["seasonal_ratio"] = "seasonal_ratio"
    trend_reference: Optional[TrendReference] = None


class HealthScoreInput(BaseModel):
    tournament_yoy_pct: float = 0.0
    entry_yoy_pct: float = 0.0
    avg_attendance: float = 0.0
    retention_rate: float = 0.0
    monthly_momentum: list[float] = Field(default_factory=list)
    us_concentration_pct: float = 0.0
    country_count: float = 0.0
    youth_pct: float = 0.0


class ComponentScore(BaseModel):
    score: float
    weight: float
    raw_value: float
    label: str


class HealthScoreResult(BaseModel):
    composite_score: float
    band: Band
    components: dict[str, ComponentScore]
    sensitivity: dict[str, float]
    methodology_version: int


def _unwrap_points(value: Any) -> Any:
    if isinstance(value, dict) and "points" in value:
        return value["points"]
    return value


class MethodologyVersion(BaseModel):
    version_number: int
    description: Optional[str] = None
    weights: dict[str, float] = Field(default_factory=dict)
    breakpoints: dict[str, list[tuple[float, float]]] = Field(default_factory=dict)
    is_active: bool = False
    backtest_mae: Optional[float] = None

    @field_validator("breakpoints", mode="before")
    @classmethod
    def _accept_points_envelope(cls, value: Any) -> Any:
        # Stored tables wrap each component's pairs as {"points": [[x, y], ...]}.
        if isinstance(value, dict):
            return {name: _unwrap_points(points) for name, points in value.items()}
        return value

    def breakpoints_payload(self) -> dict[str, dict[str, list[list[float]]]]:
        return {name: {"points": [list(pair) for pair in points]} for name, points in self.breakpoints.items()}


class Observation(BaseModel):
    id: Optional[int] = None
    period_start: date
    period_end: date
    observed_health: Band
    observed_score: float = Field(..., ge=0, le=100)
    notes: Optional[str] = None
    evidence: Optional[str] = None

    @model_validator(mode="after")
    def _period_in_order(self) -> "Observation":
        if self.period_end < self.period_start:
            raise ValueError("period_end must not precede period_start")
        return self


class ShadowScore(BaseModel):
    score_date: date
    methodology_version: int
    composite_score: float
    component_scores: dict[str, ComponentScore] = Field(default_factory=dict)


class VersionCalibration(BaseModel):
    version_number: int
    description: Optional[str] = None
    is_active: bool = False
    mae: Optional[float] = None
    observations_matched: int = 0
    total_shadow_scores: int = 0


class CalibrationReport(BaseModel):
    results: list[VersionCalibration]
    recommended_version: Optional[int] = None
    recommendation: str
    observation_count: int
