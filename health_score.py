"""Composite ecosystem health score.

Six raw metrics are mapped to 0-100 component scores through breakpoint
tables, combined with configurable weights and classified into a band.
Pure computation: no storage access and no clock reads.
"""
from __future__ import annotations

from typing import Callable, Mapping

from methodology import (
    BAND_THRESHOLDS,
    COUNTRY_COUNT_MULTIPLIER,
    DEFAULT_BREAKPOINTS,
    DEFAULT_WEIGHTS,
    DIVERSITY_CONCENTRATION_SHARE,
    DIVERSITY_COUNTRY_SHARE,
    FALLBACK_BAND,
    METHOD_VERSION,
    SENSITIVITY_NUDGE,
)
from models import ComponentScore, HealthScoreInput, HealthScoreResult, coerce
from scoring_math import Breakpoints, clamp, interpolate, mean, round2


def _signed(value: float) -> str:
    return f"{'+' if value >= 0 else ''}{value:.1f}"


COMPONENT_LABELS: dict[str, Callable[[float], str]] = {
    "growth": lambda v: f"{_signed(v)}% avg YoY growth",
    "attendance": lambda v: f"{v:.1f} avg attendance per event",
    "retention": lambda v: f"{v:.1f}% player retention rate",
    "momentum": lambda v: f"{_signed(v)}% recent monthly trend",
    "diversity": lambda v: f"{v:.1f} diversity index (blended)",
    "youth": lambda v: f"{v:.1f}% of players under 30",
}


def get_band(score: float) -> str:
    for threshold, band in BAND_THRESHOLDS:
        if score >= threshold:
            return band
    return FALLBACK_BAND


def merge_weights(overrides: Mapping[str, float] | None = None) -> dict[str, float]:
    merged = dict(DEFAULT_WEIGHTS)
    merged.update(overrides or {})
    return merged


def merge_breakpoints(overrides: Mapping[str, Breakpoints] | None = None) -> dict[str, Breakpoints]:
    merged: dict[str, Breakpoints] = {name: points for name, points in DEFAULT_BREAKPOINTS.items()}
    merged.update(overrides or {})
    return merged


def compute_raw_values(data: HealthScoreInput, breakpoints: Mapping[str, Breakpoints]) -> dict[str, float]:
    concentration_score = interpolate(data.us_concentration_pct, breakpoints.get("diversity", []))
    country_score = min(100.0, data.country_count * COUNTRY_COUNT_MULTIPLIER)
    return {
        "growth": (data.tournament_yoy_pct + data.entry_yoy_pct) / 2,
        "attendance": data.avg_attendance,
        "retention": data.retention_rate,
        "momentum": mean(data.monthly_momentum),
        "diversity": DIVERSITY_CONCENTRATION_SHARE * concentration_score + DIVERSITY_COUNTRY_SHARE * country_score,
        "youth": data.youth_pct,
    }


def compute_component_scores(raw_values: Mapping[str, float], breakpoints: Mapping[str, Breakpoints]) -> dict[str, float]:
    scores: dict[str, float] = {}
    for name, raw in raw_values.items():
        if name == "diversity":
            # Already a blend of two 0-100 sub-scores.
            scores[name] = clamp(raw)
        else:
            scores[name] = interpolate(raw, breakpoints.get(name, []))
    return scores


def weighted_composite(scores: Mapping[str, float], weights: Mapping[str, float]) -> float:
    return sum(scores.get(name, 0.0) * weight for name, weight in weights.items())


def compute_sensitivity(scores: Mapping[str, float], weights: Mapping[str, float]) -> dict[str, float]:
    """Share (in %) of composite movement attributable to each component.

    Each component is nudged up and down by a fixed amount while the others
    stay put; the swing in the composite is that component's delta.
    """
    deltas: dict[str, float] = {}
    for name in weights:
        current = scores.get(name, 0.0)
        upper = weighted_composite({**scores, name: min(100.0, current + SENSITIVITY_NUDGE)}, weights)
        lower = weighted_composite({**scores, name: max(0.0, current - SENSITIVITY_NUDGE)}, weights)
        deltas[name] = abs(upper - lower)

    total = sum(deltas.values())
    if total <= 0:
        return {name: 0.0 for name in weights}
    return {name: round2(delta / total * 100) for name, delta in deltas.items()}


def _label(name: str, raw: float) -> str:
    formatter = COMPONENT_LABELS.get(name)
    if formatter is None:
        return f"{raw}"
    return formatter(raw)


def compute_health_score(
    data: HealthScoreInput | dict,
    methodology_version: int = METHOD_VERSION,
    weights: Mapping[str, float] | None = None,
    breakpoints: Mapping[str, Breakpoints] | None = None,
) -> HealthScoreResult:
    data = coerce(HealthScoreInput, data)
    merged_weights = merge_weights(weights)
    merged_breakpoints = merge_breakpoints(breakpoints)

    raw_values = compute_raw_values(data, merged_breakpoints)
    scores = compute_component_scores(raw_values, merged_breakpoints)

    components: dict[str, ComponentScore] = {}
    for name, weight in merged_weights.items():
        raw = raw_values.get(name, 0.0)
        components[name] = ComponentScore(
            score=round2(scores.get(name, 0.0)),
            weight=weight,
            raw_value=round2(raw),
            label=_label(name, raw),
        )

    composite = weighted_composite(scores, merged_weights)
    return HealthScoreResult(
        composite_score=round2(clamp(composite)),
        band=get_band(composite),
        components=components,
        sensitivity=compute_sensitivity(scores, merged_weights),
        methodology_version=methodology_version,
    )
