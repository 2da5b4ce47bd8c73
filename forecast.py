"""Seasonal ratio extrapolation of annual tournament and entry totals.

Each calendar month historically accounts for a fairly stable share of the
year's tournaments. With N completed months, the annual total is projected as
``ytd / sum(share of months 1..N)``. Confidence bands come from replaying the
same projection against past years (back-testing); when too few past years
are usable, the spread of the monthly shares is used instead.

All functions are pure. Callers pass the target year and the number of
completed months explicitly.
"""
from __future__ import annotations

import math
from typing import Iterable

from methodology import (
    ANOMALY_YEARS,
    DEFAULT_REFERENCE_YEARS,
    FORECAST_MIN_MONTHS,
    MIN_BACKTEST_YEARS,
    MIN_CUMULATIVE_WEIGHT,
    TREND_WINDOW_YEARS,
)
from models import (
    AnnualRecord,
    ForecastResult,
    MonthlyRecord,
    MonthlyWeights,
    TrendReference,
    coerce,
    coerce_list,
)
from scoring_math import mean, pstdev, round_half_up


def annual_lookup(annual_data: Iterable[AnnualRecord | dict]) -> dict[int, AnnualRecord]:
    return {record.year: record for record in coerce_list(AnnualRecord, annual_data)}


def monthly_lookup(monthly_data: Iterable[MonthlyRecord | dict]) -> dict[int, tuple[int, ...]]:
    """Map year -> 12 monthly event counts (index 0 = January)."""
    counts: dict[int, list[int]] = {}
    for record in coerce_list(MonthlyRecord, monthly_data):
        if not 1 <= record.month <= 12:
            continue
        counts.setdefault(record.year, [0] * 12)[record.month - 1] += record.event_count
    return {year: tuple(months) for year, months in counts.items()}


def compute_monthly_weights(
    annual_data: Iterable[AnnualRecord | dict],
    monthly_data: Iterable[MonthlyRecord | dict],
    reference_years: Iterable[int] = DEFAULT_REFERENCE_YEARS,
) -> MonthlyWeights:
    annual_by_year = annual_lookup(annual_data)
    monthly_by_year = monthly_lookup(monthly_data)

    tournament_fractions: list[list[float]] = [[] for _ in range(12)]
    entry_fractions: list[list[float]] = [[] for _ in range(12)]

    for year in reference_years:
        annual = annual_by_year.get(year)
        monthly = monthly_by_year.get(year)
        if annual is None or monthly is None or annual.tournaments == 0:
            continue
        for index, count in enumerate(monthly):
            fraction = count / annual.tournaments
            tournament_fractions[index].append(fraction)
            # Entries are assumed to follow the tournament seasonal shape.
            entry_fractions[index].append(fraction if annual.entries > 0 else 0.0)

    return MonthlyWeights(
        tournament_weights=[mean(fractions) for fractions in tournament_fractions],
        entry_weights=[mean(fractions) for fractions in entry_fractions],
        weight_std=[pstdev(fractions) for fractions in tournament_fractions],
    )


def empty_forecast(target_year: int, completed_months: int) -> ForecastResult:
    return ForecastResult(target_year=target_year, months_of_data=completed_months)


def _band(projection: float, centre: float, spread: float) -> tuple[int, int, int, int]:
    return (
        round_half_up(projection * (centre - spread)),
        round_half_up(projection * (centre + spread)),
        round_half_up(projection * (centre - 2 * spread)),
        round_half_up(projection * (centre + 2 * spread)),
    )


def backtest_ratios(
    annual_by_year: dict[int, AnnualRecord],
    monthly_by_year: dict[int, tuple[int, ...]],
    completed_months: int,
    cumulative_tournament_weight: float,
    cumulative_entry_weight: float,
    target_year: int,
    anomaly_years: Iterable[int] = ANOMALY_YEARS,
) -> tuple[list[float], list[float]]:
    """Ratios of each past year's actual total to what the model would have projected."""
    excluded = set(anomaly_years) | {target_year}
    tournament_ratios: list[float] = []
    entry_ratios: list[float] = []

    for year in sorted(annual_by_year):
        if year in excluded:
            continue
        annual = annual_by_year[year]
        monthly = monthly_by_year.get(year)
        if monthly is None or annual.tournaments == 0:
            continue
        ytd = sum(monthly[:completed_months])
        if ytd == 0:
            continue

        projected = ytd / cumulative_tournament_weight
        tournament_ratios.append(annual.tournaments / projected)

        if annual.entries > 0:
            # No monthly entry series exists; scale the tournament YTD by the
            # year's entries-per-tournament ratio. The result equals the tournament
            # ratio times cumulative entry weight over cumulative tournament weight.
            ytd_entries = ytd * annual.entries / annual.tournaments
            entry_ratios.append(annual.entries / (ytd_entries / cumulative_entry_weight))

    return tournament_ratios, entry_ratios


def weight_uncertainty(weights: MonthlyWeights, completed_months: int, cumulative_tournament_weight: float) -> float:
    combined_std = math.sqrt(sum(std * std for std in weights.weight_std[:completed_months]))
    return combined_std / cumulative_tournament_weight


def compute_forecast(
    ytd_tournaments: float,
    ytd_entries: float,
    completed_months: int,
    weights: MonthlyWeights | dict,
    annual_data: Iterable[AnnualRecord | dict],
    monthly_data: Iterable[MonthlyRecord | dict],
    target_year: int,
    anomaly_years: Iterable[int] = ANOMALY_YEARS,
) -> ForecastResult:
    if completed_months < FORECAST_MIN_MONTHS:
        return empty_forecast(target_year, completed_months)

    weights = coerce(MonthlyWeights, weights)
    cumulative_tournament_weight = sum(weights.tournament_weights[:completed_months])
    cumulative_entry_weight = sum(weights.entry_weights[:completed_months])
    if cumulative_tournament_weight < MIN_CUMULATIVE_WEIGHT or cumulative_entry_weight < MIN_CUMULATIVE_WEIGHT:
        return empty_forecast(target_year, completed_months)

    projected_tournaments = ytd_tournaments / cumulative_tournament_weight
    projected_entries = ytd_entries / cumulative_entry_weight

    annual_data = coerce_list(AnnualRecord, annual_data)
    anomaly_years = tuple(anomaly_years)
    tournament_ratios, entry_ratios = backtest_ratios(
        annual_lookup(annual_data),
        monthly_lookup(monthly_data),
        completed_months,
        cumulative_tournament_weight,
        cumulative_entry_weight,
        target_year,
        anomaly_years,
    )
    uncertainty = weight_uncertainty(weights, completed_months, cumulative_tournament_weight)

    if len(tournament_ratios) >= MIN_BACKTEST_YEARS:
        tournament_band = _band(projected_tournaments, mean(tournament_ratios), pstdev(tournament_ratios))
    else:
        tournament_band = _band(projected_tournaments, 1.0, uncertainty)

    if len(entry_ratios) >= MIN_BACKTEST_YEARS:
        entry_band = _band(projected_entries, mean(entry_ratios), pstdev(entry_ratios))
    else:
        entry_band = _band(projected_entries, 1.0, uncertainty)

    return ForecastResult(
        target_year=target_year,
        months_of_data=completed_months,
        projected_tournaments=round_half_up(projected_tournaments),
        projected_entries=round_half_up(projected_entries),
        ci_68_low_tournaments=tournament_band[0],
        ci_68_high_tournaments=tournament_band[1],
        ci_95_low_tournaments=tournament_band[2],
        ci_95_high_tournaments=tournament_band[3],
        ci_68_low_entries=entry_band[0],
        ci_68_high_entries=entry_band[1],
        ci_95_low_entries=entry_band[2],
        ci_95_high_entries=entry_band[3],
        trend_reference=compute_trend_line(annual_data, "tournaments", target_year, anomaly_years),
    )


def compute_trend_line(
    annual_data: Iterable[AnnualRecord | dict],
    metric: str,
    target_year: int,
    anomaly_years: Iterable[int] = ANOMALY_YEARS,
) -> TrendReference:
    """Least-squares line through the most recent non-anomaly years."""
    if metric not in ("tournaments", "entries"):
        raise ValueError(f"Unknown trend metric: {metric!r}")

    excluded = set(anomaly_years)
    eligible = [record for record in annual_lookup(annual_data).values() if record.year not in excluded]
    eligible = sorted(eligible, key=lambda record: record.year, reverse=True)[:TREND_WINDOW_YEARS]
    eligible.sort(key=lambda record: record.year)
    if len(eligible) < 2:
        return TrendReference()

    xs = [float(record.year) for record in eligible]
    ys = [float(getattr(record, metric)) for record in eligible]
    x_mean = mean(xs)
    y_mean = mean(ys)

    numerator = sum((x - x_mean) * (y - y_mean) for x, y in zip(xs, ys))
    denominator = sum((x - x_mean) ** 2 for x in xs)
    slope = numerator / denominator if denominator != 0 else 0.0
    intercept = y_mean - slope * x_mean

    ss_res = sum((y - (slope * x + intercept)) ** 2 for x, y in zip(xs, ys))
    ss_tot = sum((y - y_mean) ** 2 for y in ys)
    r_squared = 1 - ss_res / ss_tot if ss_tot != 0 else 0.0

    return TrendReference(
        slope=slope,
        intercept=intercept,
        r_squared=r_squared,
        projected_value=round_half_up(slope * target_year + intercept),
    )
