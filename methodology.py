from __future__ import annotations

from copy import deepcopy

METHOD_VERSION = 1

DEFAULT_WEIGHTS: dict[str, float] = {
    "growth": 0.25,
    "attendance": 0.20,
    "retention": 0.20,
    "momentum": 0.15,
    "diversity": 0.10,
    "youth": 0.10,
}

# (input, output) pairs; diversity is inverted, lower dominant-country share scores higher.
DEFAULT_BREAKPOINTS: dict[str, list[list[float]]] = {
    "growth": [[-20, 0], [0, 50], [20, 100]],
    "attendance": [[15, 0], [20, 55], [23, 85], [25, 100]],
    "retention": [[20, 0], [30, 50], [42, 85], [50, 100]],
    "momentum": [[-15, 0], [0, 50], [15, 100]],
    "diversity": [[50, 100], [70, 50], [90, 0]],
    "youth": [[5, 0], [13, 50], [30, 100]],
}

BAND_THRESHOLDS: tuple[tuple[float, str], ...] = (
    (80.0, "thriving"),
    (65.0, "healthy"),
    (50.0, "stable"),
    (35.0, "concerning"),
)
FALLBACK_BAND = "critical"
BANDS = tuple(band for _, band in BAND_THRESHOLDS) + (FALLBACK_BAND,)

DIVERSITY_CONCENTRATION_SHARE = 0.7
DIVERSITY_COUNTRY_SHARE = 0.3
COUNTRY_COUNT_MULTIPLIER = 3.33
SENSITIVITY_NUDGE = 10.0

# 2020 and 2021 are pandemic-distorted seasons.
ANOMALY_YEARS: tuple[int, ...] = (2020, 2021)
DEFAULT_REFERENCE_YEARS: tuple[int, ...] = (2019, 2022, 2023, 2024, 2025)
FORECAST_MIN_MONTHS = 2
MIN_CUMULATIVE_WEIGHT = 0.001
MIN_BACKTEST_YEARS = 2
TREND_WINDOW_YEARS = 4
FORECAST_METHOD = "seasonal_ratio"

MIN_CALIBRATION_OBSERVATIONS = 3

CONCENTRATION_COUNTRY_NAMES: tuple[str, ...] = ("United States", "USA", "US")
DEFAULT_CONCENTRATION_PCT = 70.0
MOMENTUM_WINDOW_MONTHS = 3

SEED_VERSION: dict = {
    "version_number": METHOD_VERSION,
    "description": "Initial methodology: six weighted components with linear breakpoints",
    "weights": DEFAULT_WEIGHTS,
    "breakpoints": {name: {"points": points} for name, points in DEFAULT_BREAKPOINTS.items()},
    "is_active": True,
    "backtest_mae": None,
}


def weights_payload() -> dict[str, float]:
    return deepcopy(DEFAULT_WEIGHTS)


def breakpoints_payload() -> dict[str, list[list[float]]]:
    return deepcopy(DEFAULT_BREAKPOINTS)


def seed_version_payload() -> dict:
    return deepcopy(SEED_VERSION)


def methodology_payload() -> dict:
    return {
        "summary": "Weighted composite of six piecewise-linear component scores with seasonal ratio forecasting.",
        "method_version": METHOD_VERSION,
        "weights": weights_payload(),
        "breakpoints": breakpoints_payload(),
        "bands": [{"min_score": threshold, "band": band} for threshold, band in BAND_THRESHOLDS]
        + [{"min_score": None, "band": FALLBACK_BAND}],
        "diversity_formula": {
            "concentration_share": DIVERSITY_CONCENTRATION_SHARE,
            "country_count_share": DIVERSITY_COUNTRY_SHARE,
            "country_count_multiplier": COUNTRY_COUNT_MULTIPLIER,
        },
        "forecast": {
            "method": FORECAST_METHOD,
            "reference_years": list(DEFAULT_REFERENCE_YEARS),
            "excluded_years": list(ANOMALY_YEARS),
            "minimum_months": FORECAST_MIN_MONTHS,
            "trend_window_years": TREND_WINDOW_YEARS,
        },
        "limitations": [
            "Entry seasonality is assumed to follow tournament seasonality.",
            "Forecasts are withheld until two months of data exist.",
            "Calibration needs at least three human observations.",
        ],
    }
