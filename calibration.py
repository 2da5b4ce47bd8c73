from __future__ import annotations

import logging
from datetime import date
from typing import Iterable

from health_score import compute_health_score
from methodology import MIN_CALIBRATION_OBSERVATIONS
from models import (
    CalibrationReport,
    HealthScoreInput,
    MethodologyVersion,
    Observation,
    ShadowScore,
    VersionCalibration,
    coerce,
    coerce_list,
)
from scoring_math import mean

logger = logging.getLogger(__name__)


class InsufficientObservationsError(Exception):
    def __init__(self, observation_count: int, minimum: int = MIN_CALIBRATION_OBSERVATIONS) -> None:
        super().__init__(f"Need at least {minimum} observations to calibrate, got {observation_count}.")
        self.observation_count = observation_count
        self.minimum = minimum


def select_active_version(versions: Iterable[MethodologyVersion | dict]) -> MethodologyVersion | None:
    active = [version for version in coerce_list(MethodologyVersion, versions) if version.is_active]
    if not active:
        return None
    if len(active) > 1:
        logger.warning(
            "Multiple active methodology versions %s; using the highest.",
            sorted(version.version_number for version in active),
        )
    return max(active, key=lambda version: version.version_number)


def compute_shadow_scores(
    data: HealthScoreInput | dict,
    versions: Iterable[MethodologyVersion | dict],
    score_date: date,
) -> list[ShadowScore]:
    data = coerce(HealthScoreInput, data)
    shadow: list[ShadowScore] = []
    for version in coerce_list(MethodologyVersion, versions):
        result = compute_health_score(
            data,
            version.version_number,
            version.weights or None,
            version.breakpoints or None,
        )
        shadow.append(
            ShadowScore(
                score_date=score_date,
                methodology_version=version.version_number,
                composite_score=result.composite_score,
                component_scores=result.components,
            )
        )
    return shadow


def version_mae(observations: list[Observation], scores: list[ShadowScore]) -> tuple[float | None, int]:
    """Mean absolute error of period-averaged shadow scores against observed scores."""
    errors: list[float] = []
    for observation in observations:
        in_period = [
            score.composite_score
            for score in scores
            if observation.period_start <= score.score_date <= observation.period_end
        ]
        if not in_period:
            continue
        errors.append(abs(mean(in_period) - observation.observed_score))
    if not errors:
        return None, 0
    return mean(errors), len(errors)


def calibrate(
    observations: Iterable[Observation | dict],
    versions: Iterable[MethodologyVersion | dict],
    shadow_scores: Iterable[ShadowScore | dict],
    min_observations: int = MIN_CALIBRATION_OBSERVATIONS,
) -> CalibrationReport:
    observations = coerce_list(Observation, observations)
    if len(observations) < min_observations:
        raise InsufficientObservationsError(len(observations), min_observations)

    shadow_scores = coerce_list(ShadowScore, shadow_scores)
    results: list[VersionCalibration] = []
    for version in sorted(coerce_list(MethodologyVersion, versions), key=lambda v: v.version_number):
        scores = [score for score in shadow_scores if score.methodology_version == version.version_number]
        mae, matched = version_mae(observations, scores)
        results.append(
            VersionCalibration(
                version_number=version.version_number,
                description=version.description,
                is_active=version.is_active,
                mae=mae,
                observations_matched=matched,
                total_shadow_scores=len(scores),
            )
        )

    ranked = sorted((row for row in results if row.mae is not None), key=lambda row: row.mae)
    if ranked:
        best = ranked[0]
        recommendation = f"Version {best.version_number} has lowest MAE ({best.mae:.1f})"
        recommended_version = best.version_number
    else:
        recommendation = "Insufficient shadow score data for comparison"
        recommended_version = None

    logger.info("Calibrated %d versions against %d observations: %s", len(results), len(observations), recommendation)
    return CalibrationReport(
        results=results,
        recommended_version=recommended_version,
        recommendation=recommendation,
        observation_count=len(observations),
    )
