from __future__ import annotations

import argparse
import logging
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Iterable

import store
from calibration import InsufficientObservationsError, calibrate, compute_shadow_scores, select_active_version
from forecast import compute_forecast, compute_monthly_weights, compute_trend_line
from health_score import compute_health_score
from methodology import (
    ANOMALY_YEARS,
    CONCENTRATION_COUNTRY_NAMES,
    DEFAULT_CONCENTRATION_PCT,
    DEFAULT_REFERENCE_YEARS,
    METHOD_VERSION,
)
from models import AnnualRecord, CalibrationReport, HealthScoreInput, MonthlyRecord, coerce_list

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    return utc_now().replace(microsecond=0).isoformat()


def float_or_zero(value: object) -> float:
    if value is None:
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def dominant_country_pct(country_rows: list[dict], names: Iterable[str] = CONCENTRATION_COUNTRY_NAMES) -> float:
    wanted = set(names)
    for row in country_rows:
        if row.get("country_name") in wanted:
            return float_or_zero(row.get("pct_of_total"))
    return DEFAULT_CONCENTRATION_PCT


def build_health_input(
    annual_row: dict | None,
    momentum_rows: list[dict],
    country_rows: list[dict],
    overall_row: dict | None,
) -> HealthScoreInput:
    annual_row = annual_row or {}
    overall_row = overall_row or {}

    tournaments = float_or_zero(annual_row.get("tournaments"))
    entries = float_or_zero(annual_row.get("player_entries"))
    unique_players = float_or_zero(annual_row.get("unique_players"))
    returning_players = float_or_zero(annual_row.get("returning_players"))

    return HealthScoreInput(
        tournament_yoy_pct=float_or_zero(annual_row.get("tournament_yoy_pct")),
        entry_yoy_pct=float_or_zero(annual_row.get("entry_yoy_pct")),
        avg_attendance=entries / tournaments if tournaments > 0 else 0.0,
        retention_rate=returning_players / unique_players * 100 if unique_players > 0 else 0.0,
        monthly_momentum=[
            float(row["yoy_change_pct"]) for row in momentum_rows if row.get("yoy_change_pct") is not None
        ],
        us_concentration_pct=dominant_country_pct(country_rows),
        country_count=len(country_rows),
        youth_pct=float_or_zero(overall_row.get("age_under_18_pct")) + float_or_zero(overall_row.get("age_18_29_pct")),
    )


def build_forecast_inputs(
    annual_data: Iterable[AnnualRecord | dict],
    monthly_data: Iterable[MonthlyRecord | dict],
    target_year: int,
    overall_row: dict | None = None,
) -> tuple[int, int, int]:
    """Return ``(ytd_tournaments, ytd_entries, completed_months)`` for ``target_year``."""
    target_months = [row for row in coerce_list(MonthlyRecord, monthly_data) if row.year == target_year]
    ytd_tournaments = sum(row.event_count for row in target_months)

    current = next((row for row in coerce_list(AnnualRecord, annual_data) if row.year == target_year), None)
    if current is not None:
        ytd_entries = current.entries
    else:
        ytd_entries = int(float_or_zero((overall_row or {}).get("ytd_player_entries")))
    return ytd_tournaments, ytd_entries, len(target_months)


def run_health_scorer(score_date: date, db_path: Path | None = None) -> dict:
    data = build_health_input(
        store.latest_annual_row(db_path),
        store.recent_monthly_rows(db_path=db_path),
        store.latest_country_rows(db_path),
        store.latest_overall_row(db_path),
    )

    versions = store.load_methodology_versions(db_path)
    active = select_active_version(versions)
    if active is None:
        logger.warning("No active methodology version; scoring with defaults.")
        result = compute_health_score(data, METHOD_VERSION)
    else:
        result = compute_health_score(data, active.version_number, active.weights or None, active.breakpoints or None)
    store.save_health_score(score_date, result, db_path)

    shadow = compute_shadow_scores(data, versions, score_date)
    shadow_count = store.save_shadow_scores(shadow, db_path)

    return {
        "records_affected": 1 + shadow_count,
        "details": {
            "score_date": score_date.isoformat(),
            "composite_score": result.composite_score,
            "band": result.band,
            "methodology_version": result.methodology_version,
            "shadow_versions_scored": shadow_count,
            "input_summary": {
                **data.model_dump(exclude={"monthly_momentum"}),
                "monthly_momentum_count": len(data.monthly_momentum),
            },
        },
    }


def run_forecaster(
    forecast_date: date,
    target_year: int | None = None,
    db_path: Path | None = None,
    reference_years: Iterable[int] = DEFAULT_REFERENCE_YEARS,
    anomaly_years: Iterable[int] = ANOMALY_YEARS,
) -> dict:
    if target_year is None:
        target_year = forecast_date.year
    anomaly_years = tuple(anomaly_years)

    annual_data = store.load_annual_records(db_path)
    if not annual_data:
        logger.error("No annual data available for forecasting.")
        return {"records_affected": 0, "details": {"error": "no_annual_data"}}
    monthly_data = store.load_monthly_records(db_path)

    ytd_tournaments, ytd_entries, completed_months = build_forecast_inputs(
        annual_data, monthly_data, target_year, store.latest_overall_row(db_path)
    )
    weights = compute_monthly_weights(annual_data, monthly_data, reference_years)
    forecast = compute_forecast(
        ytd_tournaments,
        ytd_entries,
        completed_months,
        weights,
        annual_data,
        monthly_data,
        target_year,
        anomaly_years,
    )
    trend_tournaments = compute_trend_line(annual_data, "tournaments", target_year, anomaly_years)
    trend_entries = compute_trend_line(annual_data, "entries", target_year, anomaly_years)

    store.save_forecast(
        forecast_date,
        forecast,
        {"tournaments": trend_tournaments.model_dump(), "entries": trend_entries.model_dump()},
        db_path,
    )
    if forecast.projected_tournaments == 0:
        logger.info("Forecast withheld for %s with %d completed months.", target_year, completed_months)

    return {
        "records_affected": 1,
        "details": {
            "forecast_date": forecast_date.isoformat(),
            "target_year": target_year,
            "months_of_data": completed_months,
            "ytd_tournaments": ytd_tournaments,
            "ytd_entries": ytd_entries,
            "projected_tournaments": forecast.projected_tournaments,
            "projected_entries": forecast.projected_entries,
            "trend_tournaments": trend_tournaments.projected_value,
            "trend_entries": trend_entries.projected_value,
        },
    }


def run_calibration(db_path: Path | None = None) -> CalibrationReport:
    report = calibrate(
        store.load_observations(db_path),
        store.load_methodology_versions(db_path),
        store.load_shadow_scores(db_path),
    )
    for row in report.results:
        if row.mae is not None:
            store.update_backtest_mae(row.version_number, row.mae, db_path)
    return report


def run_daily(today: date, db_path: Path | None = None) -> dict:
    run_id = store.start_collection_run("daily", utc_now_iso(), db_path)
    try:
        health = run_health_scorer(today, db_path)
        forecast = run_forecaster(today, db_path=db_path)
    except Exception as err:
        logger.exception("Daily run %s failed.", run_id)
        store.finish_collection_run(run_id, "error", utc_now_iso(), error_message=str(err), db_path=db_path)
        raise

    records = health["records_affected"] + forecast["records_affected"]
    details = {"health": health["details"], "forecast": forecast["details"]}
    store.finish_collection_run(run_id, "success", utc_now_iso(), records, details, db_path=db_path)
    return {"run_id": run_id, "status": "success", "records_affected": records, "details": details}


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Compute health scores, forecasts and methodology calibration.")
    parser.add_argument("command", choices=("daily", "calibrate"))
    parser.add_argument("--date", help="Run date (YYYY-MM-DD); defaults to today in UTC.")
    parser.add_argument("--db", type=Path, default=None, help="SQLite database path.")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
    store.ensure_db(args.db)

    if args.command == "calibrate":
        try:
            report = run_calibration(args.db)
        except InsufficientObservationsError as err:
            print(f"Calibration refused: {err}")
            return 1
        print(f"Observations: {report.observation_count}")
        for row in report.results:
            mae = f"{row.mae:.2f}" if row.mae is not None else "n/a"
            print(f"- v{row.version_number}: mae={mae} matched={row.observations_matched} shadow_scores={row.total_shadow_scores}")
        print(report.recommendation)
        return 0

    today = date.fromisoformat(args.date) if args.date else utc_now().date()
    result = run_daily(today, args.db)
    health = result["details"]["health"]
    forecast = result["details"]["forecast"]
    print(f"Run status: {result['status']}")
    print(
        "Summary: "
        f"composite={health['composite_score']} band={health['band']} "
        f"methodology=v{health['methodology_version']} shadow_versions={health['shadow_versions_scored']} "
        f"projected_tournaments={forecast.get('projected_tournaments')} months={forecast.get('months_of_data')}"
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
