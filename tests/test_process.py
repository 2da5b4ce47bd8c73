from __future__ import annotations

import tempfile
import unittest
from datetime import date
from pathlib import Path

import store
from calibration import InsufficientObservationsError
from models import MethodologyVersion, Observation
from process import build_forecast_inputs, build_health_input, main, run_calibration, run_daily, run_forecaster

ANNUAL_ROWS = [
    {"year": 2022, "tournaments": 1000, "player_entries": 5000, "unique_players": 2000, "returning_players": 800},
    {"year": 2023, "tournaments": 1200, "player_entries": 6000, "unique_players": 2400, "returning_players": 1000},
    {
        "year": 2024,
        "tournaments": 1500,
        "player_entries": 34500,
        "unique_players": 5000,
        "returning_players": 2100,
        "tournament_yoy_pct": 10.0,
        "entry_yoy_pct": 10.0,
    },
]
MONTHLY_ROWS = [
    {"year": 2022, "month": 1, "event_count": 80},
    {"year": 2022, "month": 2, "event_count": 80},
    {"year": 2023, "month": 1, "event_count": 96},
    {"year": 2023, "month": 2, "event_count": 120},
    {"year": 2024, "month": 1, "event_count": 120},
    {"year": 2024, "month": 2, "event_count": 90},
    {"year": 2025, "month": 1, "event_count": 150, "yoy_change_pct": 5.0},
    {"year": 2025, "month": 2, "event_count": 170, "yoy_change_pct": 4.0},
]
COUNTRY_ROWS = [
    {"snapshot_date": "2025-01-01", "country_name": "United States", "active_players": 100, "pct_of_total": 90.0},
    {"snapshot_date": "2025-03-01", "country_name": "United States", "active_players": 700, "pct_of_total": 70.0},
    {"snapshot_date": "2025-03-01", "country_name": "Canada", "active_players": 100, "pct_of_total": 10.0},
]
OVERALL_ROWS = [
    {"snapshot_date": "2025-03-01", "ytd_player_entries": 1600, "age_under_18_pct": 3.0, "age_18_29_pct": 10.0},
]


class BuildInputTests(unittest.TestCase):
    def test_build_health_input_from_snapshots(self) -> None:
        data = build_health_input(
            ANNUAL_ROWS[-1],
            [{"yoy_change_pct": 4.0}, {"yoy_change_pct": None}, {"yoy_change_pct": 5.0}],
            COUNTRY_ROWS[1:],
            OVERALL_ROWS[0],
        )
        self.assertEqual(10.0, data.tournament_yoy_pct)
        self.assertEqual(23.0, data.avg_attendance)
        self.assertEqual(42.0, data.retention_rate)
        self.assertEqual([4.0, 5.0], data.monthly_momentum)
        self.assertEqual(70.0, data.us_concentration_pct)
        self.assertEqual(2, data.country_count)
        self.assertEqual(13.0, data.youth_pct)

    def test_build_health_input_with_nothing_stored(self) -> None:
        data = build_health_input(None, [], [], None)
        self.assertEqual(0.0, data.avg_attendance)
        self.assertEqual(0.0, data.retention_rate)
        self.assertEqual([], data.monthly_momentum)
        self.assertEqual(70.0, data.us_concentration_pct)
        self.assertEqual(0, data.country_count)

    def test_build_forecast_inputs_prefers_annual_entries(self) -> None:
        annual = [{"year": 2025, "tournaments": 320, "entries": 1800}]
        ytd_tournaments, ytd_entries, months = build_forecast_inputs(annual, MONTHLY_ROWS, 2025, OVERALL_ROWS[0])
        self.assertEqual((320, 1800, 2), (ytd_tournaments, ytd_entries, months))

    def test_build_forecast_inputs_falls_back_to_overall_snapshot(self) -> None:
        ytd_tournaments, ytd_entries, months = build_forecast_inputs([], MONTHLY_ROWS, 2025, OVERALL_ROWS[0])
        self.assertEqual((320, 1600, 2), (ytd_tournaments, ytd_entries, months))
        self.assertEqual((0, 0, 0), build_forecast_inputs([], [], 2026))


class RunnerTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.db_path = Path(self._tmp.name) / "health.db"
        store.ensure_db(self.db_path)
        for row in ANNUAL_ROWS:
            store.upsert_snapshot("annual_snapshots", row, self.db_path)
        for row in MONTHLY_ROWS:
            store.upsert_snapshot("monthly_event_counts", row, self.db_path)
        for row in COUNTRY_ROWS:
            store.upsert_snapshot("country_snapshots", row, self.db_path)
        for row in OVERALL_ROWS:
            store.upsert_snapshot("overall_stats_snapshots", row, self.db_path)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_run_daily_scores_and_forecasts(self) -> None:
        store.save_methodology_version(
            MethodologyVersion(version_number=2, weights={"growth": 1.0, "attendance": 0, "retention": 0, "momentum": 0, "diversity": 0, "youth": 0}),
            self.db_path,
        )
        result = run_daily(date(2025, 3, 5), self.db_path)
        self.assertEqual("success", result["status"])
        self.assertEqual(4, result["records_affected"])

        health = store.latest_health_score(self.db_path)
        self.assertEqual("2025-03-05", health["score_date"])
        self.assertEqual(1, health["methodology_version"])
        self.assertIn("growth", health["components"])
        self.assertEqual(2, len(store.load_shadow_scores(self.db_path)))

        forecast = store.latest_forecast(self.db_path)
        self.assertEqual(2025, forecast["target_year"])
        self.assertEqual(2, forecast["months_of_data"])
        self.assertEqual(2000, forecast["projected_tournaments"])
        self.assertEqual(10000, forecast["projected_entries"])
        self.assertIn("entries", forecast["trend_reference"])

        run = store.load_collection_run(result["run_id"], self.db_path)
        self.assertEqual("success", run["status"])
        self.assertEqual(4, run["records_affected"])

    def test_rerun_same_day_overwrites(self) -> None:
        run_daily(date(2025, 3, 5), self.db_path)
        run_daily(date(2025, 3, 5), self.db_path)
        self.assertEqual(1, len(store.health_score_history(db_path=self.db_path)))
        self.assertEqual(1, len(store.load_shadow_scores(self.db_path)))

    def test_forecaster_without_annual_data(self) -> None:
        empty = Path(self._tmp.name) / "empty.db"
        store.ensure_db(empty)
        out = run_forecaster(date(2025, 3, 5), db_path=empty)
        self.assertEqual(0, out["records_affected"])
        self.assertEqual("no_annual_data", out["details"]["error"])

    def test_calibration_refuses_then_records_mae(self) -> None:
        run_daily(date(2025, 1, 15), self.db_path)
        with self.assertRaises(InsufficientObservationsError):
            run_calibration(self.db_path)

        for start, end, score in (("2025-01-01", "2025-01-31", 60), ("2025-02-01", "2025-02-28", 50), ("2025-03-01", "2025-03-31", 55)):
            store.add_observation(
                Observation(
                    period_start=date.fromisoformat(start),
                    period_end=date.fromisoformat(end),
                    observed_health="stable",
                    observed_score=score,
                ),
                self.db_path,
            )
        report = run_calibration(self.db_path)
        self.assertEqual(1, report.recommended_version)
        version = store.load_methodology_versions(self.db_path)[0]
        self.assertIsNotNone(version.backtest_mae)
        self.assertTrue(version.is_active)

    def test_cli_calibrate_exit_code(self) -> None:
        self.assertEqual(1, main(["calibrate", "--db", str(self.db_path)]))
        self.assertEqual(0, main(["daily", "--date", "2025-03-05", "--db", str(self.db_path)]))


if __name__ == "__main__":
    unittest.main()
