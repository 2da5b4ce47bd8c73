from __future__ import annotations

import unittest

from health_score import compute_health_score, get_band, merge_breakpoints, merge_weights
from methodology import DEFAULT_BREAKPOINTS, DEFAULT_WEIGHTS, weights_payload
from models import HealthScoreInput


def reference_input(**overrides) -> HealthScoreInput:
    values = {
        "tournament_yoy_pct": 10,
        "entry_yoy_pct": 10,
        "avg_attendance": 23,
        "retention_rate": 42,
        "monthly_momentum": [5, 5, 5],
        "us_concentration_pct": 70,
        "country_count": 30,
        "youth_pct": 13,
    }
    values.update(overrides)
    return HealthScoreInput(**values)


class HealthScoreTests(unittest.TestCase):
    def test_reference_scenario_by_hand(self) -> None:
        result = compute_health_score(reference_input())
        scores = {name: component.score for name, component in result.components.items()}
        self.assertEqual(75.0, scores["growth"])
        self.assertEqual(85.0, scores["attendance"])
        self.assertEqual(85.0, scores["retention"])
        self.assertAlmostEqual(66.67, scores["momentum"], places=2)
        self.assertAlmostEqual(64.97, scores["diversity"], places=2)
        self.assertEqual(50.0, scores["youth"])

        expected = 75 * 0.25 + 85 * 0.20 + 85 * 0.20 + (200 / 3) * 0.15 + 64.97 * 0.10 + 50 * 0.10
        self.assertAlmostEqual(round(expected, 2), result.composite_score, places=2)
        self.assertEqual("healthy", result.band)
        self.assertEqual(1, result.methodology_version)

    def test_component_details(self) -> None:
        result = compute_health_score(reference_input(), methodology_version=4)
        growth = result.components["growth"]
        self.assertEqual(0.25, growth.weight)
        self.assertEqual(10.0, growth.raw_value)
        self.assertEqual("+10.0% avg YoY growth", growth.label)
        self.assertEqual("23.0 avg attendance per event", result.components["attendance"].label)
        self.assertEqual(4, result.methodology_version)

    def test_sensitivity_tracks_weights_when_no_component_is_pinned(self) -> None:
        result = compute_health_score(reference_input())
        for name, weight in DEFAULT_WEIGHTS.items():
            self.assertAlmostEqual(weight * 100, result.sensitivity[name], places=2)
        self.assertAlmostEqual(100.0, sum(result.sensitivity.values()), places=1)

    def test_sensitivity_halves_for_pinned_component(self) -> None:
        # Growth is pinned at 100, so only the downward nudge moves the composite.
        result = compute_health_score(reference_input(tournament_yoy_pct=50, entry_yoy_pct=50))
        self.assertEqual(100.0, result.components["growth"].score)
        total = 0.25 * 10 + (1 - 0.25) * 20
        self.assertAlmostEqual(0.25 * 10 / total * 100, result.sensitivity["growth"], places=2)
        self.assertAlmostEqual(100.0, sum(result.sensitivity.values()), places=1)

    def test_sensitivity_all_zero_when_weights_are_zero(self) -> None:
        zero_weights = {name: 0.0 for name in DEFAULT_WEIGHTS}
        result = compute_health_score(reference_input(), weights=zero_weights)
        self.assertEqual(0.0, result.composite_score)
        self.assertTrue(all(value == 0 for value in result.sensitivity.values()))

    def test_composite_stays_in_range_for_extreme_inputs(self) -> None:
        for value in (-1e6, -250.0, 0.0, 250.0, 1e6):
            data = reference_input(
                tournament_yoy_pct=value,
                entry_yoy_pct=value,
                avg_attendance=value,
                retention_rate=value,
                monthly_momentum=[value, -value],
                us_concentration_pct=value,
                country_count=value,
                youth_pct=value,
            )
            result = compute_health_score(data)
            self.assertGreaterEqual(result.composite_score, 0.0)
            self.assertLessEqual(result.composite_score, 100.0)
            for component in result.components.values():
                self.assertGreaterEqual(component.score, 0.0)
                self.assertLessEqual(component.score, 100.0)

    def test_constant_breakpoints_score_one_hundred(self) -> None:
        # The country-count half of diversity saturates at 31 countries.
        constant = {name: [[7, 100]] for name in DEFAULT_BREAKPOINTS}
        for raw in (-50.0, 0.0, 500.0):
            data = reference_input(
                tournament_yoy_pct=raw,
                avg_attendance=raw,
                retention_rate=raw,
                monthly_momentum=[raw],
                us_concentration_pct=raw,
                youth_pct=raw,
                country_count=40,
            )
            result = compute_health_score(data, breakpoints=constant)
            self.assertEqual(100.0, result.composite_score)
            self.assertEqual("thriving", result.band)

    def test_empty_momentum_series_is_neutral(self) -> None:
        result = compute_health_score(reference_input(monthly_momentum=[]))
        self.assertEqual(0.0, result.components["momentum"].raw_value)
        self.assertEqual(50.0, result.components["momentum"].score)

    def test_partial_overrides_merge_per_key(self) -> None:
        result = compute_health_score(
            reference_input(),
            weights={"growth": 0.5},
            breakpoints={"youth": [[0, 0], [26, 100]]},
        )
        self.assertEqual(0.5, result.components["growth"].weight)
        self.assertEqual(0.20, result.components["attendance"].weight)
        self.assertEqual(50.0, result.components["youth"].score)
        self.assertEqual(85.0, result.components["attendance"].score)

    def test_unknown_weight_key_contributes_zero(self) -> None:
        baseline = compute_health_score(reference_input())
        result = compute_health_score(reference_input(), weights={"media": 0.2})
        self.assertIn("media", result.components)
        self.assertEqual(0.0, result.components["media"].score)
        self.assertEqual(baseline.composite_score, result.composite_score)
        self.assertIn("media", result.sensitivity)

    def test_inverted_diversity_table_from_storage(self) -> None:
        stored = {"diversity": [[90, 0], [70, 50], [50, 100]]}
        self.assertEqual(
            compute_health_score(reference_input()).components["diversity"].score,
            compute_health_score(reference_input(), breakpoints=stored).components["diversity"].score,
        )

    def test_accepts_plain_mapping_input(self) -> None:
        result = compute_health_score(reference_input().model_dump())
        self.assertEqual("healthy", result.band)

    def test_defaults_are_not_mutated(self) -> None:
        merged = merge_weights({"growth": 0.9})
        merged["attendance"] = 0.0
        merge_breakpoints({"growth": [[0, 0]]})
        self.assertEqual(weights_payload(), DEFAULT_WEIGHTS)
        self.assertEqual(0.25, DEFAULT_WEIGHTS["growth"])
        self.assertEqual([[-20, 0], [0, 50], [20, 100]], DEFAULT_BREAKPOINTS["growth"])


class BandTests(unittest.TestCase):
    def test_band_thresholds(self) -> None:
        self.assertEqual("thriving", get_band(80))
        self.assertEqual("healthy", get_band(79.99))
        self.assertEqual("healthy", get_band(65))
        self.assertEqual("stable", get_band(50))
        self.assertEqual("concerning", get_band(35))
        self.assertEqual("critical", get_band(34.99))
        self.assertEqual("critical", get_band(-10))


if __name__ == "__main__":
    unittest.main()
