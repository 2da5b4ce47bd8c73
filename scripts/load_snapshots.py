"""Load collector output into the snapshot store.

Expected document shape::

    {
      "annual": [{"year": 2025, "tournaments": 11000, "player_entries": 250000, ...}],
      "monthly": [{"year": 2026, "month": 1, "event_count": 861, "yoy_change_pct": 4.2}],
      "overall": [{"snapshot_date": "2026-02-01", "age_under_18_pct": 3.1, ...}],
      "countries": [{"snapshot_date": "2026-02-01", "country_name": "United States", ...}]
    }
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import store

SECTION_TABLES = {
    "annual": "annual_snapshots",
    "monthly": "monthly_event_counts",
    "overall": "overall_stats_snapshots",
    "countries": "country_snapshots",
}

logger = logging.getLogger(__name__)


def load_document(payload: dict, db_path: Path | None = None) -> dict[str, int]:
    store.ensure_db(db_path)
    counts: dict[str, int] = {}
    for section, table in SECTION_TABLES.items():
        rows = payload.get(section, [])
        if not isinstance(rows, list):
            raise ValueError(f"Section {section!r} must be a list of rows.")
        for row in rows:
            store.upsert_snapshot(table, row, db_path)
        counts[section] = len(rows)
        logger.info("Loaded %d %s rows", len(rows), section)
    return counts


def main() -> int:
    parser = argparse.ArgumentParser(description="Load collector snapshots into the health store.")
    parser.add_argument("path", type=Path, help="JSON document with annual/monthly/overall/countries rows.")
    parser.add_argument("--db", type=Path, default=None, help="SQLite database path.")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    counts = load_document(json.loads(args.path.read_text()), args.db)
    print("Loaded: " + ", ".join(f"{section}={count}" for section, count in counts.items()))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
