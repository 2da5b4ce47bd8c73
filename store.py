from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import date
from pathlib import Path
from typing import Iterator

from methodology import MOMENTUM_WINDOW_MONTHS, seed_version_payload
from models import (
    AnnualRecord,
    ForecastResult,
    HealthScoreResult,
    MethodologyVersion,
    MonthlyRecord,
    Observation,
    ShadowScore,
    coerce,
)

logger = logging.getLogger(__name__)

DATA_DIR = Path("data")
DB_PATH = DATA_DIR / "health.db"

SCHEMA = """
CREATE TABLE IF NOT EXISTS annual_snapshots (
    year INTEGER PRIMARY KEY,
    tournaments INTEGER NOT NULL,
    player_entries INTEGER NOT NULL,
    unique_players INTEGER,
    returning_players INTEGER,
    new_players INTEGER,
    countries INTEGER,
    tournament_yoy_pct REAL,
    entry_yoy_pct REAL,
    collected_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);
CREATE TABLE IF NOT EXISTS monthly_event_counts (
    year INTEGER NOT NULL,
    month INTEGER NOT NULL CHECK (month BETWEEN 1 AND 12),
    event_count INTEGER NOT NULL,
    prior_year_event_count INTEGER,
    yoy_change_pct REAL,
    collected_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    PRIMARY KEY (year, month)
);
CREATE TABLE IF NOT EXISTS overall_stats_snapshots (
    snapshot_date TEXT PRIMARY KEY,
    ytd_tournaments INTEGER,
    ytd_player_entries INTEGER,
    ytd_unique_players INTEGER,
    total_active_players INTEGER,
    age_under_18_pct REAL,
    age_18_29_pct REAL,
    age_30_39_pct REAL,
    age_40_49_pct REAL,
    age_50_plus_pct REAL,
    collected_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);
CREATE TABLE IF NOT EXISTS country_snapshots (
    snapshot_date TEXT NOT NULL,
    country_name TEXT NOT NULL,
    country_code TEXT,
    active_players INTEGER NOT NULL,
    pct_of_total REAL,
    collected_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    PRIMARY KEY (snapshot_date, country_name)
);
CREATE TABLE IF NOT EXISTS health_scores (
    score_date TEXT PRIMARY KEY,
    composite_score REAL NOT NULL,
    band TEXT NOT NULL,
    components TEXT NOT NULL,
    sensitivity TEXT,
    methodology_version INTEGER NOT NULL DEFAULT 1,
    collected_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);
CREATE TABLE IF NOT EXISTS forecasts (
    forecast_date TEXT NOT NULL,
    target_year INTEGER NOT NULL,
    months_of_data INTEGER NOT NULL,
    projected_tournaments INTEGER,
    projected_entries INTEGER,
    ci_68_low_tournaments INTEGER,
    ci_68_high_tournaments INTEGER,
    ci_95_low_tournaments INTEGER,
    ci_95_high_tournaments INTEGER,
    ci_68_low_entries INTEGER,
    ci_68_high_entries INTEGER,
    ci_95_low_entries INTEGER,
    ci_95_high_entries INTEGER,
    method TEXT NOT NULL,
    trend_reference TEXT,
    collected_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    PRIMARY KEY (forecast_date, target_year)
);
CREATE TABLE IF NOT EXISTS observations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    period_start TEXT NOT NULL,
    period_end TEXT NOT NULL,
    observed_health TEXT NOT NULL,
    observed_score REAL NOT NULL,
    notes TEXT,
    evidence TEXT,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);
CREATE TABLE IF NOT EXISTS methodology_versions (
    version_number INTEGER PRIMARY KEY,
    description TEXT,
    weights TEXT NOT NULL,
    breakpoints TEXT NOT NULL,
    is_active INTEGER NOT NULL DEFAULT 0,
    backtest_mae REAL,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);
CREATE TABLE IF NOT EXISTS shadow_scores (
    score_date TEXT NOT NULL,
    methodology_version INTEGER NOT NULL,
    composite_score REAL NOT NULL,
    component_scores TEXT NOT NULL,
    collected_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    PRIMARY KEY (score_date, methodology_version)
);
CREATE TABLE IF NOT EXISTS collection_runs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    run_type TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'running',
    started_at TEXT NOT NULL,
    completed_at TEXT,
    records_affected INTEGER DEFAULT 0,
    error_message TEXT,
    details TEXT
);
"""

SNAPSHOT_COLUMNS: dict[str, tuple[str, ...]] = {
    "annual_snapshots": (
        "year",
        "tournaments",
        "player_entries",
        "unique_players",
        "returning_players",
        "new_players",
        "countries",
        "tournament_yoy_pct",
        "entry_yoy_pct",
    ),
    "monthly_event_counts": ("year", "month", "event_count", "prior_year_event_count", "yoy_change_pct"),
    "overall_stats_snapshots": (
        "snapshot_date",
        "ytd_tournaments",
        "ytd_player_entries",
        "ytd_unique_players",
        "total_active_players",
        "age_under_18_pct",
        "age_18_29_pct",
        "age_30_39_pct",
        "age_40_49_pct",
        "age_50_plus_pct",
    ),
    "country_snapshots": ("snapshot_date", "country_name", "country_code", "active_players", "pct_of_total"),
}


SNAPSHOT_KEYS: dict[str, tuple[str, ...]] = {
    "annual_snapshots": ("year",),
    "monthly_event_counts": ("year", "month"),
    "overall_stats_snapshots": ("snapshot_date",),
    "country_snapshots": ("snapshot_date", "country_name"),
}


def _resolve(db_path: Path | None) -> Path:
    return Path(db_path) if db_path is not None else DB_PATH


@contextmanager
def connect(db_path: Path | None = None) -> Iterator[sqlite3.Connection]:
    conn = sqlite3.connect(_resolve(db_path))
    conn.row_factory = sqlite3.Row
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()


def _load_json_column(value: str | None, default: dict | list | None = None) -> dict | list | None:
    if value is None:
        return default
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return default


def _methodology_json(row: sqlite3.Row, column: str) -> dict:
    try:
        return json.loads(row[column])
    except (TypeError, json.JSONDecodeError) as err:
        raise ValueError(f"Malformed {column} JSON for methodology version {row['version_number']}") from err


def ensure_db(db_path: Path | None = None) -> None:
    path = _resolve(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with connect(path) as conn:
        conn.executescript(SCHEMA)
        seeded = conn.execute("SELECT COUNT(*) FROM methodology_versions").fetchone()[0]
    if not seeded:
        save_methodology_version(seed_version_payload(), path)
        logger.info("Seeded methodology version 1 in %s", path)


def upsert_snapshot(table: str, row: dict, db_path: Path | None = None) -> None:
    columns = SNAPSHOT_COLUMNS.get(table)
    if columns is None:
        raise ValueError(f"Unknown snapshot table: {table}")
    keys = SNAPSHOT_KEYS[table]
    missing = [key for key in keys if key not in row]
    if missing:
        raise ValueError(f"Snapshot row for {table} is missing key columns: {', '.join(missing)}")

    present = [column for column in columns if column in row]
    placeholders = ", ".join("?" for _ in present)
    # Columns absent from the row keep their stored values.
    updates = [f"{column} = excluded.{column}" for column in present if column not in keys]
    updates.append("collected_at = CURRENT_TIMESTAMP")
    with connect(db_path) as conn:
        conn.execute(
            f"INSERT INTO {table} ({', '.join(present)}) VALUES ({placeholders}) "
            f"ON CONFLICT({', '.join(keys)}) DO UPDATE SET {', '.join(updates)}",
            [row[column] for column in present],
        )


def load_annual_records(db_path: Path | None = None) -> list[AnnualRecord]:
    with connect(db_path) as conn:
        rows = conn.execute("SELECT year, tournaments, player_entries FROM annual_snapshots ORDER BY year").fetchall()
    return [AnnualRecord(year=row["year"], tournaments=row["tournaments"], entries=row["player_entries"]) for row in rows]


def load_monthly_records(db_path: Path | None = None) -> list[MonthlyRecord]:
    with connect(db_path) as conn:
        rows = conn.execute("SELECT year, month, event_count FROM monthly_event_counts ORDER BY year, month").fetchall()
    return [MonthlyRecord(**dict(row)) for row in rows]


def latest_annual_row(db_path: Path | None = None) -> dict | None:
    with connect(db_path) as conn:
        row = conn.execute("SELECT * FROM annual_snapshots ORDER BY year DESC LIMIT 1").fetchone()
    return dict(row) if row is not None else None


def recent_monthly_rows(limit: int = MOMENTUM_WINDOW_MONTHS, db_path: Path | None = None) -> list[dict]:
    with connect(db_path) as conn:
        rows = conn.execute(
            "SELECT year, month, event_count, yoy_change_pct FROM monthly_event_counts "
            "ORDER BY year DESC, month DESC LIMIT ?",
            (limit,),
        ).fetchall()
    return [dict(row) for row in rows]


def latest_country_rows(db_path: Path | None = None) -> list[dict]:
    with connect(db_path) as conn:
        rows = conn.execute(
            "SELECT * FROM country_snapshots "
            "WHERE snapshot_date = (SELECT MAX(snapshot_date) FROM country_snapshots)"
        ).fetchall()
    return [dict(row) for row in rows]


def latest_overall_row(db_path: Path | None = None) -> dict | None:
    with connect(db_path) as conn:
        row = conn.execute("SELECT * FROM overall_stats_snapshots ORDER BY snapshot_date DESC LIMIT 1").fetchone()
    return dict(row) if row is not None else None


def load_methodology_versions(db_path: Path | None = None) -> list[MethodologyVersion]:
    with connect(db_path) as conn:
        rows = conn.execute("SELECT * FROM methodology_versions ORDER BY version_number").fetchall()
    return [
        MethodologyVersion(
            version_number=row["version_number"],
            description=row["description"],
            weights=_methodology_json(row, "weights"),
            breakpoints=_methodology_json(row, "breakpoints"),
            is_active=bool(row["is_active"]),
            backtest_mae=row["backtest_mae"],
        )
        for row in rows
    ]


def save_methodology_version(version: MethodologyVersion | dict, db_path: Path | None = None) -> MethodologyVersion:
    version = coerce(MethodologyVersion, version)
    with connect(db_path) as conn:
        conn.execute(
            "INSERT OR REPLACE INTO methodology_versions "
            "(version_number, description, weights, breakpoints, is_active, backtest_mae) VALUES (?, ?, ?, ?, ?, ?)",
            (
                version.version_number,
                version.description,
                json.dumps(version.weights),
                json.dumps(version.breakpoints_payload()),
                int(version.is_active),
                version.backtest_mae,
            ),
        )
    return version


def update_backtest_mae(version_number: int, mae: float, db_path: Path | None = None) -> None:
    with connect(db_path) as conn:
        conn.execute(
            "UPDATE methodology_versions SET backtest_mae = ? WHERE version_number = ?",
            (round(mae, 2), version_number),
        )


def save_health_score(score_date: date, result: HealthScoreResult, db_path: Path | None = None) -> None:
    payload = result.model_dump(mode="json")
    with connect(db_path) as conn:
        conn.execute(
            "INSERT OR REPLACE INTO health_scores "
            "(score_date, composite_score, band, components, sensitivity, methodology_version) VALUES (?, ?, ?, ?, ?, ?)",
            (
                score_date.isoformat(),
                payload["composite_score"],
                payload["band"],
                json.dumps(payload["components"]),
                json.dumps(payload["sensitivity"]),
                payload["methodology_version"],
            ),
        )


def _health_row(row: sqlite3.Row) -> dict:
    payload = dict(row)
    payload["components"] = _load_json_column(payload.get("components"), {})
    payload["sensitivity"] = _load_json_column(payload.get("sensitivity"), {})
    return payload


def latest_health_score(db_path: Path | None = None) -> dict | None:
    with connect(db_path) as conn:
        row = conn.execute("SELECT * FROM health_scores ORDER BY score_date DESC LIMIT 1").fetchone()
    return _health_row(row) if row is not None else None


def health_score_history(start: date | None = None, end: date | None = None, db_path: Path | None = None) -> list[dict]:
    query = "SELECT * FROM health_scores WHERE 1 = 1"
    params: list[str] = []
    if start is not None:
        query += " AND score_date >= ?"
        params.append(start.isoformat())
    if end is not None:
        query += " AND score_date <= ?"
        params.append(end.isoformat())
    with connect(db_path) as conn:
        rows = conn.execute(query + " ORDER BY score_date", params).fetchall()
    return [_health_row(row) for row in rows]


def save_shadow_scores(scores: list[ShadowScore], db_path: Path | None = None) -> int:
    with connect(db_path) as conn:
        for score in scores:
            payload = score.model_dump(mode="json")
            conn.execute(
                "INSERT OR REPLACE INTO shadow_scores "
                "(score_date, methodology_version, composite_score, component_scores) VALUES (?, ?, ?, ?)",
                (
                    payload["score_date"],
                    payload["methodology_version"],
                    payload["composite_score"],
                    json.dumps(payload["component_scores"]),
                ),
            )
    return len(scores)


def load_shadow_scores(db_path: Path | None = None) -> list[ShadowScore]:
    with connect(db_path) as conn:
        rows = conn.execute("SELECT * FROM shadow_scores ORDER BY score_date, methodology_version").fetchall()
    return [
        ShadowScore(
            score_date=row["score_date"],
            methodology_version=row["methodology_version"],
            composite_score=row["composite_score"],
            component_scores=_load_json_column(row["component_scores"], {}),
        )
        for row in rows
    ]


def save_forecast(
    forecast_date: date,
    result: ForecastResult,
    trend_reference: dict | None = None,
    db_path: Path | None = None,
) -> None:
    payload = result.model_dump(mode="json")
    model_trend = payload.pop("trend_reference")
    stored_trend = trend_reference if trend_reference is not None else model_trend
    payload["forecast_date"] = forecast_date.isoformat()
    payload["trend_reference"] = json.dumps(stored_trend) if stored_trend is not None else None
    columns = list(payload)
    with connect(db_path) as conn:
        conn.execute(
            f"INSERT OR REPLACE INTO forecasts ({', '.join(columns)}) VALUES ({', '.join('?' for _ in columns)})",
            [payload[column] for column in columns],
        )


def latest_forecast(db_path: Path | None = None) -> dict | None:
    with connect(db_path) as conn:
        row = conn.execute("SELECT * FROM forecasts ORDER BY forecast_date DESC, target_year DESC LIMIT 1").fetchone()
    if row is None:
        return None
    payload = dict(row)
    payload["trend_reference"] = _load_json_column(payload.get("trend_reference"))
    return payload


def add_observation(observation: Observation | dict, db_path: Path | None = None) -> Observation:
    observation = coerce(Observation, observation)
    with connect(db_path) as conn:
        cursor = conn.execute(
            "INSERT INTO observations (period_start, period_end, observed_health, observed_score, notes, evidence) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                observation.period_start.isoformat(),
                observation.period_end.isoformat(),
                observation.observed_health,
                observation.observed_score,
                observation.notes,
                observation.evidence,
            ),
        )
        new_id = cursor.lastrowid
    return observation.model_copy(update={"id": new_id})


def load_observations(db_path: Path | None = None) -> list[Observation]:
    with connect(db_path) as conn:
        rows = conn.execute(
            "SELECT id, period_start, period_end, observed_health, observed_score, notes, evidence "
            "FROM observations ORDER BY period_start"
        ).fetchall()
    return [Observation.model_validate(dict(row)) for row in rows]


def start_collection_run(run_type: str, started_at: str, db_path: Path | None = None) -> int:
    with connect(db_path) as conn:
        cursor = conn.execute(
            "INSERT INTO collection_runs (run_type, status, started_at) VALUES (?, 'running', ?)",
            (run_type, started_at),
        )
        return int(cursor.lastrowid)


def finish_collection_run(
    run_id: int,
    status: str,
    completed_at: str,
    records_affected: int = 0,
    details: dict | None = None,
    error_message: str | None = None,
    db_path: Path | None = None,
) -> None:
    with connect(db_path) as conn:
        conn.execute(
            "UPDATE collection_runs SET status = ?, completed_at = ?, records_affected = ?, details = ?, error_message = ? "
            "WHERE id = ?",
            (status, completed_at, records_affected, json.dumps(details) if details is not None else None, error_message, run_id),
        )


def load_collection_run(run_id: int, db_path: Path | None = None) -> dict | None:
    with connect(db_path) as conn:
        row = conn.execute("SELECT * FROM collection_runs WHERE id = ?", (run_id,)).fetchone()
    if row is None:
        return None
    payload = dict(row)
    payload["details"] = _load_json_column(payload.get("details"))
    return payload
