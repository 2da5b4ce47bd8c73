from __future__ import annotations

from datetime import date
from pathlib import Path

from fastapi import Depends, FastAPI, HTTPException, Query

import store
from api.admin import router as admin_router
from api.dependencies import get_db_path
from methodology import methodology_payload

app = FastAPI(title="Tournament Ecosystem Health API", version="1.0.0")
app.include_router(admin_router)


@app.get("/v1/health/latest")
def health_latest(db_path: Path = Depends(get_db_path)) -> dict:
    store.ensure_db(db_path)
    payload = store.latest_health_score(db_path)
    if payload is None:
        raise HTTPException(status_code=404, detail="No health score available.")
    return payload


@app.get("/v1/health/history")
def health_history(
    start: date | None = Query(default=None),
    end: date | None = Query(default=None),
    db_path: Path = Depends(get_db_path),
) -> dict:
    store.ensure_db(db_path)
    return {"items": store.health_score_history(start, end, db_path)}


@app.get("/v1/forecast/latest")
def forecast_latest(db_path: Path = Depends(get_db_path)) -> dict:
    store.ensure_db(db_path)
    payload = store.latest_forecast(db_path)
    if payload is None:
        raise HTTPException(status_code=404, detail="No forecast available.")
    return payload


@app.get("/v1/methodology")
def methodology() -> dict:
    return methodology_payload()


@app.get("/v1/methodology/versions")
def methodology_versions(db_path: Path = Depends(get_db_path)) -> dict:
    store.ensure_db(db_path)
    versions = store.load_methodology_versions(db_path)
    return {"items": [version.model_dump(mode="json") for version in versions]}
