from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

import store
from api.dependencies import get_db_path
from calibration import InsufficientObservationsError
from models import Band, Observation
from process import run_calibration

router = APIRouter(prefix="/v1/admin", tags=["admin"])


class ObservationCreate(BaseModel):
    period_start: date
    period_end: date
    observed_health: Band = Field(..., description="Qualitative band asserted by the reviewer")
    observed_score: float = Field(..., ge=0, le=100, description="Asserted health score")
    notes: Optional[str] = None
    evidence: Optional[str] = None


@router.get("/observations")
def list_observations(db_path: Path = Depends(get_db_path)) -> dict:
    store.ensure_db(db_path)
    observations = store.load_observations(db_path)
    return {"observations": [obs.model_dump(mode="json") for obs in observations]}


@router.post("/observations", status_code=201)
def create_observation(payload: ObservationCreate, db_path: Path = Depends(get_db_path)) -> dict:
    """Record a human ground-truth observation for calibration."""
    if payload.period_end < payload.period_start:
        raise HTTPException(status_code=400, detail="period_end must not precede period_start.")
    store.ensure_db(db_path)
    saved = store.add_observation(Observation(**payload.model_dump()), db_path)
    return {"observation": saved.model_dump(mode="json")}


@router.post("/calibrate")
def calibrate_versions(db_path: Path = Depends(get_db_path)) -> dict:
    """Rank methodology versions by MAE against observations. Never changes the active version."""
    store.ensure_db(db_path)
    try:
        report = run_calibration(db_path)
    except InsufficientObservationsError as err:
        return JSONResponse(
            status_code=400,
            content={"detail": str(err), "observation_count": err.observation_count},
        )
    return report.model_dump(mode="json")
