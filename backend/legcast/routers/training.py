# legcast/routers/training.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from legcast.db.session import get_db
from legcast.schemas.api import TrainingRunRequest
from legcast.schemas.common import ok, fail, meta_now
from legcast.services.training import list_runs, train_bucket_models

router = APIRouter(prefix="/api/training", tags=["training"])


def _run_dict(run) -> dict:
    return {
        "id": run.id,
        "version_tag": run.version_tag,
        "status": run.status,
        "buckets_trained": run.buckets_trained,
        "models_written": run.models_written,
        "warnings": run.warnings or [],
        "excluded": run.excluded or {},
        "error": run.error,
        "started_at": run.started_at,
        "finished_at": run.finished_at,
    }


@router.post("/run")
def run_training(body: Optional[TrainingRunRequest] = None, db: Session = Depends(get_db)):
    """Train every bucket model into `version_tag` (dev-temp unless told otherwise)."""
    tag = (body or TrainingRunRequest()).version_tag
    try:
        summary = train_bucket_models(db, tag)
    except ValueError as ex:
        return fail(code="INVALID_REQUEST", message=str(ex), status_code=422, meta=meta_now(version_tag=tag))
    return ok(data=summary.as_dict(), meta=meta_now(version_tag=tag))


@router.get("/runs")
def get_runs(
    version_tag: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db),
):
    runs = list_runs(db, version_tag=version_tag, limit=limit)
    return ok(data=[_run_dict(r) for r in runs], meta=meta_now(version_tag=version_tag, limit=limit))
