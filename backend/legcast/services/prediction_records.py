# legcast/services/prediction_records.py
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional

import structlog
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from legcast.db.upsert import upsert_rows
from legcast.models.prediction_record import PredictionRecord
from legcast.services.prediction import LiveVesselState, PredictionResult
from legcast.utils.timeutil import as_utc, minutes_between

logger = structlog.get_logger(__name__)

# which actual event settles each prediction type
ACTUAL_EVENTS: Dict[str, str] = {
    "AtDockDepartCurr": "left_dock",
    "AtDockArriveNext": "trip_end",
    "AtSeaArriveNext": "trip_end",
    "AtDockDepartNext": "next_left_dock",
    "AtSeaDepartNext": "next_left_dock",
}


def record_predictions(
    db: Session,
    state: LiveVesselState,
    results: Iterable[Optional[PredictionResult]],
    *,
    now: Optional[datetime] = None,
) -> int:
    """Upsert one row per (trip key, prediction type). Results without an absolute time are skipped."""
    stamp = now or datetime.now(timezone.utc)
    rows = [
        {
            "key": state.trip_key,
            "vessel_abbrev": state.vessel_abbrev,
            "departing": state.departing,
            "arriving": state.arriving,
            "prediction_type": r.prediction_type,
            "trip_start": state.trip_start,
            "scheduled_departure": state.scheduled_departure,
            "left_dock": state.left_dock,
            "trip_end": None,
            "min_time": r.min_time,
            "pred_time": r.pred_time,
            "max_time": r.max_time,
            "mae": r.mae,
            "std_dev": r.std_dev,
            "created_at": stamp,
        }
        for r in results
        if r is not None and r.pred_time is not None
    ]
    # a re-prediction must not wipe an already recorded actual
    written = upsert_rows(
        db,
        PredictionRecord,
        rows,
        conflict_cols=("key", "prediction_type"),
        update_cols=[
            "left_dock",
            "min_time",
            "pred_time",
            "max_time",
            "mae",
            "std_dev",
            "created_at",
        ],
    )
    db.commit()
    return written


def range_delta(actual: datetime, min_time: datetime, max_time: datetime) -> float:
    """Minutes outside [min_time, max_time]; negative when early, 0 inside the band."""
    if as_utc(actual) < as_utc(min_time):
        return round(minutes_between(min_time, actual), 2)
    if as_utc(actual) > as_utc(max_time):
        return round(minutes_between(max_time, actual), 2)
    return 0.0


def _settle(record: PredictionRecord, actual: datetime) -> None:
    record.actual = as_utc(actual)
    record.delta_total = round(minutes_between(record.pred_time, actual), 2)
    record.delta_range = range_delta(actual, record.min_time, record.max_time)


def actualize_trip(
    db: Session,
    key: str,
    *,
    left_dock: Optional[datetime] = None,
    trip_end: Optional[datetime] = None,
    next_left_dock: Optional[datetime] = None,
) -> List[PredictionRecord]:
    """Record observed events against every open prediction for the trip `key`."""
    events = {"left_dock": left_dock, "trip_end": trip_end, "next_left_dock": next_left_dock}
    records = db.execute(select(PredictionRecord).where(PredictionRecord.key == key)).scalars().all()
    settled: List[PredictionRecord] = []
    for record in records:
        actual = events.get(ACTUAL_EVENTS.get(record.prediction_type, ""))
        if actual is None:
            continue
        _settle(record, actual)
        if left_dock is not None:
            record.left_dock = as_utc(left_dock)
        if trip_end is not None:
            record.trip_end = as_utc(trip_end)
        settled.append(record)
    db.commit()
    logger.info("prediction_records.actualized", key=key, settled=len(settled))
    return settled


def list_prediction_records(
    db: Session,
    *,
    vessel_abbrev: Optional[str] = None,
    prediction_type: Optional[str] = None,
    settled_only: bool = False,
    limit: int = 100,
) -> List[PredictionRecord]:
    stmt = select(PredictionRecord).order_by(PredictionRecord.pred_time.desc()).limit(limit)
    if vessel_abbrev:
        stmt = stmt.where(PredictionRecord.vessel_abbrev == vessel_abbrev)
    if prediction_type:
        stmt = stmt.where(PredictionRecord.prediction_type == prediction_type)
    if settled_only:
        stmt = stmt.where(PredictionRecord.actual.is_not(None))
    return list(db.execute(stmt).scalars().all())


def prune_prediction_records(db: Session, older_than_days: int, *, now: Optional[datetime] = None) -> int:
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=older_than_days)
    result = db.execute(delete(PredictionRecord).where(PredictionRecord.created_at < cutoff))
    db.commit()
    removed = int(result.rowcount or 0)
    logger.info("prediction_records.pruned", cutoff=cutoff.isoformat(), removed=removed)
    return removed


__all__ = [
    "ACTUAL_EVENTS",
    "record_predictions",
    "range_delta",
    "actualize_trip",
    "list_prediction_records",
    "prune_prediction_records",
]
