# legcast/routers/predictions.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from legcast.db.session import get_db
from legcast.schemas.api import ActualizeRequest, PredictRequest
from legcast.schemas.common import ok, fail, meta_now
from legcast.services import model_store
from legcast.services.prediction import predict
from legcast.services.prediction_records import (
    actualize_trip,
    list_prediction_records,
    record_predictions,
)

router = APIRouter(prefix="/api/predictions", tags=["predictions"])


def _record_dict(r) -> dict:
    return {
        "key": r.key,
        "vessel_abbrev": r.vessel_abbrev,
        "departing": r.departing,
        "arriving": r.arriving,
        "prediction_type": r.prediction_type,
        "scheduled_departure": r.scheduled_departure,
        "left_dock": r.left_dock,
        "trip_end": r.trip_end,
        "min_time": r.min_time,
        "pred_time": r.pred_time,
        "max_time": r.max_time,
        "mae": r.mae,
        "std_dev": r.std_dev,
        "actual": r.actual,
        "delta_total": r.delta_total,
        "delta_range": r.delta_range,
    }


@router.post("")
def predict_for_state(body: PredictRequest, db: Session = Depends(get_db)):
    state = body.state.to_state()
    active = model_store.get_production_version_tag(db)
    try:
        results = predict(db, state, body.model_types, version_tag=active)
    except ValueError as ex:
        return fail(
            code="INVALID_REQUEST",
            message=str(ex),
            status_code=422,
            meta=meta_now(route_key=state.route_key),
        )
    recorded = record_predictions(db, state, results.values()) if body.record else 0
    return ok(
        data={
            "key": state.trip_key,
            "predictions": {mt: (r.as_dict() if r else None) for mt, r in results.items()},
            "recorded": recorded,
        },
        meta=meta_now(version_tag=active, route_key=state.route_key),
    )


@router.post("/records/actualize")
def actualize(body: ActualizeRequest, db: Session = Depends(get_db)):
    settled = actualize_trip(
        db,
        body.key,
        left_dock=body.left_dock,
        trip_end=body.trip_end,
        next_left_dock=body.next_left_dock,
    )
    return ok(data=[_record_dict(r) for r in settled], meta=meta_now(key=body.key))


@router.get("/records")
def get_records(
    vessel_abbrev: Optional[str] = Query(None),
    prediction_type: Optional[str] = Query(None),
    settled_only: bool = Query(False),
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    rows = list_prediction_records(
        db,
        vessel_abbrev=vessel_abbrev,
        prediction_type=prediction_type,
        settled_only=settled_only,
        limit=limit,
    )
    return ok(
        data=[_record_dict(r) for r in rows],
        meta=meta_now(vessel_abbrev=vessel_abbrev, prediction_type=prediction_type, limit=limit),
    )
