from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from legcast.services.prediction import LiveVesselState, PredictionResult
from legcast.services.prediction_records import (
    actualize_trip,
    list_prediction_records,
    prune_prediction_records,
    range_delta,
    record_predictions,
)

SCHED = datetime(2026, 3, 2, 20, 0, tzinfo=timezone.utc)


def _state():
    return LiveVesselState(
        vessel_abbrev="CAT",
        departing="BBI",
        arriving="P52",
        phase="at-dock",
        scheduled_departure=SCHED,
        trip_start=SCHED - timedelta(minutes=20),
    )


def _result(prediction_type="AtDockDepartCurr", minutes=5.0, mae=1.0, with_time=True):
    pred = SCHED + timedelta(minutes=minutes)
    return PredictionResult(
        model_type="at-dock-depart-curr",
        prediction_type=prediction_type,
        minutes=minutes,
        mae=mae,
        std_dev=1.2,
        bucket_type="pair",
        bucket_key="BBI->P52",
        version_tag="prod-1",
        pred_time=pred if with_time else None,
        min_time=pred - timedelta(minutes=mae) if with_time else None,
        max_time=pred + timedelta(minutes=mae) if with_time else None,
    )


def test_range_delta():
    lo = SCHED
    hi = SCHED + timedelta(minutes=2)
    assert range_delta(SCHED + timedelta(minutes=1), lo, hi) == 0.0
    assert range_delta(SCHED - timedelta(minutes=1.5), lo, hi) == -1.5
    assert range_delta(SCHED + timedelta(minutes=5), lo, hi) == 3.0


def test_record_skips_misses_and_untimed_results(db):
    results = [_result(), None, _result("AtDockDepartNext", with_time=False)]
    assert record_predictions(db, _state(), results) == 1
    (row,) = list_prediction_records(db)
    assert row.key == "CAT--20260302T2000Z--BBI-P52"
    assert row.prediction_type == "AtDockDepartCurr"


def test_actualize_settles_matching_events(db):
    record_predictions(db, _state(), [_result(), _result("AtDockArriveNext", minutes=36.0)])

    settled = actualize_trip(
        db, "CAT--20260302T2000Z--BBI-P52", left_dock=SCHED + timedelta(minutes=8)
    )
    assert [r.prediction_type for r in settled] == ["AtDockDepartCurr"]
    row = settled[0]
    assert row.delta_total == 3.0
    assert row.delta_range == 2.0

    open_rows = [r for r in list_prediction_records(db) if r.actual is None]
    assert [r.prediction_type for r in open_rows] == ["AtDockArriveNext"]
    assert len(list_prediction_records(db, settled_only=True)) == 1


def test_repredicting_keeps_actual(db):
    record_predictions(db, _state(), [_result()])
    actualize_trip(db, "CAT--20260302T2000Z--BBI-P52", left_dock=SCHED + timedelta(minutes=5))
    record_predictions(db, _state(), [_result(minutes=6.0)])
    db.expire_all()

    (row,) = list_prediction_records(db)
    assert row.actual is not None
    assert row.delta_total == 0.0


def test_list_filters(db):
    record_predictions(db, _state(), [_result(), _result("AtDockArriveNext", minutes=36.0)])
    assert len(list_prediction_records(db, prediction_type="AtDockArriveNext")) == 1
    assert list_prediction_records(db, vessel_abbrev="KIT") == []
    assert len(list_prediction_records(db, limit=1)) == 1


def test_prune_by_age(db):
    now = datetime.now(timezone.utc)
    record_predictions(db, _state(), [_result()], now=now - timedelta(days=120))
    record_predictions(
        db,
        LiveVesselState(
            vessel_abbrev="KIT",
            departing="BBI",
            arriving="P52",
            phase="at-dock",
            scheduled_departure=SCHED,
            trip_start=SCHED - timedelta(minutes=20),
        ),
        [_result()],
        now=now,
    )
    assert prune_prediction_records(db, 90, now=now) == 1
    assert [r.vessel_abbrev for r in list_prediction_records(db)] == ["KIT"]
