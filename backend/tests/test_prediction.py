from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from _helpers import add_model
from legcast.services.features import feature_keys_for
from legcast.services.prediction import (
    LiveVesselState,
    apply_model,
    clamp_to_reference,
    default_model_types,
    features_for_state,
    predict,
)
from legcast.services.versions import switch_production_version

SCHED = datetime(2026, 3, 2, 20, 0, tzinfo=timezone.utc)


def _state(**overrides):
    values = dict(
        vessel_abbrev="CAT",
        departing="BBI",
        arriving="P52",
        phase="at-dock",
        scheduled_departure=SCHED,
        trip_start=SCHED - timedelta(minutes=20),
        prev_delay=2.0,
        prev_at_sea_duration=31.0,
        next_scheduled_departure=SCHED + timedelta(minutes=55),
    )
    values.update(overrides)
    return LiveVesselState(**values)


def test_apply_model_uses_stored_order():
    features = {"a": 2.0, "b": 10.0}
    assert apply_model(["b", "a"], [0.5, 3.0], 1.0, features) == pytest.approx(12.0)
    # unknown features read as zero
    assert apply_model(["c"], [4.0], 1.0, features) == pytest.approx(1.0)


def test_clamp_to_reference():
    ref = SCHED
    assert clamp_to_reference(ref - timedelta(minutes=10), ref, 2) == ref + timedelta(minutes=2)
    assert clamp_to_reference(ref + timedelta(minutes=10), ref, 2) == ref + timedelta(minutes=10)


def test_state_keys():
    state = _state()
    assert state.route_key == "BBI->P52"
    assert state.trip_key == "CAT--20260302T2000Z--BBI-P52"
    assert default_model_types("at-sea") == ["at-sea-arrive-next", "at-sea-depart-next"]


def test_negative_prev_delay_reads_as_on_time():
    early = features_for_state(_state(prev_delay=-4.0), "at-dock-depart-curr")
    assert early["prevDelayMinutes"] == 0.0
    assert features_for_state(_state(prev_delay=3.5), "at-dock-depart-curr")["prevDelayMinutes"] == 3.5


def test_negative_prev_delay_predicts_like_zero(db):
    keys = feature_keys_for("at-dock-depart-curr")
    add_model(db, "prod-1", coefficients=[2.0 if k == "prevDelayMinutes" else 0.0 for k in keys])
    switch_production_version(db, "prod-1")

    early = predict(db, _state(prev_delay=-6.0), ["at-dock-depart-curr"])["at-dock-depart-curr"]
    on_time = predict(db, _state(prev_delay=0.0), ["at-dock-depart-curr"])["at-dock-depart-curr"]
    assert on_time.minutes == pytest.approx(5.0)
    assert early.minutes == pytest.approx(on_time.minutes)


def test_at_dock_prediction_uses_active_tag(db):
    add_model(db, "prod-1", intercept=5.0)
    add_model(db, "prod-1", model_type="at-dock-depart-next", intercept=3.0, mae=0.5)
    switch_production_version(db, "prod-1")

    out = predict(db, _state())
    assert set(out) == {"at-dock-depart-curr", "at-dock-arrive-next", "at-dock-depart-next"}
    assert out["at-dock-arrive-next"] is None

    curr = out["at-dock-depart-curr"]
    assert curr.prediction_type == "AtDockDepartCurr"
    assert curr.minutes == pytest.approx(5.0)
    assert curr.mae == 1.23
    assert curr.version_tag == "prod-1"
    assert curr.pred_time == SCHED + timedelta(minutes=5)
    assert curr.min_time == curr.pred_time - timedelta(minutes=1.23)
    assert curr.max_time == curr.pred_time + timedelta(minutes=1.23)

    nxt = out["at-dock-depart-next"]
    assert nxt.pred_time == SCHED + timedelta(minutes=58)


def test_depart_next_without_next_schedule_has_no_times(db):
    add_model(db, "prod-1", model_type="at-dock-depart-next", intercept=3.0)
    switch_production_version(db, "prod-1")
    out = predict(db, _state(next_scheduled_departure=None), ["at-dock-depart-next"])
    result = out["at-dock-depart-next"]
    assert result.minutes == pytest.approx(3.0)
    assert result.pred_time is None
    assert result.min_time is None


def test_at_sea_prediction_anchors_on_left_dock(db):
    add_model(db, "prod-1", model_type="at-sea-arrive-next", intercept=31.0)
    switch_production_version(db, "prod-1")
    left = SCHED + timedelta(minutes=4)
    out = predict(db, _state(phase="at-sea", left_dock=left), ["at-sea-arrive-next"])
    assert out["at-sea-arrive-next"].pred_time == left + timedelta(minutes=31)


def test_at_sea_model_needs_left_dock(db):
    add_model(db, "prod-1", model_type="at-sea-arrive-next")
    switch_production_version(db, "prod-1")
    with pytest.raises(ValueError):
        predict(db, _state(), ["at-sea-arrive-next"])


def test_prediction_is_clamped_after_reference(db):
    add_model(db, "prod-1", intercept=-30.0)
    switch_production_version(db, "prod-1")
    out = predict(db, _state(), ["at-dock-depart-curr"])
    # trip start is 20 minutes before schedule; floor is trip start + 2
    assert out["at-dock-depart-curr"].pred_time == SCHED - timedelta(minutes=18)


def test_chain_model_serves_route_without_pair(db):
    add_model(db, "prod-1", bucket_type="chain", bucket_key="chain:medium", intercept=4.0)
    switch_production_version(db, "prod-1")
    out = predict(db, _state(departing="P52", arriving="BBI"), ["at-dock-depart-curr"])
    assert out["at-dock-depart-curr"].bucket_type == "chain"


def test_no_active_tag_predicts_nothing(db):
    add_model(db, "prod-1")
    out = predict(db, _state())
    assert all(v is None for v in out.values())


def test_explicit_tag_overrides_pointer(db):
    add_model(db, "dev-2", intercept=7.0)
    out = predict(db, _state(), ["at-dock-depart-curr"], version_tag="dev-2")
    assert out["at-dock-depart-curr"].minutes == pytest.approx(7.0)


def test_unknown_phase_raises(db):
    with pytest.raises(ValueError):
        predict(db, _state(phase="in-drydock"))
