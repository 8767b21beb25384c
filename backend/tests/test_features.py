from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone

import pytest

from _helpers import make_feature_records
from legcast.services.features import (
    MODEL_TYPES,
    at_dock_features,
    feature_keys_for,
    features_for_record,
    get_model_definition,
    target_value,
    time_features,
    to_matrix,
)

# Monday 2026-03-02 14:00 in Seattle (PST, UTC-8)
MONDAY_2PM_LOCAL = datetime(2026, 3, 2, 22, 0, tzinfo=timezone.utc)


def test_time_features_peak_at_local_hour():
    feats = time_features(MONDAY_2PM_LOCAL)
    assert feats["time_14:00"] == pytest.approx(1.0)
    assert feats["time_12:00"] == pytest.approx(math.exp(-2.0))
    assert feats["isWeekend"] == 0.0
    assert len([k for k in feats if k.startswith("time_")]) == 12


def test_time_features_wrap_around_midnight():
    late = datetime(2026, 3, 3, 7, 0, tzinfo=timezone.utc)  # 23:00 local
    feats = time_features(late)
    assert feats["time_0:00"] == pytest.approx(math.exp(-0.5))
    assert feats["time_22:00"] == pytest.approx(math.exp(-0.5))


def test_weekend_flag_uses_local_day():
    # Saturday 01:00 UTC is still Friday evening locally
    assert time_features(datetime(2026, 3, 7, 1, 0, tzinfo=timezone.utc))["isWeekend"] == 0.0
    assert time_features(datetime(2026, 3, 7, 20, 0, tzinfo=timezone.utc))["isWeekend"] == 1.0


def test_at_dock_features_split_slack_and_late_arrival():
    early = at_dock_features(
        departing="BBI",
        arriving="P52",
        scheduled_departure=MONDAY_2PM_LOCAL,
        trip_start=MONDAY_2PM_LOCAL - timedelta(minutes=20),
        prev_delay=None,
        prev_at_sea_duration=None,
    )
    assert early["slackBeforeDepartureMinutes"] == pytest.approx(20.0)
    assert early["arrivalAfterScheduledDepartureMinutes"] == 0.0
    assert early["prevDelayMinutes"] == 0.0
    assert early["meanAtSeaCurrMinutes"] == pytest.approx(31.8)
    assert early["meanAtDockCurrMinutes"] == pytest.approx(18.5)

    late = at_dock_features(
        departing="BBI",
        arriving="P52",
        scheduled_departure=MONDAY_2PM_LOCAL,
        trip_start=MONDAY_2PM_LOCAL + timedelta(minutes=5),
        prev_delay=6.0,
        prev_at_sea_duration=33.0,
    )
    assert late["slackBeforeDepartureMinutes"] == 0.0
    assert late["arrivalAfterScheduledDepartureMinutes"] == pytest.approx(5.0)
    assert late["prevDelayMinutes"] == 6.0


def test_feature_keys_are_sorted_and_phase_specific():
    dock = feature_keys_for("at-dock-depart-curr")
    sea = feature_keys_for("at-sea-arrive-next")
    assert dock == sorted(dock)
    assert len(dock) == 19
    assert len(sea) == 21
    assert set(sea) - set(dock) == {"currTripDelayMinutes", "currAtDockDurationMinutes"}


def test_record_features_cover_every_model_key():
    rec = make_feature_records(1)[0]
    for model_type in MODEL_TYPES:
        feats = features_for_record(rec, model_type)
        assert set(feature_keys_for(model_type)) == set(feats)


def test_at_sea_features_carry_current_leg():
    rec = make_feature_records(5)[4]
    feats = features_for_record(rec, "at-sea-arrive-next")
    assert feats["currTripDelayMinutes"] == rec.departure_delay
    assert feats["currAtDockDurationMinutes"] == rec.at_dock_duration


def test_targets_per_model_type():
    rec = make_feature_records(4, next_delay=6.5)[3]
    assert target_value(rec, "at-dock-depart-curr") == rec.departure_delay
    assert target_value(rec, "at-dock-arrive-next") == pytest.approx(rec.departure_delay + 31.0)
    assert target_value(rec, "at-sea-arrive-next") == 31.0
    assert target_value(rec, "at-dock-depart-next") == 6.5
    assert target_value(rec, "at-sea-depart-next") == 6.5


def test_to_matrix_orders_columns_and_zero_fills():
    m = to_matrix([{"b": 2.0, "a": 1.0}, {"a": 3.0}], ["a", "b"])
    assert m.shape == (2, 2)
    assert m.tolist() == [[1.0, 2.0], [3.0, 0.0]]
    assert to_matrix([], ["a", "b"]).shape == (0, 2)


def test_unknown_model_type_is_rejected():
    with pytest.raises(ValueError):
        get_model_definition("at-dock-teleport")
    with pytest.raises(ValueError):
        target_value(make_feature_records(1)[0], "nope")
