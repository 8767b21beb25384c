# legcast/services/features.py
"""
Model type definitions, FeatureRecord and feature extraction.

Both the trainer (historical FeatureRecords) and the prediction engine
(live vessel state) go through `at_dock_features` / `at_sea_features`, so a
model always sees the same feature names it was trained on.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional

import numpy as np
from pytz import timezone as tz_lookup

from legcast.config import get_settings
from legcast.routes import mean_at_dock, mean_at_sea, pair_key
from legcast.utils.timeutil import as_utc, minutes_between

AT_DOCK = "at-dock"
AT_SEA = "at-sea"

TIME_CENTERS = tuple(range(0, 24, 2))
TIME_SIGMA_HOURS = (24 / len(TIME_CENTERS)) * 0.5


@dataclass(frozen=True)
class ModelDefinition:
    key: str
    phase: str
    prediction_type: str
    # which timestamp the predicted minutes are measured from
    anchor: str
    description: str


MODEL_DEFINITIONS: Dict[str, ModelDefinition] = {
    "at-dock-depart-curr": ModelDefinition(
        key="at-dock-depart-curr",
        phase=AT_DOCK,
        prediction_type="AtDockDepartCurr",
        anchor="scheduled_departure",
        description="Departure delay from the current terminal, predicted while at dock",
    ),
    "at-dock-arrive-next": ModelDefinition(
        key="at-dock-arrive-next",
        phase=AT_DOCK,
        prediction_type="AtDockArriveNext",
        anchor="scheduled_departure",
        description="Arrival at the next terminal measured from the scheduled departure",
    ),
    "at-dock-depart-next": ModelDefinition(
        key="at-dock-depart-next",
        phase=AT_DOCK,
        prediction_type="AtDockDepartNext",
        anchor="next_scheduled_departure",
        description="Departure delay at the next terminal, predicted while at dock",
    ),
    "at-sea-arrive-next": ModelDefinition(
        key="at-sea-arrive-next",
        phase=AT_SEA,
        prediction_type="AtSeaArriveNext",
        anchor="left_dock",
        description="Remaining crossing time after leaving dock",
    ),
    "at-sea-depart-next": ModelDefinition(
        key="at-sea-depart-next",
        phase=AT_SEA,
        prediction_type="AtSeaDepartNext",
        anchor="next_scheduled_departure",
        description="Departure delay at the next terminal, predicted while at sea",
    ),
}

MODEL_TYPES: tuple[str, ...] = tuple(MODEL_DEFINITIONS)


def get_model_definition(model_type: str) -> ModelDefinition:
    try:
        return MODEL_DEFINITIONS[model_type]
    except KeyError:
        raise ValueError(f"Unknown model type: {model_type!r}") from None


@dataclass(frozen=True)
class FeatureRecord:
    """One historical trip leg with derived durations (all durations in minutes)."""

    vessel_abbrev: str
    departing: str
    arriving: str
    scheduled_departure: datetime
    trip_start: datetime
    left_dock: datetime
    trip_end: Optional[datetime]
    prev_delay: Optional[float]
    prev_at_sea_duration: Optional[float]
    at_dock_duration: float
    at_sea_duration: Optional[float]
    departure_delay: float
    next_departure_delay: Optional[float] = None

    @property
    def pair_key(self) -> str:
        return pair_key(self.departing, self.arriving)


def target_value(record: FeatureRecord, model_type: str) -> Optional[float]:
    if model_type == "at-dock-depart-curr":
        return record.departure_delay
    if model_type == "at-dock-arrive-next":
        return minutes_between(record.scheduled_departure, record.trip_end)
    if model_type == "at-sea-arrive-next":
        return record.at_sea_duration
    if model_type in ("at-dock-depart-next", "at-sea-depart-next"):
        return record.next_departure_delay
    raise ValueError(f"Unknown model type: {model_type!r}")


# ---------------------------------------------------------------------------
# Feature extraction
# ---------------------------------------------------------------------------

def time_features(scheduled_departure: datetime, tz_name: Optional[str] = None) -> Dict[str, float]:
    """Gaussian radial basis functions over the local hour of day, plus a weekend flag."""
    local = as_utc(scheduled_departure).astimezone(tz_lookup(tz_name or get_settings().FEATURE_TZ))
    hour = local.hour + local.minute / 60.0
    out: Dict[str, float] = {}
    for center in TIME_CENTERS:
        distance = min(abs(hour - center), 24 - abs(hour - center))
        out[f"time_{center}:00"] = math.exp(-(distance * distance) / (2 * TIME_SIGMA_HOURS ** 2))
    out["isWeekend"] = 1.0 if local.weekday() >= 5 else 0.0
    return out


def at_dock_features(
    *,
    departing: str,
    arriving: str,
    scheduled_departure: datetime,
    trip_start: datetime,
    prev_delay: Optional[float],
    prev_at_sea_duration: Optional[float],
) -> Dict[str, float]:
    key = pair_key(departing, arriving)
    slack = minutes_between(trip_start, scheduled_departure) or 0.0
    features = time_features(scheduled_departure)
    features.update(
        {
            "prevDelayMinutes": float(prev_delay or 0.0),
            "prevAtSeaDurationMinutes": float(prev_at_sea_duration or 0.0),
            "slackBeforeDepartureMinutes": max(0.0, slack),
            "arrivalAfterScheduledDepartureMinutes": max(0.0, -slack),
            "meanAtSeaCurrMinutes": mean_at_sea(key),
            "meanAtDockCurrMinutes": mean_at_dock(key),
        }
    )
    return features


def at_sea_features(
    *,
    departure_delay: float,
    at_dock_duration: float,
    **at_dock_kwargs,
) -> Dict[str, float]:
    features = at_dock_features(**at_dock_kwargs)
    features["currTripDelayMinutes"] = float(departure_delay)
    features["currAtDockDurationMinutes"] = float(at_dock_duration)
    return features


def features_for_record(record: FeatureRecord, model_type: str) -> Dict[str, float]:
    base = dict(
        departing=record.departing,
        arriving=record.arriving,
        scheduled_departure=record.scheduled_departure,
        trip_start=record.trip_start,
        prev_delay=record.prev_delay,
        prev_at_sea_duration=record.prev_at_sea_duration,
    )
    if get_model_definition(model_type).phase == AT_SEA:
        return at_sea_features(
            departure_delay=record.departure_delay,
            at_dock_duration=record.at_dock_duration,
            **base,
        )
    return at_dock_features(**base)


def feature_keys_for(model_type: str) -> List[str]:
    """Canonical sorted feature names for a model type."""
    names = [f"time_{c}:00" for c in TIME_CENTERS] + [
        "isWeekend",
        "prevDelayMinutes",
        "prevAtSeaDurationMinutes",
        "slackBeforeDepartureMinutes",
        "arrivalAfterScheduledDepartureMinutes",
        "meanAtSeaCurrMinutes",
        "meanAtDockCurrMinutes",
    ]
    if get_model_definition(model_type).phase == AT_SEA:
        names += ["currTripDelayMinutes", "currAtDockDurationMinutes"]
    return sorted(names)


def to_matrix(rows: Iterable[Mapping[str, float]], feature_keys: List[str]) -> np.ndarray:
    """Stack feature maps into a matrix in `feature_keys` order; missing keys read as 0."""
    data = [[float(row.get(k, 0.0)) for k in feature_keys] for row in rows]
    return np.asarray(data, dtype=float).reshape(len(data), len(feature_keys))


__all__ = [
    "AT_DOCK",
    "AT_SEA",
    "MODEL_DEFINITIONS",
    "MODEL_TYPES",
    "ModelDefinition",
    "FeatureRecord",
    "get_model_definition",
    "target_value",
    "time_features",
    "at_dock_features",
    "at_sea_features",
    "features_for_record",
    "feature_keys_for",
    "to_matrix",
]
