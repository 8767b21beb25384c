# legcast/services/prediction.py
from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

import structlog
from sqlalchemy.orm import Session

from legcast.config import get_settings
from legcast.models.model_parameters import ModelParameters
from legcast.routes import pair_key
from legcast.services import model_store
from legcast.services.features import (
    AT_DOCK,
    AT_SEA,
    MODEL_DEFINITIONS,
    at_dock_features,
    at_sea_features,
    get_model_definition,
)
from legcast.utils.timeutil import add_minutes, as_utc, minutes_between

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class LiveVesselState:
    """What the tracker knows about a vessel's current leg."""

    vessel_abbrev: str
    departing: str
    arriving: str
    phase: str
    scheduled_departure: datetime
    trip_start: datetime
    left_dock: Optional[datetime] = None
    prev_delay: Optional[float] = None
    prev_at_sea_duration: Optional[float] = None
    next_scheduled_departure: Optional[datetime] = None

    @property
    def route_key(self) -> str:
        return pair_key(self.departing, self.arriving)

    @property
    def trip_key(self) -> str:
        sched = as_utc(self.scheduled_departure).strftime("%Y%m%dT%H%MZ")
        return f"{self.vessel_abbrev}--{sched}--{self.departing}-{self.arriving}"


@dataclass
class PredictionResult:
    model_type: str
    prediction_type: str
    minutes: float
    mae: float
    std_dev: Optional[float]
    bucket_type: str
    bucket_key: str
    version_tag: str
    pred_time: Optional[datetime] = None
    min_time: Optional[datetime] = None
    max_time: Optional[datetime] = None

    def as_dict(self) -> dict:
        return asdict(self)


def default_model_types(phase: str) -> List[str]:
    return [k for k, d in MODEL_DEFINITIONS.items() if d.phase == phase]


def apply_model(
    feature_keys: Sequence[str],
    coefficients: Sequence[float],
    intercept: float,
    features: Mapping[str, float],
) -> float:
    """intercept + sum(coef_i * feature_i) in the model's stored feature order; missing features read 0."""
    total = float(intercept)
    for key, coef in zip(feature_keys, coefficients):
        total += float(coef) * float(features.get(key, 0.0))
    return total


def features_for_state(state: LiveVesselState, model_type: str) -> Dict[str, float]:
    # an early previous departure reads as on time
    prev_delay = None if state.prev_delay is None else max(float(state.prev_delay), 0.0)
    base = dict(
        departing=state.departing,
        arriving=state.arriving,
        scheduled_departure=state.scheduled_departure,
        trip_start=state.trip_start,
        prev_delay=prev_delay,
        prev_at_sea_duration=state.prev_at_sea_duration,
    )
    if get_model_definition(model_type).phase == AT_SEA:
        if state.left_dock is None:
            raise ValueError(f"{model_type} needs left_dock; the vessel has not departed")
        return at_sea_features(
            departure_delay=minutes_between(state.scheduled_departure, state.left_dock),
            at_dock_duration=minutes_between(state.trip_start, state.left_dock),
            **base,
        )
    return at_dock_features(**base)


def _anchor_time(state: LiveVesselState, anchor: str) -> Optional[datetime]:
    return {
        "scheduled_departure": state.scheduled_departure,
        "left_dock": state.left_dock,
        "next_scheduled_departure": state.next_scheduled_departure,
    }.get(anchor)


def _reference_time(state: LiveVesselState) -> datetime:
    if state.phase == AT_SEA and state.left_dock is not None:
        return state.left_dock
    return state.trip_start


def clamp_to_reference(predicted: datetime, reference: datetime, minimum_gap_minutes: float) -> datetime:
    """A predicted event can never land earlier than `minimum_gap_minutes` after the reference."""
    floor = add_minutes(reference, minimum_gap_minutes)
    return max(as_utc(predicted), floor)


def _result_for(state: LiveVesselState, model_type: str, row: ModelParameters) -> PredictionResult:
    definition = get_model_definition(model_type)
    features = features_for_state(state, model_type)
    minutes = apply_model(row.feature_keys or [], row.coefficients or [], row.intercept, features)
    mae = round(float(row.mae), 2)

    result = PredictionResult(
        model_type=model_type,
        prediction_type=definition.prediction_type,
        minutes=minutes,
        mae=mae,
        std_dev=row.std_dev,
        bucket_type=row.bucket_type,
        bucket_key=row.bucket_key,
        version_tag=row.version_tag,
    )
    anchor = _anchor_time(state, definition.anchor)
    if anchor is not None:
        pred_time = clamp_to_reference(
            add_minutes(anchor, minutes),
            _reference_time(state),
            get_settings().MIN_PREDICTION_GAP_MINUTES,
        )
        result.pred_time = pred_time
        result.min_time = add_minutes(pred_time, -mae)
        result.max_time = add_minutes(pred_time, mae)
    return result


def predict(
    db: Session,
    state: LiveVesselState,
    model_types: Optional[Iterable[str]] = None,
    *,
    version_tag=model_store._UNSET,
) -> Dict[str, Optional[PredictionResult]]:
    """
    Predict every requested model type for the vessel's current route.

    Models are resolved in one batch against a single read of the active tag.
    A model type with no model maps to None.
    """
    if state.phase not in (AT_DOCK, AT_SEA):
        raise ValueError(f"Unknown vessel phase {state.phase!r}")
    requested = list(model_types) if model_types else default_model_types(state.phase)
    models = model_store.get_models_for_prediction(
        db, state.route_key, requested, version_tag=version_tag
    )

    out: Dict[str, Optional[PredictionResult]] = {}
    for model_type, row in models.items():
        out[model_type] = _result_for(state, model_type, row) if row is not None else None

    logger.debug(
        "prediction.resolved",
        route_key=state.route_key,
        vessel=state.vessel_abbrev,
        hits=sorted(k for k, v in out.items() if v is not None),
        misses=sorted(k for k, v in out.items() if v is None),
    )
    return out


__all__ = [
    "LiveVesselState",
    "PredictionResult",
    "default_model_types",
    "apply_model",
    "features_for_state",
    "clamp_to_reference",
    "predict",
]
