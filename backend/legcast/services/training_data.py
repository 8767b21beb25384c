# legcast/services/training_data.py
"""Load completed trips and turn them into validated FeatureRecords."""
from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from legcast.config import Settings, get_settings
from legcast.exceptions import DataQualityError
from legcast.models.completed_trip import CompletedTrip
from legcast.routes import mean_at_dock, pair_key
from legcast.services.features import FeatureRecord
from legcast.utils.timeutil import as_utc, minutes_between

logger = structlog.get_logger(__name__)


@dataclass
class TrainingData:
    records: List[FeatureRecord]
    total_trips: int
    excluded: Dict[str, int] = field(default_factory=dict)

    @property
    def excluded_total(self) -> int:
        return sum(self.excluded.values())


def fetch_completed_trips(
    db: Session,
    *,
    days_back: int,
    max_per_vessel: int,
    now: Optional[datetime] = None,
) -> List[CompletedTrip]:
    """Trips scheduled within the window, capped to the most recent N per vessel."""
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days_back)
    stmt = (
        select(CompletedTrip)
        .where(CompletedTrip.scheduled_departure >= cutoff)
        .order_by(CompletedTrip.vessel_abbrev, CompletedTrip.scheduled_departure.desc())
    )
    rows = db.execute(stmt).scalars().all()

    kept: List[CompletedTrip] = []
    per_vessel: Counter = Counter()
    for row in rows:
        if per_vessel[row.vessel_abbrev] >= max_per_vessel:
            continue
        per_vessel[row.vessel_abbrev] += 1
        kept.append(row)
    return kept


def _follows(prev: CompletedTrip, trip: CompletedTrip) -> bool:
    """True when `prev` is the leg that brought the vessel to `trip`'s departing terminal."""
    if prev.arriving != trip.departing:
        return False
    gap = minutes_between(prev.scheduled_departure, trip.scheduled_departure)
    return gap is not None and 0 < gap <= 24 * 60


def _derive_prev_context(
    trip: CompletedTrip, prev: Optional[CompletedTrip]
) -> tuple[Optional[float], Optional[float]]:
    prev_delay = trip.prev_delay
    prev_at_sea = None
    if prev is not None and _follows(prev, trip):
        if prev_delay is None:
            prev_delay = minutes_between(prev.scheduled_departure, prev.left_dock)
        prev_at_sea = minutes_between(prev.left_dock, trip.trip_start)
    return prev_delay, prev_at_sea


def _next_departure_delay(
    trip: CompletedTrip, nxt: Optional[CompletedTrip], settings: Settings
) -> Optional[float]:
    """Delay of the vessel's following departure, when it turns around promptly at the next terminal."""
    if nxt is None or trip.trip_end is None or nxt.left_dock is None:
        return None
    if nxt.departing != trip.arriving:
        return None
    mean_dock_next = mean_at_dock(pair_key(nxt.departing, nxt.arriving))
    if mean_dock_next <= 0:
        return None
    slack = max(0.0, minutes_between(trip.trip_end, nxt.scheduled_departure) or 0.0)
    if slack > settings.DEPART_NEXT_SLACK_FACTOR * mean_dock_next:
        return None
    if slack > settings.DEPART_NEXT_MAX_SLACK_MINUTES:
        return None
    return minutes_between(nxt.scheduled_departure, nxt.left_dock)


def build_feature_record(
    trip: CompletedTrip,
    prev: Optional[CompletedTrip] = None,
    nxt: Optional[CompletedTrip] = None,
    settings: Optional[Settings] = None,
) -> FeatureRecord:
    """Validate one trip and derive its FeatureRecord; raises DataQualityError on rejection."""
    settings = settings or get_settings()

    if not trip.vessel_abbrev or not trip.departing or not trip.arriving:
        raise DataQualityError("missing_field", "vessel or terminal missing")
    if trip.scheduled_departure is None or trip.trip_start is None or trip.left_dock is None:
        raise DataQualityError("missing_field", "scheduled departure, trip start or left dock missing")
    if trip.departing == trip.arriving:
        raise DataQualityError("same_terminal")

    scheduled = as_utc(trip.scheduled_departure)
    trip_start = as_utc(trip.trip_start)
    left_dock = as_utc(trip.left_dock)
    trip_end = as_utc(trip.trip_end)

    if trip_start >= left_dock or (trip_end is not None and left_dock >= trip_end):
        raise DataQualityError("non_monotonic_timestamps")
    if abs(minutes_between(trip_start, scheduled)) > settings.MAX_SCHEDULE_SKEW_HOURS * 60:
        raise DataQualityError("schedule_skew")

    departure_delay = minutes_between(scheduled, left_dock)
    if departure_delay < -settings.EARLY_DEPARTURE_TOLERANCE_MINUTES:
        raise DataQualityError("early_departure")

    at_dock = minutes_between(trip_start, left_dock)
    if at_dock < settings.MIN_AT_DOCK_MINUTES:
        raise DataQualityError("at_dock_too_short")
    if at_dock > settings.MAX_AT_DOCK_MINUTES:
        raise DataQualityError("at_dock_too_long")

    at_sea = minutes_between(left_dock, trip_end)
    if at_sea is not None:
        if at_sea < settings.MIN_AT_SEA_MINUTES:
            raise DataQualityError("at_sea_too_short")
        if at_sea > settings.MAX_AT_SEA_MINUTES:
            raise DataQualityError("at_sea_too_long")
        if at_dock + at_sea > settings.MAX_TOTAL_MINUTES:
            raise DataQualityError("total_too_long")

    prev_delay, prev_at_sea = _derive_prev_context(trip, prev)
    if prev_delay is not None and prev_delay < 0:
        raise DataQualityError("negative_prev_delay")

    return FeatureRecord(
        vessel_abbrev=trip.vessel_abbrev,
        departing=trip.departing,
        arriving=trip.arriving,
        scheduled_departure=scheduled,
        trip_start=trip_start,
        left_dock=left_dock,
        trip_end=trip_end,
        prev_delay=prev_delay,
        prev_at_sea_duration=prev_at_sea,
        at_dock_duration=at_dock,
        at_sea_duration=at_sea,
        departure_delay=departure_delay,
        next_departure_delay=_next_departure_delay(trip, nxt, settings),
    )


def build_feature_records(
    trips: Sequence[CompletedTrip], settings: Optional[Settings] = None
) -> TrainingData:
    """Walk each vessel's trips in schedule order, keeping those that pass validation."""
    settings = settings or get_settings()
    by_vessel: Dict[str, List[CompletedTrip]] = defaultdict(list)
    for trip in trips:
        by_vessel[trip.vessel_abbrev or ""].append(trip)

    records: List[FeatureRecord] = []
    excluded: Counter = Counter()
    for vessel in sorted(by_vessel):
        ordered = sorted(
            by_vessel[vessel],
            key=lambda t: as_utc(t.scheduled_departure) or datetime.min.replace(tzinfo=timezone.utc),
        )
        for i, trip in enumerate(ordered):
            prev = ordered[i - 1] if i > 0 else None
            nxt = ordered[i + 1] if i + 1 < len(ordered) else None
            try:
                records.append(build_feature_record(trip, prev, nxt, settings))
            except DataQualityError as exc:
                excluded[exc.reason] += 1

    return TrainingData(records=records, total_trips=len(trips), excluded=dict(excluded))


def load_training_data(
    db: Session,
    *,
    now: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> TrainingData:
    settings = settings or get_settings()
    trips = fetch_completed_trips(
        db,
        days_back=settings.DAYS_BACK,
        max_per_vessel=settings.MAX_RECORDS_PER_VESSEL,
        now=now,
    )
    data = build_feature_records(trips, settings)
    logger.info(
        "training_data.loaded",
        trips=data.total_trips,
        records=len(data.records),
        excluded=data.excluded,
    )
    return data


__all__ = [
    "TrainingData",
    "fetch_completed_trips",
    "build_feature_record",
    "build_feature_records",
    "load_training_data",
]
