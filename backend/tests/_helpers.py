from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List, Optional

import numpy as np

from legcast.models.completed_trip import CompletedTrip
from legcast.services.features import FeatureRecord


def unwrap(j):
    """Return API data payload regardless of envelope shape."""
    if isinstance(j, dict) and "ok" in j and "data" in j:
        return j["data"]
    return j


def is_enveloped(j) -> bool:
    return isinstance(j, dict) and "ok" in j and "data" in j


def default_start() -> datetime:
    return (datetime.now(timezone.utc) - timedelta(days=20)).replace(second=0, microsecond=0)


def make_trip_rows(
    n_legs: int = 300,
    *,
    vessel: str = "CAT",
    route: tuple[str, str] = ("BBI", "P52"),
    start: Optional[datetime] = None,
    spacing_minutes: int = 55,
    seed: int = 7,
) -> List[dict]:
    """
    One vessel alternating between the two terminals of `route`.

    Every leg passes the loader's quality filters: departures are 0-5 min late,
    crossings take 30-33 min and the vessel docks 17-30 min between legs.
    """
    rng = np.random.default_rng(seed)
    start = start or default_start()
    a, b = route
    rows = []
    prev_end = start - timedelta(minutes=15)
    for i in range(n_legs):
        departing, arriving = (a, b) if i % 2 == 0 else (b, a)
        sched = start + timedelta(minutes=spacing_minutes * i)
        left = sched + timedelta(minutes=int(rng.integers(0, 6)))
        end = left + timedelta(minutes=int(rng.integers(30, 34)))
        rows.append(
            {
                "vessel_abbrev": vessel,
                "departing": departing,
                "arriving": arriving,
                "scheduled_departure": sched,
                "trip_start": prev_end,
                "left_dock": left,
                "trip_end": end,
                "prev_delay": None,
            }
        )
        prev_end = end
    return rows


def seed_trips(db, **kwargs) -> List[dict]:
    rows = make_trip_rows(**kwargs)
    db.add_all([CompletedTrip(**r) for r in rows])
    db.commit()
    return rows


def make_feature_records(
    n: int,
    *,
    departing: str = "BBI",
    arriving: str = "P52",
    start: Optional[datetime] = None,
    delay=lambda i: float(i % 7),
    at_sea: float = 31.0,
    next_delay: Optional[float] = 2.0,
) -> List[FeatureRecord]:
    """FeatureRecords built directly, for trainer and bucket tests that skip the loader."""
    start = start or datetime(2026, 3, 2, 6, 0, tzinfo=timezone.utc)
    out = []
    for i in range(n):
        sched = start + timedelta(minutes=55 * i)
        d = delay(i)
        trip_start = sched - timedelta(minutes=20)
        left = sched + timedelta(minutes=d)
        out.append(
            FeatureRecord(
                vessel_abbrev="CAT",
                departing=departing,
                arriving=arriving,
                scheduled_departure=sched,
                trip_start=trip_start,
                left_dock=left,
                trip_end=left + timedelta(minutes=at_sea),
                prev_delay=float(i % 3),
                prev_at_sea_duration=30.0,
                at_dock_duration=20.0 + d,
                at_sea_duration=at_sea,
                departure_delay=d,
                next_departure_delay=next_delay,
            )
        )
    return out


def add_model(
    db,
    version_tag: str,
    *,
    bucket_type: str = "pair",
    bucket_key: str = "BBI->P52",
    model_type: str = "at-dock-depart-curr",
    intercept: float = 5.0,
    coefficients: Optional[List[float]] = None,
    mae: float = 1.234,
    r2: Optional[float] = 0.4,
    std_dev: Optional[float] = 1.5,
    total_records: int = 150,
    sampled_records: Optional[int] = None,
    commit: bool = True,
):
    """Insert one ModelParameters row with zero coefficients unless given."""
    from legcast.models.model_parameters import ModelParameters
    from legcast.services.features import feature_keys_for

    keys = feature_keys_for(model_type)
    row = ModelParameters(
        bucket_type=bucket_type,
        bucket_key=bucket_key,
        model_type=model_type,
        version_tag=version_tag,
        schema_version=2,
        feature_keys=keys,
        coefficients=coefficients if coefficients is not None else [0.0] * len(keys),
        intercept=intercept,
        mae=mae,
        rmse=mae * 1.3,
        r2=r2,
        std_dev=std_dev,
        total_records=total_records,
        sampled_records=sampled_records if sampled_records is not None else total_records,
        bucket_means={"meanDepartureDelay": 2.0, "meanAtSeaDuration": 31.0, "meanDelay": 33.0},
        created_at=datetime(2026, 3, 1, tzinfo=timezone.utc),
    )
    db.add(row)
    if commit:
        db.commit()
    return row
