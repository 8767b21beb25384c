# backend/tests/scheduler/test_scheduler_registration.py
from datetime import datetime, timedelta, timezone

from legcast.scheduler import jobs
from legcast.scheduler.setup import scheduler, configure_jobs
from legcast.services import model_store
from legcast.services.prediction import LiveVesselState, PredictionResult
from legcast.services.prediction_records import list_prediction_records, record_predictions
from legcast.services.versions import switch_production_version


def test_configure_jobs_registers_expected_jobs() -> None:
    """configure_jobs() registers the weekly retrain and the daily housekeeping."""
    scheduler.remove_all_jobs()

    configure_jobs()

    job_ids = {job.id for job in scheduler.get_jobs()}
    assert {"weekly-retrain", "daily-housekeeping"} <= job_ids


def test_weekly_retrain_writes_scratch_tag(db, seeded_trips) -> None:
    summary = jobs.weekly_retrain_models()
    assert summary.version_tag == "dev-temp"
    assert model_store.count_models(db, "dev-temp") == 15


def test_weekly_retrain_skips_when_scratch_is_active(db, seeded_trips) -> None:
    jobs.weekly_retrain_models()
    switch_production_version(db, "dev-temp")
    assert jobs.weekly_retrain_models() is None


def test_housekeeping_prunes_old_records(db) -> None:
    sched = datetime(2025, 1, 5, 20, 0, tzinfo=timezone.utc)
    state = LiveVesselState(
        vessel_abbrev="CAT",
        departing="BBI",
        arriving="P52",
        phase="at-dock",
        scheduled_departure=sched,
        trip_start=sched - timedelta(minutes=20),
    )
    result = PredictionResult(
        model_type="at-dock-depart-curr",
        prediction_type="AtDockDepartCurr",
        minutes=3.0,
        mae=1.0,
        std_dev=None,
        bucket_type="pair",
        bucket_key="BBI->P52",
        version_tag="prod-1",
        pred_time=sched,
        min_time=sched,
        max_time=sched,
    )
    record_predictions(db, state, [result], now=datetime.now(timezone.utc) - timedelta(days=400))

    assert jobs.housekeeping() == 1
    db.expire_all()
    assert list_prediction_records(db) == []
