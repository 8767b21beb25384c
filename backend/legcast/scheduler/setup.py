from __future__ import annotations

from typing import Any, Callable, Dict, List, Tuple

from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pytz import timezone

from legcast.config import Settings, get_settings
from legcast.db import session as db_session
from legcast.scheduler.jobs import housekeeping, weekly_retrain_models

settings = get_settings()

# (job id, callable, trigger, trigger/options kwargs)
JOB_SPECS: List[Tuple[str, Callable[..., Any], str, Dict[str, Any]]] = [
    (
        "weekly-retrain",
        weekly_retrain_models,
        "cron",
        # one retrain at a time; a late run still fires within two hours
        dict(day_of_week="sun", hour=3, minute=30, misfire_grace_time=7200, max_instances=1),
    ),
    ("daily-housekeeping", housekeeping, "interval", dict(days=1)),
]


def build_scheduler(cfg: Settings) -> AsyncIOScheduler:
    job_store_url = cfg.SCHEDULER_DB_URL or cfg.DATABASE_URL or db_session.DATABASE_URL
    return AsyncIOScheduler(
        jobstores={"default": SQLAlchemyJobStore(url=job_store_url)},
        timezone=timezone(cfg.SCHEDULER_TZ),
    )


scheduler = build_scheduler(settings)


def configure_jobs() -> None:
    """Register the weekly retrain into dev-temp and the prediction-record pruning."""
    for job_id, func, trigger, options in JOB_SPECS:
        scheduler.add_job(
            func,
            trigger,
            id=job_id,
            replace_existing=True,
            coalesce=True,
            **options,
        )


async def init_scheduler(app) -> None:
    """FastAPI startup hook; a no-op unless SCHEDULER_ENABLED."""
    if not settings.SCHEDULER_ENABLED:
        return
    configure_jobs()
    scheduler.start()


async def shutdown_scheduler() -> None:
    if scheduler.running:
        scheduler.shutdown(wait=False)
