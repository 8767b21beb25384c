from __future__ import annotations

import structlog

from legcast.config import get_settings
from legcast.db import session as db_session
from legcast.exceptions import VersionGuardError
from legcast.observability.instrument import log_job
from legcast.services.prediction_records import prune_prediction_records
from legcast.services.training import TrainingSummary, train_bucket_models
from legcast.services.versions import SCRATCH_TAG

logger = structlog.get_logger(__name__)


@log_job("scheduler.weekly_retrain")
def weekly_retrain_models() -> TrainingSummary | None:
    """
    Weekly retrain into the scratch tag.

    Promotion stays a manual step; a rejected target is logged and skipped so
    the next week's run is still scheduled.
    """
    with db_session.session_scope() as db:
        try:
            return train_bucket_models(db, SCRATCH_TAG)
        except VersionGuardError as exc:
            logger.warning("weekly_retrain.skipped", error=str(exc), active_tag=exc.active_tag)
            return None


@log_job("scheduler.housekeeping")
def housekeeping() -> int:
    """Prune prediction records past the retention window."""
    with db_session.session_scope() as db:
        return prune_prediction_records(db, get_settings().PREDICTION_RETENTION_DAYS)
