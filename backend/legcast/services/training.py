# legcast/services/training.py
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

import structlog
from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from legcast.config import Settings, get_settings
from legcast.exceptions import InsufficientDataError
from legcast.models.training_run import TrainingRun
from legcast.observability.instrument import log_job
from legcast.observability.metrics import MODELS_WRITTEN
from legcast.services import model_store
from legcast.services.buckets import Bucket, build_buckets
from legcast.services.features import MODEL_TYPES, FeatureRecord, target_value
from legcast.services.trainer import (
    TrainedModel,
    bucket_counts,
    check_bucket_consistency,
    train_bucket_model,
)
from legcast.services.training_data import load_training_data
from legcast.services.versions import SCRATCH_TAG, guard_training_target

logger = structlog.get_logger(__name__)


@dataclass
class TrainingSummary:
    version_tag: str
    buckets_trained: int
    models_written: int
    warnings: List[str] = field(default_factory=list)
    excluded: Dict[str, int] = field(default_factory=dict)
    run_id: Optional[int] = None

    def as_dict(self) -> dict:
        return {
            "version_tag": self.version_tag,
            "buckets_trained": self.buckets_trained,
            "models_written": self.models_written,
            "warnings": list(self.warnings),
            "excluded": dict(self.excluded),
            "run_id": self.run_id,
        }


def _count_missing_targets(records: Sequence[FeatureRecord]) -> Dict[str, int]:
    missing: Counter = Counter()
    for record in records:
        for model_type in MODEL_TYPES:
            if target_value(record, model_type) is None:
                missing[f"missing_target:{model_type}"] += 1
    return dict(missing)


def train_buckets(
    buckets: Sequence[Bucket], settings: Optional[Settings] = None
) -> tuple[List[TrainedModel], int, List[str]]:
    """
    Train every model type for every bucket.

    Returns (models, buckets_trained, warnings). Buckets below the record
    minimum only contribute warnings.
    """
    settings = settings or get_settings()
    models: List[TrainedModel] = []
    warnings: List[str] = []
    buckets_trained = 0

    for bucket in buckets:
        per_bucket: List[TrainedModel] = []
        for model_type in MODEL_TYPES:
            try:
                per_bucket.append(train_bucket_model(bucket, model_type, settings=settings))
            except InsufficientDataError as exc:
                warnings.append(f"insufficient data: {exc}")
                logger.info(
                    "training.bucket_skipped",
                    bucket=bucket.label,
                    model_type=model_type,
                    available=exc.available,
                    required=exc.required,
                )
        if per_bucket:
            buckets_trained += 1
            models.extend(per_bucket)
        fallbacks = [m.model_type for m in per_bucket if m.fallback]
        if fallbacks:
            warnings.append(f"unstable fit replaced by mean for {bucket.label}: {', '.join(fallbacks)}")

    return models, buckets_trained, warnings


def _finish_failed_run(db: Session, run_id: int, exc: Exception) -> None:
    run = db.get(TrainingRun, run_id)
    if run is None:
        return
    run.status = "failed"
    run.error = f"{type(exc).__name__}: {exc}"
    run.finished_at = datetime.now(timezone.utc)
    db.commit()


@log_job("training.train_bucket_models")
def train_bucket_models(
    db: Session,
    version_tag: str = SCRATCH_TAG,
    *,
    now: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> TrainingSummary:
    """
    Full training run: load -> bucket -> train -> store under `version_tag`.

    Rows are written in one transaction and committed only once the stored
    record counts match the bucket builder's (ConsistencyError otherwise).
    Training into dev-temp replaces its previous rows. The run is recorded in
    training_runs; a failed run blocks promotion of dev-temp until a later
    run completes.
    """
    settings = settings or get_settings()
    guard_training_target(db, version_tag)

    run = TrainingRun(version_tag=version_tag, status="running", warnings=[], excluded={})
    db.add(run)
    db.commit()
    db.refresh(run)
    run_id = run.id

    try:
        data = load_training_data(db, now=now, settings=settings)
        buckets = build_buckets(data.records, max_samples=settings.MAX_SAMPLES_PER_ROUTE)
        models, buckets_trained, warnings = train_buckets(buckets, settings)

        excluded = dict(data.excluded)
        excluded.update(_count_missing_targets(data.records))

        if version_tag == SCRATCH_TAG:
            model_store.delete_version_rows(db, version_tag)
        written = model_store.store_trained_models(db, models, version_tag)
        trained = {(m.bucket_type, m.bucket_key) for m in models}
        check_bucket_consistency(
            bucket_counts(b for b in buckets if (b.bucket_type, b.bucket_key) in trained),
            model_store.stored_bucket_counts(db, version_tag),
        )

        run = db.get(TrainingRun, run_id)
        run.status = "completed"
        run.buckets_trained = buckets_trained
        run.models_written = written
        run.warnings = warnings
        run.excluded = excluded
        run.finished_at = datetime.now(timezone.utc)
        db.commit()
    except Exception as exc:
        db.rollback()
        _finish_failed_run(db, run_id, exc)
        logger.error("training.run_failed", version_tag=version_tag, run_id=run_id, error=str(exc))
        raise

    MODELS_WRITTEN.inc(written)
    logger.info(
        "training.run_completed",
        version_tag=version_tag,
        run_id=run_id,
        buckets_trained=buckets_trained,
        models_written=written,
        warnings=len(warnings),
    )
    return TrainingSummary(
        version_tag=version_tag,
        buckets_trained=buckets_trained,
        models_written=written,
        warnings=warnings,
        excluded=excluded,
        run_id=run_id,
    )


def list_runs(db: Session, version_tag: Optional[str] = None, limit: int = 20) -> List[TrainingRun]:
    stmt = select(TrainingRun).order_by(desc(TrainingRun.started_at), desc(TrainingRun.id)).limit(limit)
    if version_tag:
        stmt = stmt.where(TrainingRun.version_tag == version_tag)
    return list(db.execute(stmt).scalars().all())


__all__ = ["TrainingSummary", "train_buckets", "train_bucket_models", "list_runs"]
