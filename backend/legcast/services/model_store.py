# legcast/services/model_store.py
"""Persistence for ModelParameters rows and the production-version pointer."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence

import structlog
from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.orm import Session

from legcast.db.upsert import upsert_rows
from legcast.models.model_config import PRODUCTION_VERSION_KEY, ModelConfig
from legcast.models.model_parameters import CURRENT_SCHEMA_VERSION, ModelParameters
from legcast.observability.metrics import MODEL_LOOKUPS
from legcast.routes import chain_key_for_pair
from legcast.schemas.model_document import (
    BucketStatsDoc,
    HoldoutMetrics,
    ModelDocumentV2,
)
from legcast.services.buckets import CHAIN, PAIR
from legcast.services.features import get_model_definition
from legcast.services.trainer import TrainedModel

logger = structlog.get_logger(__name__)

MODEL_KEY_COLUMNS = ("bucket_type", "bucket_key", "model_type", "version_tag")

_UNSET = object()


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

def _row_from_trained(model: TrainedModel, version_tag: str, created_at: datetime) -> dict:
    return {
        "bucket_type": model.bucket_type,
        "bucket_key": model.bucket_key,
        "model_type": model.model_type,
        "version_tag": version_tag,
        "schema_version": CURRENT_SCHEMA_VERSION,
        "feature_keys": list(model.feature_keys),
        "coefficients": list(model.coefficients),
        "intercept": float(model.intercept),
        "mae": float(model.mae),
        "rmse": float(model.rmse),
        "r2": model.r2,
        "std_dev": model.std_dev,
        "total_records": int(model.total_records),
        "sampled_records": int(model.sampled_records),
        "bucket_means": dict(model.bucket_means or {}),
        "created_at": created_at,
    }


def _row_from_document(doc: ModelDocumentV2) -> dict:
    return {
        "bucket_type": doc.bucket_type,
        "bucket_key": doc.bucket_key,
        "model_type": doc.model_type,
        "version_tag": doc.version_tag,
        "schema_version": CURRENT_SCHEMA_VERSION,
        "feature_keys": list(doc.feature_keys),
        "coefficients": list(doc.coefficients),
        "intercept": doc.intercept,
        "mae": doc.test_metrics.mae,
        "rmse": doc.test_metrics.rmse,
        "r2": doc.test_metrics.r2,
        "std_dev": doc.test_metrics.std_dev,
        "total_records": doc.bucket_stats.total_records,
        "sampled_records": doc.bucket_stats.sampled_records,
        "bucket_means": doc.bucket_means,
        "created_at": doc.created_at,
    }


def _row_from_existing(row: ModelParameters, version_tag: str) -> dict:
    return {
        "bucket_type": row.bucket_type,
        "bucket_key": row.bucket_key,
        "model_type": row.model_type,
        "version_tag": version_tag,
        "schema_version": row.schema_version,
        "feature_keys": list(row.feature_keys or []),
        "coefficients": list(row.coefficients or []),
        "intercept": row.intercept,
        "mae": row.mae,
        "rmse": row.rmse,
        "r2": row.r2,
        "std_dev": row.std_dev,
        "total_records": row.total_records,
        "sampled_records": row.sampled_records,
        "bucket_means": row.bucket_means,
        "created_at": row.created_at,
    }


def store_trained_models(
    db: Session,
    models: Sequence[TrainedModel],
    version_tag: str,
    *,
    created_at: Optional[datetime] = None,
) -> int:
    """Upsert trained models under `version_tag`. Caller owns the transaction."""
    stamp = created_at or datetime.now(timezone.utc)
    rows = [_row_from_trained(m, version_tag, stamp) for m in models]
    return upsert_rows(db, ModelParameters, rows, conflict_cols=MODEL_KEY_COLUMNS)


def store_documents(db: Session, docs: Sequence[ModelDocumentV2]) -> int:
    rows = [_row_from_document(d) for d in docs]
    return upsert_rows(db, ModelParameters, rows, conflict_cols=MODEL_KEY_COLUMNS)


def copy_version_rows(db: Session, from_tag: str, to_tag: str) -> int:
    """Copy every row of `from_tag` to `to_tag` keeping createdAt. Caller owns the transaction."""
    rows = [_row_from_existing(r, to_tag) for r in list_models(db, from_tag)]
    return upsert_rows(db, ModelParameters, rows, conflict_cols=MODEL_KEY_COLUMNS)


def delete_version_rows(db: Session, version_tag: str) -> int:
    result = db.execute(delete(ModelParameters).where(ModelParameters.version_tag == version_tag))
    return int(result.rowcount or 0)


def stored_bucket_counts(db: Session, version_tag: str) -> List[tuple]:
    """(bucket_type, bucket_key, model_type, total_records, sampled_records) per row visible in the current transaction."""
    stmt = (
        select(
            ModelParameters.bucket_type,
            ModelParameters.bucket_key,
            ModelParameters.model_type,
            ModelParameters.total_records,
            ModelParameters.sampled_records,
        )
        .where(ModelParameters.version_tag == version_tag)
        .order_by(ModelParameters.bucket_type, ModelParameters.bucket_key, ModelParameters.model_type)
    )
    return [tuple(row) for row in db.execute(stmt).all()]


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def list_models(db: Session, version_tag: str) -> List[ModelParameters]:
    stmt = (
        select(ModelParameters)
        .where(ModelParameters.version_tag == version_tag)
        .order_by(ModelParameters.bucket_type, ModelParameters.bucket_key, ModelParameters.model_type)
    )
    return list(db.execute(stmt).scalars().all())


def count_models(db: Session, version_tag: str) -> int:
    stmt = select(func.count(ModelParameters.id)).where(ModelParameters.version_tag == version_tag)
    return int(db.execute(stmt).scalar() or 0)


def get_model(
    db: Session, bucket_type: str, bucket_key: str, model_type: str, version_tag: str
) -> Optional[ModelParameters]:
    stmt = select(ModelParameters).where(
        ModelParameters.bucket_type == bucket_type,
        ModelParameters.bucket_key == bucket_key,
        ModelParameters.model_type == model_type,
        ModelParameters.version_tag == version_tag,
    )
    return db.execute(stmt).scalars().first()


def model_to_document(row: ModelParameters) -> ModelDocumentV2:
    return ModelDocumentV2(
        bucket_type=row.bucket_type,
        bucket_key=row.bucket_key,
        model_type=row.model_type,
        feature_keys=list(row.feature_keys or []),
        coefficients=list(row.coefficients or []),
        intercept=row.intercept,
        test_metrics=HoldoutMetrics(mae=row.mae, rmse=row.rmse, r2=row.r2, std_dev=row.std_dev),
        bucket_stats=BucketStatsDoc(
            total_records=row.total_records, sampled_records=row.sampled_records
        ),
        bucket_means=row.bucket_means,
        version_tag=row.version_tag,
        created_at=row.created_at,
    )


# ---------------------------------------------------------------------------
# Production pointer
# ---------------------------------------------------------------------------

def get_production_version_tag(db: Session) -> Optional[str]:
    stmt = select(ModelConfig.production_version_tag).where(ModelConfig.key == PRODUCTION_VERSION_KEY)
    return db.execute(stmt).scalar()


def set_production_version_tag(db: Session, version_tag: Optional[str]) -> None:
    """Single pointer write; last writer wins. Caller owns the transaction."""
    upsert_rows(
        db,
        ModelConfig,
        [
            {
                "key": PRODUCTION_VERSION_KEY,
                "production_version_tag": version_tag,
                "updated_at": datetime.now(timezone.utc),
            }
        ],
        conflict_cols=("key",),
    )


# ---------------------------------------------------------------------------
# Prediction lookup
# ---------------------------------------------------------------------------

def get_models_for_prediction(
    db: Session,
    route_key: str,
    model_types: Iterable[str],
    version_tag=_UNSET,
) -> Dict[str, Optional[ModelParameters]]:
    """
    Resolve one model per requested type for `route_key`.

    The pair bucket wins; the route's chain bucket is the fallback. A missing
    model maps to None. The active production tag is read once per call
    unless `version_tag` is passed in; with no active tag every type maps to None.
    """
    requested = list(dict.fromkeys(model_types))
    for model_type in requested:
        get_model_definition(model_type)
    result: Dict[str, Optional[ModelParameters]] = {mt: None for mt in requested}
    if not requested:
        return result

    tag = get_production_version_tag(db) if version_tag is _UNSET else version_tag
    if not tag:
        for model_type in requested:
            MODEL_LOOKUPS.labels(model_type=model_type, outcome="disabled").inc()
        return result

    bucket_filters = [
        and_(ModelParameters.bucket_type == PAIR, ModelParameters.bucket_key == route_key)
    ]
    chain_key = chain_key_for_pair(route_key)
    if chain_key:
        bucket_filters.append(
            and_(ModelParameters.bucket_type == CHAIN, ModelParameters.bucket_key == chain_key)
        )

    stmt = select(ModelParameters).where(
        ModelParameters.version_tag == tag,
        ModelParameters.model_type.in_(requested),
        or_(*bucket_filters),
    )
    found: Dict[tuple[str, str], ModelParameters] = {
        (row.bucket_type, row.model_type): row for row in db.execute(stmt).scalars().all()
    }

    for model_type in requested:
        row = found.get((PAIR, model_type)) or found.get((CHAIN, model_type))
        result[model_type] = row
        outcome = row.bucket_type if row is not None else "miss"
        MODEL_LOOKUPS.labels(model_type=model_type, outcome=outcome).inc()
    return result


__all__ = [
    "MODEL_KEY_COLUMNS",
    "store_trained_models",
    "store_documents",
    "copy_version_rows",
    "delete_version_rows",
    "stored_bucket_counts",
    "list_models",
    "count_models",
    "get_model",
    "model_to_document",
    "get_production_version_tag",
    "set_production_version_tag",
    "get_models_for_prediction",
]
