# legcast/services/version_metrics.py
"""Offline holdout-metric export for one version tag and a diff between two tags."""
from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from legcast.config import get_settings
from legcast.services import model_store
from legcast.utils.numeric import round_or_none

CSV_HEADER = [
    "version_tag",
    "bucket_type",
    "bucket_key",
    "model_type",
    "total_records",
    "sampled_records",
    "mae",
    "rmse",
    "r2",
    "std_dev",
]

COMPARED_METRICS = ("mae", "r2", "std_dev")


def export_metrics(db: Session, version_tag: str) -> List[dict]:
    return [
        {
            "version_tag": row.version_tag,
            "bucket_type": row.bucket_type,
            "bucket_key": row.bucket_key,
            "model_type": row.model_type,
            "total_records": row.total_records,
            "sampled_records": row.sampled_records,
            "mae": row.mae,
            "rmse": row.rmse,
            "r2": row.r2,
            "std_dev": row.std_dev,
        }
        for row in model_store.list_models(db, version_tag)
    ]


def to_csv(rows: Iterable[dict]) -> str:
    lines = [",".join(CSV_HEADER)]

    def _fmt(value):
        return "" if value is None else str(value)

    for row in rows:
        lines.append(",".join(_fmt(row.get(col)) for col in CSV_HEADER))
    return "\n".join(lines)


def _diff(a: Optional[float], b: Optional[float]) -> Optional[float]:
    if a is None or b is None:
        return None
    return round_or_none(b - a, 4)


def _index(rows: List[dict]) -> Dict[str, Dict[str, dict]]:
    out: Dict[str, Dict[str, dict]] = {}
    for row in rows:
        out.setdefault(f"{row['bucket_type']}|{row['bucket_key']}", {})[row["model_type"]] = row
    return out


def _bucket_total(models: Dict[str, dict]) -> int:
    return max((m["total_records"] or 0 for m in models.values()), default=0)


def diff_metrics(
    db: Session,
    tag_a: str,
    tag_b: str,
    *,
    min_records: Optional[int] = None,
    show_all: bool = False,
) -> Dict[str, Dict[str, dict]]:
    """
    Compare holdout metrics between two tags.

    Returns {"bucket_type|bucket_key": {model_type: {metric: {"a", "b", "diff"}}}}
    with diff = b - a. A side missing a model reads None. Buckets with fewer
    than `min_records` records on both sides are left out unless `show_all`.
    """
    threshold = get_settings().COMPARE_MIN_RECORDS if min_records is None else min_records
    side_a = _index(export_metrics(db, tag_a))
    side_b = _index(export_metrics(db, tag_b))

    result: Dict[str, Dict[str, dict]] = {}
    for bucket in sorted(set(side_a) | set(side_b)):
        models_a = side_a.get(bucket, {})
        models_b = side_b.get(bucket, {})
        if not show_all and max(_bucket_total(models_a), _bucket_total(models_b)) < threshold:
            continue
        per_model: Dict[str, dict] = {}
        for model_type in sorted(set(models_a) | set(models_b)):
            a = models_a.get(model_type, {})
            b = models_b.get(model_type, {})
            per_model[model_type] = {
                metric: {
                    "a": a.get(metric),
                    "b": b.get(metric),
                    "diff": _diff(a.get(metric), b.get(metric)),
                }
                for metric in COMPARED_METRICS
            }
        result[bucket] = per_model
    return result


__all__ = ["CSV_HEADER", "export_metrics", "to_csv", "diff_metrics"]
