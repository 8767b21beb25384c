# legcast/services/trainer.py
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import numpy as np
import structlog
from sklearn.linear_model import LinearRegression

from legcast.config import Settings, get_settings
from legcast.exceptions import ConsistencyError, InsufficientDataError
from legcast.services.buckets import Bucket
from legcast.services.features import (
    feature_keys_for,
    features_for_record,
    get_model_definition,
    target_value,
    to_matrix,
)

logger = structlog.get_logger(__name__)


@dataclass
class TrainedModel:
    bucket_type: str
    bucket_key: str
    model_type: str
    feature_keys: List[str]
    coefficients: List[float]
    intercept: float
    mae: float
    rmse: float
    r2: Optional[float]
    std_dev: float
    total_records: int
    sampled_records: int
    bucket_means: Dict[str, Optional[float]] = field(default_factory=dict)
    train_size: int = 0
    test_size: int = 0
    missing_target: int = 0
    fallback: bool = False


# ---------- Metrics ----------

def _mae(a: Iterable[float], p: Iterable[float]) -> float:
    a = np.asarray(list(a), dtype=float); p = np.asarray(list(p), dtype=float)
    return float(np.mean(np.abs(a - p)))

def _rmse(a: Iterable[float], p: Iterable[float]) -> float:
    a = np.asarray(list(a), dtype=float); p = np.asarray(list(p), dtype=float)
    return float(np.sqrt(np.mean((a - p) ** 2)))

def _r2(a: Iterable[float], p: Iterable[float]) -> Optional[float]:
    """Coefficient of determination; None when the actuals have no variance."""
    a = np.asarray(list(a), dtype=float); p = np.asarray(list(p), dtype=float)
    ss_tot = float(np.sum((a - a.mean()) ** 2))
    if ss_tot == 0.0:
        return None
    ss_res = float(np.sum((a - p) ** 2))
    return 1.0 - ss_res / ss_tot

def _residual_std(a: Iterable[float], p: Iterable[float]) -> float:
    resid = np.asarray(list(a), dtype=float) - np.asarray(list(p), dtype=float)
    if resid.size < 2:
        return 0.0
    return float(np.std(resid, ddof=1))


# ---------- Fitting ----------

def train_size_for(n: int, ratio: float) -> int:
    """Rows used for fitting; the remainder is the holdout. Both sides keep at least one row."""
    return min(max(int(math.floor(n * ratio)), 1), n - 1)


def fit_ols(X: np.ndarray, y: np.ndarray) -> tuple[np.ndarray, float]:
    reg = LinearRegression(fit_intercept=True)
    reg.fit(X, y)
    return np.asarray(reg.coef_, dtype=float), float(reg.intercept_)


def _stabilize(
    coef: np.ndarray, intercept: float, y_train: np.ndarray, settings: Settings
) -> tuple[np.ndarray, float, bool]:
    coef = np.where(np.abs(coef) < settings.COEFFICIENT_ZERO_THRESHOLD, 0.0, coef)
    unstable = (
        not np.all(np.isfinite(coef))
        or not math.isfinite(intercept)
        or (coef.size and float(np.max(np.abs(coef))) > settings.MAX_COEFFICIENT_MAGNITUDE)
    )
    if unstable:
        return np.zeros_like(coef), float(np.mean(y_train)), True
    return coef, intercept, False


def train_bucket_model(
    bucket: Bucket,
    model_type: str,
    *,
    min_records: Optional[int] = None,
    settings: Optional[Settings] = None,
) -> TrainedModel:
    """
    Fit one OLS model for `model_type` on `bucket`.

    Records are ordered chronologically; the oldest TRAIN_RATIO share trains
    the model and the newest remainder is the holdout for test metrics, so the
    same bucket always yields the same split.

    Raises InsufficientDataError when the bucket (or its usable rows for this
    target) is below `min_records`.
    """
    settings = settings or get_settings()
    minimum = min_records if min_records is not None else settings.MIN_BUCKET_RECORDS
    get_model_definition(model_type)

    if bucket.stats.total_records < minimum:
        raise InsufficientDataError(bucket.label, model_type, bucket.stats.total_records, minimum)

    usable = []
    for record in bucket.records:
        y = target_value(record, model_type)
        if y is not None and math.isfinite(y):
            usable.append((record, y))
    missing = len(bucket.records) - len(usable)
    if len(usable) < minimum:
        raise InsufficientDataError(bucket.label, model_type, len(usable), minimum)

    usable.sort(key=lambda item: (item[0].scheduled_departure, item[0].vessel_abbrev))
    feature_keys = feature_keys_for(model_type)
    X = to_matrix((features_for_record(r, model_type) for r, _ in usable), feature_keys)
    y = np.asarray([target for _, target in usable], dtype=float)

    n_train = train_size_for(len(usable), settings.TRAIN_RATIO)
    X_train, X_test = X[:n_train], X[n_train:]
    y_train, y_test = y[:n_train], y[n_train:]

    coef, intercept = fit_ols(X_train, y_train)
    coef, intercept, fallback = _stabilize(coef, intercept, y_train, settings)
    if fallback:
        logger.warning("trainer.unstable_fit", bucket=bucket.label, model_type=model_type)

    y_pred = intercept + X_test @ coef
    return TrainedModel(
        bucket_type=bucket.bucket_type,
        bucket_key=bucket.bucket_key,
        model_type=model_type,
        feature_keys=feature_keys,
        coefficients=[float(c) for c in coef],
        intercept=float(intercept),
        mae=_mae(y_test, y_pred),
        rmse=_rmse(y_test, y_pred),
        r2=_r2(y_test, y_pred),
        std_dev=_residual_std(y_test, y_pred),
        total_records=bucket.stats.total_records,
        sampled_records=bucket.stats.sampled_records,
        bucket_means=bucket.stats.means(),
        train_size=int(n_train),
        test_size=int(len(y_test)),
        missing_target=missing,
        fallback=fallback,
    )


def bucket_counts(buckets: Iterable[Bucket]) -> Dict[Tuple[str, str], Tuple[int, int]]:
    return {
        (b.bucket_type, b.bucket_key): (b.stats.total_records, b.stats.sampled_records)
        for b in buckets
    }


def check_bucket_consistency(
    expected: Mapping[Tuple[str, str], Tuple[int, int]],
    stored: Iterable[Tuple[str, str, str, int, int]],
) -> None:
    """
    Compare the rows written by a run with the bucket builder's counts.

    `stored` holds (bucket_type, bucket_key, model_type, total, sampled) per
    row. All model types of a bucket must agree on totalRecords and
    sampledRecords and match `expected`; a stored bucket the run did not
    build, or a built bucket with no stored rows, is stale or partial data.
    """
    seen: Dict[Tuple[str, str], Tuple[int, int]] = {}
    for bucket_type, bucket_key, model_type, total, sampled in stored:
        key = (bucket_type, bucket_key)
        label = f"{bucket_type}|{bucket_key}"
        got = (int(total), int(sampled))
        if key not in expected:
            raise ConsistencyError(f"Stored model {model_type} for {label} was not built by this run")
        if key in seen and seen[key] != got:
            raise ConsistencyError(
                f"Bucket {label} model {model_type} has totalRecords/sampledRecords {got}, "
                f"other model types have {seen[key]}"
            )
        if got != expected[key]:
            raise ConsistencyError(
                f"Bucket {label} model {model_type} has totalRecords/sampledRecords {got}, "
                f"expected {expected[key]}"
            )
        seen[key] = got
    missing = sorted(set(expected) - set(seen))
    if missing:
        labels = ", ".join(f"{t}|{k}" for t, k in missing)
        raise ConsistencyError(f"No stored models for buckets {labels}")


__all__ = [
    "TrainedModel",
    "train_size_for",
    "fit_ols",
    "train_bucket_model",
    "bucket_counts",
    "check_bucket_consistency",
]
