# legcast/schemas/model_document.py
"""
Portable ModelParameters documents.

Documents are tagged with `schemaVersion`. Older shapes are upgraded through
explicit migration functions rather than optional-field checks at call sites:

  v1  legacy pair-only rows: `pairKey`, no `featureKeys`, no `stdDev`,
      `bucketStats.filteredRecords`
  v2  current shape
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from legcast.exceptions import DataQualityError
from legcast.models.model_parameters import CURRENT_SCHEMA_VERSION
from legcast.services.features import MODEL_TYPES, feature_keys_for


class _Doc(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------- v1 (legacy) ----------

class LegacyTestMetrics(_Doc):
    mae: float
    rmse: float
    r2: Optional[float] = None

class LegacyBucketStats(_Doc):
    total_records: int
    filtered_records: int

class ModelDocumentV1(_Doc):
    schema_version: Literal[1] = 1
    pair_key: str
    model_type: str
    coefficients: List[float]
    intercept: float
    test_metrics: LegacyTestMetrics
    bucket_stats: LegacyBucketStats
    version_tag: Optional[str] = None
    created_at: datetime


# ---------- v2 (current) ----------

class HoldoutMetrics(_Doc):
    mae: float
    rmse: float
    r2: Optional[float] = None
    std_dev: Optional[float] = None

class BucketStatsDoc(_Doc):
    total_records: int
    sampled_records: int

class ModelDocumentV2(_Doc):
    schema_version: Literal[2] = 2
    bucket_type: Literal["pair", "chain"]
    bucket_key: str
    model_type: str
    feature_keys: List[str]
    coefficients: List[float]
    intercept: float
    test_metrics: HoldoutMetrics
    bucket_stats: BucketStatsDoc
    bucket_means: Optional[Dict[str, Optional[float]]] = None
    version_tag: str
    created_at: datetime

    @model_validator(mode="after")
    def _check_shape(self):
        if self.model_type not in MODEL_TYPES:
            raise ValueError(f"unknown model type {self.model_type!r}")
        if len(self.coefficients) != len(self.feature_keys):
            raise ValueError(
                f"{len(self.coefficients)} coefficients for {len(self.feature_keys)} feature keys"
            )
        return self


# ---------- migrations ----------

def migrate_v1_to_v2(doc: ModelDocumentV1, version_tag: Optional[str] = None) -> ModelDocumentV2:
    """Legacy rows were pair-only and stored coefficients in canonical feature order."""
    tag = version_tag or doc.version_tag
    if not tag:
        raise DataQualityError("missing_version_tag", "v1 document has no versionTag and none was supplied")
    if doc.model_type not in MODEL_TYPES:
        raise DataQualityError("invalid_document", f"unknown model type {doc.model_type!r}")
    keys = feature_keys_for(doc.model_type)
    if len(keys) != len(doc.coefficients):
        raise DataQualityError(
            "feature_count_mismatch",
            f"v1 {doc.pair_key} {doc.model_type}: {len(doc.coefficients)} coefficients, "
            f"{len(keys)} canonical features",
        )
    return ModelDocumentV2(
        bucket_type="pair",
        bucket_key=doc.pair_key,
        model_type=doc.model_type,
        feature_keys=keys,
        coefficients=doc.coefficients,
        intercept=doc.intercept,
        test_metrics=HoldoutMetrics(
            mae=doc.test_metrics.mae,
            rmse=doc.test_metrics.rmse,
            r2=doc.test_metrics.r2,
            std_dev=None,
        ),
        bucket_stats=BucketStatsDoc(
            total_records=doc.bucket_stats.total_records,
            sampled_records=doc.bucket_stats.filtered_records,
        ),
        version_tag=tag,
        created_at=doc.created_at,
    )


_PARSERS: Dict[int, type[_Doc]] = {1: ModelDocumentV1, 2: ModelDocumentV2}
_MIGRATIONS: Dict[int, Callable[..., ModelDocumentV2]] = {1: migrate_v1_to_v2}


def _detect_version(raw: Dict[str, Any]) -> int:
    if "schemaVersion" in raw:
        return int(raw["schemaVersion"])
    # rows exported before versioning carried pairKey and no bucketType
    return 1 if "pairKey" in raw and "bucketType" not in raw else CURRENT_SCHEMA_VERSION


def parse_model_document(raw: Dict[str, Any], version_tag: Optional[str] = None) -> ModelDocumentV2:
    """Validate a raw document of any known schema version and upgrade it to the current one."""
    try:
        version = _detect_version(raw)
    except (TypeError, ValueError):
        raise DataQualityError("invalid_document", "schemaVersion is not an integer") from None
    parser = _PARSERS.get(version)
    if parser is None:
        raise DataQualityError("unknown_schema_version", f"Unsupported schemaVersion {version}")
    try:
        doc = parser.model_validate(raw)
    except ValidationError as exc:
        raise DataQualityError("invalid_document", str(exc)) from exc

    if version == CURRENT_SCHEMA_VERSION:
        if version_tag:
            doc = doc.model_copy(update={"version_tag": version_tag})
        return doc
    return _MIGRATIONS[version](doc, version_tag)


__all__ = [
    "CURRENT_SCHEMA_VERSION",
    "ModelDocumentV1",
    "ModelDocumentV2",
    "migrate_v1_to_v2",
    "parse_model_document",
]
