from __future__ import annotations

import pytest

from legcast.exceptions import DataQualityError
from legcast.schemas.model_document import parse_model_document
from legcast.services.features import feature_keys_for


def _v1(**overrides):
    doc = {
        "pairKey": "BBI->P52",
        "modelType": "at-dock-depart-curr",
        "coefficients": [0.1] * len(feature_keys_for("at-dock-depart-curr")),
        "intercept": 3.0,
        "testMetrics": {"mae": 1.1, "rmse": 1.4, "r2": 0.3},
        "bucketStats": {"totalRecords": 180, "filteredRecords": 160},
        "versionTag": "prod-1",
        "createdAt": "2025-11-02T10:00:00Z",
    }
    doc.update(overrides)
    return doc


def _v2(**overrides):
    keys = feature_keys_for("at-sea-arrive-next")
    doc = {
        "schemaVersion": 2,
        "bucketType": "chain",
        "bucketKey": "chain:medium",
        "modelType": "at-sea-arrive-next",
        "featureKeys": keys,
        "coefficients": [0.0] * len(keys),
        "intercept": 31.0,
        "testMetrics": {"mae": 0.9, "rmse": 1.2, "r2": None, "stdDev": 1.0},
        "bucketStats": {"totalRecords": 400, "sampledRecords": 400},
        "versionTag": "dev-3",
        "createdAt": "2026-01-10T08:00:00Z",
    }
    doc.update(overrides)
    return doc


def test_legacy_document_is_migrated():
    doc = parse_model_document(_v1())
    assert doc.schema_version == 2
    assert doc.bucket_type == "pair"
    assert doc.bucket_key == "BBI->P52"
    assert doc.feature_keys == feature_keys_for("at-dock-depart-curr")
    assert doc.bucket_stats.sampled_records == 160
    assert doc.test_metrics.std_dev is None
    assert doc.version_tag == "prod-1"


def test_legacy_document_needs_a_tag():
    with pytest.raises(DataQualityError) as exc:
        parse_model_document(_v1(versionTag=None))
    assert exc.value.reason == "missing_version_tag"

    assert parse_model_document(_v1(versionTag=None), version_tag="dev-9").version_tag == "dev-9"


def test_legacy_coefficient_count_must_match():
    with pytest.raises(DataQualityError) as exc:
        parse_model_document(_v1(coefficients=[1.0, 2.0]))
    assert exc.value.reason == "feature_count_mismatch"


def test_current_document_passes_through():
    doc = parse_model_document(_v2())
    assert doc.bucket_key == "chain:medium"
    assert doc.test_metrics.std_dev == 1.0
    assert parse_model_document(_v2(), version_tag="prod-3").version_tag == "prod-3"


@pytest.mark.parametrize(
    "overrides, reason",
    [
        ({"schemaVersion": 7}, "unknown_schema_version"),
        ({"schemaVersion": "two"}, "invalid_document"),
        ({"coefficients": [1.0]}, "invalid_document"),
        ({"modelType": "at-dock-teleport"}, "invalid_document"),
        ({"bucketType": "route"}, "invalid_document"),
        ({"createdAt": "yesterday-ish"}, "invalid_document"),
    ],
)
def test_bad_documents_are_rejected(overrides, reason):
    with pytest.raises(DataQualityError) as exc:
        parse_model_document(_v2(**overrides))
    assert exc.value.reason == reason
