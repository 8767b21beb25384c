import pytest
from pydantic import ValidationError

from legcast.config import Settings


def test_defaults_are_consistent():
    s = Settings(ENV="test")
    assert s.MIN_BUCKET_RECORDS == 100
    assert s.TRAIN_RATIO == 0.8
    assert s.FEATURE_TZ == "America/Los_Angeles"


@pytest.mark.parametrize(
    "overrides",
    [
        {"TRAIN_RATIO": 1.0},
        {"TRAIN_RATIO": 0.0},
        {"MIN_AT_SEA_MINUTES": 100.0, "MAX_AT_SEA_MINUTES": 90.0},
        {"MIN_AT_DOCK_MINUTES": 50.0},
        {"CHAIN_SHORT_MAX_MINUTES": 60.0},
        {"MIN_BUCKET_RECORDS": 1},
    ],
)
def test_invalid_thresholds_rejected(overrides):
    with pytest.raises(ValidationError):
        Settings(ENV="test", **overrides)
