from __future__ import annotations

from typing import Optional


class LegcastError(Exception):
    """Base class for domain errors raised by the training and version services."""


class DataQualityError(LegcastError):
    """A source record is malformed or out of range and must be excluded."""

    def __init__(self, reason: str, message: Optional[str] = None) -> None:
        self.reason = reason
        super().__init__(message or reason)


class InsufficientDataError(LegcastError):
    """A (bucket, model type) pair has too few usable records to fit."""

    def __init__(self, bucket_key: str, model_type: str, available: int, required: int) -> None:
        self.bucket_key = bucket_key
        self.model_type = model_type
        self.available = available
        self.required = required
        super().__init__(
            f"{bucket_key} {model_type}: {available} usable records, {required} required"
        )


class ConsistencyError(LegcastError):
    """Bucket statistics disagree across model types within one training run."""


class VersionGuardError(LegcastError):
    """A version operation would damage the active production tag or an immutable snapshot."""

    def __init__(self, message: str, active_tag: Optional[str] = None) -> None:
        self.active_tag = active_tag
        super().__init__(message)


__all__ = [
    "LegcastError",
    "DataQualityError",
    "InsufficientDataError",
    "ConsistencyError",
    "VersionGuardError",
]
