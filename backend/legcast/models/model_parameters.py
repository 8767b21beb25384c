# legcast/models/model_parameters.py
from __future__ import annotations
from datetime import datetime, timezone
from sqlalchemy import Column, DateTime, Float, Index, Integer, String, UniqueConstraint
from legcast.db.base import Base
from legcast.db.types import JSON_PAYLOAD

CURRENT_SCHEMA_VERSION = 2

class ModelParameters(Base):
    __tablename__ = "model_parameters"

    id = Column(Integer, primary_key=True)
    bucket_type = Column(String(16), nullable=False)      # "pair" | "chain"
    bucket_key = Column(String(64), nullable=False)
    model_type = Column(String(32), nullable=False)
    version_tag = Column(String(64), nullable=False)
    schema_version = Column(Integer, nullable=False, default=CURRENT_SCHEMA_VERSION)

    feature_keys = Column(JSON_PAYLOAD, nullable=False, default=list)
    coefficients = Column(JSON_PAYLOAD, nullable=False, default=list)
    intercept = Column(Float, nullable=False)

    mae = Column(Float, nullable=False)
    rmse = Column(Float, nullable=False)
    r2 = Column(Float, nullable=True)                     # undefined when the holdout target is constant
    std_dev = Column(Float, nullable=True)

    total_records = Column(Integer, nullable=False)
    sampled_records = Column(Integer, nullable=False)
    bucket_means = Column(JSON_PAYLOAD, nullable=True)

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        UniqueConstraint(
            "bucket_type", "bucket_key", "model_type", "version_tag",
            name="uq_model_parameters_key",
        ),
        Index("ix_model_parameters_version_tag", "version_tag"),
    )

    @property
    def test_metrics(self) -> dict:
        return {"mae": self.mae, "rmse": self.rmse, "r2": self.r2, "stdDev": self.std_dev}

    @property
    def bucket_stats(self) -> dict:
        return {"totalRecords": self.total_records, "sampledRecords": self.sampled_records}
