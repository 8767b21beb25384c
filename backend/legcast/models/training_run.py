# legcast/models/training_run.py
from datetime import datetime, timezone
from sqlalchemy import Column, DateTime, Index, Integer, String, Text
from legcast.db.base import Base
from legcast.db.types import JSON_PAYLOAD

class TrainingRun(Base):
    __tablename__ = "training_runs"
    id = Column(Integer, primary_key=True)
    version_tag = Column(String(64), nullable=False)
    status = Column(String(16), nullable=False, default="running")  # running | completed | failed
    buckets_trained = Column(Integer, nullable=False, default=0)
    models_written = Column(Integer, nullable=False, default=0)
    warnings = Column(JSON_PAYLOAD, nullable=False, default=list)
    excluded = Column(JSON_PAYLOAD, nullable=False, default=dict)
    error = Column(Text, nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    finished_at = Column(DateTime(timezone=True), nullable=True)
    __table_args__ = (Index("ix_training_runs_tag_started", "version_tag", "started_at"),)
