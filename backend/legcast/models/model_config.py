# legcast/models/model_config.py
from datetime import datetime, timezone
from sqlalchemy import Column, DateTime, String
from legcast.db.base import Base

PRODUCTION_VERSION_KEY = "productionVersionTag"

class ModelConfig(Base):
    """Small key/value rows; the production pointer lives under PRODUCTION_VERSION_KEY."""

    __tablename__ = "model_config"
    key = Column(String(64), primary_key=True)
    production_version_tag = Column(String(64), nullable=True)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
