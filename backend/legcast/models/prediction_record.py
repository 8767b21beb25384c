# legcast/models/prediction_record.py
from sqlalchemy import Column, DateTime, Float, Integer, String, UniqueConstraint
from legcast.db.base import Base

class PredictionRecord(Base):
    __tablename__ = "prediction_records"
    id = Column(Integer, primary_key=True)
    key = Column(String(128), nullable=False)              # trip key the prediction belongs to
    vessel_abbrev = Column(String(16), nullable=False)
    departing = Column(String(8), nullable=False)
    arriving = Column(String(8), nullable=True)
    prediction_type = Column(String(32), nullable=False)   # AtDockDepartCurr, AtSeaArriveNext, ...
    trip_start = Column(DateTime(timezone=True), nullable=True)
    scheduled_departure = Column(DateTime(timezone=True), nullable=True)
    left_dock = Column(DateTime(timezone=True), nullable=True)
    trip_end = Column(DateTime(timezone=True), nullable=True)
    min_time = Column(DateTime(timezone=True), nullable=False)
    pred_time = Column(DateTime(timezone=True), nullable=False)
    max_time = Column(DateTime(timezone=True), nullable=False)
    mae = Column(Float, nullable=False)
    std_dev = Column(Float, nullable=True)
    actual = Column(DateTime(timezone=True), nullable=True)
    delta_total = Column(Float, nullable=True)             # minutes, actual - predicted
    delta_range = Column(Float, nullable=True)             # minutes outside [min, max], 0 inside
    created_at = Column(DateTime(timezone=True), nullable=False)
    __table_args__ = (UniqueConstraint("key", "prediction_type", name="uq_prediction_record"),)
