# legcast/models/completed_trip.py
from sqlalchemy import Column, DateTime, Float, Index, Integer, String, UniqueConstraint
from legcast.db.base import Base

class CompletedTrip(Base):
    """One completed vessel leg as delivered by the trip history feed."""

    __tablename__ = "completed_trips"
    id = Column(Integer, primary_key=True)
    vessel_abbrev = Column(String(16), nullable=False)
    departing = Column(String(8), nullable=False)
    arriving = Column(String(8), nullable=False)
    scheduled_departure = Column(DateTime(timezone=True), nullable=False)
    trip_start = Column(DateTime(timezone=True), nullable=True)   # arrival at the departing terminal
    left_dock = Column(DateTime(timezone=True), nullable=True)
    trip_end = Column(DateTime(timezone=True), nullable=True)
    prev_delay = Column(Float, nullable=True)                     # minutes, from the preceding leg
    __table_args__ = (
        UniqueConstraint("vessel_abbrev", "scheduled_departure", name="uq_completed_trip_vessel_sched"),
        Index("ix_completed_trips_scheduled", "scheduled_departure"),
    )
