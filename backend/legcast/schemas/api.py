from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from legcast.services.prediction import LiveVesselState


class TrainingRunRequest(BaseModel):
    version_tag: str = "dev-temp"


class SwitchVersionRequest(BaseModel):
    version_tag: str


class RenameVersionRequest(BaseModel):
    from_tag: str
    to_tag: str


class PromoteDevRequest(BaseModel):
    target_tag: Optional[str] = None


class PromoteProdRequest(BaseModel):
    dev_tag: str
    target_tag: Optional[str] = None


class LiveVesselStateIn(BaseModel):
    vessel_abbrev: str
    departing: str
    arriving: str
    phase: Literal["at-dock", "at-sea"]
    scheduled_departure: datetime
    trip_start: datetime
    left_dock: Optional[datetime] = None
    prev_delay: Optional[float] = None
    prev_at_sea_duration: Optional[float] = None
    next_scheduled_departure: Optional[datetime] = None

    def to_state(self) -> LiveVesselState:
        return LiveVesselState(**self.model_dump())


class PredictRequest(BaseModel):
    state: LiveVesselStateIn
    model_types: Optional[List[str]] = None
    record: bool = Field(False, description="Persist predictions with an absolute time as records")


class ActualizeRequest(BaseModel):
    key: str
    left_dock: Optional[datetime] = None
    trip_end: Optional[datetime] = None
    next_left_dock: Optional[datetime] = None


class ModelImportRequest(BaseModel):
    documents: List[Dict[str, Any]]
    version_tag: Optional[str] = None

