from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class SegmentType(str, Enum):
    DRIVE = "Drive"
    STOP = "Stop"


class Segment(BaseModel):
    type: SegmentType
    start_time: datetime
    end_time: datetime
    start_location: Optional[str] = None
    end_location: Optional[str] = None
    start_latitude: Optional[float] = None
    start_longitude: Optional[float] = None
    end_latitude: Optional[float] = None
    end_longitude: Optional[float] = None
    start_distance: Optional[float] = None
    end_distance: Optional[float] = None
    duration_seconds: int = 0
    duration: str = "0m"
    distance_km: float = 0.0


class ReportSummary(BaseModel):
    total_drive_seconds: int = 0
    total_stop_seconds: int = 0
    total_distance_km: float = 0.0
    total_drive_time: str = "0h 0m"
    total_stop_time: str = "0h 0m"


class DriveStopReport(BaseModel):
    segments: List[Segment] = Field(default_factory=list)
    summary: ReportSummary = Field(default_factory=ReportSummary)


class MaxSpeedEntry(BaseModel):
    """Highest reading at or over the limit inside the rolling window"""

    max_speed: int
    plate: Optional[str] = None
    driver: Optional[str] = None
    location: Optional[str] = None
    observed_at: datetime


class SpeedAlert(BaseModel):
    channel: str
    text: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
