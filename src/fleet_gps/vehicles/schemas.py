from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.fleet_gps.vehicles.utils import as_utc


class VehicleStateBase(BaseModel):
    """Fields shared by the last-state and history rows"""

    vehicle_id: int
    plate: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    velocity: Optional[int] = None
    address: Optional[str] = None
    location: Optional[str] = None
    time_indicator: Optional[datetime] = None
    drive_time: Optional[float] = None
    work_time: Optional[float] = None
    idle_time: Optional[float] = None
    stop_time: Optional[float] = None
    total_distance: Optional[float] = None
    start_km: Optional[float] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("time_indicator", mode="after")
    @classmethod
    def _time_indicator_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)


class LastKnownState(VehicleStateBase):
    """Current snapshot of one vehicle"""

    driver_name: Optional[str] = None
    direction: Optional[float] = None
    flags: Optional[int] = None
    communication_ok: Optional[bool] = None
    color_code: Optional[str] = None
    updated_at: datetime

    @field_validator("updated_at", mode="after")
    @classmethod
    def _updated_at_utc(cls, value: datetime) -> datetime:
        return as_utc(value)  # type: ignore[return-value]


class HistoryRecord(VehicleStateBase):
    """One persisted telemetry sample"""

    id: int
    created_at: Optional[datetime] = None


class HistoryPage(BaseModel):
    rows: List[HistoryRecord] = Field(default_factory=list)
    total: int
    page: int
    page_size: int


class PersistResult(BaseModel):
    updated: int = 0
    history_inserted: int = 0


class CounterBaseline(BaseModel):
    """Cumulative counters of the first sample of the local day"""

    drive_time: float = 0.0
    work_time: float = 0.0
    idle_time: float = 0.0
    stop_time: float = 0.0


class VehiclePlate(BaseModel):
    vehicle_id: int
    plate: str

    model_config = ConfigDict(from_attributes=True)


class LiveVehicle(LastKnownState):
    """Last known state enriched with counters since the local day start"""

    daily_drive_time: float = 0.0
    daily_work_time: float = 0.0
    daily_idle_time: float = 0.0
    daily_stop_time: float = 0.0


class LiveMeta(BaseModel):
    function_name: Optional[str] = None
    fetched_at: Optional[datetime] = None
    persisted: Optional[PersistResult] = None
    last_updated: Optional[datetime] = None


class LiveResponse(BaseModel):
    """Live board payload; ok=False means the data is cached and error says why"""

    ok: bool
    error: Optional[str] = None
    vehicles: List[LiveVehicle] = Field(default_factory=list)
    meta: LiveMeta = Field(default_factory=LiveMeta)


class VehicleDetailResponse(BaseModel):
    vehicle: LiveVehicle
    warnings: List[str] = Field(default_factory=list)


class HistoryPageResponse(HistoryPage):
    vehicle_id: int
    total_pages: int


class TachographResponse(BaseModel):
    vehicle: Optional[LiveVehicle] = None
    range: str
    history: List[HistoryRecord] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
