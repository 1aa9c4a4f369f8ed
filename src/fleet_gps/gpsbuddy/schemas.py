import logging
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.fleet_gps.gpsbuddy.parsers import (
    parse_gpsbuddy_date,
    parse_number,
    round_half_up,
)

logger = logging.getLogger(__name__)


class GpsBuddyConnection(BaseModel):
    """Upstream account and endpoint settings"""

    base_url: str
    company_id: int
    username: str
    password: str
    group_id: int = 0
    live_endpoint: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    def url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _integer(value: Any) -> Optional[int]:
    number = parse_number(value)
    return int(number) if number is not None else None


def _tri_state(value: Any) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip().lower() not in ("", "0", "false", "no")
    return bool(value)


class VehicleTelemetry(BaseModel):
    """Canonical vehicle record produced per poll"""

    vehicle_id: int
    plate: Optional[str] = None
    driver_name: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    velocity: Optional[int] = None
    address: Optional[str] = None
    location: Optional[str] = None
    direction: Optional[float] = None
    time_indicator: Optional[datetime] = None
    drive_time: Optional[float] = None
    work_time: Optional[float] = None
    idle_time: Optional[float] = None
    stop_time: Optional[float] = None
    total_distance: Optional[float] = None
    start_km: Optional[float] = None
    flags: Optional[int] = None
    communication_ok: Optional[bool] = None
    color_code: Optional[str] = None

    @classmethod
    def from_raw(cls, row: Any) -> Optional["VehicleTelemetry"]:
        """Map one upstream row; None when it has no usable vehicle id."""
        if not isinstance(row, dict):
            return None

        vehicle_id = _integer(row.get("vehicleid"))
        if not vehicle_id:
            logger.debug("Dropping row without vehicle id: %s", sorted(row.keys()))
            return None

        plate = _text(row.get("vehiclename") or row.get("plate"))
        velocity = parse_number(row.get("velocity"))

        return cls(
            vehicle_id=vehicle_id,
            plate=plate.upper() if plate else None,
            driver_name=_text(row.get("drivername")),
            latitude=parse_number(row.get("latitude")),
            longitude=parse_number(row.get("longitude")),
            velocity=int(round_half_up(velocity)) if velocity is not None else None,
            address=_text(row.get("address")),
            location=_text(row.get("location")),
            direction=parse_number(row.get("direction")),
            time_indicator=parse_gpsbuddy_date(row.get("time_indicator")),
            drive_time=parse_number(row.get("drivetime")),
            work_time=parse_number(row.get("worktime")),
            idle_time=parse_number(row.get("idletime")),
            stop_time=parse_number(row.get("stoptime")),
            total_distance=parse_number(row.get("totaldistance")),
            start_km=parse_number(row.get("start_km")),
            flags=_integer(row.get("flags")),
            communication_ok=_tri_state(row.get("communication")),
            color_code=_text(row.get("colorcode")),
        )


def normalize_vehicles(rows: List[Any]) -> List[VehicleTelemetry]:
    vehicles = []
    for row in rows:
        vehicle = VehicleTelemetry.from_raw(row)
        if vehicle is not None:
            vehicles.append(vehicle)
    return vehicles


class FetchMeta(BaseModel):
    function_name: str
    fetched_at: datetime


class LiveFetchResult(BaseModel):
    vehicles: List[VehicleTelemetry] = Field(default_factory=list)
    meta: FetchMeta
