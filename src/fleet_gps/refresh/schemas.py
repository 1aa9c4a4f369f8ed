from pydantic import BaseModel

from src.fleet_gps.gpsbuddy.schemas import FetchMeta
from src.fleet_gps.vehicles.schemas import PersistResult


class RefreshResult(BaseModel):
    meta: FetchMeta
    persisted: PersistResult
    alerts_sent: int = 0
