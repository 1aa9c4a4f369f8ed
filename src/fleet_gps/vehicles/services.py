import logging
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from src.fleet_gps.config import Settings
from src.fleet_gps.refresh.service import GpsRefreshService
from src.fleet_gps.signals.daily import apply_daily_counters, driving_time_warnings
from src.fleet_gps.signals.schemas import DriveStopReport
from src.fleet_gps.signals.segments import build_drive_stop_report
from src.fleet_gps.signals.utils import local_day_bounds
from src.fleet_gps.vehicles.exceptions import (
    GPSInvalidDateException,
    GPSVehicleNotFoundException,
)
from src.fleet_gps.vehicles.repositories import IVehicleRepository
from src.fleet_gps.vehicles.schemas import (
    HistoryPageResponse,
    LastKnownState,
    LiveMeta,
    LiveResponse,
    LiveVehicle,
    TachographResponse,
    VehicleDetailResponse,
    VehiclePlate,
)
from src.fleet_gps.vehicles.utils import pick_last_updated

logger = logging.getLogger(__name__)

HISTORY_PAGE_SIZE = 50
REPORT_ROW_LIMIT = 10000
TACHOGRAPH_ROW_LIMIT = 5000
TACHOGRAPH_RANGES = {"24h": timedelta(hours=24), "7d": timedelta(days=7)}


def parse_local_date(value: Optional[str]) -> date:
    if not value:
        raise GPSInvalidDateException(str(value))
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        logger.error(f"Invalid date format: {value}")
        raise GPSInvalidDateException(value)


class VehicleService:
    def __init__(
        self,
        vehicle_repo: IVehicleRepository,
        refresh_service: GpsRefreshService,
        settings: Settings,
    ):
        self.vehicle_repo = vehicle_repo
        self.refresh_service = refresh_service
        self.settings = settings

    @property
    def utc_offset_hours(self) -> int:
        return self.settings.LOCAL_UTC_OFFSET_HOURS

    async def _with_daily_counters(
        self, db: AsyncSession, states: Sequence[LastKnownState]
    ) -> List[LiveVehicle]:
        baselines = await self.vehicle_repo.get_today_start_values(
            db, utc_offset_hours=self.utc_offset_hours
        )
        return apply_daily_counters(states, baselines)

    async def get_live(self, db: AsyncSession, refresh: bool = True) -> LiveResponse:
        """
        Live board. With refresh the upstream is polled first; if that fails
        the cached last states are returned with ok=False and the error.
        """
        meta = LiveMeta()
        error: Optional[str] = None
        if refresh:
            try:
                result = await self.refresh_service.refresh_once(db)
                meta.function_name = result.meta.function_name
                meta.fetched_at = result.meta.fetched_at
                meta.persisted = result.persisted
            except Exception as e:
                error = str(e) or "GPS API unavailable"
                logger.warning(f"GPS refresh failed, serving cached data: {error}")

        states = await self.vehicle_repo.get_last_all(db)
        vehicles = await self._with_daily_counters(db, states)
        meta.last_updated = pick_last_updated(vehicles)
        return LiveResponse(ok=error is None, error=error, vehicles=vehicles, meta=meta)

    async def get_vehicle_list(self, db: AsyncSession) -> List[VehiclePlate]:
        return await self.vehicle_repo.get_vehicle_list(db)

    async def get_by_plates(
        self, db: AsyncSession, plates: Sequence[str]
    ) -> Dict[str, LastKnownState]:
        return await self.vehicle_repo.get_by_plates(db, plates)

    async def _get_live_vehicle(self, db: AsyncSession, vehicle_id: int) -> LiveVehicle:
        state = await self.vehicle_repo.get_last_by_vehicle_id(db, vehicle_id)
        if state is None:
            raise GPSVehicleNotFoundException(vehicle_id)
        return (await self._with_daily_counters(db, [state]))[0]

    async def get_vehicle_detail(
        self, db: AsyncSession, vehicle_id: int
    ) -> VehicleDetailResponse:
        vehicle = await self._get_live_vehicle(db, vehicle_id)
        return VehicleDetailResponse(
            vehicle=vehicle, warnings=driving_time_warnings(vehicle.drive_time)
        )

    def history_range(
        self,
        start_date: Optional[str],
        end_date: Optional[str],
        now: Optional[datetime] = None,
    ) -> Tuple[datetime, Optional[datetime]]:
        """Local YYYY-MM-DD dates to a UTC range; defaults to the last 24 hours."""
        if start_date:
            since, _ = local_day_bounds(
                parse_local_date(start_date), self.utc_offset_hours
            )
        else:
            since = (now or datetime.now(timezone.utc)) - timedelta(hours=24)
        until = None
        if end_date:
            _, until = local_day_bounds(
                parse_local_date(end_date), self.utc_offset_hours
            )
        return since, until

    async def get_history_page(
        self,
        db: AsyncSession,
        vehicle_id: int,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        page: int = 1,
    ) -> HistoryPageResponse:
        await self._get_live_vehicle(db, vehicle_id)
        since, until = self.history_range(start_date, end_date)
        paged = await self.vehicle_repo.get_history_page(
            db, vehicle_id, since, until, page=page, page_size=HISTORY_PAGE_SIZE
        )
        total_pages = max(1, -(-paged.total // paged.page_size))
        return HistoryPageResponse(
            vehicle_id=vehicle_id,
            rows=paged.rows,
            total=paged.total,
            page=min(paged.page, total_pages),
            page_size=paged.page_size,
            total_pages=total_pages,
        )

    async def get_drive_stop_report(
        self,
        db: AsyncSession,
        vehicle_id: int,
        start_date: Optional[str],
        end_date: Optional[str],
    ) -> DriveStopReport:
        since, _ = local_day_bounds(parse_local_date(start_date), self.utc_offset_hours)
        _, until = local_day_bounds(parse_local_date(end_date), self.utc_offset_hours)
        history = await self.vehicle_repo.get_history(
            db, vehicle_id, since=since, until=until, limit=REPORT_ROW_LIMIT
        )
        return build_drive_stop_report(history)

    async def get_tachograph(
        self, db: AsyncSession, vehicle_id: Optional[int], range_name: str = "24h"
    ) -> TachographResponse:
        """Speed and driving-time view; defaults to the first vehicle by plate."""
        if range_name not in TACHOGRAPH_RANGES:
            range_name = "24h"
        if vehicle_id is None:
            vehicles = await self.vehicle_repo.get_vehicle_list(db)
            if not vehicles:
                return TachographResponse(range=range_name)
            vehicle_id = vehicles[0].vehicle_id

        vehicle = await self._get_live_vehicle(db, vehicle_id)
        since = datetime.now(timezone.utc) - TACHOGRAPH_RANGES[range_name]
        history = await self.vehicle_repo.get_history(
            db, vehicle_id, since=since, limit=TACHOGRAPH_ROW_LIMIT
        )
        return TachographResponse(
            vehicle=vehicle,
            range=range_name,
            history=history,
            warnings=driving_time_warnings(vehicle.drive_time),
        )
