import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import and_, asc, delete, desc, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from src.fleet_gps.gpsbuddy.schemas import VehicleTelemetry
from src.fleet_gps.signals.utils import local_day_start
from src.fleet_gps.vehicles.exceptions import GPSDatabaseException
from src.fleet_gps.vehicles.models import VehicleHistoryModel, VehicleLastStateModel
from src.fleet_gps.vehicles.schemas import (
    CounterBaseline,
    HistoryPage,
    HistoryRecord,
    LastKnownState,
    PersistResult,
    VehiclePlate,
)
from src.fleet_gps.vehicles.utils import normalize_plate, to_db_timestamp

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 50
DEFAULT_HISTORY_LIMIT = 1000

_HISTORY_FIELDS = (
    "vehicle_id",
    "plate",
    "latitude",
    "longitude",
    "velocity",
    "time_indicator",
    "address",
    "location",
    "drive_time",
    "work_time",
    "idle_time",
    "stop_time",
    "total_distance",
    "start_km",
)


def _insert(db: AsyncSession, model: Any):
    """INSERT supporting ON CONFLICT for the session's dialect."""
    if db.get_bind().dialect.name == "sqlite":
        return sqlite.insert(model)
    return postgresql.insert(model)


def _last_state_values(vehicle: VehicleTelemetry, updated_at: datetime) -> Dict:
    values = vehicle.model_dump()
    values["time_indicator"] = to_db_timestamp(vehicle.time_indicator)
    values["updated_at"] = updated_at
    return values


def _history_values(last_state: Dict, created_at: datetime) -> Dict:
    values = {field: last_state[field] for field in _HISTORY_FIELDS}
    values["created_at"] = created_at
    return values


class IVehicleRepository(ABC):
    @abstractmethod
    async def upsert_last_and_history(
        self, db: AsyncSession, vehicles: Sequence[VehicleTelemetry]
    ) -> PersistResult:
        pass

    @abstractmethod
    async def get_last_all(self, db: AsyncSession) -> List[LastKnownState]:
        pass

    @abstractmethod
    async def get_last_by_vehicle_id(
        self, db: AsyncSession, vehicle_id: int
    ) -> Optional[LastKnownState]:
        pass

    @abstractmethod
    async def get_vehicle_list(self, db: AsyncSession) -> List[VehiclePlate]:
        pass

    @abstractmethod
    async def get_by_plates(
        self, db: AsyncSession, plates: Sequence[str]
    ) -> Dict[str, LastKnownState]:
        pass

    @abstractmethod
    async def get_history(
        self,
        db: AsyncSession,
        vehicle_id: int,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> List[HistoryRecord]:
        pass

    @abstractmethod
    async def get_history_page(
        self,
        db: AsyncSession,
        vehicle_id: int,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        page: int = 1,
        page_size: int = MAX_PAGE_SIZE,
    ) -> HistoryPage:
        pass

    @abstractmethod
    async def delete_history_older_than(
        self, db: AsyncSession, days: float, now: Optional[datetime] = None
    ) -> int:
        pass

    @abstractmethod
    async def get_today_start_values(
        self,
        db: AsyncSession,
        now: Optional[datetime] = None,
        utc_offset_hours: int = 3,
    ) -> Dict[int, CounterBaseline]:
        pass


class VehicleRepository(IVehicleRepository):
    async def upsert_last_and_history(
        self, db: AsyncSession, vehicles: Sequence[VehicleTelemetry]
    ) -> PersistResult:
        """
        Overwrite the last state of every vehicle and append new history rows.

        The whole batch is one transaction: on any failure nothing is written.
        """
        if not vehicles:
            return PersistResult()

        updated_at = to_db_timestamp(datetime.now(timezone.utc))
        updated = 0
        history_inserted = 0
        try:
            for vehicle in vehicles:
                record = _last_state_values(vehicle, updated_at)
                upsert = _insert(db, VehicleLastStateModel).values(**record)
                upsert = upsert.on_conflict_do_update(
                    index_elements=["vehicle_id"],
                    set_={
                        key: upsert.excluded[key]
                        for key in record
                        if key != "vehicle_id"
                    },
                )
                await db.execute(upsert)
                updated += 1

                if record["time_indicator"] is None:
                    continue
                insert_history = (
                    _insert(db, VehicleHistoryModel)
                    .values(**_history_values(record, updated_at))
                    .on_conflict_do_nothing(
                        index_elements=["vehicle_id", "time_indicator"]
                    )
                )
                result = await db.execute(insert_history)
                history_inserted += max(result.rowcount or 0, 0)

            await db.commit()
        except Exception as e:
            await db.rollback()
            logger.error(f"Error persisting GPS batch: {str(e)}")
            raise GPSDatabaseException(len(vehicles), str(e)) from e

        logger.info(
            f"Persisted {updated} vehicles (history +{history_inserted})"
        )
        return PersistResult(updated=updated, history_inserted=history_inserted)

    async def get_last_all(self, db: AsyncSession) -> List[LastKnownState]:
        q = await db.execute(
            select(VehicleLastStateModel).order_by(
                func.lower(VehicleLastStateModel.plate).asc().nulls_last(),
                VehicleLastStateModel.vehicle_id,
            )
        )
        return [LastKnownState.model_validate(row) for row in q.scalars().all()]

    async def get_last_by_vehicle_id(
        self, db: AsyncSession, vehicle_id: int
    ) -> Optional[LastKnownState]:
        q = await db.execute(
            select(VehicleLastStateModel)
            .where(VehicleLastStateModel.vehicle_id == vehicle_id)
            .limit(1)
        )
        row = q.scalars().first()
        return LastKnownState.model_validate(row) if row is not None else None

    async def get_vehicle_list(self, db: AsyncSession) -> List[VehiclePlate]:
        q = await db.execute(
            select(VehicleLastStateModel.vehicle_id, VehicleLastStateModel.plate)
            .where(VehicleLastStateModel.plate.is_not(None))
            .order_by(func.lower(VehicleLastStateModel.plate).asc())
        )
        return [VehiclePlate.model_validate(row) for row in q.all()]

    async def get_by_plates(
        self, db: AsyncSession, plates: Sequence[str]
    ) -> Dict[str, LastKnownState]:
        """Match plates ignoring whitespace and case, keyed by the requested text."""
        if not plates:
            return {}
        q = await db.execute(
            select(VehicleLastStateModel).where(
                VehicleLastStateModel.plate.is_not(None)
            )
        )
        by_plate = {
            normalize_plate(row.plate): LastKnownState.model_validate(row)
            for row in q.scalars().all()
        }
        matches = {}
        for plate in plates:
            if not plate:
                continue
            match = by_plate.get(normalize_plate(plate))
            if match is not None:
                matches[plate] = match
        return matches

    def _history_query(
        self,
        vehicle_id: int,
        since: Optional[datetime],
        until: Optional[datetime],
    ):
        stmt = select(VehicleHistoryModel).where(
            VehicleHistoryModel.vehicle_id == vehicle_id
        )
        if since is not None:
            stmt = stmt.where(
                VehicleHistoryModel.time_indicator >= to_db_timestamp(since)
            )
        if until is not None:
            stmt = stmt.where(
                VehicleHistoryModel.time_indicator <= to_db_timestamp(until)
            )
        return stmt

    async def get_history(
        self,
        db: AsyncSession,
        vehicle_id: int,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> List[HistoryRecord]:
        """
        Samples for one vehicle in ascending time order.

        With a range the earliest `limit` samples of the range are returned.
        Without one the latest `limit` samples are fetched newest-first and
        reversed, so callers always get chronological order.
        """
        stmt = self._history_query(vehicle_id, since, until)
        if since is not None or until is not None:
            stmt = stmt.order_by(
                asc(VehicleHistoryModel.time_indicator), asc(VehicleHistoryModel.id)
            ).limit(limit)
            q = await db.execute(stmt)
            rows = list(q.scalars().all())
        else:
            stmt = stmt.order_by(
                desc(VehicleHistoryModel.time_indicator), desc(VehicleHistoryModel.id)
            ).limit(limit)
            q = await db.execute(stmt)
            rows = list(reversed(q.scalars().all()))
        return [HistoryRecord.model_validate(row) for row in rows]

    async def get_history_page(
        self,
        db: AsyncSession,
        vehicle_id: int,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        page: int = 1,
        page_size: int = MAX_PAGE_SIZE,
    ) -> HistoryPage:
        page = max(1, int(page))
        page_size = min(max(1, int(page_size)), MAX_PAGE_SIZE)

        stmt = (
            self._history_query(vehicle_id, since, until)
            .order_by(
                asc(VehicleHistoryModel.time_indicator), asc(VehicleHistoryModel.id)
            )
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        q = await db.execute(stmt)
        rows = [HistoryRecord.model_validate(row) for row in q.scalars().all()]

        count_stmt = select(func.count()).select_from(
            self._history_query(vehicle_id, since, until).subquery()
        )
        total = (await db.execute(count_stmt)).scalar_one()

        return HistoryPage(rows=rows, total=total, page=page, page_size=page_size)

    async def delete_history_older_than(
        self, db: AsyncSession, days: float, now: Optional[datetime] = None
    ) -> int:
        """Retention pruning. Rows without a timestamp are never removed."""
        try:
            days = float(days)
        except (TypeError, ValueError):
            return 0
        if days <= 0 or days != days:
            return 0

        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days)
        try:
            result = await db.execute(
                delete(VehicleHistoryModel).where(
                    VehicleHistoryModel.time_indicator.is_not(None),
                    VehicleHistoryModel.time_indicator < to_db_timestamp(cutoff),
                )
            )
            await db.commit()
        except Exception as e:
            await db.rollback()
            logger.error(f"Error pruning GPS history: {str(e)}")
            raise
        deleted = max(result.rowcount or 0, 0)
        logger.info(f"Retention pruning deleted {deleted} history rows")
        return deleted

    async def get_today_start_values(
        self,
        db: AsyncSession,
        now: Optional[datetime] = None,
        utc_offset_hours: int = 3,
    ) -> Dict[int, CounterBaseline]:
        """Counters of each vehicle's earliest sample of the current local day."""
        day_start = local_day_start(now or datetime.now(timezone.utc), utc_offset_hours)
        day_end = day_start + timedelta(days=1)

        first_sample = (
            select(
                VehicleHistoryModel.vehicle_id.label("vehicle_id"),
                func.min(VehicleHistoryModel.time_indicator).label("first_time"),
            )
            .where(
                VehicleHistoryModel.time_indicator >= to_db_timestamp(day_start),
                VehicleHistoryModel.time_indicator < to_db_timestamp(day_end),
            )
            .group_by(VehicleHistoryModel.vehicle_id)
            .subquery()
        )
        q = await db.execute(
            select(VehicleHistoryModel).join(
                first_sample,
                and_(
                    VehicleHistoryModel.vehicle_id == first_sample.c.vehicle_id,
                    VehicleHistoryModel.time_indicator == first_sample.c.first_time,
                ),
            )
        )
        return {
            row.vehicle_id: CounterBaseline(
                drive_time=row.drive_time or 0,
                work_time=row.work_time or 0,
                idle_time=row.idle_time or 0,
                stop_time=row.stop_time or 0,
            )
            for row in q.scalars().all()
        }
