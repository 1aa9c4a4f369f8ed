import asyncio
import logging
from typing import Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.fleet_gps.config import Settings
from src.fleet_gps.database.database import db
from src.fleet_gps.gpsbuddy.client import GpsBuddyClient
from src.fleet_gps.refresh.schemas import RefreshResult
from src.fleet_gps.signals.speed import SpeedViolationDetector
from src.fleet_gps.vehicles.repositories import IVehicleRepository

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Awaitable[AsyncSession]]


class GpsRefreshService:
    """Fetches live telemetry, persists it and runs the speed check."""

    def __init__(
        self,
        client: GpsBuddyClient,
        repository: IVehicleRepository,
        detector: SpeedViolationDetector,
        settings: Settings,
        session_factory: Optional[SessionFactory] = None,
    ):
        self.client = client
        self.repository = repository
        self.detector = detector
        self.settings = settings
        self.session_factory = session_factory or db.get_client
        self._refresh_lock = asyncio.Lock()
        self._speed_lock = asyncio.Lock()
        self._cleanup_lock = asyncio.Lock()

    async def _open_session(self) -> AsyncSession:
        return await self.session_factory()

    async def refresh_once(self, db: Optional[AsyncSession] = None) -> RefreshResult:
        """
        Full refresh: fetch, persist in one transaction, then check speeds.

        A failed write propagates, so a refresh never reports success for data
        that was not stored.
        """
        connection = self.settings.require_gps_credentials()
        fetched = await self.client.fetch_live_vehicles(connection)

        if db is None:
            session = await self._open_session()
            try:
                persisted = await self.repository.upsert_last_and_history(
                    session, fetched.vehicles
                )
            finally:
                await session.close()
        else:
            persisted = await self.repository.upsert_last_and_history(
                db, fetched.vehicles
            )

        alerts = await self.detector.check(fetched.vehicles)
        logger.info(
            f"Refresh OK ({fetched.meta.function_name}): "
            f"updated={persisted.updated} "
            f"history_inserted={persisted.history_inserted}"
        )
        return RefreshResult(
            meta=fetched.meta, persisted=persisted, alerts_sent=len(alerts)
        )

    async def check_speed_only(self) -> int:
        """Fetch and run the speed check without touching the database."""
        connection = self.settings.require_gps_credentials()
        fetched = await self.client.fetch_live_vehicles(connection)
        await self.detector.check(fetched.vehicles)
        return len(fetched.vehicles)

    async def prune_history(self, days: Optional[int] = None) -> int:
        if days is None:
            days = self.settings.GPS_HISTORY_RETENTION_DAYS
        session = await self._open_session()
        try:
            deleted = await self.repository.delete_history_older_than(session, days)
        finally:
            await session.close()
        if deleted:
            logger.info(f"Cleaned up {deleted} old history records")
        return deleted

    async def run_refresh_cycle(self):
        if self._refresh_lock.locked():
            logger.info("Skip GPS refresh: previous run still in progress")
            return
        async with self._refresh_lock:
            try:
                await self.refresh_once()
            except Exception as e:
                logger.error(f"GPS refresh failed: {str(e)}")

    async def run_speed_cycle(self):
        if self._speed_lock.locked():
            logger.debug("Skip speed check: previous run still in progress")
            return
        async with self._speed_lock:
            try:
                count = await self.check_speed_only()
                logger.debug(f"Speed check done for {count} vehicles")
            except Exception as e:
                logger.error(f"Speed check failed: {str(e)}")

    async def run_cleanup_cycle(self):
        if self._cleanup_lock.locked():
            logger.info("Skip history cleanup: previous run still in progress")
            return
        async with self._cleanup_lock:
            try:
                await self.prune_history()
            except Exception as e:
                logger.error(f"History cleanup failed: {str(e)}")
