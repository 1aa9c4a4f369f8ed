import asyncio
import logging
import threading
from typing import Callable, Coroutine, Optional

import schedule

from src.fleet_gps.config import Settings
from src.fleet_gps.refresh.service import GpsRefreshService

logger = logging.getLogger(__name__)


class GpsRefreshScheduler:
    """
    Drives the refresh cadences from a background thread.

    Jobs only submit coroutines onto the application loop; the service's
    skip-if-busy guards keep overlapping runs of one cadence from stacking up.
    """

    def __init__(
        self,
        service: GpsRefreshService,
        settings: Settings,
        loop: asyncio.AbstractEventLoop,
    ):
        self.service = service
        self.settings = settings
        self.loop = loop
        self.scheduler = schedule.Scheduler()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def run(self) -> bool:
        if not self.settings.gps_refresh_enabled:
            logger.info("GPS refresh job disabled")
            return False

        # Fail fast on missing credentials
        self.settings.require_gps_credentials()

        self.scheduler.every(self.settings.GPS_REFRESH_INTERVAL_MINUTES).minutes.do(
            self.run_job, self.service.run_refresh_cycle
        )
        self.scheduler.every(self.settings.GPS_SPEED_CHECK_INTERVAL_SECONDS).seconds.do(
            self.run_job, self.service.run_speed_cycle
        )
        self.scheduler.every().day.at(self.settings.GPS_RETENTION_CLEANUP_AT).do(
            self.run_job, self.service.run_cleanup_cycle
        )

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._schedule_loop, daemon=True)
        self._thread.start()
        logger.info(
            f"GPS refresh job scheduled: every "
            f"{self.settings.GPS_REFRESH_INTERVAL_MINUTES} min, speed check every "
            f"{self.settings.GPS_SPEED_CHECK_INTERVAL_SECONDS} s"
        )

        # First refresh right away
        self.run_job(self.service.run_refresh_cycle)
        return True

    def stop(self):
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
        self.scheduler.clear()
        logger.info("GPS refresh job stopped")

    def _schedule_loop(self):
        while not self._stop_event.is_set():
            self.scheduler.run_pending()
            self._stop_event.wait(1)

    def run_job(self, cycle: Callable[[], Coroutine]):
        # Run the async cycle in the background on the application loop
        asyncio.run_coroutine_threadsafe(cycle(), self.loop)
