import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Set

from src.fleet_gps.gpsbuddy.schemas import VehicleTelemetry
from src.fleet_gps.notifications.client import INotificationSink
from src.fleet_gps.signals.schemas import MaxSpeedEntry, SpeedAlert
from src.fleet_gps.signals.utils import local_clock_time

logger = logging.getLogger(__name__)

UNKNOWN = "Unknown"
SPEED_VIOLATION = "speed_violation"


@dataclass
class SpeedAlertState:
    """Process-local debounce and rolling max-speed tables, keyed by vehicle id."""

    last_alert_at: Dict[int, datetime] = field(default_factory=dict)
    max_speed_in_window: Dict[int, MaxSpeedEntry] = field(default_factory=dict)

    def clear(self):
        self.last_alert_at.clear()
        self.max_speed_in_window.clear()


class SpeedViolationDetector:
    def __init__(
        self,
        sink: INotificationSink,
        state: Optional[SpeedAlertState] = None,
        speed_limit: int = 94,
        cooldown_seconds: int = 300,
        window_seconds: int = 300,
        channel: str = "driver-alerts",
        utc_offset_hours: int = 3,
        delivery_timeout_seconds: float = 30,
    ):
        self.sink = sink
        self.state = state if state is not None else SpeedAlertState()
        self.speed_limit = speed_limit
        self.cooldown_seconds = cooldown_seconds
        self.window_seconds = window_seconds
        self.channel = channel
        self.utc_offset_hours = utc_offset_hours
        self.delivery_timeout_seconds = delivery_timeout_seconds
        self._deliveries: Set[asyncio.Task] = set()

    def is_speeding(self, vehicle: VehicleTelemetry) -> bool:
        return (vehicle.velocity or 0) >= self.speed_limit

    async def check(
        self, vehicles: Sequence[VehicleTelemetry], now: Optional[datetime] = None
    ) -> List[SpeedAlert]:
        """
        Run one detection pass over a poll's vehicles.

        The rolling max-speed table is updated first so an alert can report
        the highest speed seen in the window. A vehicle alerts at most once
        per cooldown. Stale table entries are evicted at the end. Alerts are
        delivered in background tasks; the check does not wait for the sink.
        """
        now = now or datetime.now(timezone.utc)
        speeders = [v for v in vehicles if self.is_speeding(v)]
        logger.info(
            f"Speed check: {len(vehicles)} vehicles, "
            f"{len(speeders)} at or above {self.speed_limit} km/h"
        )

        for vehicle in speeders:
            self._track_max_speed(vehicle, now)

        alerts = []
        for vehicle in speeders:
            last_alert = self.state.last_alert_at.get(vehicle.vehicle_id)
            if (
                last_alert is not None
                and (now - last_alert).total_seconds() <= self.cooldown_seconds
            ):
                continue
            self.state.last_alert_at[vehicle.vehicle_id] = now
            alert = self._build_alert(vehicle, now)
            alerts.append(alert)
            self._schedule_delivery(alert)

        self._sweep(now)
        return alerts

    def _track_max_speed(self, vehicle: VehicleTelemetry, now: datetime):
        velocity = vehicle.velocity or 0
        existing = self.state.max_speed_in_window.get(vehicle.vehicle_id)
        if (
            existing is None
            or (now - existing.observed_at).total_seconds() > self.window_seconds
            or velocity > existing.max_speed
        ):
            self.state.max_speed_in_window[vehicle.vehicle_id] = MaxSpeedEntry(
                max_speed=velocity,
                plate=vehicle.plate or UNKNOWN,
                driver=vehicle.driver_name or UNKNOWN,
                location=vehicle.address or vehicle.location or UNKNOWN,
                observed_at=now,
            )

    def _build_alert(self, vehicle: VehicleTelemetry, now: datetime) -> SpeedAlert:
        velocity = vehicle.velocity or 0
        entry = self.state.max_speed_in_window.get(vehicle.vehicle_id)
        max_speed = entry.max_speed if entry is not None else velocity
        plate = vehicle.plate or UNKNOWN
        driver = vehicle.driver_name or UNKNOWN
        location = vehicle.address or vehicle.location or UNKNOWN

        text = f"SPEED VIOLATION: {plate} - {velocity} km/h"
        if max_speed > velocity:
            text += (
                f" (max in last {self.window_seconds // 60} min: {max_speed} km/h)"
            )
        text += (
            f" | Driver: {driver} | Location: {location}"
            f" | Time: {local_clock_time(now, self.utc_offset_hours)}"
        )

        return SpeedAlert(
            channel=self.channel,
            text=text,
            metadata={
                "type": SPEED_VIOLATION,
                "vehicle_id": vehicle.vehicle_id,
                "plate": plate,
                "velocity": velocity,
                "max_speed": max_speed,
                "driver": driver,
                "location": location,
                "timestamp": now.isoformat(),
            },
        )

    def _schedule_delivery(self, alert: SpeedAlert):
        task = asyncio.create_task(self._deliver(alert))
        self._deliveries.add(task)
        task.add_done_callback(self._deliveries.discard)

    async def wait_for_deliveries(self):
        """Wait until every scheduled alert delivery has finished."""
        if self._deliveries:
            await asyncio.gather(*self._deliveries, return_exceptions=True)

    async def _deliver(self, alert: SpeedAlert):
        try:
            await asyncio.wait_for(
                self.sink.send_channel_message(
                    alert.channel, alert.text, alert.metadata
                ),
                timeout=self.delivery_timeout_seconds,
            )
            logger.info(f"Speed alert sent: {alert.text}")
        except Exception as e:
            logger.error(
                f"Failed to deliver speed alert for vehicle "
                f"{alert.metadata.get('vehicle_id')}: {e!r}"
            )

    def _sweep(self, now: datetime):
        for vehicle_id, last_alert in list(self.state.last_alert_at.items()):
            if (now - last_alert).total_seconds() > self.cooldown_seconds * 2:
                del self.state.last_alert_at[vehicle_id]
        for vehicle_id, entry in list(self.state.max_speed_in_window.items()):
            if (now - entry.observed_at).total_seconds() > self.window_seconds:
                del self.state.max_speed_in_window[vehicle_id]
