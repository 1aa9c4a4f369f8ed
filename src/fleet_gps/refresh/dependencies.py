from src.fleet_gps.config import get_settings
from src.fleet_gps.gpsbuddy.client import GpsBuddyClient
from src.fleet_gps.gpsbuddy.token_cache import TokenCache
from src.fleet_gps.notifications.client import WebSocketNotificationSink
from src.fleet_gps.refresh.service import GpsRefreshService
from src.fleet_gps.signals.speed import SpeedAlertState, SpeedViolationDetector
from src.fleet_gps.vehicles.repositories import VehicleRepository

settings = get_settings()

token_cache = TokenCache()
gps_client = GpsBuddyClient(token_cache=token_cache)
vehicle_repo = VehicleRepository()

speed_alert_state = SpeedAlertState()
notification_sink = WebSocketNotificationSink(
    settings.ALERTING_HOST, settings.ALERTING_PORT
)
speed_detector = SpeedViolationDetector(
    sink=notification_sink,
    state=speed_alert_state,
    speed_limit=settings.GPS_SPEED_LIMIT_KMH,
    cooldown_seconds=settings.GPS_SPEED_ALERT_COOLDOWN_SECONDS,
    window_seconds=settings.GPS_MAX_SPEED_WINDOW_SECONDS,
    channel=settings.GPS_ALERT_CHANNEL,
    utc_offset_hours=settings.LOCAL_UTC_OFFSET_HOURS,
)

refresh_service = GpsRefreshService(
    client=gps_client,
    repository=vehicle_repo,
    detector=speed_detector,
    settings=settings,
)


def get_refresh_service() -> GpsRefreshService:
    return refresh_service
