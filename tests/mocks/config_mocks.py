import pytest

from src.fleet_gps.config import Settings

VALID_SETTINGS_DATA = {
    "ENVIRONMENT": "production",
    "FASTAPI_CORS_ORIGINS": ["http://localhost"],
    "POSTGRES_USER": "postgres",
    "POSTGRES_PASSWORD": "postgres",
    "POSTGRES_HOST": "localhost",
    "POSTGRES_PORT": 5432,
    "POSTGRES_DB": "postgres",
    "GPSBUDDY_BASE_URL": "http://gpsbuddy.test",
    "GPSBUDDY_COMPANY_ID": 1234,
    "GPSBUDDY_USERNAME": "fleet",
    "GPSBUDDY_PASSWORD": "secret",
    "GPSBUDDY_GROUP_ID": 7,
    "GPS_REFRESH_ENABLED": False,
    "ALERTING_HOST": "localhost",
    "ALERTING_PORT": 8080,
    "LOCAL_UTC_OFFSET_HOURS": 3,
}


@pytest.fixture
def gps_settings() -> Settings:
    """Settings with a complete GPSBuddy account and the scheduler disabled."""
    return Settings(**VALID_SETTINGS_DATA)


@pytest.fixture
def settings_without_credentials() -> Settings:
    data = {
        key: value
        for key, value in VALID_SETTINGS_DATA.items()
        if key not in ("GPSBUDDY_USERNAME", "GPSBUDDY_PASSWORD", "GPS_REFRESH_ENABLED")
    }
    return Settings(**data)
