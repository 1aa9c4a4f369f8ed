"""GPS ingestion service configuration."""

import os
from functools import lru_cache
from typing import Annotated, Any, List, Literal, Optional

from dotenv import load_dotenv
from pydantic import AnyUrl, BeforeValidator, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.fleet_gps.gpsbuddy.exceptions import GpsBuddyConfigurationException
from src.fleet_gps.gpsbuddy.schemas import GpsBuddyConnection


def get_env_file() -> str:
    """
    Determine the .env file to use.
    Chooses one based on the ENVIRONMENT value.
    """
    env_file = {
        "production": ".env",
        "development": ".env.dev",
    }
    load_dotenv(env_file.get(os.getenv("ENVIRONMENT", "development")), override=True)
    return env_file.get(os.getenv("ENVIRONMENT", "development"), ".env.dev")


def parse_cors(v: Any) -> list[str] | str:
    if isinstance(v, str) and not v.startswith("["):
        return [i.strip() for i in v.split(",")]
    elif isinstance(v, list | str):
        return v
    raise ValueError(v)


class Settings(BaseSettings):
    """Server config settings."""

    model_config = SettingsConfigDict(
        env_file=get_env_file(),
        env_file_encoding="utf-8",
        case_sensitive=True,
        env_ignore_empty=True,
        extra="ignore",
    )
    ENVIRONMENT: Literal["development", "production"] = "development"
    PROJECT_NAME: str = "Fleet GPS API"

    # API settings
    DOMAIN: str = "0.0.0.0"
    DEBUG_MODE: bool = False
    FASTAPI_CORS_ORIGINS: Annotated[list[AnyUrl] | str, BeforeValidator(parse_cors)] = (
        []
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def all_cors_origins(self) -> list[str]:
        return [str(origin).rstrip("/") for origin in self.FASTAPI_CORS_ORIGINS]

    # Database settings
    POSTGRES_USER: str = "default_user"
    POSTGRES_PASSWORD: str = "default_password"
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "default_db"

    # GPSBuddy upstream
    GPSBUDDY_BASE_URL: str = "http://webservice.gps-buddy.com"
    GPSBUDDY_COMPANY_ID: Optional[int] = None
    GPSBUDDY_USERNAME: Optional[str] = None
    GPSBUDDY_PASSWORD: Optional[str] = None
    GPSBUDDY_GROUP_ID: int = 0
    GPSBUDDY_LIVE_ENDPOINT: str = "gpsb_unitvehicle_filter_by_group"

    # Refresh cadence; None means "enabled when credentials are present"
    GPS_REFRESH_ENABLED: Optional[bool] = None
    GPS_REFRESH_INTERVAL_MINUTES: int = 5
    GPS_SPEED_CHECK_INTERVAL_SECONDS: int = 10
    GPS_RETENTION_CLEANUP_AT: str = "03:10"
    GPS_HISTORY_RETENTION_DAYS: int = 30

    # Speed alerts
    GPS_SPEED_LIMIT_KMH: int = 94
    GPS_SPEED_ALERT_COOLDOWN_SECONDS: int = 300
    GPS_MAX_SPEED_WINDOW_SECONDS: int = 300
    GPS_ALERT_CHANNEL: str = "driver-alerts"

    # Alerting settings
    ALERTING_HOST: str = "localhost"
    ALERTING_PORT: int = 8001

    # Fleet operates on UTC+3 local days
    LOCAL_UTC_OFFSET_HOURS: int = 3

    def missing_gps_credentials(self) -> List[str]:
        required = {
            "GPSBUDDY_COMPANY_ID": self.GPSBUDDY_COMPANY_ID,
            "GPSBUDDY_USERNAME": self.GPSBUDDY_USERNAME,
            "GPSBUDDY_PASSWORD": self.GPSBUDDY_PASSWORD,
        }
        return [
            key
            for key, value in required.items()
            if value is None or str(value).strip() == ""
        ]

    @property
    def gps_refresh_enabled(self) -> bool:
        if self.GPS_REFRESH_ENABLED is None:
            return not self.missing_gps_credentials()
        return self.GPS_REFRESH_ENABLED

    def require_gps_credentials(self) -> GpsBuddyConnection:
        """Return the upstream connection, failing loudly on missing keys."""
        missing = self.missing_gps_credentials()
        if missing:
            raise GpsBuddyConfigurationException(missing)
        return GpsBuddyConnection(
            base_url=self.GPSBUDDY_BASE_URL,
            company_id=self.GPSBUDDY_COMPANY_ID,
            username=self.GPSBUDDY_USERNAME,
            password=self.GPSBUDDY_PASSWORD,
            group_id=self.GPSBUDDY_GROUP_ID,
            live_endpoint=self.GPSBUDDY_LIVE_ENDPOINT,
        )


# Global settings instance with caching.
@lru_cache()
def get_settings() -> Settings:
    settings = Settings()

    return settings
