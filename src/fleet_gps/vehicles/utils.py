from datetime import datetime, timezone
from typing import Iterable, Optional


def to_db_timestamp(value: Optional[datetime]) -> Optional[datetime]:
    """Columns hold naive UTC; aware values are converted, naive ones assumed UTC."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    # Plain datetime, also for pendulum instances
    return datetime(
        value.year,
        value.month,
        value.day,
        value.hour,
        value.minute,
        value.second,
        value.microsecond,
    )


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalize_plate(plate: Optional[str]) -> str:
    return "".join((plate or "").split()).upper()


def pick_last_updated(vehicles: Iterable) -> Optional[datetime]:
    latest = None
    for vehicle in vehicles:
        updated_at = getattr(vehicle, "updated_at", None)
        if updated_at is not None and (latest is None or updated_at > latest):
            latest = updated_at
    return latest
