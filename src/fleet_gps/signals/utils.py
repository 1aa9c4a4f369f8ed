from datetime import date, datetime
from typing import Tuple

import pendulum


def local_timezone(utc_offset_hours: int) -> pendulum.FixedTimezone:
    return pendulum.FixedTimezone(int(utc_offset_hours * 3600))


def local_day_start(instant: datetime, utc_offset_hours: int) -> datetime:
    """UTC instant at which the local calendar day containing `instant` began."""
    local = pendulum.instance(instant).in_timezone(local_timezone(utc_offset_hours))
    return local.start_of("day").in_timezone("UTC")


def local_day_bounds(day: date, utc_offset_hours: int) -> Tuple[datetime, datetime]:
    """First and last instant (UTC) of a local calendar day."""
    start = pendulum.datetime(
        day.year, day.month, day.day, tz=local_timezone(utc_offset_hours)
    )
    return start.in_timezone("UTC"), start.end_of("day").in_timezone("UTC")


def local_clock_time(instant: datetime, utc_offset_hours: int) -> str:
    local = pendulum.instance(instant).in_timezone(local_timezone(utc_offset_hours))
    return local.format("HH:mm")


def format_duration(seconds: float, always_hours: bool = True) -> str:
    """Render whole seconds as "Hh Mm"; with always_hours=False "0h" is omitted."""
    total = max(0, int(seconds))
    hours = total // 3600
    minutes = (total % 3600) // 60
    if hours == 0 and not always_hours:
        return f"{minutes}m"
    return f"{hours}h {minutes}m"

