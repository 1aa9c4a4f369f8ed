import logging
import math
from typing import List, Optional, Sequence

from src.fleet_gps.gpsbuddy.parsers import round_half_up
from src.fleet_gps.signals.schemas import (
    DriveStopReport,
    ReportSummary,
    Segment,
    SegmentType,
)
from src.fleet_gps.signals.utils import format_duration
from src.fleet_gps.vehicles.schemas import HistoryRecord

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0
ROAD_DISTANCE_FACTOR = 1.2
STOP_THRESHOLD_KMH = 1
MIN_SEGMENT_DISTANCE_KM = 0.1


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two coordinates in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def classify(velocity: Optional[float]) -> SegmentType:
    if (velocity or 0) >= STOP_THRESHOLD_KMH:
        return SegmentType.DRIVE
    return SegmentType.STOP


def _place(row: HistoryRecord) -> str:
    return row.address or row.location or ""


def segment_distance_km(segment: Segment) -> float:
    """Approximate road distance; 0 when a coordinate is missing or zero."""
    coordinates = (
        segment.start_latitude,
        segment.start_longitude,
        segment.end_latitude,
        segment.end_longitude,
    )
    if not all(coordinates):
        return 0.0
    distance = haversine_km(*coordinates) * ROAD_DISTANCE_FACTOR
    if distance <= MIN_SEGMENT_DISTANCE_KM:
        return 0.0
    return round_half_up(distance, 1)


def _open_segment(row: HistoryRecord, segment_type: SegmentType) -> Segment:
    return Segment(
        type=segment_type,
        start_time=row.time_indicator,
        end_time=row.time_indicator,
        start_location=_place(row),
        end_location=_place(row),
        start_latitude=row.latitude,
        start_longitude=row.longitude,
        end_latitude=row.latitude,
        end_longitude=row.longitude,
        start_distance=row.total_distance,
        end_distance=row.total_distance,
    )


def _extend_segment(segment: Segment, row: HistoryRecord):
    segment.end_time = row.time_indicator
    segment.end_location = _place(row)
    segment.end_latitude = row.latitude
    segment.end_longitude = row.longitude
    segment.end_distance = row.total_distance


def build_segments(rows: Sequence[HistoryRecord]) -> List[Segment]:
    """Run-length encode ascending samples into Drive/Stop segments."""
    segments: List[Segment] = []
    current: Optional[Segment] = None
    for row in rows:
        if row.time_indicator is None:
            continue
        segment_type = classify(row.velocity)
        if current is not None and current.type == segment_type:
            _extend_segment(current, row)
            continue
        if current is not None:
            segments.append(current)
        current = _open_segment(row, segment_type)
    if current is not None:
        segments.append(current)

    for segment in segments:
        elapsed = (segment.end_time - segment.start_time).total_seconds()
        segment.duration_seconds = max(0, math.floor(elapsed))
        segment.duration = format_duration(segment.duration_seconds, always_hours=False)
        segment.distance_km = segment_distance_km(segment)
    return segments


def build_drive_stop_report(rows: Sequence[HistoryRecord]) -> DriveStopReport:
    segments = build_segments(rows)

    total_drive = 0
    total_stop = 0
    total_distance = 0.0
    for segment in segments:
        if segment.type == SegmentType.DRIVE:
            total_drive += segment.duration_seconds
            total_distance += segment.distance_km
        else:
            total_stop += segment.duration_seconds

    logger.debug(f"Built {len(segments)} segments from {len(rows)} samples")
    return DriveStopReport(
        segments=segments,
        summary=ReportSummary(
            total_drive_seconds=total_drive,
            total_stop_seconds=total_stop,
            total_distance_km=round_half_up(total_distance, 1),
            total_drive_time=format_duration(total_drive),
            total_stop_time=format_duration(total_stop),
        ),
    )
