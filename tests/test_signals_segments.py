from datetime import datetime, timedelta, timezone

import pytest

from src.fleet_gps.signals.schemas import SegmentType
from src.fleet_gps.signals.segments import build_drive_stop_report, haversine_km
from src.fleet_gps.vehicles.schemas import HistoryRecord

T0 = datetime(2024, 5, 10, 6, 0, tzinfo=timezone.utc)


def make_rows(velocities, coordinates=None, step=timedelta(minutes=1)):
    rows = []
    for index, velocity in enumerate(velocities):
        latitude, longitude = (coordinates[index] if coordinates else (None, None))
        rows.append(
            HistoryRecord(
                id=index + 1,
                vehicle_id=1,
                velocity=velocity,
                time_indicator=T0 + step * index,
                latitude=latitude,
                longitude=longitude,
                address=f"Stop {index}",
            )
        )
    return rows


def test_run_length_segments():
    report = build_drive_stop_report(make_rows([0, 0, 10, 10, 0]))

    assert [s.type for s in report.segments] == [
        SegmentType.STOP,
        SegmentType.DRIVE,
        SegmentType.STOP,
    ]
    assert [s.duration_seconds for s in report.segments] == [60, 60, 0]
    assert report.segments[0].start_location == "Stop 0"
    assert report.segments[0].end_location == "Stop 1"
    assert report.summary.total_drive_seconds == 60
    assert report.summary.total_stop_seconds == 60
    assert report.summary.total_drive_time == "0h 1m"


def test_null_velocity_is_stop_and_untimed_samples_are_ignored():
    rows = make_rows([None, 5])
    rows.insert(1, HistoryRecord(id=99, vehicle_id=1, velocity=50))

    report = build_drive_stop_report(rows)

    assert [s.type for s in report.segments] == [SegmentType.STOP, SegmentType.DRIVE]


def test_empty_history():
    report = build_drive_stop_report([])

    assert report.segments == []
    assert report.summary.total_drive_seconds == 0
    assert report.summary.total_distance_km == 0
    assert report.summary.total_drive_time == "0h 0m"


def test_haversine_known_distance():
    # One degree of latitude
    assert haversine_km(0.0, 10.0, 1.0, 10.0) == pytest.approx(111.19, abs=0.01)


def test_drive_distance_uses_road_factor():
    rows = make_rows(
        [50, 50, 0],
        coordinates=[(41.0, 29.0), (41.1, 29.0), (41.1, 29.0)],
        step=timedelta(minutes=30),
    )

    report = build_drive_stop_report(rows)
    drive = report.segments[0]

    # 0.1 degree of latitude is ~11.12 km, times the 1.2 road factor
    assert drive.distance_km == 13.3
    assert drive.duration == "30m"
    assert report.summary.total_distance_km == 13.3
    assert report.segments[1].distance_km == 0


def test_distance_skipped_for_missing_or_zero_coordinates():
    rows = make_rows([50, 50], coordinates=[(0.0, 29.0), (41.1, 29.0)])

    assert build_drive_stop_report(rows).segments[0].distance_km == 0


def test_long_segment_duration_format():
    rows = make_rows([60, 60], step=timedelta(hours=2, minutes=5))

    segment = build_drive_stop_report(rows).segments[0]

    assert segment.duration == "2h 5m"
    assert segment.duration_seconds == 7500
