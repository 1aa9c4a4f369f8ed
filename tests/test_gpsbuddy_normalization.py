from datetime import datetime, timezone

from src.fleet_gps.gpsbuddy.schemas import VehicleTelemetry, normalize_vehicles

RAW_ROW = {
    "vehicleid": "101",
    "vehiclename": " 34 abc 123 ",
    "drivername": "  Ayse Demir ",
    "latitude": "41.0082",
    "longitude": 28.9784,
    "velocity": "87.6",
    "address": "Istanbul",
    "location": "",
    "direction": "180",
    "time_indicator": "/Date(1700000000000)/",
    "drivetime": "3600",
    "worktime": None,
    "idletime": "abc",
    "stoptime": 120,
    "totaldistance": "15000.5",
    "start_km": "14900",
    "flags": "3",
    "communication": 1,
    "colorcode": "#00FF00",
}


def test_from_raw_maps_all_fields():
    vehicle = VehicleTelemetry.from_raw(RAW_ROW)

    assert vehicle.vehicle_id == 101
    assert vehicle.plate == "34 ABC 123"
    assert vehicle.driver_name == "Ayse Demir"
    assert vehicle.latitude == 41.0082
    assert vehicle.longitude == 28.9784
    assert vehicle.velocity == 88
    assert vehicle.address == "Istanbul"
    assert vehicle.location is None
    assert vehicle.direction == 180.0
    assert vehicle.time_indicator == datetime(
        2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc
    )
    assert vehicle.drive_time == 3600.0
    assert vehicle.work_time is None
    assert vehicle.idle_time is None
    assert vehicle.stop_time == 120.0
    assert vehicle.total_distance == 15000.5
    assert vehicle.start_km == 14900.0
    assert vehicle.flags == 3
    assert vehicle.communication_ok is True
    assert vehicle.color_code == "#00FF00"


def test_plate_falls_back_to_plate_field():
    vehicle = VehicleTelemetry.from_raw({"vehicleid": 5, "plate": "06 xy 9"})
    assert vehicle.plate == "06 XY 9"


def test_communication_is_tri_state():
    assert VehicleTelemetry.from_raw({"vehicleid": 1}).communication_ok is None
    assert (
        VehicleTelemetry.from_raw({"vehicleid": 1, "communication": 0}).communication_ok
        is False
    )
    assert (
        VehicleTelemetry.from_raw(
            {"vehicleid": 1, "communication": "false"}
        ).communication_ok
        is False
    )


def test_rows_without_usable_id_are_dropped():
    rows = [
        {"vehiclename": "NO ID"},
        {"vehicleid": "abc"},
        {"vehicleid": 0},
        "not a row",
        {"vehicleid": 7, "velocity": "12.4"},
    ]
    vehicles = normalize_vehicles(rows)

    assert [v.vehicle_id for v in vehicles] == [7]
    assert vehicles[0].velocity == 12


def test_every_field_but_id_may_be_null():
    vehicle = VehicleTelemetry.from_raw({"vehicleid": 9})
    dumped = vehicle.model_dump(exclude={"vehicle_id"})
    assert all(value is None for value in dumped.values())
