from typing import Dict, List, Mapping, Optional, Sequence

from src.fleet_gps.vehicles.schemas import CounterBaseline, LastKnownState, LiveVehicle

COUNTERS = ("drive_time", "work_time", "idle_time", "stop_time")

DAILY_DRIVING_LIMIT_SECONDS = 9 * 3600
CONTINUOUS_DRIVING_LIMIT_SECONDS = int(4.5 * 3600)


def daily_counters(
    state: LastKnownState, baseline: Optional[CounterBaseline]
) -> Dict[str, float]:
    """
    Counters accumulated since the local day start.

    Without a baseline the vehicle has no sample today yet, so the daily value
    is the cumulative value itself. The result is never negative.
    """
    daily = {}
    for counter in COUNTERS:
        current = getattr(state, counter) or 0
        start = getattr(baseline, counter) if baseline is not None else 0
        daily[f"daily_{counter}"] = max(0, current - (start or 0))
    return daily


def apply_daily_counters(
    states: Sequence[LastKnownState], baselines: Mapping[int, CounterBaseline]
) -> List[LiveVehicle]:
    return [
        LiveVehicle(
            **state.model_dump(),
            **daily_counters(state, baselines.get(state.vehicle_id)),
        )
        for state in states
    ]


def driving_time_warnings(drive_time: Optional[float]) -> List[str]:
    drive_time = drive_time or 0
    if drive_time > DAILY_DRIVING_LIMIT_SECONDS:
        return ["Daily driving limit exceeded (9h)"]
    if drive_time > CONTINUOUS_DRIVING_LIMIT_SECONDS:
        return ["Break required (4.5h driving)"]
    return []
