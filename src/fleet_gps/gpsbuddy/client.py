import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from tenacity.wait import wait_base

from src.fleet_gps.gpsbuddy.exceptions import (
    GpsBuddyApiException,
    GpsBuddyException,
    GpsBuddyFetchException,
    GpsBuddyResponseShapeException,
)
from src.fleet_gps.gpsbuddy.parsers import (
    api_error,
    describe_api_error,
    extract_vehicle_array,
    summarize_response,
)
from src.fleet_gps.gpsbuddy.schemas import (
    FetchMeta,
    GpsBuddyConnection,
    LiveFetchResult,
    normalize_vehicles,
)
from src.fleet_gps.gpsbuddy.session import SessionTokenProvider
from src.fleet_gps.gpsbuddy.strategies import (
    DirectCredentialStrategy,
    IFetchStrategy,
    TokenRoutineStrategy,
)
from src.fleet_gps.gpsbuddy.token_cache import TokenCache
from src.fleet_gps.gpsbuddy.transport import LINEAR_BACKOFF, GpsBuddyTransport

logger = logging.getLogger(__name__)

# Tried after the configured live endpoint, in this order
ALTERNATE_LIVE_FUNCTIONS = (
    "gpsb_unitvehicle_filter",
    "gpsb_unitvehicle_filter_2",
    "gpsb_unitvehicle_filter_by_group",
)


def live_function_candidates(connection: GpsBuddyConnection) -> List[str]:
    candidates: List[str] = []
    for name in (connection.live_endpoint, *ALTERNATE_LIVE_FUNCTIONS):
        if name and name not in candidates:
            candidates.append(name)
    return candidates


def live_function_arguments(
    connection: GpsBuddyConnection, function_name: str
) -> Dict[str, Any]:
    arguments: Dict[str, Any] = {"p_companyid": connection.company_id}
    if function_name.endswith("_by_group"):
        arguments["p_groupid"] = connection.group_id
    return arguments


class GpsBuddyClient:
    def __init__(
        self,
        transport: Optional[GpsBuddyTransport] = None,
        token_cache: Optional[TokenCache] = None,
        strategies: Optional[Sequence[IFetchStrategy]] = None,
        wait: wait_base = LINEAR_BACKOFF,
    ):
        self.transport = transport or GpsBuddyTransport()
        self.token_provider = SessionTokenProvider(
            self.transport, token_cache or TokenCache(), wait=wait
        )
        self.strategies: List[IFetchStrategy] = list(
            strategies
            or (
                DirectCredentialStrategy(self.transport, wait=wait),
                TokenRoutineStrategy(self.transport, self.token_provider, wait=wait),
            )
        )

    async def call_function(
        self,
        connection: GpsBuddyConnection,
        function_name: str,
        arguments: Dict[str, Any],
    ) -> Any:
        """Run the strategies in order and return the first successful payload."""
        last_error: Optional[Exception] = None
        for strategy in self.strategies:
            outcome = await strategy.attempt(connection, function_name, arguments)
            if outcome.ok:
                return outcome.payload
            last_error = outcome.error
            logger.info(
                f"Strategy {strategy.name} failed for {function_name}"
                f"{' (auth rejected)' if outcome.auth_rejected else ''}: {last_error}"
            )
        raise last_error or GpsBuddyException(
            f"GPSBuddy request failed: {function_name}"
        )

    async def fetch_live_vehicles(
        self, connection: GpsBuddyConnection
    ) -> LiveFetchResult:
        candidates = live_function_candidates(connection)
        last_error: Optional[Exception] = None

        for function_name in candidates:
            try:
                payload = await self.call_function(
                    connection,
                    function_name,
                    live_function_arguments(connection, function_name),
                )

                error = api_error(payload)
                if error is not None:
                    raise GpsBuddyApiException(function_name, describe_api_error(error))

                rows = extract_vehicle_array(payload)
                if rows is None:
                    raise GpsBuddyResponseShapeException(
                        function_name, summarize_response(payload)
                    )
            except GpsBuddyException as e:
                logger.warning(f"GPSBuddy function {function_name} failed: {e}")
                last_error = e
                continue

            vehicles = normalize_vehicles(rows)
            logger.info(
                f"GPSBuddy success with function {function_name}, "
                f"vehicles: {len(vehicles)} (raw rows: {len(rows)})"
            )
            return LiveFetchResult(
                vehicles=vehicles,
                meta=FetchMeta(
                    function_name=function_name,
                    fetched_at=datetime.now(timezone.utc),
                ),
            )

        raise GpsBuddyFetchException(candidates, last_error) from last_error
