import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

from tenacity.wait import wait_base

from src.fleet_gps.gpsbuddy.exceptions import (
    GpsBuddyAuthException,
    GpsBuddyException,
)
from src.fleet_gps.gpsbuddy.parsers import (
    api_error,
    build_routine_xml,
    describe_api_error,
    is_auth_error,
)
from src.fleet_gps.gpsbuddy.schemas import GpsBuddyConnection
from src.fleet_gps.gpsbuddy.session import SessionTokenProvider
from src.fleet_gps.gpsbuddy.transport import (
    LINEAR_BACKOFF,
    GpsBuddyTransport,
    get_with_retry,
)

logger = logging.getLogger(__name__)

EXECUTE_RETURN_SET_PATH = "Service/ExecuteReturnSet"


@dataclass
class StrategyOutcome:
    payload: Any = None
    error: Optional[Exception] = None
    auth_rejected: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


class IFetchStrategy(ABC):
    name: str = "strategy"

    @abstractmethod
    async def attempt(
        self,
        connection: GpsBuddyConnection,
        function_name: str,
        arguments: Dict[str, Any],
    ) -> StrategyOutcome:
        """Run one auth strategy with its own retry budget"""
        pass


def _rejected(function_name: str, payload: Any) -> StrategyOutcome:
    error = api_error(payload) or {}
    return StrategyOutcome(
        payload=payload,
        error=GpsBuddyAuthException(function_name, describe_api_error(error)),
        auth_rejected=True,
    )


class DirectCredentialStrategy(IFetchStrategy):
    """Login and password on every call, against the function's own URL."""

    name = "direct"
    timeout_seconds = 15

    def __init__(self, transport: GpsBuddyTransport, wait: wait_base = LINEAR_BACKOFF):
        self.transport = transport
        self.wait = wait

    async def attempt(
        self,
        connection: GpsBuddyConnection,
        function_name: str,
        arguments: Dict[str, Any],
    ) -> StrategyOutcome:
        params = {
            "login": connection.username,
            "password": connection.password,
            "returnType": "json",
            "timeout": 25,
            **arguments,
        }
        try:
            payload = await get_with_retry(
                self.transport,
                connection.url(function_name),
                params,
                self.timeout_seconds,
                wait=self.wait,
            )
        except GpsBuddyException as e:
            return StrategyOutcome(error=e)

        # Not a transient failure: leave the retry budget alone and fall through
        if is_auth_error(payload):
            logger.warning(f"Direct login rejected for {function_name}")
            return _rejected(function_name, payload)
        return StrategyOutcome(payload=payload)


class TokenRoutineStrategy(IFetchStrategy):
    """Session token plus an XML routine sent to ExecuteReturnSet."""

    name = "token"
    timeout_seconds = 20

    def __init__(
        self,
        transport: GpsBuddyTransport,
        token_provider: SessionTokenProvider,
        wait: wait_base = LINEAR_BACKOFF,
    ):
        self.transport = transport
        self.token_provider = token_provider
        self.wait = wait

    async def attempt(
        self,
        connection: GpsBuddyConnection,
        function_name: str,
        arguments: Dict[str, Any],
    ) -> StrategyOutcome:
        try:
            token = await self.token_provider.ensure_token(connection)
            payload = await get_with_retry(
                self.transport,
                connection.url(EXECUTE_RETURN_SET_PATH),
                {"value": build_routine_xml(function_name, arguments), "token": token},
                self.timeout_seconds,
                wait=self.wait,
            )
        except GpsBuddyException as e:
            return StrategyOutcome(error=e)

        if is_auth_error(payload):
            logger.warning(f"Session token rejected for {function_name}")
            self.token_provider.invalidate()
            return _rejected(function_name, payload)
        return StrategyOutcome(payload=payload)
