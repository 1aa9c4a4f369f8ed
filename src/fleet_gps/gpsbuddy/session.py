import logging
from typing import Any

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
)
from tenacity.wait import wait_base

from src.fleet_gps.gpsbuddy.exceptions import GpsBuddyException, GpsBuddyTokenException
from src.fleet_gps.gpsbuddy.parsers import extract_token, summarize_response
from src.fleet_gps.gpsbuddy.schemas import GpsBuddyConnection
from src.fleet_gps.gpsbuddy.token_cache import TokenCache
from src.fleet_gps.gpsbuddy.transport import (
    LINEAR_BACKOFF,
    MAX_ATTEMPTS,
    GpsBuddyTransport,
)

logger = logging.getLogger(__name__)

INITIALIZE_SESSION_PATH = "Service/InitializeSession"
INITIALIZE_SESSION_TIMEOUT = 10
# The docs ask for xml; some deployments only answer json
RETURN_TYPES = ("xml", "json")


class SessionTokenProvider:
    def __init__(
        self,
        transport: GpsBuddyTransport,
        cache: TokenCache,
        wait: wait_base = LINEAR_BACKOFF,
    ):
        self.transport = transport
        self.cache = cache
        self.wait = wait

    async def ensure_token(self, connection: GpsBuddyConnection) -> str:
        return await self.cache.get_or_acquire(lambda: self.acquire(connection))

    def invalidate(self) -> None:
        self.cache.invalidate()

    async def acquire(self, connection: GpsBuddyConnection) -> str:
        """Call InitializeSession until a token can be extracted."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(MAX_ATTEMPTS),
            wait=self.wait,
            retry=retry_if_exception_type(GpsBuddyException),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                return await self._initialize_session(connection)
        raise GpsBuddyTokenException("no attempt made")

    async def _initialize_session(self, connection: GpsBuddyConnection) -> str:
        url = connection.url(INITIALIZE_SESSION_PATH)
        data: Any = None
        for return_type in RETURN_TYPES:
            params = {
                "login": connection.username,
                "password": connection.password,
                "isToken": 0,
                "timeout": 25,
                "returnType": return_type,
            }
            data = await self.transport.get_payload(
                url, params, INITIALIZE_SESSION_TIMEOUT
            )
            token = extract_token(data)
            if token:
                return token

        summary = summarize_response(data)
        logger.error(f"InitializeSession returned no token: {summary}")
        raise GpsBuddyTokenException(summary)
