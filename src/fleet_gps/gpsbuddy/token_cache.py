import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

# GPSBuddy doesn't declare a token lifetime; stay well below the server's
TOKEN_TTL_SECONDS = 20 * 60
TOKEN_REFRESH_MARGIN_SECONDS = 60


class TokenCache:
    """
    Process-scoped holder for the GPSBuddy session token.

    Acquisition is single-flight: the first caller that finds the cache stale
    fetches a new token while concurrent callers wait on the same lock and
    reuse the result.
    """

    def __init__(
        self,
        ttl_seconds: float = TOKEN_TTL_SECONDS,
        refresh_margin_seconds: float = TOKEN_REFRESH_MARGIN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.refresh_margin_seconds = refresh_margin_seconds
        self._clock = clock
        self._token: Optional[str] = None
        self._expires_at: float = 0.0
        self._lock = asyncio.Lock()

    @property
    def token(self) -> Optional[str]:
        return self._token

    def is_valid(self) -> bool:
        return (
            self._token is not None
            and self._expires_at - self._clock() > self.refresh_margin_seconds
        )

    def store(self, token: str) -> None:
        self._token = token
        self._expires_at = self._clock() + self.ttl_seconds

    def invalidate(self) -> None:
        if self._token is not None:
            logger.info("Invalidating cached GPSBuddy session token")
        self._token = None
        self._expires_at = 0.0

    async def get_or_acquire(self, acquire: Callable[[], Awaitable[str]]) -> str:
        if self.is_valid():
            return self._token  # type: ignore[return-value]

        async with self._lock:
            # Another caller may have refreshed while we waited
            if self.is_valid():
                return self._token  # type: ignore[return-value]
            token = await acquire()
            self.store(token)
            logger.info("Acquired new GPSBuddy session token")
            return token
