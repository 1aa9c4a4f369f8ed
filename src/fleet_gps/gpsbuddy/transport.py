import asyncio
import logging
from typing import Any, Dict

import aiohttp
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)
from tenacity.wait import wait_base

from src.fleet_gps.gpsbuddy.exceptions import (
    GpsBuddyHTTPException,
    GpsBuddyTransportException,
)
from src.fleet_gps.gpsbuddy.parsers import parse_body, summarize_response

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
# 250ms x attempt number
LINEAR_BACKOFF = wait_incrementing(start=0.25, increment=0.25)


def _query_params(params: Dict[str, Any]) -> Dict[str, str]:
    # aiohttp only accepts str/int/float query values
    return {key: str(value) for key, value in params.items() if value is not None}


class GpsBuddyTransport:
    """Single GET against the upstream, decoded as JSON when possible."""

    async def get_payload(
        self, url: str, params: Dict[str, Any], timeout_seconds: float
    ) -> Any:
        timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url, params=_query_params(params)) as response:
                    body = await response.text(errors="replace")
                    if response.status < 200 or response.status >= 300:
                        logger.warning(
                            f"GPSBuddy {url} answered {response.status}: "
                            f"{summarize_response(body)}"
                        )
                        raise GpsBuddyHTTPException(
                            url, response.status, summarize_response(body)
                        )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"GPSBuddy request to {url} failed: {e!r}")
            raise GpsBuddyTransportException(url, repr(e)) from e
        return parse_body(body)


async def get_with_retry(
    transport: GpsBuddyTransport,
    url: str,
    params: Dict[str, Any],
    timeout_seconds: float,
    wait: wait_base = LINEAR_BACKOFF,
    attempts: int = MAX_ATTEMPTS,
) -> Any:
    """GET with a bounded retry budget for transient failures only."""
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait,
        retry=retry_if_exception_type(GpsBuddyTransportException),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    ):
        with attempt:
            return await transport.get_payload(url, params, timeout_seconds)
    raise GpsBuddyTransportException(url, "no attempt made")
