import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import websockets
from tenacity import retry, stop_after_attempt, wait_fixed

from src.fleet_gps.notifications.models import ChannelMessage

logger = logging.getLogger(__name__)


class INotificationSink(ABC):
    @abstractmethod
    async def send_channel_message(
        self, channel: str, text: str, metadata: Dict[str, Any]
    ) -> Optional[str]:
        pass


class WebSocketNotificationSink(INotificationSink):
    def __init__(
        self,
        host: str,
        port: int,
        open_timeout_seconds: float = 5,
        ack_timeout_seconds: float = 10,
    ):
        self.url = f"ws://{host}:{port}"
        self.open_timeout_seconds = open_timeout_seconds
        self.ack_timeout_seconds = ack_timeout_seconds

    @retry(stop=stop_after_attempt(3), wait=wait_fixed(2), reraise=True)
    async def send_channel_message(
        self, channel: str, text: str, metadata: Dict[str, Any]
    ) -> Optional[str]:
        """
        Send a ChannelMessage to the alerting system via WebSocket.
        """
        message = ChannelMessage(
            channel=channel,
            text=text,
            metadata=metadata,
            sent_at=datetime.now(timezone.utc),
        )
        try:
            async with websockets.connect(
                self.url, open_timeout=self.open_timeout_seconds
            ) as websocket:
                await websocket.send(message.model_dump_json())
                logger.info(f"Sent channel message to WebSocket: {channel}")

                # Wait for acknowledgement from alerting container
                response = await asyncio.wait_for(
                    websocket.recv(), timeout=self.ack_timeout_seconds
                )
                if isinstance(response, bytes):
                    response = response.decode("utf-8")
                logger.info(f"Received response from alerting container: {response}")

                return response
        except Exception as e:
            logger.error(f"Failed to send channel message to {self.url}: {e!r}")
            raise
