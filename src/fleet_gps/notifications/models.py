from datetime import datetime
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field


class ChannelMessage(BaseModel):
    """Schema for channel messages sent to the alerting system"""

    channel: str
    text: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    sent_at: datetime

    model_config = ConfigDict(from_attributes=True)
