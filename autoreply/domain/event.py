"""
Incoming channel event envelope carried on the work queue.
"""

import json
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, ValidationError


class EventType(str, Enum):
    """Kinds of inbound channel events."""
    MESSAGE = "message"
    COMMENT = "comment"
    MENTION = "mention"


class ChannelType(str, Enum):
    """Supported messaging channels."""
    INSTAGRAM = "instagram"
    KAKAO = "kakao"
    NAVER = "naver"


class MalformedEventError(ValueError):
    """Raised when a queue payload cannot be decoded into an IncomingEvent."""


class IncomingEvent(BaseModel):
    """Schema for the `data` object of a queue envelope."""
    id: Optional[str] = None
    type: EventType
    channel: ChannelType
    user_id: int = Field(..., alias="userId")
    channel_id: int = Field(..., alias="channelId")
    sender_id: str = Field(..., min_length=1, alias="senderId")
    sender_name: Optional[str] = Field(None, alias="senderName")
    recipient_id: Optional[str] = Field(None, alias="recipientId")
    message_id: Optional[str] = Field(None, alias="messageId")
    text: str
    timestamp: Optional[int] = None  # epoch millis at ingestion
    is_test: bool = Field(False, alias="isTest")
    retry_count: int = Field(0, ge=0, alias="retryCount")
    retry_at: Optional[str] = Field(None, alias="retryAt")

    class Config:
        populate_by_name = True
        use_enum_values = True

    def to_payload(self) -> str:
        """Serialize as the JSON envelope pushed onto the queue."""
        return json.dumps(
            {"data": self.model_dump(by_alias=True)},
            ensure_ascii=False,
        )


def decode_envelope(payload: str) -> IncomingEvent:
    """
    Decode a raw queue payload.

    Args:
        payload: JSON string of the form {"data": {...}}

    Returns:
        The decoded IncomingEvent

    Raises:
        MalformedEventError: If the payload is not JSON, has no `data`
            object, or is missing required fields.
    """
    try:
        root = json.loads(payload)
    except (TypeError, json.JSONDecodeError) as e:
        raise MalformedEventError(f"Payload is not valid JSON: {e}") from e

    data = root.get("data") if isinstance(root, dict) else None
    if not isinstance(data, dict):
        raise MalformedEventError("Payload is missing the data object")

    try:
        return IncomingEvent.model_validate(data)
    except ValidationError as e:
        raise MalformedEventError(f"Invalid event data: {e.error_count()} error(s)") from e
