"""
Pydantic schemas for messages and request/response validation.
"""
import re
from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from chatsync.schemas.conversation import Channel


# E.164 phone number regex pattern
E164_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")


class MessageType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"
    LOCATION = "location"


class Message(BaseModel):
    """A single entry of a conversation's append-only log."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    channel: Channel
    conversation_id: str
    sender: str
    receiver: str
    content: str = ""
    type: MessageType = MessageType.TEXT
    media_ref: Optional[str] = None
    external_id: Optional[str] = None
    is_read: bool = False
    created_at: datetime
    updated_at: datetime


class MessageEvent(BaseModel):
    """Pushed to conversation subscribers for every appended message."""

    kind: Literal["message_created"] = "message_created"
    message: Message


class SendMessageRequest(BaseModel):
    """Request schema for POST /messages."""

    recipient: str = Field(
        ...,
        min_length=1,
        max_length=128,
        description="App identity or E.164 phone number"
    )
    content: str = Field(default="", max_length=4096)
    type: MessageType = Field(default=MessageType.TEXT)
    media_ref: Optional[str] = Field(
        default=None,
        max_length=2048,
        description="Opaque reference returned by object storage"
    )
    contact_name: Optional[str] = Field(
        default=None,
        max_length=255,
        description="Label for a new SMS conversation"
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "recipient": "+15551234567",
                "content": "Hello",
                "type": "text",
            }
        }
    }


class MessagesListResponse(BaseModel):
    """Response schema for GET /conversations/{ref}/messages."""
    data: List[Message]
    total: int


class InboundSmsRequest(BaseModel):
    """Request schema for POST /webhook/sms."""

    message_id: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Provider message identifier"
    )
    from_: str = Field(
        ...,
        alias="from",
        description="Sender phone number in E.164 format"
    )
    to: str = Field(
        ...,
        min_length=1,
        max_length=128,
        description="Identity owning the SMS conversation"
    )
    text: str = Field(
        ...,
        min_length=1,
        max_length=4096,
        description="Message text content"
    )

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "example": {
                "message_id": "m1",
                "from": "+15551234567",
                "to": "alice",
                "text": "Hello"
            }
        }
    }

    @field_validator("from_", mode="before")
    @classmethod
    def validate_from_e164(cls, v: str) -> str:
        """Validate sender phone number is E.164 format."""
        if not v or not E164_PATTERN.match(v):
            raise ValueError("Invalid E.164 phone number format. Must start with + followed by digits only.")
        return v


class WebhookResponse(BaseModel):
    """Response schema for POST /webhook/sms."""
    status: str = Field(default="ok")


class HealthResponse(BaseModel):
    """Response schema for health endpoints."""
    status: str
    checks: Optional[dict] = None


class ErrorResponse(BaseModel):
    """Standard error response schema."""
    detail: str
