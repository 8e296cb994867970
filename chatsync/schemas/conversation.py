"""
Conversation types shared by the store, the services and the API.
"""
from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

# Canonical app ids join the sorted participants with this delimiter.
# Valid identities never contain it.
APP_ID_DELIMITER = "_"
SMS_REF_PREFIX = "sms_"


class Channel(str, Enum):
    APP = "app"
    SMS = "sms"


class ConversationRef(BaseModel):
    """Channel-tagged pointer to a conversation of either family."""

    model_config = ConfigDict(frozen=True)

    channel: Channel
    id: str

    @classmethod
    def app(cls, conversation_id: str) -> "ConversationRef":
        return cls(channel=Channel.APP, id=conversation_id)

    @classmethod
    def sms(cls, conversation_id: str) -> "ConversationRef":
        return cls(channel=Channel.SMS, id=conversation_id)

    @classmethod
    def parse(cls, value: str) -> "ConversationRef":
        """Parse the external form: ``sms_<id>`` or a bare app id."""
        if value.startswith(SMS_REF_PREFIX):
            return cls.sms(value[len(SMS_REF_PREFIX):])
        return cls.app(value)

    def __str__(self) -> str:
        if self.channel is Channel.SMS:
            return f"{SMS_REF_PREFIX}{self.id}"
        return self.id


def canonical_app_id(a: str, b: str) -> str:
    """Order-independent id for the conversation between ``a`` and ``b``."""
    return APP_ID_DELIMITER.join(sorted((a, b)))


class AppConversation(BaseModel):
    """In-app conversation between exactly two identities."""

    model_config = ConfigDict(from_attributes=True)

    channel: Literal[Channel.APP] = Channel.APP
    id: str
    participants: Tuple[str, str]
    last_message: Optional[str] = None
    last_message_time: datetime
    last_message_sender: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @property
    def ref(self) -> ConversationRef:
        return ConversationRef.app(self.id)

    def has_participant(self, identity: str) -> bool:
        return identity in self.participants


class SmsConversation(BaseModel):
    """SMS-fallback conversation between an owner and an external number."""

    model_config = ConfigDict(from_attributes=True)

    channel: Literal[Channel.SMS] = Channel.SMS
    id: str
    owner_identity: str
    phone_descriptor: str
    contact_name: str
    last_message: Optional[str] = None
    last_message_time: datetime
    created_at: datetime
    updated_at: datetime

    @property
    def ref(self) -> ConversationRef:
        return ConversationRef.sms(self.id)


Conversation = Union[AppConversation, SmsConversation]


class ConversationSummary(BaseModel):
    """Snapshot of the newest message, written over a conversation's summary."""

    last_message: str
    last_message_time: datetime
    last_message_sender: str


class UnifiedConversation(BaseModel):
    """One row of a user's merged conversation list."""

    id: str
    channel: Channel
    other_identity: str
    contact_name: Optional[str] = None
    last_message: Optional[str] = None
    last_message_time: datetime
    last_message_sender: Optional[str] = None


class ConversationListResponse(BaseModel):
    """Response schema for GET /conversations."""
    data: List[UnifiedConversation]
    total: int


class ConversationListChanged(BaseModel):
    """Invalidation signal: the receiver should refetch its conversation list."""

    kind: Literal["conversations_changed"] = "conversations_changed"
    identity: str
    at: datetime = Field(description="Time the committing write was observed")


class ReadResponse(BaseModel):
    """Response schema for POST /conversations/{ref}/read."""
    conversation_id: str
    marked_read: int
