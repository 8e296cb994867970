"""
Conversation database models.
"""
from sqlalchemy import Column, String, Text, Index, UniqueConstraint, CheckConstraint

from chatsync.core.database import Base
from chatsync.models.types import UTCDateTime
from chatsync.schemas.conversation import AppConversation, SmsConversation


class AppConversationRecord(Base):
    """In-app conversation row; the primary key is the canonical pair id."""

    __tablename__ = "app_conversations"

    id = Column(String(300), primary_key=True, nullable=False)

    # Participants are stored sorted so participant_a <= participant_b
    participant_a = Column(String(128), nullable=False, index=True)
    participant_b = Column(String(128), nullable=False, index=True)

    # Summary of the newest message, overwritten on every append
    last_message = Column(Text, nullable=True)
    last_message_time = Column(UTCDateTime, nullable=False, index=True)
    last_message_sender = Column(String(128), nullable=True)

    created_at = Column(UTCDateTime, nullable=False)
    updated_at = Column(UTCDateTime, nullable=False)

    __table_args__ = (
        CheckConstraint("participant_a <> participant_b", name="ck_app_conversations_distinct"),
    )

    def __repr__(self) -> str:
        return f"<AppConversationRecord(id={self.id})>"

    def to_domain(self) -> AppConversation:
        return AppConversation(
            id=self.id,
            participants=(self.participant_a, self.participant_b),
            last_message=self.last_message,
            last_message_time=self.last_message_time,
            last_message_sender=self.last_message_sender,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class SmsConversationRecord(Base):
    """SMS-fallback conversation row, unique per (owner, phone number)."""

    __tablename__ = "sms_conversations"

    id = Column(String(32), primary_key=True, nullable=False)

    owner_identity = Column(String(128), nullable=False, index=True)
    phone_descriptor = Column(String(20), nullable=False)  # E.164
    contact_name = Column(String(255), nullable=False)

    last_message = Column(Text, nullable=True)
    last_message_time = Column(UTCDateTime, nullable=False)

    created_at = Column(UTCDateTime, nullable=False)
    updated_at = Column(UTCDateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("owner_identity", "phone_descriptor", name="uq_sms_conversations_owner_phone"),
        Index("ix_sms_conversations_owner_time", "owner_identity", "last_message_time"),
    )

    def __repr__(self) -> str:
        return f"<SmsConversationRecord(id={self.id}, owner={self.owner_identity})>"

    def to_domain(self) -> SmsConversation:
        return SmsConversation.model_validate(self)
