"""
Message database model.
"""
from sqlalchemy import Boolean, Column, Integer, String, Text, Index

from chatsync.core.database import Base
from chatsync.models.types import UTCDateTime
from chatsync.schemas.message import Message


class MessageRecord(Base):
    """Append-only message log row."""

    __tablename__ = "messages"

    # Insertion sequence, breaks created_at ties when ordering
    seq = Column(Integer, primary_key=True, autoincrement=True)

    id = Column(String(32), unique=True, nullable=False)

    # 'app' or 'sms'; conversation_id holds the external ref form
    channel = Column(String(8), nullable=False)
    conversation_id = Column(String(300), nullable=False)

    # Identity or E.164 number on either side
    sender = Column(String(128), nullable=False)
    receiver = Column(String(128), nullable=False)

    content = Column(Text, nullable=False, default="")
    type = Column(String(16), nullable=False, default="text")
    media_ref = Column(String(2048), nullable=True)

    # Provider id for inbound SMS, unique for idempotent ingestion
    external_id = Column(String(255), unique=True, nullable=True)

    is_read = Column(Boolean, nullable=False, default=False)

    created_at = Column(UTCDateTime, nullable=False)
    updated_at = Column(UTCDateTime, nullable=False)

    __table_args__ = (
        Index("ix_messages_conversation_created", "conversation_id", "created_at", "seq"),
        Index("ix_messages_unread", "conversation_id", "receiver", "is_read"),
    )

    def __repr__(self) -> str:
        return f"<MessageRecord(id={self.id}, conversation_id={self.conversation_id})>"

    def to_domain(self) -> Message:
        return Message.model_validate(self)
