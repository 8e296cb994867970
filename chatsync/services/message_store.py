"""
Append-only message log with summary maintenance.
"""
import uuid
from typing import List, Optional

from chatsync.core import metrics
from chatsync.core.errors import DuplicateKey, DuplicateMessage, InvalidMessage
from chatsync.core.logging import get_logger
from chatsync.models.types import utcnow
from chatsync.schemas.conversation import APP_ID_DELIMITER, Channel, ConversationRef, ConversationSummary
from chatsync.schemas.message import E164_PATTERN, Message, MessageType
from chatsync.services.fanout import RealtimeFanout
from chatsync.services.registry import ConversationRegistry
from chatsync.stores.base import ConversationStore

logger = get_logger(__name__)


class MessageStore:

    def __init__(self, store: ConversationStore, registry: ConversationRegistry, fanout: RealtimeFanout):
        self._store = store
        self._registry = registry
        self._fanout = fanout

    def append(
        self,
        ref: ConversationRef,
        sender: str,
        receiver: str,
        content: str,
        type: MessageType = MessageType.TEXT,
        media_ref: Optional[str] = None,
        external_id: Optional[str] = None,
    ) -> Message:
        """Append a message to an existing conversation.

        The message insert and the summary overwrite commit together, then
        conversation subscribers get the message and every affected party
        gets a list-changed signal.

        Raises:
            InvalidMessage: content and media_ref are both empty
            ConversationNotFound: ``ref`` was never resolved
            DuplicateMessage: ``external_id`` was already ingested
        """
        content = content or ""
        if not content and not media_ref:
            raise InvalidMessage("message needs content or a media reference")
        try:
            type = MessageType(type)
        except ValueError:
            raise InvalidMessage(f"unknown message type: {type!r}")

        now = utcnow()
        message = Message(
            id=uuid.uuid4().hex,
            channel=ref.channel,
            conversation_id=str(ref),
            sender=sender,
            receiver=receiver,
            content=content,
            type=type,
            media_ref=media_ref or None,
            external_id=external_id,
            is_read=False,
            created_at=now,
            updated_at=now,
        )
        summary = ConversationSummary(
            last_message=content,
            last_message_time=now,
            last_message_sender=sender,
        )

        try:
            stored = self._store.append_message(ref, message, summary)
        except DuplicateKey:
            raise DuplicateMessage(f"message {external_id} already ingested")

        metrics.increment("chatsync_messages_total", channel=ref.channel.value)
        logger.info(
            "Message appended",
            extra={
                "extra_data": {
                    "message_id": stored.id,
                    "conversation_id": stored.conversation_id,
                    "type": stored.type.value,
                }
            }
        )

        self._fanout.publish_message(ref, stored)
        self._fanout.publish_list_changed(list_audience(ref, sender, receiver), now)
        return stored

    def list_messages(self, ref: ConversationRef) -> List[Message]:
        self._registry.get_conversation(ref)
        return self._store.list_messages(ref)


def list_audience(ref: ConversationRef, sender: str, receiver: str) -> List[str]:
    """Identities whose conversation list changes when a message lands in ``ref``.

    Worked out from the ref and the message alone; the write has committed
    by the time this runs and must not fail on a second read.
    """
    if ref.channel is Channel.APP:
        return ref.id.split(APP_ID_DELIMITER)
    # The owner is whichever side is not the phone number
    return [party for party in (sender, receiver) if not E164_PATTERN.match(party)]
