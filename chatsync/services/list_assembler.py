"""
Merged, time-ordered conversation list for one user.
"""
from typing import List, Optional

from chatsync.core.logging import get_logger
from chatsync.schemas.conversation import (
    AppConversation,
    Channel,
    SmsConversation,
    UnifiedConversation,
)
from chatsync.stores.base import ConversationStore

logger = get_logger(__name__)


def other_participant(conversation: AppConversation, identity: str) -> Optional[str]:
    """The participant that is not ``identity``; None when the row is corrupt."""
    first, second = conversation.participants
    if first == second or identity not in (first, second):
        return None
    return second if first == identity else first


class ConversationListAssembler:

    def __init__(self, store: ConversationStore):
        self._store = store

    def list_for_user(self, identity: str) -> List[UnifiedConversation]:
        """Snapshot of every conversation ``identity`` takes part in, newest first."""
        entries: List[UnifiedConversation] = []

        for conversation in self._store.list_app_conversations(identity):
            other = other_participant(conversation, identity)
            if other is None:
                logger.error(
                    "Skipping corrupt app conversation",
                    extra={"extra_data": {"conversation_id": conversation.id, "identity": identity}}
                )
                continue
            entries.append(self._from_app(conversation, other))

        for conversation in self._store.list_sms_conversations(identity):
            entries.append(self._from_sms(conversation))

        entries.sort(key=lambda entry: entry.id)
        entries.sort(key=lambda entry: entry.last_message_time, reverse=True)
        return entries

    @staticmethod
    def _from_app(conversation: AppConversation, other: str) -> UnifiedConversation:
        return UnifiedConversation(
            id=conversation.id,
            channel=Channel.APP,
            other_identity=other,
            last_message=conversation.last_message,
            last_message_time=conversation.last_message_time,
            last_message_sender=conversation.last_message_sender,
        )

    @staticmethod
    def _from_sms(conversation: SmsConversation) -> UnifiedConversation:
        return UnifiedConversation(
            id=str(conversation.ref),
            channel=Channel.SMS,
            other_identity=conversation.phone_descriptor,
            contact_name=conversation.contact_name,
            last_message=conversation.last_message,
            last_message_time=conversation.last_message_time,
        )
