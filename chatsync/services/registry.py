"""
Get-or-create resolution for app and SMS conversations.
"""
from typing import Optional

from chatsync.core import metrics
from chatsync.core.errors import ConversationNotFound, DuplicateKey, InvalidRecipient, StorageUnavailable
from chatsync.core.logging import get_logger
from chatsync.models.types import utcnow
from chatsync.schemas.conversation import (
    AppConversation,
    Channel,
    Conversation,
    ConversationRef,
    SmsConversation,
    canonical_app_id,
)
from chatsync.services.channel_router import validate_identity
from chatsync.services.fanout import RealtimeFanout
from chatsync.stores.base import ConversationStore

logger = get_logger(__name__)


class ConversationRegistry:

    def __init__(self, store: ConversationStore, fanout: RealtimeFanout):
        self._store = store
        self._fanout = fanout

    def resolve_app_conversation(self, a: str, b: str) -> AppConversation:
        """Return the single conversation between ``a`` and ``b``, creating it if needed.

        The canonical id makes concurrent callers converge on one row; the
        store's conditional insert closes the race.
        """
        validate_identity(a)
        validate_identity(b)
        if a == b:
            raise InvalidRecipient("cannot open a conversation with yourself")

        conversation_id = canonical_app_id(a, b)
        conversation, created = self._store.insert_app_conversation_if_absent(
            conversation_id, (a, b), utcnow()
        )
        if created:
            metrics.increment("chatsync_conversations_created_total", channel=Channel.APP.value)
            logger.info(
                "App conversation created",
                extra={"extra_data": {"conversation_id": conversation_id}}
            )
            self._fanout.publish_list_changed(conversation.participants, conversation.created_at)
        return conversation

    def resolve_sms_conversation(
        self, owner: str, phone: str, contact_name: Optional[str] = None
    ) -> SmsConversation:
        """Return the owner's conversation with ``phone``, creating it on first use.

        Lookup then insert is not atomic. When two callers both miss, the
        store's unique (owner, phone) constraint rejects the loser, which
        re-fetches the winner's row instead of failing.
        """
        existing = self._store.find_sms_conversation(owner, phone)
        if existing is not None:
            return existing

        try:
            conversation = self._store.insert_sms_conversation(
                owner, phone, contact_name or phone, utcnow()
            )
        except DuplicateKey:
            metrics.increment("chatsync_sms_conflicts_total")
            logger.info(
                "SMS conversation created concurrently, re-fetching",
                extra={"extra_data": {"owner": owner, "phone": phone}}
            )
            winner = self._store.find_sms_conversation(owner, phone)
            if winner is None:
                raise StorageUnavailable("sms conversation vanished after uniqueness conflict")
            return winner

        metrics.increment("chatsync_conversations_created_total", channel=Channel.SMS.value)
        logger.info(
            "SMS conversation created",
            extra={"extra_data": {"conversation_id": conversation.id, "owner": owner}}
        )
        self._fanout.publish_list_changed([owner], conversation.created_at)
        return conversation

    def get_conversation(self, ref: ConversationRef) -> Conversation:
        if ref.channel is Channel.APP:
            conversation = self._store.get_app_conversation(ref.id)
        else:
            conversation = self._store.get_sms_conversation(ref.id)
        if conversation is None:
            raise ConversationNotFound(f"conversation {ref} does not exist")
        return conversation
