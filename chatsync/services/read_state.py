"""
Per-recipient read tracking.
"""
from chatsync.core import metrics
from chatsync.core.errors import Unauthorized
from chatsync.core.logging import get_logger
from chatsync.models.types import utcnow
from chatsync.schemas.conversation import AppConversation, Conversation, ConversationRef
from chatsync.services.fanout import RealtimeFanout
from chatsync.services.registry import ConversationRegistry
from chatsync.stores.base import ConversationStore

logger = get_logger(__name__)


class ReadStateTracker:

    def __init__(self, store: ConversationStore, registry: ConversationRegistry, fanout: RealtimeFanout):
        self._store = store
        self._registry = registry
        self._fanout = fanout

    def authorize(self, ref: ConversationRef, identity: str) -> Conversation:
        """Return the conversation if ``identity`` may read it, else raise Unauthorized."""
        conversation = self._registry.get_conversation(ref)
        if isinstance(conversation, AppConversation):
            allowed = conversation.has_participant(identity)
        else:
            allowed = conversation.owner_identity == identity
        if not allowed:
            raise Unauthorized(f"{identity} is not a member of conversation {ref}")
        return conversation

    def mark_read(self, ref: ConversationRef, reader: str) -> int:
        """Mark every unread message addressed to ``reader`` as read.

        One bulk update; a repeat call with no new messages returns 0.
        """
        self.authorize(ref, reader)
        now = utcnow()
        count = self._store.mark_read(ref, reader, now)
        if count:
            metrics.increment("chatsync_messages_marked_read_total", count)
            self._fanout.publish_list_changed([reader], now)
        logger.debug(
            "Messages marked read",
            extra={"extra_data": {"conversation_id": str(ref), "reader": reader, "count": count}}
        )
        return count
