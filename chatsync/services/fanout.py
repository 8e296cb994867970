"""
Realtime fan-out of message events and conversation-list signals.
"""
from datetime import datetime
from typing import Callable, Iterable

from pydantic import BaseModel

from chatsync.core.logging import get_logger
from chatsync.models.types import utcnow
from chatsync.schemas.conversation import ConversationListChanged, ConversationRef
from chatsync.schemas.message import Message, MessageEvent
from chatsync.services.pubsub import PubSub, SubscriptionHandle

logger = get_logger(__name__)


def conversation_topic(ref: ConversationRef) -> str:
    return f"conversation:{ref}"


def user_topic(identity: str) -> str:
    return f"user:{identity}"


class RealtimeFanout:
    """Maps conversation and user subjects onto pub/sub topics.

    Conversation subscribers receive the full message; user subscribers
    receive only a signal to refetch their conversation list, so a missed
    signal heals on the next fetch.
    """

    def __init__(self, pubsub: PubSub):
        self._pubsub = pubsub

    def subscribe_to_conversation(
        self, ref: ConversationRef, handler: Callable[[MessageEvent], None]
    ) -> SubscriptionHandle:
        def deliver(payload: bytes) -> None:
            handler(MessageEvent.model_validate_json(payload))

        return self._pubsub.subscribe(conversation_topic(ref), deliver)

    def subscribe_to_user_conversations(
        self, identity: str, handler: Callable[[ConversationListChanged], None]
    ) -> SubscriptionHandle:
        def deliver(payload: bytes) -> None:
            handler(ConversationListChanged.model_validate_json(payload))

        return self._pubsub.subscribe(user_topic(identity), deliver)

    def unsubscribe(self, handle: SubscriptionHandle) -> bool:
        return self._pubsub.unsubscribe(handle)

    def publish(self, topic: str, event: BaseModel) -> int:
        """Push ``event`` to ``topic``. Called only after the write it reports committed."""
        try:
            return self._pubsub.publish(topic, event.model_dump_json().encode("utf-8"))
        except Exception:
            # The write already committed; a lost event heals on the next fetch
            logger.exception("Realtime publish failed", extra={"extra_data": {"topic": topic}})
            return 0

    def publish_message(self, ref: ConversationRef, message: Message) -> int:
        return self.publish(conversation_topic(ref), MessageEvent(message=message))

    def publish_list_changed(self, identities: Iterable[str], at: datetime = None) -> None:
        at = at or utcnow()
        for identity in sorted(set(identities)):
            self.publish(user_topic(identity), ConversationListChanged(identity=identity, at=at))
