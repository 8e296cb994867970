"""
Messaging facade used by the API layer.

Wires the router, registry, message log, read tracker, list assembler and
fan-out together around one injected store and one pub/sub transport.
"""
import uuid
from typing import Callable, List, Optional

from chatsync.core.errors import ContactExists, DuplicateKey, InvalidMessage, InvalidRecipient
from chatsync.core.logging import get_logger
from chatsync.models.types import utcnow
from chatsync.schemas.contact import Contact
from chatsync.schemas.conversation import ConversationListChanged, ConversationRef, UnifiedConversation
from chatsync.schemas.message import Message, MessageEvent, MessageType
from chatsync.services.channel_router import AppChannel, SmsChannel, classify, validate_identity
from chatsync.services.fanout import RealtimeFanout
from chatsync.services.list_assembler import ConversationListAssembler
from chatsync.services.message_store import MessageStore
from chatsync.services.pubsub import PubSub, SubscriptionHandle
from chatsync.services.read_state import ReadStateTracker
from chatsync.services.registry import ConversationRegistry
from chatsync.stores.base import ConversationStore

logger = get_logger(__name__)


class MessagingService:

    def __init__(self, store: ConversationStore, pubsub: PubSub):
        self.store = store
        self.pubsub = pubsub
        self.fanout = RealtimeFanout(pubsub)
        self.registry = ConversationRegistry(store, self.fanout)
        self.messages = MessageStore(store, self.registry, self.fanout)
        self.read_state = ReadStateTracker(store, self.registry, self.fanout)
        self.assembler = ConversationListAssembler(store)

    def send_message(
        self,
        sender: str,
        recipient: str,
        content: str,
        type: MessageType = MessageType.TEXT,
        media_ref: Optional[str] = None,
        contact_name: Optional[str] = None,
    ) -> Message:
        """Send from ``sender`` to an identity or a phone number.

        The conversation is resolved (and created on first contact) before
        the message is appended.
        """
        validate_identity(sender)
        if not content and not media_ref:
            raise InvalidMessage("message needs content or a media reference")

        route = classify(recipient)
        if isinstance(route, AppChannel):
            conversation = self.registry.resolve_app_conversation(sender, route.identity)
        elif isinstance(route, SmsChannel):
            conversation = self.registry.resolve_sms_conversation(sender, route.phone, contact_name)
        else:
            raise InvalidRecipient(f"unroutable recipient: {recipient!r}")

        return self.messages.append(conversation.ref, sender, recipient, content, type, media_ref)

    def receive_sms(self, owner: str, phone: str, content: str, external_id: Optional[str] = None) -> Message:
        """Ingest an inbound SMS from ``phone`` into ``owner``'s conversation with it."""
        validate_identity(owner)
        route = classify(phone)
        if not isinstance(route, SmsChannel):
            raise InvalidRecipient(f"inbound SMS sender is not a phone number: {phone!r}")

        conversation = self.registry.resolve_sms_conversation(owner, route.phone)
        return self.messages.append(
            conversation.ref, route.phone, owner, content, MessageType.TEXT, external_id=external_id
        )

    def list_conversations(self, identity: str) -> List[UnifiedConversation]:
        return self.assembler.list_for_user(identity)

    def fetch_messages(self, ref: ConversationRef, viewer: Optional[str] = None) -> List[Message]:
        """Messages of ``ref``, oldest first; checks membership when ``viewer`` is given."""
        if viewer is not None:
            self.read_state.authorize(ref, viewer)
        return self.messages.list_messages(ref)

    def open_conversation(self, ref: ConversationRef, reader: str) -> int:
        return self.read_state.mark_read(ref, reader)

    def subscribe_conversation(
        self, ref: ConversationRef, handler: Callable[[MessageEvent], None]
    ) -> SubscriptionHandle:
        return self.fanout.subscribe_to_conversation(ref, handler)

    def subscribe_user_list(
        self, identity: str, handler: Callable[[ConversationListChanged], None]
    ) -> SubscriptionHandle:
        return self.fanout.subscribe_to_user_conversations(identity, handler)

    def unsubscribe(self, handle: SubscriptionHandle) -> bool:
        return self.fanout.unsubscribe(handle)

    def add_contact(
        self, owner: str, name: str, phone: str, contact_identity: Optional[str] = None
    ) -> Contact:
        validate_identity(owner)
        if not isinstance(classify(phone), SmsChannel):
            raise InvalidRecipient(f"contact number is not a phone number: {phone!r}")
        if contact_identity is not None:
            validate_identity(contact_identity)

        contact = Contact(
            id=uuid.uuid4().hex,
            owner_identity=owner,
            name=name,
            phone_number=phone,
            contact_identity=contact_identity,
            created_at=utcnow(),
        )
        try:
            stored = self.store.insert_contact(contact)
        except DuplicateKey:
            raise ContactExists(f"{phone} is already in the address book")
        logger.info("Contact added", extra={"extra_data": {"owner": owner, "contact_id": stored.id}})
        return stored

    def list_contacts(self, owner: str) -> List[Contact]:
        return self.store.list_contacts(owner)

    def close(self) -> None:
        self.pubsub.close()
