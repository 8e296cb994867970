"""
In-memory store used by tests and single-process development.

A single re-entrant lock stands in for the database's atomic primitives.
"""
import threading
import uuid
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from chatsync.core.errors import ConversationNotFound, DuplicateKey
from chatsync.schemas.contact import Contact
from chatsync.schemas.conversation import (
    AppConversation,
    Channel,
    ConversationRef,
    ConversationSummary,
    SmsConversation,
)
from chatsync.schemas.message import Message
from chatsync.stores.base import ConversationStore


class InMemoryConversationStore(ConversationStore):

    def __init__(self):
        self._lock = threading.RLock()
        self._app: Dict[str, AppConversation] = {}
        self._sms: Dict[str, SmsConversation] = {}
        self._sms_keys: Dict[Tuple[str, str], str] = {}
        self._messages: Dict[str, List[Message]] = {}
        self._external_ids: set = set()
        self._contacts: Dict[Tuple[str, str], Contact] = {}

    def insert_app_conversation_if_absent(self, conversation_id, participants, now):
        with self._lock:
            existing = self._app.get(conversation_id)
            if existing is not None:
                return existing.model_copy(), False
            conversation = AppConversation(
                id=conversation_id,
                participants=tuple(sorted(participants)),
                last_message_time=now,
                created_at=now,
                updated_at=now,
            )
            self._app[conversation_id] = conversation
            return conversation.model_copy(), True

    def get_app_conversation(self, conversation_id: str) -> Optional[AppConversation]:
        with self._lock:
            conversation = self._app.get(conversation_id)
            return conversation.model_copy() if conversation else None

    def list_app_conversations(self, identity: str) -> List[AppConversation]:
        with self._lock:
            return [c.model_copy() for c in self._app.values() if identity in c.participants]

    def find_sms_conversation(self, owner: str, phone: str) -> Optional[SmsConversation]:
        with self._lock:
            conversation_id = self._sms_keys.get((owner, phone))
            if conversation_id is None:
                return None
            return self._sms[conversation_id].model_copy()

    def insert_sms_conversation(self, owner, phone, contact_name, now):
        with self._lock:
            if (owner, phone) in self._sms_keys:
                raise DuplicateKey("uq_sms_conversations_owner_phone")
            conversation = SmsConversation(
                id=uuid.uuid4().hex,
                owner_identity=owner,
                phone_descriptor=phone,
                contact_name=contact_name,
                last_message_time=now,
                created_at=now,
                updated_at=now,
            )
            self._sms[conversation.id] = conversation
            self._sms_keys[(owner, phone)] = conversation.id
            return conversation.model_copy()

    def get_sms_conversation(self, conversation_id: str) -> Optional[SmsConversation]:
        with self._lock:
            conversation = self._sms.get(conversation_id)
            return conversation.model_copy() if conversation else None

    def list_sms_conversations(self, owner: str) -> List[SmsConversation]:
        with self._lock:
            return [c.model_copy() for c in self._sms.values() if c.owner_identity == owner]

    def append_message(self, ref: ConversationRef, message: Message, summary: ConversationSummary) -> Message:
        with self._lock:
            table = self._app if ref.channel is Channel.APP else self._sms
            conversation = table.get(ref.id)
            if conversation is None:
                raise ConversationNotFound(f"conversation {ref} does not exist")
            if message.external_id is not None and message.external_id in self._external_ids:
                raise DuplicateKey("messages.external_id")

            stored = message.model_copy()
            self._messages.setdefault(str(ref), []).append(stored)
            if message.external_id is not None:
                self._external_ids.add(message.external_id)

            if summary.last_message_time >= conversation.last_message_time:
                update = {
                    "last_message": summary.last_message,
                    "last_message_time": summary.last_message_time,
                    "updated_at": summary.last_message_time,
                }
                if ref.channel is Channel.APP:
                    update["last_message_sender"] = summary.last_message_sender
                table[ref.id] = conversation.model_copy(update=update)
            return stored.model_copy()

    def list_messages(self, ref: ConversationRef) -> List[Message]:
        with self._lock:
            log = self._messages.get(str(ref), [])
            # sorted() is stable, so insertion order breaks timestamp ties
            return [m.model_copy() for m in sorted(log, key=lambda m: m.created_at)]

    def mark_read(self, ref: ConversationRef, reader: str, now: datetime) -> int:
        with self._lock:
            log = self._messages.get(str(ref), [])
            count = 0
            for index, message in enumerate(log):
                if message.receiver == reader and not message.is_read:
                    log[index] = message.model_copy(update={"is_read": True, "updated_at": now})
                    count += 1
            return count

    def insert_contact(self, contact: Contact) -> Contact:
        with self._lock:
            key = (contact.owner_identity, contact.phone_number)
            if key in self._contacts:
                raise DuplicateKey("uq_contacts_owner_phone")
            self._contacts[key] = contact.model_copy()
            return contact.model_copy()

    def list_contacts(self, owner: str) -> List[Contact]:
        with self._lock:
            contacts = [c.model_copy() for (o, _), c in self._contacts.items() if o == owner]
        return sorted(contacts, key=lambda c: c.name)

    def ping(self) -> bool:
        return True
