"""
Backend store interface consumed by the messaging components.

Cross-request correctness lives here: implementations must make each method
atomic on its own, so components never need in-process locks.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Tuple

from chatsync.schemas.contact import Contact
from chatsync.schemas.conversation import (
    AppConversation,
    ConversationRef,
    ConversationSummary,
    SmsConversation,
)
from chatsync.schemas.message import Message


class ConversationStore(ABC):
    """Persistence operations for conversations, messages and contacts.

    Methods raise :class:`~chatsync.core.errors.StorageUnavailable` when the
    backend cannot be reached and :class:`~chatsync.core.errors.DuplicateKey`
    when a uniqueness constraint rejects an insert.
    """

    @abstractmethod
    def insert_app_conversation_if_absent(
        self, conversation_id: str, participants: Tuple[str, str], now: datetime
    ) -> Tuple[AppConversation, bool]:
        """Create the row unless it exists; return it and whether it was created.

        Must be a single conditional insert, never a lookup followed by an insert.
        """

    @abstractmethod
    def get_app_conversation(self, conversation_id: str) -> Optional[AppConversation]:
        ...

    @abstractmethod
    def list_app_conversations(self, identity: str) -> List[AppConversation]:
        ...

    @abstractmethod
    def find_sms_conversation(self, owner: str, phone: str) -> Optional[SmsConversation]:
        ...

    @abstractmethod
    def insert_sms_conversation(
        self, owner: str, phone: str, contact_name: str, now: datetime
    ) -> SmsConversation:
        """Insert a new SMS conversation; raises DuplicateKey if (owner, phone) exists."""

    @abstractmethod
    def get_sms_conversation(self, conversation_id: str) -> Optional[SmsConversation]:
        ...

    @abstractmethod
    def list_sms_conversations(self, owner: str) -> List[SmsConversation]:
        ...

    @abstractmethod
    def append_message(self, ref: ConversationRef, message: Message, summary: ConversationSummary) -> Message:
        """Insert ``message`` and overwrite the summary of ``ref`` in one transaction.

        The summary is only written when it is not older than the stored one.
        Raises ConversationNotFound when ``ref`` names nothing.
        """

    @abstractmethod
    def list_messages(self, ref: ConversationRef) -> List[Message]:
        """Messages of ``ref`` ordered by created_at, then insertion order."""

    @abstractmethod
    def mark_read(self, ref: ConversationRef, reader: str, now: datetime) -> int:
        """Bulk-set is_read on unread messages addressed to ``reader``; return the count."""

    @abstractmethod
    def insert_contact(self, contact: Contact) -> Contact:
        ...

    @abstractmethod
    def list_contacts(self, owner: str) -> List[Contact]:
        ...

    @abstractmethod
    def ping(self) -> bool:
        """Return True when the backend is reachable."""
