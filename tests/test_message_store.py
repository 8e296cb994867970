"""
Tests for sending, appending and fetching messages.
"""
import pytest

from chatsync.core.errors import (
    ConversationNotFound,
    DuplicateMessage,
    InvalidMessage,
    InvalidRecipient,
    StorageUnavailable,
)
from chatsync.schemas.conversation import Channel, ConversationRef
from chatsync.schemas.message import MessageType
from chatsync.services.message_store import list_audience
from chatsync.services.messaging import MessagingService
from chatsync.stores.memory import InMemoryConversationStore

from conftest import wait_for


class TestSendMessage:
    """Scenarios for MessagingService.send_message."""

    def test_first_message_creates_conversation(self, service):
        message = service.send_message("alice", "bob", "hi")

        conversation = service.registry.get_conversation(ConversationRef.app("alice_bob"))
        assert message.conversation_id == "alice_bob"
        assert message.channel is Channel.APP
        assert message.sender == "alice"
        assert message.receiver == "bob"
        assert message.is_read is False
        assert conversation.last_message == "hi"
        assert conversation.last_message_sender == "alice"

    def test_reply_reuses_conversation(self, service):
        first = service.send_message("alice", "bob", "hi")
        reply = service.send_message("bob", "alice", "hey")

        conversation = service.registry.get_conversation(ConversationRef.app(first.conversation_id))
        assert reply.conversation_id == first.conversation_id
        assert conversation.last_message == "hey"
        assert conversation.last_message_sender == "bob"

    def test_summary_mirrors_appended_message(self, service):
        message = service.send_message("alice", "bob", "hi")
        conversation = service.registry.get_conversation(ConversationRef.app(message.conversation_id))
        assert conversation.last_message == message.content
        assert conversation.last_message_time == message.created_at

    def test_sms_sends_share_one_conversation(self, service, store):
        first = service.send_message("alice", "+15551234567", "are you there?")
        second = service.send_message("alice", "+15551234567", "hello?")

        conversations = store.list_sms_conversations("alice")
        assert len(conversations) == 1
        assert first.conversation_id == second.conversation_id == f"sms_{conversations[0].id}"
        assert first.channel is Channel.SMS
        assert conversations[0].last_message == "hello?"
        assert conversations[0].last_message_time == second.created_at

    def test_contact_name_labels_new_sms_conversation(self, service, store):
        service.send_message("alice", "+15551234567", "hi", contact_name="Dentist")
        assert store.list_sms_conversations("alice")[0].contact_name == "Dentist"

    def test_media_only_message_allowed(self, service):
        message = service.send_message("alice", "bob", "", MessageType.IMAGE, media_ref="media/abc.png")
        assert message.content == ""
        assert message.type is MessageType.IMAGE
        assert message.media_ref == "media/abc.png"

    def test_empty_message_rejected_before_resolving(self, service, store):
        with pytest.raises(InvalidMessage):
            service.send_message("alice", "bob", "")
        assert store.list_app_conversations("alice") == []

    def test_invalid_recipient(self, service):
        with pytest.raises(InvalidRecipient):
            service.send_message("alice", "+12ab", "hi")

    def test_invalid_sender(self, service):
        with pytest.raises(InvalidRecipient):
            service.send_message("+15551234567", "bob", "hi")


class TestAppend:
    """Tests for MessageStore.append preconditions."""

    def test_unknown_conversation(self, service):
        with pytest.raises(ConversationNotFound):
            service.messages.append(ConversationRef.app("alice_bob"), "alice", "bob", "hi")

    def test_unknown_sms_conversation(self, service):
        with pytest.raises(ConversationNotFound):
            service.messages.append(ConversationRef.sms("nope"), "alice", "+15551234567", "hi")

    def test_empty_content_and_media(self, service):
        conversation = service.registry.resolve_app_conversation("alice", "bob")
        with pytest.raises(InvalidMessage):
            service.messages.append(conversation.ref, "alice", "bob", "", media_ref=None)

    def test_duplicate_external_id(self, service):
        conversation = service.registry.resolve_sms_conversation("alice", "+15551234567")
        service.messages.append(conversation.ref, "+15551234567", "alice", "one", external_id="ext-1")
        with pytest.raises(DuplicateMessage):
            service.messages.append(conversation.ref, "+15551234567", "alice", "one", external_id="ext-1")
        assert len(service.fetch_messages(conversation.ref)) == 1

    def test_publishes_message_and_list_signal(self, service):
        conversation = service.registry.resolve_app_conversation("alice", "bob")
        events, signals = [], []
        service.subscribe_conversation(conversation.ref, events.append)
        service.subscribe_user_list("bob", signals.append)

        message = service.messages.append(conversation.ref, "alice", "bob", "hi")

        assert wait_for(lambda: events and signals)
        assert events[0].message == message
        assert signals[0].identity == "bob"


class TestFetchMessages:

    def test_ordered_oldest_first(self, service):
        for text in ["one", "two", "three"]:
            service.send_message("alice", "bob", text)
        service.send_message("bob", "alice", "four")

        messages = service.fetch_messages(ConversationRef.app("alice_bob"))
        assert [m.content for m in messages] == ["one", "two", "three", "four"]
        created = [m.created_at for m in messages]
        assert created == sorted(created)

    def test_unknown_conversation(self, service):
        with pytest.raises(ConversationNotFound):
            service.fetch_messages(ConversationRef.app("alice_bob"))


class TestReceiveSms:

    def test_inbound_sms_lands_in_owner_conversation(self, service, store):
        outbound = service.send_message("alice", "+15551234567", "hi")
        inbound = service.receive_sms("alice", "+15551234567", "hello back", external_id="ext-1")

        assert inbound.conversation_id == outbound.conversation_id
        assert inbound.sender == "+15551234567"
        assert inbound.receiver == "alice"
        assert store.list_sms_conversations("alice")[0].last_message == "hello back"

    def test_sender_must_be_a_phone_number(self, service):
        with pytest.raises(InvalidRecipient):
            service.receive_sms("alice", "bob", "hi")


class ConversationReadsFailStore(InMemoryConversationStore):
    """Writes succeed; looking a conversation up by id does not."""

    def get_app_conversation(self, conversation_id):
        raise StorageUnavailable("database unavailable")

    def get_sms_conversation(self, conversation_id):
        raise StorageUnavailable("database unavailable")


class TestAfterCommit:
    """Nothing after the append commits may fail the send."""

    @pytest.fixture
    def flaky_service(self, pubsub):
        return MessagingService(ConversationReadsFailStore(), pubsub)

    def test_app_send_succeeds_when_lookups_fail(self, flaky_service):
        signals = []
        flaky_service.subscribe_user_list("bob", signals.append)

        message = flaky_service.send_message("alice", "bob", "hi")

        assert message.content == "hi"
        assert len(flaky_service.store.list_messages(ConversationRef.app("alice_bob"))) == 1
        assert wait_for(lambda: len(signals) >= 1)

    def test_sms_send_succeeds_when_lookups_fail(self, flaky_service):
        message = flaky_service.send_message("alice", "+15551234567", "hi")
        inbound = flaky_service.receive_sms("alice", "+15551234567", "hello", external_id="ext-1")

        assert inbound.conversation_id == message.conversation_id
        stored = flaky_service.store.list_messages(ConversationRef.parse(message.conversation_id))
        assert [m.content for m in stored] == ["hi", "hello"]


class TestListAudience:

    def test_app_conversation_signals_both_participants(self):
        assert list_audience(ConversationRef.app("alice_bob"), "bob", "alice") == ["alice", "bob"]

    def test_sms_conversation_signals_owner_only(self):
        ref = ConversationRef.sms("abc")
        assert list_audience(ref, "alice", "+15551234567") == ["alice"]
        assert list_audience(ref, "+15551234567", "alice") == ["alice"]


class TestMessageType:

    def test_accepts_type_by_value(self, service):
        message = service.send_message("alice", "bob", "", "image", media_ref="media/a.png")
        assert message.type is MessageType.IMAGE

    def test_unknown_type_is_invalid_message(self, service):
        with pytest.raises(InvalidMessage):
            service.send_message("alice", "bob", "hi", "sticker")
