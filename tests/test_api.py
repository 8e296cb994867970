"""
Integration tests for the HTTP and WebSocket API.
"""
import json

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from starlette.websockets import WebSocketDisconnect

from chatsync.main import app
from chatsync.api.deps import get_messaging_service
from chatsync.core.config import Settings, get_settings
from chatsync.core.security import compute_signature
from chatsync.services.messaging import MessagingService
from chatsync.services.pubsub import LocalPubSub
from chatsync.stores.memory import InMemoryConversationStore
from chatsync.stores.sql import SqlConversationStore

from conftest import wait_for


# Test configuration
TEST_SECRET = "test-secret-key-12345"
PHONE = "+15551234567"


def get_test_settings() -> Settings:
    """Override settings for testing."""
    return Settings(
        webhook_secret=TEST_SECRET,
        database_url="sqlite://",
        log_level="DEBUG",
        log_format="text",
    )


@pytest.fixture(scope="function")
def messaging():
    """A fresh in-memory service for each test."""
    service = MessagingService(InMemoryConversationStore(), LocalPubSub())

    app.dependency_overrides[get_messaging_service] = lambda: service
    app.dependency_overrides[get_settings] = get_test_settings

    yield service

    service.close()
    app.dependency_overrides.clear()


@pytest.fixture
def client(messaging):
    """Create a test client."""
    return TestClient(app)


@pytest.fixture
def unreachable_client(tmp_path):
    """A client whose service points at a database that cannot be opened."""
    engine = create_engine(f"sqlite:///{tmp_path / 'missing' / 'chatsync.db'}")
    factory = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    service = MessagingService(SqlConversationStore(factory), LocalPubSub())

    app.dependency_overrides[get_messaging_service] = lambda: service
    app.dependency_overrides[get_settings] = get_test_settings

    yield TestClient(app)

    service.close()
    engine.dispose()
    app.dependency_overrides.clear()


def as_user(identity: str) -> dict:
    return {"X-User-Id": identity}


def send(client, sender: str, recipient: str, content: str, **extra):
    return client.post(
        "/messages",
        json={"recipient": recipient, "content": content, **extra},
        headers=as_user(sender),
    )


def sign_payload(payload: dict, secret: str = TEST_SECRET) -> str:
    """Generate HMAC-SHA256 signature for a payload."""
    body = json.dumps(payload).encode("utf-8")
    return compute_signature(secret, body)


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    def test_liveness_always_returns_ok(self, client):
        """GET /health/live should always return 200."""
        response = client.get("/health/live")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_readiness_returns_ok_when_store_reachable(self, client):
        response = client.get("/health/ready")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["checks"]["database"] == "ok"
        assert data["checks"]["webhook_secret"] == "ok"

    def test_readiness_returns_503_when_store_unreachable(self, unreachable_client):
        response = unreachable_client.get("/health/ready")
        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "not ready"
        assert data["checks"]["database"] == "failed"

    def test_storage_failure_returns_503(self, unreachable_client):
        response = send(unreachable_client, "alice", "bob", "hi")
        assert response.status_code == 503
        assert response.json()["detail"] == "database unavailable"

        response = unreachable_client.get("/conversations", headers=as_user("alice"))
        assert response.status_code == 503


class TestIdentityHeader:

    def test_missing_identity_returns_401(self, client):
        response = client.get("/conversations")
        assert response.status_code == 401

    def test_malformed_identity_returns_401(self, client):
        response = client.get("/conversations", headers=as_user("not valid"))
        assert response.status_code == 401


class TestSendMessage:
    """Tests for POST /messages."""

    def test_send_to_app_user(self, client):
        response = send(client, "alice", "bob", "hi")
        assert response.status_code == 201
        data = response.json()
        assert data["conversation_id"] == "alice_bob"
        assert data["channel"] == "app"
        assert data["sender"] == "alice"
        assert data["receiver"] == "bob"
        assert data["is_read"] is False

    def test_reply_lands_in_same_conversation(self, client):
        first = send(client, "alice", "bob", "hi").json()
        reply = send(client, "bob", "alice", "hey").json()
        assert first["conversation_id"] == reply["conversation_id"]

    def test_send_to_phone_number(self, client):
        first = send(client, "alice", PHONE, "one").json()
        second = send(client, "alice", PHONE, "two").json()
        assert first["channel"] == "sms"
        assert first["conversation_id"].startswith("sms_")
        assert first["conversation_id"] == second["conversation_id"]

    def test_invalid_recipient_returns_422(self, client):
        response = send(client, "alice", "+12ab", "hi")
        assert response.status_code == 422
        assert "invalid phone number" in response.json()["detail"]

    def test_empty_message_returns_422(self, client):
        response = send(client, "alice", "bob", "")
        assert response.status_code == 422

    def test_media_message(self, client):
        response = send(client, "alice", "bob", "", type="image", media_ref="media/1.png")
        assert response.status_code == 201
        assert response.json()["type"] == "image"

    def test_unknown_message_type_returns_422(self, client):
        response = send(client, "alice", "bob", "hi", type="sticker")
        assert response.status_code == 422


class TestConversationEndpoints:
    """Tests for the conversation list, message fetch and read marking."""

    def test_list_is_empty_initially(self, client):
        response = client.get("/conversations", headers=as_user("alice"))
        assert response.status_code == 200
        assert response.json() == {"data": [], "total": 0}

    def test_list_merges_channels_by_recency(self, client):
        send(client, "alice", "bob", "hi")
        send(client, "bob", "alice", "hey")
        send(client, "alice", PHONE, "one")
        send(client, "alice", PHONE, "two")

        data = client.get("/conversations", headers=as_user("alice")).json()
        assert data["total"] == 2
        sms, app_conversation = data["data"]
        assert sms["channel"] == "sms"
        assert sms["other_identity"] == PHONE
        assert sms["last_message"] == "two"
        assert app_conversation["id"] == "alice_bob"
        assert app_conversation["other_identity"] == "bob"
        assert app_conversation["last_message_sender"] == "bob"

    def test_fetch_messages_in_order(self, client):
        for text in ["one", "two", "three"]:
            send(client, "alice", "bob", text)

        response = client.get("/conversations/alice_bob/messages", headers=as_user("bob"))
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 3
        assert [m["content"] for m in data["data"]] == ["one", "two", "three"]

    def test_fetch_requires_membership(self, client):
        send(client, "alice", "bob", "hi")
        response = client.get("/conversations/alice_bob/messages", headers=as_user("mallory"))
        assert response.status_code == 403

    def test_fetch_unknown_conversation(self, client):
        response = client.get("/conversations/alice_bob/messages", headers=as_user("alice"))
        assert response.status_code == 404

    def test_open_conversation_marks_read_once(self, client):
        for text in ["one", "two", "three"]:
            send(client, "alice", "bob", text)

        first = client.post("/conversations/alice_bob/read", headers=as_user("bob"))
        assert first.status_code == 200
        assert first.json() == {"conversation_id": "alice_bob", "marked_read": 3}

        second = client.post("/conversations/alice_bob/read", headers=as_user("bob"))
        assert second.json()["marked_read"] == 0

    def test_open_conversation_requires_membership(self, client):
        send(client, "alice", "bob", "hi")
        response = client.post("/conversations/alice_bob/read", headers=as_user("mallory"))
        assert response.status_code == 403


class TestContactsEndpoint:
    """Tests for /contacts."""

    def test_add_and_list(self, client):
        response = client.post(
            "/contacts",
            json={"name": "Zoe", "phone_number": "+15550000002", "contact_identity": "zoe"},
            headers=as_user("alice"),
        )
        assert response.status_code == 201
        assert response.json()["is_app_user"] is True

        client.post("/contacts", json={"name": "Adam", "phone_number": PHONE}, headers=as_user("alice"))

        data = client.get("/contacts", headers=as_user("alice")).json()
        assert data["total"] == 2
        assert [c["name"] for c in data["data"]] == ["Adam", "Zoe"]
        assert data["data"][0]["is_app_user"] is False

    def test_duplicate_number_returns_409(self, client):
        payload = {"name": "Adam", "phone_number": PHONE}
        assert client.post("/contacts", json=payload, headers=as_user("alice")).status_code == 201
        assert client.post("/contacts", json=payload, headers=as_user("alice")).status_code == 409

    def test_contacts_are_per_owner(self, client):
        client.post("/contacts", json={"name": "Adam", "phone_number": PHONE}, headers=as_user("alice"))
        assert client.get("/contacts", headers=as_user("bob")).json()["total"] == 0

    def test_validates_e164(self, client):
        response = client.post(
            "/contacts", json={"name": "Adam", "phone_number": "555-1234"}, headers=as_user("alice")
        )
        assert response.status_code == 422


class TestSmsWebhook:
    """Tests for POST /webhook/sms."""

    def _post(self, client, payload: dict, signature: str = None):
        body = json.dumps(payload)
        headers = {"Content-Type": "application/json"}
        if signature is not None:
            headers["X-Signature"] = signature
        return client.post("/webhook/sms", content=body, headers=headers)

    def _payload(self, message_id: str = "m1", text: str = "Hello") -> dict:
        return {"message_id": message_id, "from": PHONE, "to": "alice", "text": text}

    def test_requires_signature(self, client):
        response = self._post(client, self._payload())
        assert response.status_code == 401
        assert response.json()["detail"] == "invalid signature"

    def test_rejects_invalid_signature(self, client):
        response = self._post(client, self._payload(), signature="invalid-signature")
        assert response.status_code == 401

    def test_ingests_into_owner_conversation(self, client):
        payload = self._payload()
        response = self._post(client, payload, signature=sign_payload(payload))
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

        conversations = client.get("/conversations", headers=as_user("alice")).json()["data"]
        assert len(conversations) == 1
        assert conversations[0]["other_identity"] == PHONE
        assert conversations[0]["last_message"] == "Hello"

        read = client.post(f"/conversations/{conversations[0]['id']}/read", headers=as_user("alice"))
        assert read.json()["marked_read"] == 1

    def test_idempotent_on_message_id(self, client):
        payload = self._payload()
        signature = sign_payload(payload)
        assert self._post(client, payload, signature=signature).status_code == 200
        assert self._post(client, payload, signature=signature).status_code == 200

        conversation_id = client.get("/conversations", headers=as_user("alice")).json()["data"][0]["id"]
        messages = client.get(f"/conversations/{conversation_id}/messages", headers=as_user("alice")).json()
        assert messages["total"] == 1

    def test_validates_e164_sender(self, client):
        payload = {"message_id": "m2", "from": "invalid-phone", "to": "alice", "text": "hi"}
        response = self._post(client, payload, signature=sign_payload(payload))
        assert response.status_code == 422


class TestRealtime:
    """Tests for the WebSocket streams."""

    def test_conversation_stream_pushes_new_messages(self, client):
        send(client, "alice", "bob", "hi")
        with client.websocket_connect("/ws/conversations/alice_bob", headers=as_user("bob")) as websocket:
            send(client, "alice", "bob", "second")
            event = websocket.receive_json()

        assert event["kind"] == "message_created"
        assert event["message"]["content"] == "second"
        assert event["message"]["sender"] == "alice"

    def test_list_stream_pushes_signals(self, client):
        with client.websocket_connect("/ws/conversations", headers=as_user("bob")) as websocket:
            send(client, "alice", "bob", "hi")
            event = websocket.receive_json()

        assert event["kind"] == "conversations_changed"
        assert event["identity"] == "bob"

    def test_non_member_is_refused(self, client):
        send(client, "alice", "bob", "hi")
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/ws/conversations/alice_bob", headers=as_user("mallory")):
                pass

    def test_disconnect_releases_subscription(self, client, messaging):
        send(client, "alice", "bob", "hi")
        with client.websocket_connect("/ws/conversations/alice_bob", headers=as_user("bob")):
            assert messaging.pubsub.subscriber_count("conversation:alice_bob") == 1
        assert wait_for(lambda: messaging.pubsub.subscriber_count("conversation:alice_bob") == 0)

    def test_list_stream_disconnect_releases_subscription(self, client, messaging):
        with client.websocket_connect("/ws/conversations", headers=as_user("bob")):
            assert messaging.pubsub.subscriber_count("user:bob") == 1
        assert wait_for(lambda: messaging.pubsub.subscriber_count("user:bob") == 0)
        assert wait_for(lambda: messaging.pubsub.subscriber_count() == 0)


class TestMetricsEndpoint:
    """Tests for GET /metrics."""

    def test_metrics_returns_prometheus_format(self, client):
        send(client, "alice", "bob", "hi")
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "text/plain" in response.headers["content-type"]

        content = response.text
        assert "http_requests_total" in content
        assert 'chatsync_messages_total{channel="app"}' in content


class TestSignatureComputation:
    """Tests for HMAC-SHA256 signature computation."""

    def test_compute_signature(self):
        signature = compute_signature("test-secret", b'{"message_id": "m1"}')
        assert len(signature) == 64
        assert all(c in "0123456789abcdef" for c in signature)

    def test_signature_is_deterministic(self):
        body = b'{"message_id": "m1"}'
        assert compute_signature("test-secret", body) == compute_signature("test-secret", body)

    def test_different_secrets_produce_different_signatures(self):
        body = b'{"message_id": "m1"}'
        assert compute_signature("secret1", body) != compute_signature("secret2", body)
