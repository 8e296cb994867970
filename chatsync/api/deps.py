"""
Shared FastAPI dependencies.
"""
from functools import lru_cache

from fastapi import Depends, HTTPException
from fastapi.requests import HTTPConnection

from chatsync.core.config import Settings, get_settings
from chatsync.core.database import get_session_factory
from chatsync.core.errors import InvalidRecipient
from chatsync.core.logging import get_logger
from chatsync.services.channel_router import validate_identity
from chatsync.services.messaging import MessagingService
from chatsync.services.pubsub import LocalPubSub
from chatsync.stores.sql import SqlConversationStore

logger = get_logger(__name__)


@lru_cache()
def get_messaging_service() -> MessagingService:
    """Process-wide service over the configured database."""
    settings = get_settings()
    store = SqlConversationStore(get_session_factory())
    return MessagingService(store, LocalPubSub(queue_size=settings.realtime_queue_size))


def get_current_identity(
    connection: HTTPConnection,
    settings: Settings = Depends(get_settings),
) -> str:
    """Caller identity, already authenticated by the gateway in front of us."""
    identity = connection.headers.get(settings.identity_header)
    if not identity:
        raise HTTPException(status_code=401, detail="missing identity")
    try:
        return validate_identity(identity)
    except InvalidRecipient:
        logger.warning("Rejected malformed identity header")
        raise HTTPException(status_code=401, detail="invalid identity")
