"""
Shared fixtures: every store-backed test runs against the in-memory store
and a throwaway SQLite database.
"""
import time

import pytest
from sqlalchemy.orm import sessionmaker

from chatsync.core.database import create_db_engine, init_db
from chatsync.services.messaging import MessagingService
from chatsync.services.pubsub import LocalPubSub
from chatsync.stores.memory import InMemoryConversationStore
from chatsync.stores.sql import SqlConversationStore


@pytest.fixture(params=["memory", "sql"])
def store(request, tmp_path):
    """A fresh, empty store of each kind."""
    if request.param == "memory":
        yield InMemoryConversationStore()
        return

    engine = create_db_engine(f"sqlite:///{tmp_path / 'chatsync_test.db'}")
    init_db(engine)
    factory = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    yield SqlConversationStore(factory)
    engine.dispose()


@pytest.fixture
def pubsub():
    transport = LocalPubSub(queue_size=100)
    yield transport
    transport.close()


@pytest.fixture
def service(store, pubsub):
    return MessagingService(store, pubsub)


def wait_for(predicate, timeout: float = 2.0, interval: float = 0.01) -> bool:
    """Poll ``predicate`` until it is truthy or ``timeout`` elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return bool(predicate())
