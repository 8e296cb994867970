"""
Publish/subscribe transport underneath the realtime fan-out.

``LocalPubSub`` is the in-process transport. Each subscription owns a
bounded queue and a delivery thread, so handlers never run on the
publisher's thread and a slow handler only delays itself.
"""
import queue
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from chatsync.core.logging import get_logger

logger = get_logger(__name__)

PayloadHandler = Callable[[bytes], None]

_STOP = object()


@dataclass(frozen=True)
class SubscriptionHandle:
    id: str
    topic: str


class PubSub(ABC):
    """Topic-based push primitive: topic name in, byte payload out."""

    @abstractmethod
    def subscribe(self, topic: str, handler: PayloadHandler) -> SubscriptionHandle:
        ...

    @abstractmethod
    def publish(self, topic: str, payload: bytes) -> int:
        """Queue ``payload`` for every subscriber of ``topic``; return how many."""

    @abstractmethod
    def unsubscribe(self, handle: SubscriptionHandle) -> bool:
        """Stop delivery to ``handle``. No handler call starts after this returns."""

    @abstractmethod
    def close(self) -> None:
        ...


class _Subscription:

    def __init__(self, handle: SubscriptionHandle, handler: PayloadHandler, queue_size: int):
        self.handle = handle
        self.handler = handler
        self.queue: "queue.Queue" = queue.Queue(maxsize=queue_size)
        self.active = True
        # Held for the whole handler call; unsubscribe waits on it
        self.delivering = threading.Lock()
        self.worker = threading.Thread(
            target=self._run,
            name=f"pubsub-{handle.id[:8]}",
            daemon=True,
        )

    def start(self) -> None:
        self.worker.start()

    def offer(self, payload: bytes) -> bool:
        try:
            self.queue.put_nowait(payload)
            return True
        except queue.Full:
            logger.warning(
                "Subscriber queue full, dropping event",
                extra={"extra_data": {"topic": self.handle.topic, "subscription": self.handle.id}}
            )
            return False

    def stop(self) -> None:
        # Cleared before waiting so the worker cannot start another call
        self.active = False
        self._wake()
        if threading.current_thread() is self.worker:
            # Unsubscribing from inside the handler; the lock is already ours
            return
        with self.delivering:
            pass
        self.worker.join(timeout=1.0)

    def _wake(self) -> None:
        while True:
            try:
                self.queue.put_nowait(_STOP)
                return
            except queue.Full:
                try:
                    self.queue.get_nowait()
                except queue.Empty:
                    pass

    def _run(self) -> None:
        while True:
            payload = self.queue.get()
            if payload is _STOP:
                return
            with self.delivering:
                if not self.active:
                    return
                try:
                    self.handler(payload)
                except Exception:
                    logger.exception(
                        "Subscriber handler failed",
                        extra={"extra_data": {"topic": self.handle.topic, "subscription": self.handle.id}}
                    )


class LocalPubSub(PubSub):
    """In-process transport for a single service instance."""

    def __init__(self, queue_size: int = 1000):
        self._queue_size = queue_size
        self._lock = threading.Lock()
        self._topics: Dict[str, Dict[str, _Subscription]] = {}

    def subscribe(self, topic: str, handler: PayloadHandler) -> SubscriptionHandle:
        handle = SubscriptionHandle(id=uuid.uuid4().hex, topic=topic)
        subscription = _Subscription(handle, handler, self._queue_size)
        subscription.start()
        with self._lock:
            self._topics.setdefault(topic, {})[handle.id] = subscription
        logger.debug("Subscribed", extra={"extra_data": {"topic": topic, "subscription": handle.id}})
        return handle

    def publish(self, topic: str, payload: bytes) -> int:
        with self._lock:
            subscriptions = list(self._topics.get(topic, {}).values())
        return sum(1 for subscription in subscriptions if subscription.offer(payload))

    def unsubscribe(self, handle: SubscriptionHandle) -> bool:
        with self._lock:
            subscribers = self._topics.get(handle.topic, {})
            subscription = subscribers.pop(handle.id, None)
            if not subscribers:
                self._topics.pop(handle.topic, None)
        if subscription is None:
            return False
        subscription.stop()
        logger.debug("Unsubscribed", extra={"extra_data": {"topic": handle.topic, "subscription": handle.id}})
        return True

    def subscriber_count(self, topic: Optional[str] = None) -> int:
        with self._lock:
            if topic is not None:
                return len(self._topics.get(topic, {}))
            return sum(len(subscribers) for subscribers in self._topics.values())

    def close(self) -> None:
        with self._lock:
            handles = [s.handle for subscribers in self._topics.values() for s in subscribers.values()]
        for handle in handles:
            self.unsubscribe(handle)
