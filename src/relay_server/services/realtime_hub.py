"""In-memory topic fan-out for live command, agent and code-session updates."""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)


class SubscriptionClosed(Exception):
    """Raised by ``Subscription.receive`` once the hub has dropped the subscriber."""


class Subscription:
    """One subscriber's bounded inbox on a topic.

    An inbox that overflows is closed rather than allowed to skip a
    message: pending messages are discarded and the next ``receive``
    raises SubscriptionClosed, so the reader re-syncs by pulling.
    """

    def __init__(self, topic: str, queue_size: int) -> None:
        self.topic = topic
        self.closed = False
        # None marks the end of the stream.
        self._queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=queue_size)

    async def receive(self) -> str:
        """Wait for the next serialized message.

        Raises:
            SubscriptionClosed: If the subscriber was dropped for falling behind.
        """
        message = await self._queue.get()
        if message is None:
            self._queue.put_nowait(None)
            raise SubscriptionClosed(self.topic)
        return message

    @property
    def pending(self) -> int:
        """Messages delivered but not yet received."""
        return 0 if self.closed else self._queue.qsize()

    def _offer(self, message: str) -> bool:
        if self.closed:
            return False
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            return False
        return True

    def _close(self) -> None:
        self.closed = True
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(None)


class RealtimeHub:
    """Topic-keyed pub/sub. One instance per application.

    Publishing never awaits. Each subscriber has a bounded queue; a
    subscriber whose queue is full is closed and removed from the topic,
    so a live subscriber never misses a message. There is no replay;
    late or dropped subscribers catch up through pull queries.
    """

    def __init__(self, queue_size: int = 256) -> None:
        self._queue_size = queue_size
        self._topics: dict[str, set[Subscription]] = {}
        self._lock = threading.Lock()

    @staticmethod
    def command_topic(command_id: str) -> str:
        return f"command:{command_id}"

    @staticmethod
    def agent_topic(agent_id: str) -> str:
        return f"agent:{agent_id}"

    @staticmethod
    def code_session_topic(session_id: str) -> str:
        return f"code-session:{session_id}"

    def subscribe(self, topic: str) -> tuple[Subscription, Callable[[], None]]:
        """Register a subscriber on ``topic``.

        Returns:
            The subscription and an idempotent unsubscribe callable.
        """
        subscription = Subscription(topic, self._queue_size)
        with self._lock:
            self._topics.setdefault(topic, set()).add(subscription)

        def unsubscribe() -> None:
            self._remove(topic, subscription)

        return subscription, unsubscribe

    def publish(self, topic: str, payload: dict[str, Any]) -> int:
        """Deliver ``payload`` to every current subscriber of ``topic``.

        Returns:
            Number of subscribers the message was enqueued for. Subscribers
            that could not take it are closed and not counted.
        """
        with self._lock:
            subscribers = list(self._topics.get(topic, ()))
        if not subscribers:
            return 0
        message = json.dumps(payload)
        delivered = 0
        for subscription in subscribers:
            if subscription._offer(message):
                delivered += 1
                continue
            logger.warning("Closing slow subscriber on %s", topic)
            subscription._close()
            self._remove(topic, subscription)
        return delivered

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._topics.get(topic, ()))

    def topic_count(self) -> int:
        with self._lock:
            return len(self._topics)

    def _remove(self, topic: str, subscription: Subscription) -> None:
        with self._lock:
            subscribers = self._topics.get(topic)
            if subscribers is None or subscription not in subscribers:
                return
            subscribers.discard(subscription)
            if not subscribers:
                del self._topics[topic]
