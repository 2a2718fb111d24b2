"""
Broadcast Hub - pushes ledger state to connected real-time clients.

Delivery is best-effort and at-most-once: a client that misses a message only
catches up through a fresh INITIAL_STATE when it reconnects.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional, Protocol, Set

from logic.ledger.models import MessageType

logger = logging.getLogger(__name__)


def envelope(message_type: MessageType, data: Any) -> dict:
    return {"type": MessageType(message_type).value, "data": data}


class Subscriber(Protocol):
    """Protocol for a connected client transport."""
    id: str
    async def send(self, message: dict) -> None: ...


class SocketIOSubscriber:
    """A socket.io connection; envelopes go out on the ``message`` event."""

    def __init__(self, sio, sid: str):
        self.sio = sio
        self.id = sid

    async def send(self, message: dict) -> None:
        await self.sio.emit("message", message, to=self.id)


class BroadcastHub:
    """
    Tracks live subscribers and fans messages out to them.

    ``publish`` never awaits a subscriber: each send runs as its own task,
    chained behind the previous send to the same subscriber so per-client
    ordering holds. A send that fails or times out drops only that client.

    Usage:
        hub = BroadcastHub(lambda: projection.initial_state(ca))
        hub.subscribe(SocketIOSubscriber(sio, sid))
        hub.publish(MessageType.STATS_UPDATE, stats)
    """

    def __init__(
        self,
        initial_state: Callable[[], dict],
        send_timeout_seconds: float = 5.0,
    ):
        """
        Initialize the hub.

        Args:
            initial_state: Builds the INITIAL_STATE payload on demand
            send_timeout_seconds: Upper bound on a single delivery
        """
        self.initial_state = initial_state
        self.send_timeout_seconds = send_timeout_seconds
        self.subscribers: Dict[str, Subscriber] = {}
        self._last_send: Dict[str, asyncio.Task] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._sent_count = 0
        self._dropped_count = 0

    @property
    def subscriber_count(self) -> int:
        return len(self.subscribers)

    def subscribe(self, subscriber: Subscriber) -> Optional[asyncio.Task]:
        """Register a subscriber and queue its INITIAL_STATE."""
        self.subscribers[subscriber.id] = subscriber
        logger.info(f"Client connected ({self.subscriber_count} total)")
        return self._schedule(subscriber, envelope(MessageType.INITIAL_STATE, self.initial_state()))

    def unsubscribe(self, subscriber_id: str) -> None:
        if self.subscribers.pop(subscriber_id, None) is not None:
            logger.info(f"Client disconnected ({self.subscriber_count} total)")
        self._last_send.pop(subscriber_id, None)

    def publish(self, message_type: MessageType, data: Any) -> int:
        """
        Send one envelope to every current subscriber.

        Returns:
            Number of subscribers the message was scheduled for
        """
        message = envelope(message_type, data)
        count = 0
        for subscriber in list(self.subscribers.values()):
            if self._schedule(subscriber, message) is not None:
                count += 1
        logger.debug(f"📤 {message['type']} -> {count} clients")
        return count

    def _schedule(self, subscriber: Subscriber, message: dict) -> Optional[asyncio.Task]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"No running loop; dropped {message['type']} for {subscriber.id}")
            return None

        previous = self._last_send.get(subscriber.id)
        task = loop.create_task(self._deliver(subscriber, message, previous))
        self._last_send[subscriber.id] = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _deliver(
        self,
        subscriber: Subscriber,
        message: dict,
        previous: Optional[asyncio.Task] = None,
    ) -> None:
        if previous is not None and not previous.done():
            await asyncio.wait([previous])
        if subscriber.id not in self.subscribers:
            return

        try:
            await asyncio.wait_for(subscriber.send(message), timeout=self.send_timeout_seconds)
            self._sent_count += 1
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._dropped_count += 1
            logger.warning(f"Delivery to {subscriber.id} failed, dropping client: {e!r}")
            self.unsubscribe(subscriber.id)

    async def drain(self) -> None:
        """Wait until every scheduled send has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self.subscribers.clear()
        self._last_send.clear()

    def stats(self) -> dict:
        return {
            "subscribers": self.subscriber_count,
            "sent": self._sent_count,
            "dropped": self._dropped_count,
        }
