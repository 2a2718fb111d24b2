"""Tests for the real-time broadcast hub."""

import asyncio
import random
import pytest
from datetime import datetime, timezone
from unittest.mock import AsyncMock

from ingestion.events import HolderRecord
from logic.ledger import Ledger, MessageType, project
from api.broadcast import BroadcastHub, SocketIOSubscriber, envelope


T0 = datetime(2024, 12, 1, 12, 0, tzinfo=timezone.utc)


class RecordingSubscriber:
    """In-memory subscriber that records every envelope."""

    def __init__(self, sid: str, delay: float = 0.0):
        self.id = sid
        self.delay = delay
        self.received = []

    async def send(self, message: dict) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        self.received.append(message)

    def types(self):
        return [m["type"] for m in self.received]


class FailingSubscriber:
    def __init__(self, sid: str):
        self.id = sid
        self.attempts = 0

    async def send(self, message: dict) -> None:
        self.attempts += 1
        raise ConnectionResetError("client went away")


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def ledger():
    """Ledger with 3 holders and 2 sellers."""
    ledger = Ledger(rng=random.Random(9))
    ledger.reconcile([
        HolderRecord("A" * 44, 300),
        HolderRecord("B" * 44, 200),
        HolderRecord("C" * 44, 100),
        HolderRecord("D" * 44, 50),
        HolderRecord("E" * 44, 25),
    ], now=T0)
    ledger.record_sell("D" * 44, 50, T0)
    ledger.record_sell("E" * 44, 25, T0)
    return ledger


@pytest.fixture
def hub(ledger):
    return BroadcastHub(lambda: project(ledger).initial_state("F" * 44), send_timeout_seconds=0.5)


# ============================================================================
# Unit Tests - Subscribe
# ============================================================================

class TestSubscribe:
    """Tests for subscriber registration."""

    @pytest.mark.asyncio
    async def test_initial_state_on_subscribe(self, hub):
        """A new subscriber gets exactly one INITIAL_STATE with current counts."""
        sub = RecordingSubscriber("s1")

        hub.subscribe(sub)
        await hub.drain()

        assert sub.types() == ["INITIAL_STATE"]
        data = sub.received[0]["data"]
        assert data["niceCount"] == 3
        assert data["naughtyCount"] == 2
        assert data["contractAddress"] == "F" * 44
        assert hub.subscriber_count == 1

    @pytest.mark.asyncio
    async def test_unsubscribe(self, hub):
        sub = RecordingSubscriber("s1")
        hub.subscribe(sub)
        await hub.drain()

        hub.unsubscribe("s1")
        hub.publish(MessageType.STATS_UPDATE, {})
        await hub.drain()

        assert hub.subscriber_count == 0
        assert sub.types() == ["INITIAL_STATE"]

    def test_subscribe_without_loop(self, hub):
        """Outside an event loop nothing is scheduled, but registration holds."""
        assert hub.subscribe(RecordingSubscriber("s1")) is None
        assert hub.subscriber_count == 1


# ============================================================================
# Unit Tests - Publish
# ============================================================================

class TestPublish:
    """Tests for fan-out."""

    @pytest.mark.asyncio
    async def test_publish_to_all(self, hub):
        subs = [RecordingSubscriber(f"s{i}") for i in range(3)]
        for sub in subs:
            hub.subscribe(sub)

        count = hub.publish(MessageType.STATS_UPDATE, {"niceCount": 3})
        await hub.drain()

        assert count == 3
        for sub in subs:
            assert sub.received[-1] == {"type": "STATS_UPDATE", "data": {"niceCount": 3}}

    @pytest.mark.asyncio
    async def test_failing_subscriber_isolated(self, hub):
        """One failing client is dropped; the others still receive."""
        good = RecordingSubscriber("good")
        bad = FailingSubscriber("bad")
        hub.subscribe(good)
        hub.subscribe(bad)

        hub.publish(MessageType.BUY, {"wallet": "A" * 44})
        await hub.drain()

        assert good.types() == ["INITIAL_STATE", "BUY"]
        assert bad.attempts == 1
        assert hub.subscriber_count == 1
        assert hub.stats()["dropped"] == 1

    @pytest.mark.asyncio
    async def test_slow_subscriber_timed_out(self, ledger):
        hub = BroadcastHub(lambda: project(ledger).initial_state(None), send_timeout_seconds=0.01)
        slow = RecordingSubscriber("slow", delay=1.0)
        fast = RecordingSubscriber("fast")
        hub.subscribe(slow)
        hub.subscribe(fast)

        await hub.drain()

        assert fast.types() == ["INITIAL_STATE"]
        assert "slow" not in hub.subscribers

    @pytest.mark.asyncio
    async def test_per_subscriber_order(self, hub):
        """Messages reach each client in publish order, even when sends are slow."""
        sub = RecordingSubscriber("s1", delay=0.01)
        hub.subscribe(sub)
        hub.publish(MessageType.SELL, {"n": 1})
        hub.publish(MessageType.ACTIVITY, {"n": 2})
        hub.publish(MessageType.LISTS_UPDATE, {"n": 3})

        await hub.drain()

        assert sub.types() == ["INITIAL_STATE", "SELL", "ACTIVITY", "LISTS_UPDATE"]

    @pytest.mark.asyncio
    async def test_publish_does_not_block(self, hub):
        sub = RecordingSubscriber("s1", delay=0.05)
        hub.subscribe(sub)

        hub.publish(MessageType.STATS_UPDATE, {})

        assert sub.received == []
        await hub.drain()
        assert len(sub.received) == 2

    @pytest.mark.asyncio
    async def test_close(self, hub):
        hub.subscribe(RecordingSubscriber("s1", delay=1.0))

        await hub.close()

        assert hub.subscriber_count == 0


# ============================================================================
# Unit Tests - Transport
# ============================================================================

class TestSocketIOSubscriber:

    @pytest.mark.asyncio
    async def test_emits_message_event(self):
        sio = AsyncMock()
        sub = SocketIOSubscriber(sio, "sid-1")

        await sub.send(envelope(MessageType.CA_UPDATE, {"contractAddress": "F" * 44}))

        sio.emit.assert_awaited_once_with(
            "message",
            {"type": "CA_UPDATE", "data": {"contractAddress": "F" * 44}},
            to="sid-1",
        )
