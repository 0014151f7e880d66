# tests/unit/notifications/test_registry.py
import asyncio

import pytest

from app.core.enums import CloseReason, ConnectionState
from app.core.exceptions import SubscriberBackpressureError, SubscriptionClosedError
from app.services.notifications.registry import SubscriptionRegistry, SubscriptionTransport
from tests.mocks import collect_frames, next_frame


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.mark.asyncio
async def test_register_indexes_by_seller(registry):
    a1 = registry.register("seller-a")
    a2 = registry.register("seller-a")
    b1 = registry.register("seller-b")

    assert a1.id != a2.id
    assert a1.state == ConnectionState.OPEN
    assert registry.find_by_seller("seller-a") == [a1, a2]
    assert registry.find_by_seller("seller-b") == [b1]
    assert registry.find_by_seller("nobody") == []
    assert len(registry) == 3


@pytest.mark.asyncio
async def test_unregister_is_idempotent(registry):
    sub = registry.register("seller-a")
    heartbeat = sub.heartbeat

    assert registry.unregister(sub, CloseReason.WRITE_ERROR) is True
    assert registry.unregister(sub, CloseReason.CLIENT) is False

    assert sub not in registry
    assert sub.state == ConnectionState.CLOSED
    # First caller's reason wins
    assert sub.close_reason == CloseReason.WRITE_ERROR
    assert registry.closed_by_reason[CloseReason.WRITE_ERROR] == 1
    assert registry.closed_by_reason[CloseReason.CLIENT] == 0
    assert sub.transport.closed

    await asyncio.gather(heartbeat, return_exceptions=True)
    assert heartbeat.cancelled()


@pytest.mark.asyncio
async def test_send_after_close_raises(registry):
    sub = registry.register("seller-a")
    registry.unregister(sub)

    with pytest.raises(SubscriptionClosedError):
        sub.send("data: x\n\n")


@pytest.mark.asyncio
async def test_heartbeat_sends_ping(registry):
    sub = registry.register("seller-a")

    [(event, data)] = await collect_frames(sub, 1)

    assert event == "ping"
    assert isinstance(data, int)
    assert sub in registry


@pytest.mark.asyncio
async def test_successful_writes_keep_client_alive(registry):
    sub = registry.register("seller-a")
    frames = sub.transport.frames(on_sent=sub.touch)

    # Keep consuming pings for longer than the client timeout
    loop = asyncio.get_running_loop()
    deadline = loop.time() + registry.client_timeout * 2
    while loop.time() < deadline:
        event, _ = await next_frame(frames)
        assert event == "ping"

    assert sub in registry
    await frames.aclose()


@pytest.mark.asyncio
async def test_idle_client_is_retired_on_liveness_timeout(registry):
    sub = registry.register("seller-a")

    # Nobody reads the stream, so no write ever completes
    await asyncio.sleep(registry.client_timeout + registry.heartbeat_interval * 4)

    assert sub not in registry
    assert sub.close_reason == CloseReason.LIVENESS_TIMEOUT
    assert registry.closed_by_reason[CloseReason.LIVENESS_TIMEOUT] == 1


@pytest.mark.asyncio
async def test_idle_client_retired_at_timeout_not_next_ping():
    registry = SubscriptionRegistry(heartbeat_interval=0.2, client_timeout=0.25, queue_size=10)
    sub = registry.register("seller-a")

    # Pings are due at 0.2s and 0.4s; the timeout falls between them
    await asyncio.sleep(0.33)

    assert sub not in registry
    assert sub.close_reason == CloseReason.LIVENESS_TIMEOUT


@pytest.mark.asyncio
async def test_liveness_check_uses_last_successful_write():
    clock = FakeClock()
    registry = SubscriptionRegistry(heartbeat_interval=0.01, client_timeout=60, clock=clock)
    sub = registry.register("seller-a")

    clock.advance(59)
    sub.touch()
    clock.advance(59)
    await asyncio.sleep(0.05)
    assert sub in registry

    clock.advance(2)
    await asyncio.sleep(0.05)
    assert sub not in registry
    assert sub.close_reason == CloseReason.LIVENESS_TIMEOUT


@pytest.mark.asyncio
async def test_backpressure_retires_subscription():
    registry = SubscriptionRegistry(heartbeat_interval=0.01, client_timeout=60, queue_size=3)
    sub = registry.register("seller-a")

    # Heartbeats fill the buffer of a client that never reads
    await asyncio.sleep(0.2)

    assert sub not in registry
    assert sub.close_reason == CloseReason.WRITE_ERROR


def test_transport_put_full_raises():
    transport = SubscriptionTransport(max_frames=2)
    transport.put("a")
    transport.put("b")

    with pytest.raises(SubscriberBackpressureError):
        transport.put("c")


@pytest.mark.asyncio
async def test_transport_close_ends_frames():
    transport = SubscriptionTransport(max_frames=5)
    transport.put("a")
    transport.close()
    transport.close()

    received = [frame async for frame in transport.frames()]

    assert received == ["a"]
    with pytest.raises(SubscriptionClosedError):
        transport.put("b")


@pytest.mark.asyncio
async def test_close_all_on_shutdown():
    registry = SubscriptionRegistry(heartbeat_interval=10, client_timeout=60)
    subs = [registry.register("seller-a"), registry.register("seller-b")]

    closed = await registry.close_all()

    assert closed == 2
    assert len(registry) == 0
    assert all(sub.close_reason == CloseReason.SHUTDOWN for sub in subs)
    assert all(sub.heartbeat is None for sub in subs)


@pytest.mark.asyncio
async def test_get_stats(registry):
    registry.register("seller-a")
    registry.register("seller-a")
    registry.register("seller-b")

    stats = registry.get_stats()

    assert stats["total_connections"] == 3
    assert stats["total_sellers"] == 2
    assert stats["connections_by_seller"] == {"seller-a": 2, "seller-b": 1}
