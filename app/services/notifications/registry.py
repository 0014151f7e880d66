# app/services/notifications/registry.py
"""
In-process registry of live streaming subscriptions.

The registry is owned by the event loop of one process: the streaming
endpoint adds subscriptions, the dispatcher and the liveness timers remove
them. Nothing else mutates it, so no locking is needed. Subscriptions are
indexed by seller so fan-out never scans other sellers' clients.
"""

import asyncio
import itertools
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, Dict, List, Optional

from app.core.enums import CloseReason, ConnectionState
from app.core.exceptions import SubscriberBackpressureError, SubscriptionClosedError
from app.services.notifications.formatting import ping_frame

logger = logging.getLogger(__name__)

HEARTBEAT_INTERVAL = 15.0  # seconds
CLIENT_TIMEOUT = 60.0  # seconds
SUBSCRIBER_QUEUE_SIZE = 100

_CLOSE = object()


class SubscriptionTransport:
    """
    Outbound side of one streaming connection.

    The dispatcher and heartbeat put frames; the streaming response consumes
    them through ``frames()``. The queue is bounded: a client that stops
    reading eventually makes ``put`` fail, which counts as a write failure.
    """

    def __init__(self, max_frames: int = SUBSCRIBER_QUEUE_SIZE):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_frames + 1)
        self.max_frames = max_frames
        self._closed = False
        self._writer: Optional[asyncio.Task] = None
        self._writing = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        """Frames queued but not yet taken by the writer."""
        return self._queue.qsize()

    def put(self, frame: str) -> None:
        if self._closed:
            raise SubscriptionClosedError("Transport is closed")
        # One slot is reserved for the close marker
        if self._queue.qsize() >= self.max_frames:
            raise SubscriberBackpressureError(f"Outbound buffer full ({self.max_frames} frames)")
        self._queue.put_nowait(frame)

    async def frames(self, on_sent: Optional[Callable[[], None]] = None) -> AsyncIterator[str]:
        """
        Yield queued frames until the transport is closed.

        ``on_sent`` runs after the consumer has taken each frame and come back
        for the next one, i.e. after the frame was actually written.
        """
        self._writer = asyncio.current_task()
        try:
            while True:
                frame = await self._queue.get()
                if frame is _CLOSE:
                    return
                self._writing = True
                yield frame
                self._writing = False
                if on_sent is not None:
                    on_sent()
        finally:
            self._writing = False
            self._writer = None

    def close(self) -> None:
        """Idempotent. Wakes the consumer; aborts it if stuck mid-write."""
        if self._closed:
            return
        self._closed = True
        try:
            self._queue.put_nowait(_CLOSE)
        except asyncio.QueueFull:
            pass
        writer = self._writer
        if self._writing and writer is not None and writer is not asyncio.current_task() and not writer.done():
            # The consumer is blocked handing a frame to a dead socket
            writer.cancel()


@dataclass(eq=False)
class Subscription:
    id: int
    seller_id: str
    transport: SubscriptionTransport
    clock: Callable[[], float] = time.monotonic
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    state: ConnectionState = ConnectionState.CONNECTING
    close_reason: Optional[CloseReason] = None
    last_activity_at: float = 0.0
    heartbeat: Optional[asyncio.Task] = field(default=None, repr=False)

    def __post_init__(self):
        self.last_activity_at = self.clock()

    def touch(self) -> None:
        """Record a successful write."""
        self.last_activity_at = self.clock()

    def idle_for(self) -> float:
        return self.clock() - self.last_activity_at

    @property
    def is_open(self) -> bool:
        return self.state == ConnectionState.OPEN

    def send(self, frame: str) -> None:
        """Queue a frame for the client. Raises on a closed or saturated transport."""
        if self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
            raise SubscriptionClosedError(f"Subscription {self.id} is {self.state.value.lower()}")
        self.transport.put(frame)


class SubscriptionRegistry:
    def __init__(
        self,
        heartbeat_interval: float = HEARTBEAT_INTERVAL,
        client_timeout: float = CLIENT_TIMEOUT,
        queue_size: int = SUBSCRIBER_QUEUE_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.heartbeat_interval = heartbeat_interval
        self.client_timeout = client_timeout
        self.queue_size = queue_size
        self.clock = clock
        self._by_seller: Dict[str, Dict[int, Subscription]] = {}
        self._ids = itertools.count(1)
        self.closed_by_reason: Dict[CloseReason, int] = {reason: 0 for reason in CloseReason}

    def register(self, seller_id: str) -> Subscription:
        """Create a subscription for ``seller_id`` and start its liveness timer."""
        subscription = Subscription(
            id=next(self._ids),
            seller_id=seller_id,
            transport=SubscriptionTransport(self.queue_size),
            clock=self.clock,
        )
        self._by_seller.setdefault(seller_id, {})[subscription.id] = subscription
        subscription.heartbeat = asyncio.create_task(
            self._heartbeat(subscription), name=f"sse-heartbeat-{subscription.id}"
        )
        subscription.state = ConnectionState.OPEN
        logger.info(f"SSE client {subscription.id} registered for seller {seller_id}. Active clients: {len(self)}")
        return subscription

    def unregister(self, subscription: Subscription, reason: CloseReason = CloseReason.CLIENT) -> bool:
        """
        Remove the subscription, stop its timer and close its transport.

        Safe to call any number of times; only the first call has an effect
        and its reason is the one recorded. Returns True if it removed anything.
        """
        seller_subs = self._by_seller.get(subscription.seller_id)
        if not seller_subs or seller_subs.get(subscription.id) is not subscription:
            return False

        subscription.state = ConnectionState.CLOSING
        subscription.close_reason = reason

        del seller_subs[subscription.id]
        if not seller_subs:
            del self._by_seller[subscription.seller_id]

        heartbeat = subscription.heartbeat
        if heartbeat is not None and heartbeat is not asyncio.current_task() and not heartbeat.done():
            heartbeat.cancel()
        subscription.heartbeat = None

        subscription.transport.close()
        subscription.state = ConnectionState.CLOSED
        self.closed_by_reason[reason] += 1

        logger.info(
            f"SSE client {subscription.id} removed ({reason.value.lower()}). Active clients: {len(self)}"
        )
        return True

    def find_by_seller(self, seller_id: str) -> List[Subscription]:
        return list(self._by_seller.get(seller_id, {}).values())

    def all(self) -> List[Subscription]:
        return [sub for subs in self._by_seller.values() for sub in subs.values()]

    def __len__(self) -> int:
        return sum(len(subs) for subs in self._by_seller.values())

    def __contains__(self, subscription: Subscription) -> bool:
        return self._by_seller.get(subscription.seller_id, {}).get(subscription.id) is subscription

    async def close_all(self, reason: CloseReason = CloseReason.SHUTDOWN) -> int:
        subscriptions = self.all()
        heartbeats = [sub.heartbeat for sub in subscriptions if sub.heartbeat is not None]
        for subscription in subscriptions:
            self.unregister(subscription, reason)
        if heartbeats:
            await asyncio.gather(*heartbeats, return_exceptions=True)
        return len(subscriptions)

    def get_stats(self) -> dict:
        """Return a summary of registry statistics."""
        return {
            "total_connections": len(self),
            "total_sellers": len(self._by_seller),
            "connections_by_seller": {seller: len(subs) for seller, subs in self._by_seller.items()},
            "closed": {reason.value: count for reason, count in self.closed_by_reason.items()},
            "heartbeat_interval": self.heartbeat_interval,
            "client_timeout": self.client_timeout,
        }

    async def _heartbeat(self, subscription: Subscription) -> None:
        """
        Liveness timer: retire stale clients, otherwise send a ping.

        Pings go out every ``heartbeat_interval``. The timer also wakes when
        the client's timeout falls due between two pings, so a stale client
        is retired at ``client_timeout`` rather than at the next ping.
        """
        loop = asyncio.get_running_loop()
        next_ping = loop.time() + self.heartbeat_interval
        while True:
            remaining = max(self.client_timeout - subscription.idle_for(), 0.0)
            await asyncio.sleep(min(max(next_ping - loop.time(), 0.0), remaining))

            if subscription not in self:
                return

            idle = subscription.idle_for()
            if idle >= self.client_timeout:
                logger.warning(f"Client {subscription.id} timed out after {idle:.1f}s without a successful write")
                self.unregister(subscription, CloseReason.LIVENESS_TIMEOUT)
                return

            if loop.time() < next_ping:
                continue
            next_ping = loop.time() + self.heartbeat_interval

            try:
                subscription.send(ping_frame())
            except (SubscriptionClosedError, SubscriberBackpressureError) as e:
                logger.info(f"Heartbeat failed for client {subscription.id}: {e}")
                self.unregister(subscription, CloseReason.WRITE_ERROR)
                return
