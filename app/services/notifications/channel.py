# app/services/notifications/channel.py
"""
Publish/subscribe transports for event notifications.

A channel carries serialized notifications on named topics:

    await channel.publish(topic, message)
    async for message in channel.subscribe(topic):
        ...

PostgresChannel rides on LISTEN/NOTIFY so every process connected to the same
database sees every notification. InMemoryChannel only reaches subscribers in
the current process and is used for single-process deployments and tests.

Delivery is FIFO per channel as far as the underlying transport preserves it.
PostgreSQL delivers notifications from one session in order, but makes no
promise across publishing sessions, so two events committed by different
connections may be observed in either order.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import AsyncIterator, Dict, Optional, Set

import asyncpg

from app.core.enums import NotificationBackend
from app.core.exceptions import ChannelConnectionError, PublishError

logger = logging.getLogger(__name__)

# pg_notify payloads are capped at 8000 bytes by default
PG_NOTIFY_MAX_BYTES = 7999

_CONNECTION_LOST = object()


class NotificationChannel(ABC):
    """Topic based publish/subscribe interface."""

    @abstractmethod
    async def publish(self, topic: str, message: str) -> None:
        """Publish one message. Raises PublishError on failure."""

    @abstractmethod
    def subscribe(self, topic: str) -> AsyncIterator[str]:
        """
        Async iterator of messages published on ``topic`` from now on.

        Raises ChannelConnectionError if the underlying connection is lost;
        the caller decides whether to subscribe again.
        """

    async def close(self) -> None:
        """Release any resources held by the channel."""
        return None


class InMemoryChannel(NotificationChannel):
    """Process-local channel backed by one asyncio.Queue per subscriber."""

    def __init__(self):
        self._subscribers: Dict[str, Set[asyncio.Queue]] = defaultdict(set)
        self._closed = False

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, ()))

    async def publish(self, topic: str, message: str) -> None:
        if self._closed:
            raise PublishError("Channel is closed")
        for queue in list(self._subscribers.get(topic, ())):
            queue.put_nowait(message)

    def subscribe(self, topic: str) -> AsyncIterator[str]:
        # Registered eagerly: messages published after this call are not missed
        queue: asyncio.Queue = asyncio.Queue()
        if self._closed:
            queue.put_nowait(_CONNECTION_LOST)
        self._subscribers[topic].add(queue)
        logger.debug(f"In-memory subscriber added on '{topic}' ({self.subscriber_count(topic)} total)")
        return self._iterate(topic, queue)

    async def _iterate(self, topic: str, queue: asyncio.Queue) -> AsyncIterator[str]:
        try:
            while True:
                item = await queue.get()
                if item is _CONNECTION_LOST:
                    raise ChannelConnectionError(f"Channel '{topic}' closed")
                yield item
        finally:
            self._subscribers[topic].discard(queue)

    async def close(self) -> None:
        self._closed = True
        for queues in self._subscribers.values():
            for queue in queues:
                queue.put_nowait(_CONNECTION_LOST)


class PostgresChannel(NotificationChannel):
    """
    LISTEN/NOTIFY channel.

    Publishing goes over one reused connection outside the ORM pool, so a
    failed publish never touches the connection of the transaction that
    produced the event. Each subscription holds one dedicated connection for
    its lifetime.
    """

    def __init__(self, dsn: str, health_check_interval: float = 30.0, connect_timeout: float = 10.0):
        self.dsn = dsn
        self.health_check_interval = health_check_interval
        self.connect_timeout = connect_timeout
        self._publish_conn: Optional[asyncpg.Connection] = None
        self._publish_lock = asyncio.Lock()

    async def _publisher(self) -> asyncpg.Connection:
        if self._publish_conn is None or self._publish_conn.is_closed():
            self._publish_conn = await asyncpg.connect(self.dsn, timeout=self.connect_timeout)
        return self._publish_conn

    async def publish(self, topic: str, message: str) -> None:
        if len(message.encode("utf-8")) > PG_NOTIFY_MAX_BYTES:
            raise PublishError(f"Notification too large for pg_notify ({len(message)} chars)")
        async with self._publish_lock:
            try:
                conn = await self._publisher()
                await conn.execute("SELECT pg_notify($1, $2)", topic, message)
            except (asyncpg.PostgresError, OSError, asyncio.TimeoutError) as e:
                if self._publish_conn is not None:
                    self._publish_conn.terminate()
                    self._publish_conn = None
                raise PublishError(f"pg_notify on '{topic}' failed: {e}") from e

    async def subscribe(self, topic: str) -> AsyncIterator[str]:
        try:
            conn = await asyncpg.connect(self.dsn, timeout=self.connect_timeout)
        except (asyncpg.PostgresError, OSError, asyncio.TimeoutError) as e:
            raise ChannelConnectionError(f"Could not connect listener for '{topic}': {e}") from e

        queue: asyncio.Queue = asyncio.Queue()

        def on_notification(connection, pid, channel, payload):
            queue.put_nowait(payload)

        def on_termination(connection):
            queue.put_nowait(_CONNECTION_LOST)

        try:
            await conn.add_listener(topic, on_notification)
            conn.add_termination_listener(on_termination)
            logger.info(f"Listening on PostgreSQL channel '{topic}'")

            while True:
                try:
                    item = await asyncio.wait_for(queue.get(), timeout=self.health_check_interval)
                except asyncio.TimeoutError:
                    # Idle: probe the listening connection. A half-open socket never answers.
                    try:
                        await asyncio.wait_for(conn.fetchval("SELECT 1"), timeout=self.connect_timeout)
                    except (asyncpg.PostgresError, OSError, asyncio.TimeoutError) as e:
                        raise ChannelConnectionError(f"Listener health check failed: {e}") from e
                    continue

                if item is _CONNECTION_LOST:
                    raise ChannelConnectionError(f"Listener connection for '{topic}' terminated")
                yield item
        except (asyncpg.PostgresError, OSError) as e:
            raise ChannelConnectionError(f"Listener on '{topic}' failed: {e}") from e
        finally:
            if not conn.is_closed():
                try:
                    await asyncio.wait_for(conn.remove_listener(topic, on_notification), timeout=self.connect_timeout)
                    await conn.close(timeout=5)
                except (asyncpg.PostgresError, OSError, asyncio.TimeoutError):
                    conn.terminate()

    async def close(self) -> None:
        if self._publish_conn is not None and not self._publish_conn.is_closed():
            await self._publish_conn.close()
        self._publish_conn = None


def build_channel(settings) -> NotificationChannel:
    """Pick the channel implementation from settings."""
    backend = NotificationBackend(settings.NOTIFICATION_BACKEND)
    if backend is NotificationBackend.POSTGRES:
        dsn = settings.asyncpg_dsn
        if not dsn:
            raise ValueError("NOTIFICATION_BACKEND=postgres requires a PostgreSQL DATABASE_URL")
        return PostgresChannel(dsn, health_check_interval=settings.LISTENER_HEALTH_CHECK_SECONDS)
    return InMemoryChannel()
