# tests/unit/notifications/test_channel.py
import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from app.core.config import Settings
from app.core.exceptions import ChannelConnectionError, PublishError
from app.services.notifications.channel import (
    InMemoryChannel,
    PG_NOTIFY_MAX_BYTES,
    PostgresChannel,
    build_channel,
)


@pytest.mark.asyncio
async def test_in_memory_fan_out_per_topic():
    channel = InMemoryChannel()
    first = channel.subscribe("events_channel")
    second = channel.subscribe("events_channel")
    other = channel.subscribe("other")

    await channel.publish("events_channel", "m1")
    await channel.publish("events_channel", "m2")

    assert [await first.__anext__(), await first.__anext__()] == ["m1", "m2"]
    assert await second.__anext__() == "m1"
    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(other.__anext__(), 0.05)


@pytest.mark.asyncio
async def test_in_memory_close_breaks_subscriptions():
    channel = InMemoryChannel()
    messages = channel.subscribe("events_channel")

    await channel.close()

    with pytest.raises(ChannelConnectionError):
        await messages.__anext__()
    with pytest.raises(PublishError):
        await channel.publish("events_channel", "late")


@pytest.mark.asyncio
async def test_in_memory_unsubscribes_on_aclose():
    channel = InMemoryChannel()
    messages = channel.subscribe("events_channel")
    await channel.publish("events_channel", "m1")
    assert await messages.__anext__() == "m1"

    await messages.aclose()

    assert channel.subscriber_count("events_channel") == 0


@pytest.mark.asyncio
async def test_postgres_publish_uses_pg_notify(mocker):
    conn = MagicMock()
    conn.is_closed.return_value = False
    conn.execute = AsyncMock()
    connect = mocker.patch("app.services.notifications.channel.asyncpg.connect", AsyncMock(return_value=conn))
    channel = PostgresChannel("postgresql://localhost/catalog")

    await channel.publish("events_channel", '{"id": 1}')
    await channel.publish("events_channel", '{"id": 2}')

    conn.execute.assert_awaited_with("SELECT pg_notify($1, $2)", "events_channel", '{"id": 2}')
    # Publisher connection is reused
    connect.assert_awaited_once()


@pytest.mark.asyncio
async def test_postgres_publish_rejects_oversized_payload(mocker):
    connect = mocker.patch("app.services.notifications.channel.asyncpg.connect", AsyncMock())
    channel = PostgresChannel("postgresql://localhost/catalog")

    with pytest.raises(PublishError):
        await channel.publish("events_channel", "x" * (PG_NOTIFY_MAX_BYTES + 1))
    connect.assert_not_awaited()


@pytest.mark.asyncio
async def test_postgres_publish_failure_raises_publish_error(mocker):
    mocker.patch(
        "app.services.notifications.channel.asyncpg.connect",
        AsyncMock(side_effect=OSError("connection refused")),
    )
    channel = PostgresChannel("postgresql://localhost/catalog")

    with pytest.raises(PublishError):
        await channel.publish("events_channel", "{}")


@pytest.mark.asyncio
async def test_postgres_subscribe_connection_failure(mocker):
    mocker.patch(
        "app.services.notifications.channel.asyncpg.connect",
        AsyncMock(side_effect=OSError("connection refused")),
    )
    channel = PostgresChannel("postgresql://localhost/catalog")

    with pytest.raises(ChannelConnectionError):
        await channel.subscribe("events_channel").__anext__()


@pytest.mark.asyncio
async def test_postgres_subscribe_yields_notifications(mocker):
    listeners = {}
    conn = MagicMock()
    conn.is_closed.return_value = False
    conn.add_listener = AsyncMock(side_effect=lambda topic, cb: listeners.setdefault(topic, cb))
    conn.remove_listener = AsyncMock()
    conn.close = AsyncMock()
    mocker.patch("app.services.notifications.channel.asyncpg.connect", AsyncMock(return_value=conn))
    channel = PostgresChannel("postgresql://localhost/catalog", health_check_interval=5)

    messages = channel.subscribe("events_channel")
    pending = asyncio.ensure_future(messages.__anext__())
    await asyncio.sleep(0.01)
    listeners["events_channel"](conn, 123, "events_channel", '{"id": 1}')

    assert await asyncio.wait_for(pending, 1) == '{"id": 1}'
    await messages.aclose()
    conn.remove_listener.assert_awaited_once()
    conn.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_postgres_termination_raises_connection_error(mocker):
    termination = []
    conn = MagicMock()
    conn.is_closed.return_value = True
    conn.add_listener = AsyncMock()
    conn.add_termination_listener = MagicMock(side_effect=termination.append)
    mocker.patch("app.services.notifications.channel.asyncpg.connect", AsyncMock(return_value=conn))
    channel = PostgresChannel("postgresql://localhost/catalog", health_check_interval=5)

    messages = channel.subscribe("events_channel")
    pending = asyncio.ensure_future(messages.__anext__())
    await asyncio.sleep(0.01)
    termination[0](conn)

    with pytest.raises(ChannelConnectionError):
        await asyncio.wait_for(pending, 1)


def test_build_channel_selects_backend():
    memory = build_channel(Settings(NOTIFICATION_BACKEND="memory"))
    postgres = build_channel(Settings(NOTIFICATION_BACKEND="postgres", DATABASE_URL="postgresql://u:p@db/catalog"))

    assert isinstance(memory, InMemoryChannel)
    assert isinstance(postgres, PostgresChannel)
    assert postgres.dsn == "postgresql://u:p@db/catalog"


def test_build_channel_postgres_requires_postgres_url():
    with pytest.raises(ValueError):
        build_channel(Settings(NOTIFICATION_BACKEND="postgres", DATABASE_URL="sqlite+aiosqlite:///x.db"))


@pytest.mark.asyncio
async def test_postgres_unanswered_health_check_raises_connection_error(mocker):
    async def never_answers(*args, **kwargs):
        await asyncio.Event().wait()

    conn = MagicMock()
    conn.is_closed.return_value = False
    conn.add_listener = AsyncMock()
    conn.fetchval = never_answers
    conn.remove_listener = never_answers
    conn.close = AsyncMock()
    mocker.patch("app.services.notifications.channel.asyncpg.connect", AsyncMock(return_value=conn))
    channel = PostgresChannel("postgresql://localhost/catalog", health_check_interval=0.01, connect_timeout=0.05)

    with pytest.raises(ChannelConnectionError):
        await asyncio.wait_for(channel.subscribe("events_channel").__anext__(), 1)
    # Cleanup on the dead connection gives up and drops the socket
    conn.terminate.assert_called_once()
