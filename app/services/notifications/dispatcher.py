# app/services/notifications/dispatcher.py
"""
Broadcast dispatcher: the one listener per process on the shared channel.

Each notification is parsed, matched against the subscriptions of its seller
and written to each of them. A failed write retires that subscription once
the fan-out pass is over; other subscribers are unaffected. If the listening
connection drops, the dispatcher waits a fixed delay and subscribes again.
Notifications published while it was disconnected are not replayed.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError

from app.core.enums import CloseReason
from app.core.exceptions import ChannelConnectionError, SubscriberBackpressureError, SubscriptionClosedError
from app.schemas.event import Notification
from app.services.notifications.channel import NotificationChannel
from app.services.notifications.formatting import notification_frame
from app.services.notifications.registry import Subscription, SubscriptionRegistry

logger = logging.getLogger(__name__)

RECONNECT_DELAY = 5.0  # seconds


class BroadcastDispatcher:
    def __init__(
        self,
        channel: NotificationChannel,
        registry: SubscriptionRegistry,
        topic: str = "events_channel",
        reconnect_delay: float = RECONNECT_DELAY,
    ):
        self.channel = channel
        self.registry = registry
        self.topic = topic
        self.reconnect_delay = reconnect_delay
        self._task: Optional[asyncio.Task] = None
        self._listening = asyncio.Event()

        # Metrics
        self.received = 0
        self.delivered = 0
        self.dropped = 0
        self.dead_clients = 0
        self.reconnects = 0
        self.last_error: Optional[str] = None
        self.last_notification_at: Optional[datetime] = None

    @property
    def listening(self) -> bool:
        return self._listening.is_set()

    def start(self) -> None:
        """Attach the listener. Called once at process startup."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(), name="broadcast-dispatcher")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self._listening.clear()

    async def wait_listening(self, timeout: Optional[float] = None) -> None:
        await asyncio.wait_for(self._listening.wait(), timeout)

    async def _run(self) -> None:
        while True:
            try:
                await self._listen()
                # The channel ended the stream without an error; treat it as a drop
                self.last_error = "subscription ended"
            except ChannelConnectionError as e:
                self.last_error = str(e)
                logger.error(f"Notification listener lost: {e}")
            except (OSError, asyncio.TimeoutError) as e:
                self.last_error = str(e)
                logger.error(f"Notification listener error: {e}")
            except Exception as e:
                self.last_error = str(e)
                logger.exception(f"Unexpected error in notification listener: {e}")
            finally:
                self._listening.clear()

            self.reconnects += 1
            logger.info(f"Reconnecting notification listener in {self.reconnect_delay:g}s (attempt {self.reconnects})")
            await asyncio.sleep(self.reconnect_delay)

    async def _listen(self) -> None:
        messages = self.channel.subscribe(self.topic)
        self._listening.set()
        logger.info(f"SSE event broadcaster registered on '{self.topic}'")
        try:
            async for raw in messages:
                self.dispatch(raw)
        finally:
            await messages.aclose()

    def dispatch(self, raw: str) -> int:
        """
        Fan one raw notification out to the matching subscriptions.

        Returns the number of subscriptions the frame was written to.
        """
        self.received += 1
        self.last_notification_at = datetime.now(timezone.utc)

        try:
            notification = Notification.model_validate(json.loads(raw))
        except (json.JSONDecodeError, TypeError, PydanticValidationError) as e:
            self.dropped += 1
            logger.error(f"Dropping malformed notification: {e}")
            return 0

        targets = self.registry.find_by_seller(notification.seller_id)
        logger.debug(
            f"Processing {notification.type} for seller {notification.seller_id} "
            f"(product {notification.product_id}): {len(targets)} client(s)"
        )
        if not targets:
            return 0

        try:
            frame = notification_frame(notification)
        except (PydanticValidationError, ValueError, TypeError) as e:
            self.dropped += 1
            logger.error(f"Dropping {notification.type} notification {notification.id} that cannot be formatted: {e}")
            return 0

        sent = 0
        dead: List[Subscription] = []

        for subscription in targets:
            try:
                subscription.send(frame)
                sent += 1
            except (SubscriptionClosedError, SubscriberBackpressureError) as e:
                logger.warning(f"Error writing {notification.type} to SSE client {subscription.id}: {e}")
                dead.append(subscription)

        for subscription in dead:
            self.registry.unregister(subscription, CloseReason.WRITE_ERROR)

        self.delivered += sent
        self.dead_clients += len(dead)
        logger.info(
            f"Event broadcast complete. Sent {notification.type} to {sent} clients, "
            f"found {len(dead)} dead clients"
        )
        return sent

    def get_stats(self) -> dict:
        return {
            "topic": self.topic,
            "listening": self.listening,
            "received": self.received,
            "delivered": self.delivered,
            "dropped": self.dropped,
            "dead_clients": self.dead_clients,
            "reconnects": self.reconnects,
            "last_error": self.last_error,
            "last_notification_at": self.last_notification_at.isoformat() if self.last_notification_at else None,
        }
