# app/services/notifications/notifier.py
"""
Change notifier: runs after every event insert, inside the inserting
transaction, and decides whether the event is announced in real time.

1. Duplicate suppression. If another event with the same type and product was
   inserted within the dedup window, the notification is suppressed. The row
   itself stays in the store; only the fan-out is skipped.
2. Otherwise the serialized row is staged on the session. Staged
   notifications are handed to the outbox when the session commits and are
   dropped if it rolls back, so nothing is announced for a change that did
   not become durable.

A single pump task drains the outbox in commit order and publishes on the
channel. Publishing is advisory: failures are logged and the event stays
durable in the store.
"""

import asyncio
import json
import logging
from datetime import timedelta
from typing import List, Optional

from sqlalchemy import select, exists, and_, event as sa_event
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import PublishError
from app.models.event import Event
from app.services.notifications.channel import NotificationChannel

logger = logging.getLogger(__name__)

DEDUP_WINDOW = timedelta(seconds=5)

# session.info keys
_PENDING_KEY = "pending_notifications"
_HOOKED_KEY = "change_notifier_hooked"


class ChangeNotifier:
    def __init__(
        self,
        channel: NotificationChannel,
        topic: str = "events_channel",
        dedup_window: timedelta = DEDUP_WINDOW,
    ):
        self.channel = channel
        self.topic = topic
        self.dedup_window = dedup_window
        self._outbox: asyncio.Queue = asyncio.Queue()
        self._pump: Optional[asyncio.Task] = None
        self.published = 0
        self.suppressed = 0
        self.failed = 0

    # ------------------------------------------------------------------
    # Transaction side
    # ------------------------------------------------------------------
    async def after_insert(self, session: AsyncSession, event: Event) -> bool:
        """
        Hook called by the event store right after the row is flushed.

        Returns True if a notification was staged, False if suppressed.
        """
        if await self.is_duplicate(session, event):
            self.suppressed += 1
            logger.info(
                f"Suppressed notification for event {event.id} ({event.type}, product {event.product_id}): "
                f"duplicate within {self.dedup_window.total_seconds():g}s"
            )
            return False

        message = json.dumps(event.to_notification(), default=str)
        self._stage(session, message)
        return True

    async def is_duplicate(self, session: AsyncSession, event: Event) -> bool:
        """Another event of the same type for the same product inside the window?"""
        if event.product_id is None:
            # NULL never equals NULL, so product-less events are never deduplicated
            return False

        window_start = event.created_at - self.dedup_window
        query = select(
            exists().where(
                and_(
                    Event.type == event.type,
                    Event.product_id == event.product_id,
                    Event.id != event.id,
                    Event.created_at > window_start,
                )
            )
        )
        return bool(await session.scalar(query))

    def _stage(self, session: AsyncSession, message: str) -> None:
        info = session.info
        info.setdefault(_PENDING_KEY, []).append(message)

        if not info.get(_HOOKED_KEY):
            sync_session = session.sync_session
            sa_event.listen(sync_session, "after_commit", self._on_commit)
            sa_event.listen(sync_session, "after_transaction_end", self._on_transaction_end)
            info[_HOOKED_KEY] = True

    def _on_commit(self, sync_session) -> None:
        pending: List[str] = sync_session.info.pop(_PENDING_KEY, [])
        for message in pending:
            self._outbox.put_nowait(message)
        if pending:
            logger.debug(f"Released {len(pending)} notification(s) after commit")

    def _on_transaction_end(self, sync_session, transaction) -> None:
        if transaction.parent is not None:
            return
        # Anything still staged here was never committed (rollback or close)
        dropped = sync_session.info.pop(_PENDING_KEY, [])
        if dropped:
            logger.info(f"Discarded {len(dropped)} staged notification(s) from an uncommitted transaction")

    # ------------------------------------------------------------------
    # Outbox pump
    # ------------------------------------------------------------------
    def start(self) -> None:
        if self._pump is None or self._pump.done():
            self._pump = asyncio.create_task(self._run(), name="change-notifier-outbox")

    async def stop(self) -> None:
        if self._pump is None:
            return
        self._pump.cancel()
        try:
            await self._pump
        except asyncio.CancelledError:
            pass
        self._pump = None

    async def drain(self) -> None:
        """Wait until everything committed so far has been published (or failed)."""
        await self._outbox.join()

    @property
    def pending(self) -> int:
        return self._outbox.qsize()

    async def _run(self) -> None:
        while True:
            message = await self._outbox.get()
            try:
                await self.channel.publish(self.topic, message)
                self.published += 1
            except PublishError as e:
                self.failed += 1
                logger.error(f"Failed to publish notification on '{self.topic}': {e}")
            except Exception as e:
                self.failed += 1
                logger.exception(f"Unexpected error publishing notification on '{self.topic}': {e}")
            finally:
                self._outbox.task_done()

    def get_stats(self) -> dict:
        return {
            "topic": self.topic,
            "running": self._pump is not None and not self._pump.done(),
            "pending": self.pending,
            "published": self.published,
            "suppressed": self.suppressed,
            "failed": self.failed,
        }
