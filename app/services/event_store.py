"""
Purpose: Append-only store of catalog domain events, partitioned by seller.

The store never commits. ``append_event`` writes into whatever transaction the
caller's session has open, so a lifecycle event shares fate with the mutation
that caused it: both commit or neither does. Right after the insert, the
change notifier runs in the same transaction to decide whether the event is
announced to live subscribers.

Rows are never updated. Deleting a product removes its events through the
foreign key cascade.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import EventType
from app.core.exceptions import EventAppendError
from app.models.event import Event
from app.services.notifications.notifier import ChangeNotifier

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 200


class EventStore:
    def __init__(self, db: AsyncSession, notifier: Optional[ChangeNotifier] = None):
        self.db = db
        self.notifier = notifier

    async def append_event(
        self,
        event_type: Union[EventType, str],
        seller_id: str,
        product_id: Optional[int],
        payload: Dict[str, Any],
    ) -> Event:
        """
        Insert an event row and run the change notifier hook.

        Args:
            event_type: One of the EventType values
            seller_id: Partition key
            product_id: Product the event is about, or None
            payload: Event specific document (must be JSON serializable)

        Returns:
            The flushed Event with its id and created_at assigned

        Raises:
            EventAppendError: If the row cannot be written. The caller's
                transaction should be considered failed.
        """
        event_type = EventType(event_type)

        event = Event(
            type=event_type.value,
            seller_id=seller_id,
            product_id=product_id,
            payload=payload,
            created_at=datetime.now(timezone.utc),
        )

        try:
            self.db.add(event)
            await self.db.flush()  # Get the ID without committing transaction
        except SQLAlchemyError as e:
            logger.error(f"Failed to append {event_type.value} for seller {seller_id}, product {product_id}: {e}")
            raise EventAppendError(f"Failed to append {event_type.value} event: {e}") from e

        logger.debug(f"Event {event.id} appended: {event_type.value} seller={seller_id} product={product_id}")

        if self.notifier is not None:
            await self.notifier.after_insert(self.db, event)

        return event

    async def get_event(self, event_id: int, seller_id: str) -> Optional[Event]:
        query = select(Event).where(Event.id == event_id, Event.seller_id == seller_id)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def list_events(
        self,
        seller_id: str,
        *,
        event_type: Optional[Union[EventType, str]] = None,
        product_id: Optional[int] = None,
        after_id: Optional[int] = None,
        limit: int = 50,
    ) -> List[Event]:
        """
        Seller-scoped read of the audit trail in store order (ascending id).

        ``after_id`` pages forward through the log.
        """
        limit = min(max(1, limit), MAX_PAGE_SIZE)
        query = select(Event).where(Event.seller_id == seller_id)

        if event_type is not None:
            query = query.where(Event.type == EventType(event_type).value)
        if product_id is not None:
            query = query.where(Event.product_id == product_id)
        if after_id is not None:
            query = query.where(Event.id > after_id)

        query = query.order_by(Event.id.asc()).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def count_events(self, seller_id: Optional[str] = None, product_id: Optional[int] = None) -> int:
        query = select(func.count(Event.id))
        if seller_id is not None:
            query = query.where(Event.seller_id == seller_id)
        if product_id is not None:
            query = query.where(Event.product_id == product_id)
        return int(await self.db.scalar(query) or 0)
