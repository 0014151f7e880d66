"""
Low-stock evaluation, run after catalog mutations.

The policy is a simple threshold. When a product's quantity is at or below
it, a LowStockWarning is appended in its own transaction, committed
independently of the mutation that triggered the check. The warning is a
secondary notification: if it cannot be recorded the failure is logged and
the mutation still stands.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.enums import EventType, StockSeverity
from app.core.exceptions import EventStoreError
from app.models.event import Event
from app.services.event_store import EventStore
from app.services.notifications.notifier import ChangeNotifier

logger = logging.getLogger(__name__)

LOW_STOCK_THRESHOLD = 5


def stock_severity(quantity: int) -> StockSeverity:
    return StockSeverity.CRITICAL if quantity <= 0 else StockSeverity.LOW


class LowStockEvaluator:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        notifier: Optional[ChangeNotifier] = None,
        threshold: int = LOW_STOCK_THRESHOLD,
    ):
        self.session_factory = session_factory
        self.notifier = notifier
        self.threshold = threshold

    def is_low(self, quantity: Optional[int]) -> bool:
        return quantity is not None and quantity <= self.threshold

    def build_payload(self, product: Any) -> Dict[str, Any]:
        price = product.price
        return {
            "id": product.id,
            "name": product.name,
            "product_name": product.name,
            "current_quantity": product.quantity,
            "threshold": self.threshold,
            "category": product.category or "N/A",
            "price": float(price) if price is not None else None,
            "severity": stock_severity(product.quantity).value,
        }

    async def check_and_emit(self, product: Any, seller_id: str) -> Optional[Event]:
        """
        Append a LowStockWarning for ``product`` if it is at or below the threshold.

        Returns the recorded event, or None when stock is fine or the warning
        could not be recorded.
        """
        if not self.is_low(product.quantity):
            return None

        logger.info(
            f"Processing low stock warning for product {product.id} ({product.name}): "
            f"quantity {product.quantity}, threshold {self.threshold}"
        )

        payload = self.build_payload(product)
        try:
            async with self.session_factory() as session:
                session: AsyncSession
                store = EventStore(session, self.notifier)
                event = await store.append_event(EventType.LOW_STOCK_WARNING, seller_id, product.id, payload)
                await session.commit()
        except (EventStoreError, SQLAlchemyError, OSError) as e:
            logger.error(
                f"Failed to emit low stock warning for product {product.id} ({product.name}), "
                f"quantity {product.quantity}: {e}"
            )
            return None

        logger.info(f"Low stock warning {event.id} recorded for \"{product.name}\"")
        return event
