# app/services/notifications/formatting.py
"""
Server-sent event framing.

Every pushed message is a named text frame::

    event: <name>
    data: <json>

LowStockWarning notifications are reshaped into a nested product document;
all other event types go out as their stored payload annotated with the
event's type, seller and product.
"""

import json
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from app.core.enums import EventType
from app.schemas.event import ConnectedMessage, LowStockProduct, LowStockWarningMessage, Notification

PING_EVENT = "ping"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def format_sse(data: Any, event: Optional[str] = None) -> str:
    """Encode one SSE frame. Non-string data is JSON encoded."""
    body = data if isinstance(data, str) else json.dumps(data, default=str)
    lines = []
    if event:
        lines.append(f"event: {event}")
    # A newline inside data would end the field early
    lines.extend(f"data: {line}" for line in body.split("\n"))
    return "\n".join(lines) + "\n\n"


def ping_frame(now_ms: Optional[int] = None) -> str:
    """Liveness pulse: reserved ``ping`` event whose body is epoch milliseconds."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return format_sse(str(now_ms), event=PING_EVENT)


def connected_frame(seller_id: str) -> str:
    """Initial acknowledgement, sent as an unnamed frame."""
    message = ConnectedMessage(timestamp=utc_timestamp(), seller_id=seller_id)
    return format_sse(message.model_dump(by_alias=True))


def format_low_stock(notification: Notification) -> Dict[str, Any]:
    payload = notification.payload
    product = LowStockProduct(
        id=notification.product_id if notification.product_id is not None else payload.get("id"),
        name=payload.get("name") or payload.get("product_name"),
        price=payload.get("price"),
        quantity=payload.get("current_quantity", payload.get("quantity")),
        category=payload.get("category"),
    )
    return LowStockWarningMessage(timestamp=utc_timestamp(), product=product).model_dump()


def format_notification(notification: Notification) -> Tuple[str, Dict[str, Any]]:
    """Return ``(event_name, body)`` for a notification read off the channel."""
    if notification.type == EventType.LOW_STOCK_WARNING.value:
        return notification.type, format_low_stock(notification)

    body = dict(notification.payload)
    body.update(
        type=notification.type,
        sellerId=notification.seller_id,
        productId=notification.product_id if notification.product_id is not None else body.get("productId"),
        eventId=notification.id,
    )
    return notification.type, body


def notification_frame(notification: Notification) -> str:
    event_name, body = format_notification(notification)
    return format_sse(body, event=event_name)
