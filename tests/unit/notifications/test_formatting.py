# tests/unit/notifications/test_formatting.py
import json

from app.services.notifications.formatting import (
    connected_frame,
    format_notification,
    format_sse,
    notification_frame,
    ping_frame,
)
from app.schemas.event import Notification
from tests.mocks import parse_frame


def test_format_sse_named_frame():
    frame = format_sse({"a": 1}, event="ProductCreated")
    assert frame == 'event: ProductCreated\ndata: {"a": 1}\n\n'


def test_format_sse_unnamed_frame_has_no_event_line():
    frame = format_sse("hello")
    assert frame == "data: hello\n\n"


def test_format_sse_splits_multiline_data():
    frame = format_sse("line1\nline2", event="x")
    assert frame == "event: x\ndata: line1\ndata: line2\n\n"


def test_ping_frame_body_is_epoch_millis():
    assert ping_frame(1700000000123) == "event: ping\ndata: 1700000000123\n\n"

    event, data = parse_frame(ping_frame())
    assert event == "ping"
    assert isinstance(data, int)


def test_connected_frame():
    event, data = parse_frame(connected_frame("seller-a"))

    assert event is None
    assert data["type"] == "Connected"
    assert data["sellerId"] == "seller-a"
    assert data["message"] == "SSE connection established"
    assert data["timestamp"].endswith("Z")


def test_low_stock_notification_is_reshaped():
    notification = Notification(
        id=7,
        type="LowStockWarning",
        seller_id="seller-a",
        product_id=42,
        payload={
            "id": 42,
            "name": "Widget",
            "product_name": "Widget",
            "current_quantity": 2,
            "threshold": 5,
            "category": "Tools",
            "price": 9.5,
            "severity": "low",
        },
    )

    name, body = format_notification(notification)

    assert name == "LowStockWarning"
    assert body["type"] == "LowStockWarning"
    assert "timestamp" in body
    assert body["product"] == {"id": 42, "name": "Widget", "price": 9.5, "quantity": 2, "category": "Tools"}


def test_lifecycle_notification_is_annotated_payload():
    notification = Notification(
        id=3,
        type="ProductUpdated",
        seller_id="seller-a",
        product_id=42,
        payload={"product": {"id": 42}, "changes": ["price"]},
    )

    name, body = format_notification(notification)

    assert name == "ProductUpdated"
    assert body == {
        "product": {"id": 42},
        "changes": ["price"],
        "type": "ProductUpdated",
        "sellerId": "seller-a",
        "productId": 42,
        "eventId": 3,
    }


def test_deleted_notification_takes_product_id_from_payload():
    notification = Notification(
        id=9, type="ProductDeleted", seller_id="seller-a", product_id=None,
        payload={"productId": 42, "name": "Widget"},
    )

    _, body = format_notification(notification)

    assert body["productId"] == 42


def test_notification_frame_is_named_after_event_type():
    notification = Notification(id=1, type="ProductCreated", seller_id="s", product_id=1, payload={})
    frame = notification_frame(notification)

    assert frame.startswith("event: ProductCreated\n")
    assert json.loads(frame.split("data: ", 1)[1])["eventId"] == 1
