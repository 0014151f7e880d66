# app/routes/events.py
import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import CloseReason, EventType
from app.dependencies import get_db, get_registry, get_seller_id
from app.schemas.base import ApiResponse
from app.schemas.event import EventRead
from app.services.event_store import EventStore
from app.services.notifications.formatting import connected_frame
from app.services.notifications.registry import SubscriptionRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["events"])

# No caching or proxy buffering for a persistent text stream
SSE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
    "Pragma": "no-cache",
    "Expires": "0",
}


async def stream_subscription(registry: SubscriptionRegistry, seller_id: str):
    """
    Body of the streaming response.

    The subscription is registered on the first step of the body, so a client
    that leaves before streaming starts never leaves an entry behind. The
    body ends when the transport is closed by the registry (liveness timeout
    or a failed write). Client disconnects cancel it. Either way the
    subscription is unregistered exactly once.
    """
    subscription = registry.register(seller_id)
    try:
        subscription.send(connected_frame(seller_id))
        async for frame in subscription.transport.frames(on_sent=subscription.touch):
            yield frame
    except asyncio.CancelledError:
        logger.info(f"SSE client {subscription.id} disconnected")
        raise
    except OSError as e:
        logger.error(f"SSE connection error for client {subscription.id}: {e}")
        raise
    finally:
        registry.unregister(subscription, CloseReason.CLIENT)


@router.get("/stream")
async def open_stream(
    seller_id: str = Depends(get_seller_id),
    registry: SubscriptionRegistry = Depends(get_registry),
):
    """Long-lived server-sent event stream of this seller's notifications."""
    logger.info(f"New SSE connection request for seller: {seller_id}")

    return StreamingResponse(
        stream_subscription(registry, seller_id),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get("", response_model=ApiResponse[list[EventRead]])
async def list_events(
    seller_id: str = Depends(get_seller_id),
    event_type: Optional[EventType] = Query(None, alias="type"),
    product_id: Optional[int] = Query(None),
    after_id: Optional[int] = Query(None, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    """
    Durable event history for the seller, oldest first.

    This is the audit trail only; the stream never replays it.
    """
    store = EventStore(db)
    events = await store.list_events(
        seller_id, event_type=event_type, product_id=product_id, after_id=after_id, limit=limit
    )
    return ApiResponse[list[EventRead]](data=[EventRead.model_validate(e) for e in events])
