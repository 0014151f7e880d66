"""
Schemas for the event store and the wire messages pushed to stream clients.
"""
from datetime import datetime
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, Field, ConfigDict

from app.core.enums import EventType
from app.schemas.base import BaseSchema


class EventRead(BaseSchema):
    id: int
    type: EventType
    seller_id: str
    product_id: Optional[int] = None
    payload: Dict[str, Any]
    created_at: datetime


class Notification(BaseModel):
    """Document carried on the shared channel, one per published event."""
    model_config = ConfigDict(extra="ignore")

    id: Optional[int] = None
    type: str
    seller_id: str
    product_id: Optional[int] = None
    payload: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[str] = None


class LowStockProduct(BaseModel):
    id: Optional[int] = None
    name: Optional[str] = None
    price: Optional[Union[float, str]] = None
    quantity: Optional[int] = None
    category: Optional[str] = None


class LowStockWarningMessage(BaseModel):
    type: str = EventType.LOW_STOCK_WARNING.value
    timestamp: str
    product: LowStockProduct


class ConnectedMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str = "Connected"
    timestamp: str
    seller_id: str = Field(..., serialization_alias="sellerId")
    message: str = "SSE connection established"
