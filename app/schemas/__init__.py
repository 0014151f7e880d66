"""
Schema exports for the application.
"""

# Base schemas
from .base import BaseSchema, TimestampedSchema, ApiResponse, Pagination

# Product schemas
from .product import ProductBase, ProductCreate, ProductUpdate, ProductRead

# Event and stream schemas
from .event import (
    EventRead,
    Notification,
    LowStockProduct,
    LowStockWarningMessage,
    ConnectedMessage,
)
