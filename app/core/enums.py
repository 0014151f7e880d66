"""
Shared enums and constants used across the application.
"""

from enum import Enum


class EventType(str, Enum):
    """Domain event types recorded in the event store"""
    PRODUCT_CREATED = "ProductCreated"
    PRODUCT_UPDATED = "ProductUpdated"
    PRODUCT_DELETED = "ProductDeleted"
    LOW_STOCK_WARNING = "LowStockWarning"


class ConnectionState(str, Enum):
    """Lifecycle of one streaming connection"""
    CONNECTING = "CONNECTING"
    OPEN = "OPEN"
    CLOSING = "CLOSING"
    CLOSED = "CLOSED"


class CloseReason(str, Enum):
    """Why a subscription left the registry"""
    CLIENT = "CLIENT"
    LIVENESS_TIMEOUT = "LIVENESS_TIMEOUT"
    WRITE_ERROR = "WRITE_ERROR"
    SHUTDOWN = "SHUTDOWN"


class StockSeverity(str, Enum):
    LOW = "low"
    CRITICAL = "critical"


class NotificationBackend(str, Enum):
    POSTGRES = "postgres"
    MEMORY = "memory"
