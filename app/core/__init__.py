"""
Core module exports.
"""
from .enums import (
    EventType,
    ConnectionState,
    CloseReason,
    StockSeverity,
    NotificationBackend,
)

from .exceptions import (
    BaseServiceError,
    ProductServiceError,
    ProductCreationError,
    ProductUpdateError,
    ProductDeletionError,
    ProductNotFoundError,
    ValidationError,
    EventStoreError,
    EventAppendError,
    NotificationError,
    PublishError,
    ChannelConnectionError,
    SubscriptionClosedError,
    SubscriberBackpressureError,
)

from .utils import (
    model_to_schema,
    models_to_schemas,
    paginate_query
)
