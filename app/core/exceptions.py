class BaseServiceError(Exception):
    """Base exception for all service-related errors."""
    pass

class ProductServiceError(BaseServiceError):
    """Base exception for product service errors."""
    pass

class ProductCreationError(ProductServiceError):
    """Raised when product creation fails."""
    pass

class ProductUpdateError(ProductServiceError):
    """Raised when a product update fails."""
    pass

class ProductDeletionError(ProductServiceError):
    """Raised when a product deletion fails."""
    pass

class ProductNotFoundError(ProductServiceError):
    """Raised when product is not found (or belongs to another seller)."""
    pass

class ValidationError(BaseServiceError):
    """Raised when data validation fails."""
    pass

class EventStoreError(BaseServiceError):
    """Base exception for event store errors."""
    pass

class EventAppendError(EventStoreError):
    """Raised when an event row cannot be written."""
    pass

class NotificationError(BaseServiceError):
    """Base exception for the real-time notification pipeline."""
    pass

class PublishError(NotificationError):
    """Raised when a notification cannot be published on the shared channel."""
    pass

class ChannelConnectionError(NotificationError):
    """Raised when the listening connection to the shared channel is lost."""
    pass

class SubscriptionClosedError(NotificationError):
    """Raised when writing to a subscription whose transport is closed."""
    pass

class SubscriberBackpressureError(NotificationError):
    """Raised when a subscriber's outbound buffer is full."""
    pass
