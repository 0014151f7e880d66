from .product import Product
from .event import Event

# This ensures all models are registered with SQLAlchemy
__all__ = [
    'Product',
    'Event',
]
