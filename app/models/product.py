"""
Models for the seller catalog.

Products are partitioned by seller; every mutation of a product is mirrored
by a row in the event store (see app.models.event).
"""

from sqlalchemy import Column, Integer, String, Text, Numeric, DateTime, Index
from datetime import datetime, timezone

from ..database import Base


def utc_now():
    return datetime.now(timezone.utc)


class Product(Base):
    __tablename__ = "products"

    # Primary Key and Timestamps
    id = Column(Integer, primary_key=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    # Ownership
    seller_id = Column(String(255), nullable=False, index=True)

    # Core Product Information
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    price = Column(Numeric(12, 2), nullable=False)
    quantity = Column(Integer, nullable=False, default=0)
    category = Column(String(100), nullable=False)

    __table_args__ = (
        Index("idx_products_seller_quantity", "seller_id", "quantity"),
        Index("idx_products_seller_category", "seller_id", "category"),
    )

    def to_dict(self):
        """Plain JSON-safe snapshot, used as event payload."""
        return {
            "id": self.id,
            "seller_id": self.seller_id,
            "name": self.name,
            "description": self.description,
            "price": float(self.price) if self.price is not None else None,
            "quantity": self.quantity,
            "category": self.category,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Product(id={self.id}, seller='{self.seller_id}', name='{self.name}', qty={self.quantity})>"
