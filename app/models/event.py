# app/models/event.py
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, BigInteger, String, DateTime, ForeignKey, JSON, Index
from sqlalchemy.dialects.postgresql import JSONB
from app.database import Base

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
PayloadType = JSON().with_variant(JSONB(), "postgresql")

# BIGSERIAL on PostgreSQL; SQLite only autoincrements INTEGER PRIMARY KEY
EventIdType = BigInteger().with_variant(Integer(), "sqlite")


class Event(Base):
    """
    Immutable record of something that happened to a seller's catalog.

    Rows are only ever inserted. The one exception is the FK cascade: deleting
    a product deletes the events that reference it in the same transaction.
    The id is assigned at insert and defines the total order of the store.
    """
    __tablename__ = "events"

    id = Column(EventIdType, primary_key=True, autoincrement=True)
    type = Column(String(50), nullable=False)
    seller_id = Column(String(255), nullable=False, index=True)

    # NULL for events that outlive their product (ProductDeleted)
    product_id = Column(
        Integer,
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    payload = Column(PayloadType, nullable=False)

    # Set by the application so the dedup window does not depend on server clock resolution
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __table_args__ = (
        Index("idx_events_type_seller", "type", "seller_id"),
        Index("idx_events_dedup", "type", "product_id", "created_at"),
    )

    def to_notification(self) -> dict:
        """The document published on the shared channel for this row."""
        return {
            "id": self.id,
            "type": self.type,
            "seller_id": self.seller_id,
            "product_id": self.product_id,
            "payload": self.payload,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return (f"<Event(id={self.id}, type='{self.type}', seller='{self.seller_id}', "
                f"product_id={self.product_id})>")
