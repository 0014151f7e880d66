from typing import AsyncGenerator, Optional
from fastapi import Depends, Header, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings, get_settings
from app.database import async_session
from app.services.notifications.notifier import ChangeNotifier
from app.services.notifications.registry import SubscriptionRegistry
from app.services.product_service import ProductService
from app.services.stock_service import LowStockEvaluator

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting async database sessions."""
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()

def get_seller_id(
    x_seller_id: Optional[str] = Header(None, alias="x-seller-id"),
    seller_id: Optional[str] = Query(None),
    settings: Settings = Depends(get_settings),
) -> str:
    """
    Seller partition for the request.

    Identity is established upstream; here the header wins over the query
    parameter (EventSource cannot send custom headers), then the default.
    """
    return (x_seller_id or seller_id or settings.DEFAULT_SELLER_ID).strip()

def get_registry(request: Request) -> SubscriptionRegistry:
    return request.app.state.registry

def get_notifier(request: Request) -> Optional[ChangeNotifier]:
    return getattr(request.app.state, "notifier", None)

def get_low_stock_evaluator(request: Request) -> Optional[LowStockEvaluator]:
    return getattr(request.app.state, "low_stock", None)

def get_product_service(
    db: AsyncSession = Depends(get_db),
    notifier: Optional[ChangeNotifier] = Depends(get_notifier),
    low_stock: Optional[LowStockEvaluator] = Depends(get_low_stock_evaluator),
) -> ProductService:
    return ProductService(db, notifier=notifier, low_stock=low_stock)
