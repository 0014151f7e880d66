"""
Purpose: Seller-scoped product catalog operations.

Every mutation records its lifecycle event (ProductCreated, ProductUpdated,
ProductDeleted) in the same transaction as the change itself, so if the
event cannot be written the mutation is rolled back too. After the mutation
commits, the low-stock evaluator runs as a separate, best-effort step.

All reads and writes are filtered by seller: a product that belongs to
another seller is reported as not found.
"""

import logging
from typing import Optional, Dict, Any

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import EventType
from app.core.exceptions import (
    ProductCreationError,
    ProductDeletionError,
    ProductNotFoundError,
    ProductUpdateError,
    ValidationError,
)
from app.core.utils import model_to_schema, models_to_schemas, paginate_query
from app.models.product import Product
from app.schemas.product import ProductCreate, ProductRead, ProductUpdate
from app.services.event_store import EventStore
from app.services.notifications.notifier import ChangeNotifier
from app.services.stock_service import LowStockEvaluator

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


class ProductService:
    def __init__(
        self,
        db: AsyncSession,
        notifier: Optional[ChangeNotifier] = None,
        low_stock: Optional[LowStockEvaluator] = None,
    ):
        self.db = db
        self.events = EventStore(db, notifier)
        self.low_stock = low_stock

    async def _get_owned(self, seller_id: str, product_id: int) -> Product:
        query = select(Product).where(Product.id == product_id, Product.seller_id == seller_id)
        result = await self.db.execute(query)
        product = result.scalar_one_or_none()
        if not product:
            raise ProductNotFoundError(f"Product {product_id} not found or access denied")
        return product

    async def _evaluate_stock(self, product: Product, seller_id: str) -> None:
        if self.low_stock is not None:
            await self.low_stock.check_and_emit(product, seller_id)

    async def create_product(self, seller_id: str, product_data: ProductCreate) -> ProductRead:
        """
        Creates a product and its ProductCreated event in one transaction.

        Raises:
            ProductCreationError: If the product or its event cannot be written
        """
        try:
            product = Product(seller_id=seller_id, **product_data.model_dump())
            self.db.add(product)
            await self.db.flush()  # Get product ID without committing

            await self.events.append_event(
                EventType.PRODUCT_CREATED, seller_id, product.id, {"product": product.to_dict()}
            )
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            raise ProductCreationError(f"Failed to create product: {str(e)}") from e

        logger.info(f"Product {product.id} created for seller {seller_id}")
        await self._evaluate_stock(product, seller_id)
        return await model_to_schema(product, ProductRead)

    async def update_product(self, seller_id: str, product_id: int, update_data: ProductUpdate) -> ProductRead:
        """
        Applies a partial update and records ProductUpdated in the same transaction.

        Raises:
            ValidationError: If no fields were supplied
            ProductNotFoundError: If the product does not exist for this seller
            ProductUpdateError: If the update or its event cannot be written
        """
        changes = update_data.model_dump(exclude_unset=True)
        if not changes:
            raise ValidationError("No fields to update")

        try:
            product = await self._get_owned(seller_id, product_id)
            previous = {field: getattr(product, field) for field in changes}
            for field, value in changes.items():
                setattr(product, field, value)
            await self.db.flush()

            await self.events.append_event(
                EventType.PRODUCT_UPDATED,
                seller_id,
                product.id,
                {
                    "product": product.to_dict(),
                    "changes": list(changes),
                    "previousValues": {
                        k: float(v) if k == "price" and v is not None else v for k, v in previous.items()
                    },
                },
            )
            await self.db.commit()
        except ProductNotFoundError:
            await self.db.rollback()
            raise
        except Exception as e:
            await self.db.rollback()
            raise ProductUpdateError(f"Failed to update product {product_id}: {str(e)}") from e

        logger.info(f"Product {product_id} updated for seller {seller_id}: {', '.join(changes)}")
        await self._evaluate_stock(product, seller_id)
        return await model_to_schema(product, ProductRead)

    async def delete_product(self, seller_id: str, product_id: int) -> Dict[str, Any]:
        """
        Deletes a product and records ProductDeleted in the same transaction.

        The product's earlier events go with it (FK cascade). The deletion
        event itself is stored without a product reference so it survives.
        """
        try:
            product = await self._get_owned(seller_id, product_id)
            snapshot = product.to_dict()

            await self.db.delete(product)
            await self.db.flush()

            await self.events.append_event(
                EventType.PRODUCT_DELETED,
                seller_id,
                None,
                {"productId": product_id, "name": snapshot["name"], "product": snapshot},
            )
            await self.db.commit()
        except ProductNotFoundError:
            await self.db.rollback()
            raise
        except Exception as e:
            await self.db.rollback()
            raise ProductDeletionError(f"Failed to delete product {product_id}: {str(e)}") from e

        logger.info(f"Product {product_id} deleted for seller {seller_id}")
        return snapshot

    async def get_product(self, seller_id: str, product_id: int) -> ProductRead:
        """
        Retrieves a product by ID.

        Raises:
            ProductNotFoundError: If product not found
        """
        product = await self._get_owned(seller_id, product_id)
        return await model_to_schema(product, ProductRead)

    async def list_products(
        self,
        seller_id: str,
        page: int = 1,
        limit: int = 10,
        search: Optional[str] = None,
        category: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        List products with filtering and pagination.

        Returns:
            Dictionary with the page of products and pagination info
        """
        page = max(1, page)
        limit = min(MAX_PAGE_SIZE, max(1, limit))

        query = select(Product).where(Product.seller_id == seller_id)

        if search:
            search_term = f"%{search}%"
            query = query.where(
                or_(
                    Product.name.ilike(search_term),
                    Product.description.ilike(search_term),
                )
            )

        if category:
            query = query.where(Product.category == category)

        query = query.order_by(Product.created_at.desc(), Product.id.desc())
        page_result = await paginate_query(query, self.db, page=page, page_size=limit)
        page_result["items"] = await models_to_schemas(page_result["items"], ProductRead)
        return page_result
