"""
Utility functions for the application.
"""
import math

from typing import Type, TypeVar, List, Dict, Any, Sequence
from pydantic import BaseModel
from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar('T', bound=BaseModel)

async def model_to_schema(
    db_model: Any,
    schema_class: Type[T],
) -> T:
    """
    Convert a SQLAlchemy model instance to a Pydantic schema instance.

    Args:
        db_model: SQLAlchemy model instance
        schema_class: Pydantic schema class

    Returns:
        Instance of the Pydantic schema
    """
    return schema_class.model_validate(
        db_model,
        from_attributes=True
    )

async def models_to_schemas(
    db_models: Sequence[Any],
    schema_class: Type[T],
) -> List[T]:
    """
    Convert a list of SQLAlchemy model instances to a list of Pydantic schema instances.
    """
    return [await model_to_schema(model, schema_class) for model in db_models]

async def paginate_query(
    query: Select,
    db: AsyncSession,
    page: int = 1,
    page_size: int = 10
) -> Dict[str, Any]:
    """
    Paginate a SQLAlchemy select.

    Args:
        query: SQLAlchemy select (ordering already applied)
        db: Database session
        page: Page number (1-indexed)
        page_size: Number of items per page

    Returns:
        Dictionary with the page of ORM objects and pagination information
    """
    # Get total count for pagination
    count_query = select(func.count()).select_from(query.order_by(None).subquery())
    total = int(await db.scalar(count_query) or 0)

    # Apply pagination
    offset = (page - 1) * page_size
    result = await db.execute(query.offset(offset).limit(page_size))
    items = list(result.scalars().all())

    total_pages = math.ceil(total / page_size) if total else 0

    return {
        "items": items,
        "pagination": {
            "page": page,
            "limit": page_size,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
