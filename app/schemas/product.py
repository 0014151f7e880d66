"""
Schemas for product-related API endpoints. Refactored using Mixin.
"""

from typing import Optional
from pydantic import BaseModel, Field, field_validator, ConfigDict

from app.schemas.base import TimestampedSchema

class ProductValidationMixin(BaseModel):
    """
    --- Mixin class for shared validation logic ---
    Note: Placed common model_config here for DRYness
    """
    model_config = ConfigDict(
        from_attributes = True,
        populate_by_name = True
    )

    @field_validator('price', mode='before', check_fields=False)
    @classmethod
    def validate_price(cls, v):
        if v is None:
            return None
        try:
            price = float(v)
        except (ValueError, TypeError):
            raise ValueError(f'Price must be a valid number, got: {v}')
        if price < 0:
            raise ValueError('Price cannot be negative')
        return price

    @field_validator('name', 'category', mode='before', check_fields=False)
    @classmethod
    def strip_text(cls, v):
        if isinstance(v, str):
            v = v.strip()
            if not v:
                raise ValueError('Value cannot be blank')
        return v


class ProductBase(ProductValidationMixin):
    name: str = Field(..., max_length=255)
    description: str = ""
    price: float
    quantity: int = Field(0, ge=0)
    category: str = Field(..., max_length=100)


class ProductCreate(ProductBase):
    pass


class ProductUpdate(ProductValidationMixin):
    """All fields optional; only the ones sent are applied."""
    name: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    price: Optional[float] = None
    quantity: Optional[int] = Field(None, ge=0)
    category: Optional[str] = Field(None, max_length=100)


class ProductRead(ProductBase, TimestampedSchema):
    id: int
    seller_id: str
