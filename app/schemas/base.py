"""
Base schemas with common functionality.
"""
from datetime import datetime
from pydantic import BaseModel, ConfigDict
from typing import TypeVar, Generic, Optional

D = TypeVar('D')

class BaseSchema(BaseModel):
    """Base schema with common functionality for all schemas"""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True
    )

class TimestampedSchema(BaseSchema):
    """Base schema for models with timestamp fields"""
    created_at: datetime
    updated_at: datetime

class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool

class ApiResponse(BaseModel, Generic[D]):
    """Envelope returned by the JSON API"""
    success: bool = True
    data: Optional[D] = None
    message: Optional[str] = None
    error: Optional[str] = None
    pagination: Optional[Pagination] = None
