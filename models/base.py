"""
Base schemas shared by the import and price-scan models.
"""

from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class BaseSchema(BaseModel):
    """
    Base for request payloads.

    Strings are trimmed (supplier ids and column names arrive with
    stray spaces) and assignments are re-validated.
    """
    model_config = ConfigDict(
        from_attributes=True,
        str_strip_whitespace=True,
        validate_assignment=True
    )


class TimestampMixin(BaseModel):
    """Store-managed timestamps on catalog rows."""
    created_at: datetime
    updated_at: Optional[datetime] = None


class PaginatedResponse(BaseModel, Generic[T]):
    """One page of a newest-first listing."""
    data: list[T]
    total: int
    page: int
    page_size: int
    total_pages: int

    @classmethod
    def create(cls, data: list, total: int, page: int, page_size: int):
        """Build a page, deriving total_pages from the row count."""
        total_pages = (total + page_size - 1) // page_size  # Ceiling division
        return cls(
            data=data,
            total=total,
            page=page,
            page_size=page_size,
            total_pages=total_pages
        )
