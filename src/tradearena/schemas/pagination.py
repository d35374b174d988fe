# src/tradearena/schemas/pagination.py

"""Pagination schemas for list responses."""

from typing import Generic, TypeVar

from pydantic import Field

from .common import CamelModel

T = TypeVar("T")


class PaginatedResponse(CamelModel, Generic[T]):
    """Standard paginated response wrapper.

    Attributes:
        items: List of items for the current page
        total: Total number of records
        skip: Number of records skipped
        limit: Maximum number of records returned
        has_more: Whether more records exist beyond this page
    """

    items: list[T]
    total: int = Field(..., description="Total records")
    skip: int = Field(..., description="Records skipped")
    limit: int = Field(..., description="Max records returned")
    has_more: bool = Field(..., description="More records exist beyond this page")
