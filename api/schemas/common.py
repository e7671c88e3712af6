"""
Common Pydantic schemas used across the API.

This module contains shared schemas for pagination, errors, bulk actions
and other common response patterns.
"""

from typing import Any, Dict, List, Optional, Generic, TypeVar
from pydantic import BaseModel, Field
from datetime import datetime

# Type variable for generic pagination
T = TypeVar('T')


def reject_null(value):
    """Validator body for PATCH fields backed by non-nullable columns."""
    if value is None:
        raise ValueError('Field cannot be null')
    return value


class ErrorResponse(BaseModel):
    """Standard error response format."""

    error: str = Field(..., description="Error message")
    detail: Optional[Dict[str, Any]] = Field(None, description="Additional error details")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Error timestamp")
    path: Optional[str] = Field(None, description="Request path that caused the error")

    class Config:
        json_schema_extra = {
            "example": {
                "error": "A leader with cedula 12345678 already exists",
                "detail": {"cedula": "12345678"},
                "timestamp": "2025-10-15T12:00:00Z",
                "path": "/api/leaders"
            }
        }


class PaginatedResponse(BaseModel, Generic[T]):
    """Generic paginated response."""

    total: int = Field(..., description="Total number of items")
    page: int = Field(..., description="Current page number")
    page_size: int = Field(..., description="Items per page")
    total_pages: int = Field(..., description="Total number of pages")
    has_next: bool = Field(..., description="Whether a next page exists")
    has_prev: bool = Field(..., description="Whether a previous page exists")
    items: List[T] = Field(..., description="Items in current page")

    @classmethod
    def create(cls, items: List[T], total: int, page: int, page_size: int):
        """
        Create paginated response.

        Args:
            items: List of items for current page
            total: Total number of items
            page: Current page number
            page_size: Items per page

        Returns:
            PaginatedResponse instance
        """
        total_pages = (total + page_size - 1) // page_size  # Ceiling division

        return cls(
            total=total,
            page=page,
            page_size=page_size,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
            items=items
        )


class BulkActionResponse(BaseModel):
    """Result of a bulk action."""

    action: str = Field(..., description="Action applied")
    affected: int = Field(..., description="Number of records changed")

    class Config:
        json_schema_extra = {
            "example": {"action": "deactivate", "affected": 3}
        }


class SuccessResponse(BaseModel):
    """Standard success response."""

    success: bool = Field(True, description="Operation success flag")
    message: str = Field(..., description="Success message")
    data: Optional[Dict[str, Any]] = Field(None, description="Additional data")

    class Config:
        json_schema_extra = {
            "example": {
                "success": True,
                "message": "Leader 12 deleted",
                "data": {"id": 12}
            }
        }


class EntitySummary(BaseModel):
    """Id and name of a related record."""

    id: int
    name: str

    class Config:
        from_attributes = True


class HealthCheckResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="Service status")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Health check timestamp")
    version: str = Field(..., description="API version")
    database: str = Field(..., description="Database connection status")
    redis: str = Field(..., description="Redis connection status")
    celery: str = Field(..., description="Celery worker status")

    class Config:
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "timestamp": "2025-10-15T12:00:00Z",
                "version": "1.0.0",
                "database": "connected",
                "redis": "connected",
                "celery": "active"
            }
        }
