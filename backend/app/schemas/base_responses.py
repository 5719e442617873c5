"""
Base response schemas for standardized API responses.

These schemas keep list endpoints and errors in one consistent shape.
"""

from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class PaginatedResponse(BaseModel, Generic[T]):
    """Standard paginated response for all list endpoints."""

    items: List[T] = Field(description="List of items")
    total: int = Field(description="Total number of items")
    page: int = Field(default=1, description="Current page number", ge=1)
    per_page: int = Field(default=10, description="Items per page", ge=1, le=100)
    has_next: bool = Field(description="Whether there's a next page")
    has_prev: bool = Field(description="Whether there's a previous page")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "items": ["..."],
                "total": 42,
                "page": 1,
                "per_page": 10,
                "has_next": True,
                "has_prev": False,
            }
        }
    )

    @classmethod
    def build(cls, items: List[Any], total: int, page: int, per_page: int) -> "PaginatedResponse[T]":
        return cls(
            items=items,
            total=total,
            page=page,
            per_page=per_page,
            has_next=page * per_page < total,
            has_prev=page > 1,
        )


class ErrorResponse(BaseModel):
    """Shape of ``detail`` for domain errors."""

    message: str = Field(description="Human-readable error message")
    code: str = Field(description="Error code for programmatic handling")
    details: Optional[Dict[str, Any]] = Field(default=None, description="Additional context")


class HealthResponse(BaseModel):
    status: str = Field(description="Service health")
    service: str
    version: str
    database: str
