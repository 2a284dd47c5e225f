"""
Standard API Response Wrappers
Generic response schemas for API endpoints.
"""

from typing import TypeVar, Generic, List, Optional, Dict, Any

from pydantic import BaseModel, Field

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Standard ``{success, data, message}`` envelope."""

    success: bool = Field(description="Whether the operation was successful")
    data: Optional[T] = Field(default=None, description="Response data")
    message: str = Field(default="", description="Response message")

    @classmethod
    def ok(cls, data: Any = None, message: str = "Success") -> "ApiResponse":
        return cls(success=True, data=data, message=message)


class PaginatedResponse(BaseModel, Generic[T]):
    """Paginated response wrapper."""

    items: List[T] = Field(description="Items in current page")
    total: int = Field(ge=0, description="Total items")
    page: int = Field(ge=1, description="Current page number")
    page_size: int = Field(ge=1, description="Items per page")
    has_more: bool = Field(description="Whether more pages exist")

    @property
    def total_pages(self) -> int:
        """Calculate total number of pages."""
        return (self.total + self.page_size - 1) // self.page_size

    @classmethod
    def from_result(cls, result: Dict[str, Any], items: Optional[List[Any]] = None) -> Dict[str, Any]:
        """Shape a ``BaseCRUD.list`` result for the API, adding ``total_pages``."""
        page = cls(
            items=items if items is not None else result["items"],
            total=result["total"],
            page=result["page"],
            page_size=result["page_size"],
            has_more=result["has_more"],
        )
        data = page.model_dump()
        data["total_pages"] = page.total_pages
        return data
