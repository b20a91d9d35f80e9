from pydantic import BaseModel
from typing import Generic, Optional, TypeVar

DataT = TypeVar("DataT")


class ApiResponse(BaseModel, Generic[DataT]):
    """Envelope every Bookworm endpoint responds with."""
    success: bool = True
    message: str
    data: Optional[DataT] = None


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_items: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        skip = (page - 1) * limit
        return cls(
            current_page=page,
            total_pages=(total + limit - 1) // limit if limit else 0,
            total_items=total,
            has_next=skip + limit < total,
            has_prev=page > 1,
        )
