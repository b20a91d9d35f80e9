from pydantic import BaseModel, ConfigDict
from typing import Optional, List
from datetime import datetime
from app.schemas.common import Pagination


class BookResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    author: str
    genre: str
    description: Optional[str] = None
    cover_image: Optional[str] = None
    total_pages: Optional[int] = None
    average_rating: float = 0.0
    total_reviews: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BookSummary(BaseModel):
    """Trimmed book shape embedded in library items and reviews."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    author: str
    genre: Optional[str] = None
    cover_image: Optional[str] = None
    total_pages: Optional[int] = None
    average_rating: Optional[float] = None


class BookListData(BaseModel):
    books: List[BookResponse]
    pagination: Pagination
