from pydantic import BaseModel, ConfigDict
from typing import Optional
from datetime import datetime
from app.models import Shelf
from app.schemas.book import BookSummary


class LibraryAddRequest(BaseModel):
    book_id: Optional[str] = None
    shelf: str = Shelf.WANT_TO_READ.value  # validated in the router for a friendlier 400
    progress: int = 0


class ProgressUpdateRequest(BaseModel):
    progress: Optional[int] = None


class LibraryEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    book_id: str
    shelf: Shelf
    progress: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class LibraryItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    shelf: Shelf
    progress: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    book: BookSummary
