from pydantic import BaseModel, ConfigDict
from typing import Optional, List
from datetime import datetime
from app.models import ReviewStatus
from app.schemas.book import BookSummary
from app.schemas.common import Pagination


class ReviewRequest(BaseModel):
    # Both checked in the router so the client gets the friendly 400 messages
    rating: Optional[int] = None
    text: Optional[str] = None


class ReviewResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    book_id: str
    rating: int
    text: str
    status: ReviewStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ReviewAuthor(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    photo_url: Optional[str] = None


class ModerationAuthor(ReviewAuthor):
    email: str


class UserReviewItem(BaseModel):
    """A review as listed on its author's own page."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    rating: int
    text: str
    status: ReviewStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    book: BookSummary


class BookReviewItem(BaseModel):
    """An approved review as shown on a book page."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    rating: int
    text: str
    status: ReviewStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    user: ReviewAuthor


class PendingReviewItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    rating: int
    text: str
    status: ReviewStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    book: BookSummary
    user: ModerationAuthor


class PendingReviewsData(BaseModel):
    reviews: List[PendingReviewItem]
    pagination: Pagination


class ReviewStatusCount(BaseModel):
    status: ReviewStatus
    count: int


class ReviewStatsData(BaseModel):
    total: int
    pending: int
    by_status: List[ReviewStatusCount]
