from datetime import datetime
from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from app.database import get_db
from app.models import User, Book, Review, ReviewStatus, UserLibraryEntry, Shelf
from app.schemas.common import ApiResponse
from app.schemas.review import ReviewRequest, ReviewResponse, UserReviewItem, BookReviewItem
from app.services.review_service import validate_review_input, update_book_rating
from app.core.auth import require_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reviews", tags=["reviews"])

STATUS_VALUES = [s.value for s in ReviewStatus]


def _validate(payload: ReviewRequest) -> None:
    error = validate_review_input(payload.rating, payload.text)
    if error:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error)


@router.post("/books/{book_id}", response_model=ApiResponse[ReviewResponse], status_code=status.HTTP_201_CREATED)
def submit_review(
    book_id: str,
    payload: ReviewRequest,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """
    Submit a review for a finished book. New reviews start out pending
    and don't count towards the book's rating until approved.
    """
    _validate(payload)

    finished = db.query(UserLibraryEntry).filter(
        UserLibraryEntry.user_id == user.id,
        UserLibraryEntry.book_id == book_id,
        UserLibraryEntry.shelf == Shelf.READ,
    ).first()
    if not finished:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You can only review books you have finished reading",
        )

    book = db.query(Book).filter(Book.id == book_id).first()
    if not book:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found")

    existing = db.query(Review).filter(Review.user_id == user.id, Review.book_id == book_id).first()
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="You have already reviewed this book")

    review = Review(
        user_id=user.id,
        book_id=book_id,
        rating=payload.rating,
        text=payload.text.strip(),
        status=ReviewStatus.PENDING,
    )
    db.add(review)
    try:
        db.commit()
    except IntegrityError:
        # Lost a race against a concurrent submission for the same book
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="You have already reviewed this book")

    db.refresh(review)
    logger.info("User %s submitted review %s for book %s", user.id, review.id, book_id)
    return ApiResponse(message="Review submitted successfully", data=ReviewResponse.model_validate(review))


@router.get("", response_model=ApiResponse[List[UserReviewItem]])
def get_user_reviews(
    status_filter: Optional[str] = Query(None, alias="status", description="approved, pending or rejected"),
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """Get the current user's reviews, newest first."""
    query = (
        db.query(Review)
        .join(Book, Book.id == Review.book_id)
        .options(joinedload(Review.book))
        .filter(Review.user_id == user.id)
    )
    if status_filter in STATUS_VALUES:
        query = query.filter(Review.status == ReviewStatus(status_filter))

    reviews = query.order_by(Review.created_at.desc(), Review.id.asc()).all()
    return ApiResponse(
        message="Reviews retrieved successfully",
        data=[UserReviewItem.model_validate(r) for r in reviews],
    )


@router.get("/books/{book_id}", response_model=ApiResponse[List[BookReviewItem]])
def get_book_reviews(
    book_id: str,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """Approved reviews of a book, newest first."""
    book = db.query(Book).filter(Book.id == book_id).first()
    if not book:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found")

    reviews = (
        db.query(Review)
        .join(User, User.id == Review.user_id)
        .options(joinedload(Review.user))
        .filter(Review.book_id == book_id, Review.status == ReviewStatus.APPROVED)
        .order_by(Review.created_at.desc(), Review.id.asc())
        .all()
    )
    return ApiResponse(
        message="Book reviews retrieved successfully",
        data=[BookReviewItem.model_validate(r) for r in reviews],
    )


@router.put("/{review_id}", response_model=ApiResponse[ReviewResponse])
def update_review(
    review_id: str,
    payload: ReviewRequest,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """Edit a review; only possible while it is still pending."""
    _validate(payload)

    review = db.query(Review).filter(Review.id == review_id, Review.user_id == user.id).first()
    if not review:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Review not found or you don't have permission to edit it",
        )
    if review.status != ReviewStatus.PENDING:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot edit a review that has been approved or rejected",
        )

    review.rating = payload.rating
    review.text = payload.text.strip()
    review.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(review)
    return ApiResponse(message="Review updated successfully", data=ReviewResponse.model_validate(review))


@router.delete("/{review_id}", response_model=ApiResponse[None])
def delete_review(
    review_id: str,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    review = db.query(Review).filter(Review.id == review_id, Review.user_id == user.id).first()
    if not review:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Review not found or you don't have permission to delete it",
        )

    book_id = review.book_id
    db.delete(review)
    db.flush()
    update_book_rating(db, book_id)
    db.commit()
    return ApiResponse(message="Review deleted successfully")
