"""
Review bookkeeping shared by the user and moderation routers.

A book's average_rating and total_reviews only ever reflect approved reviews.
"""
import logging
from typing import Optional
from sqlalchemy import func
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from app.models import Book, Review, ReviewStatus

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5
MIN_TEXT_LENGTH = 10


def validate_review_input(rating, text) -> Optional[str]:
    """Return the client-facing error message for a bad review body, or None."""
    if rating is None or not isinstance(rating, int) or rating < MIN_RATING or rating > MAX_RATING:
        return "Rating is required and must be between 1 and 5"
    if not text or len(text.strip()) < MIN_TEXT_LENGTH:
        return "Review text is required and must be at least 10 characters long"
    return None


def update_book_rating(db: Session, book_id: str) -> bool:
    """
    Recompute a book's rating aggregate from its approved reviews.

    The average is rounded to one decimal. Runs inside a savepoint and
    doesn't commit; the caller owns the outer transaction. On database
    errors only the savepoint is rolled back, so the triggering review
    action can still be committed. Returns False (and logs) in that case.
    """
    try:
        with db.begin_nested():
            avg_rating, total = (
                db.query(func.avg(Review.rating), func.count(Review.id))
                .filter(Review.book_id == book_id, Review.status == ReviewStatus.APPROVED)
                .one()
            )
            book = db.query(Book).filter(Book.id == book_id).first()
            if not book:
                logger.warning("Cannot update rating, book %s not found", book_id)
                return False

            book.average_rating = round(float(avg_rating or 0.0), 1)
            book.total_reviews = int(total or 0)
        return True
    except SQLAlchemyError as e:
        logger.warning(
            "Failed to update book rating: book_id=%s, error=%s",
            book_id,
            str(e),
            exc_info=True,
        )
        return False
