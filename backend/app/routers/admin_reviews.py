from datetime import datetime
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from app.database import get_db
from app.models import User, Book, Review, ReviewStatus
from app.schemas.common import ApiResponse, Pagination
from app.schemas.review import (
    PendingReviewItem,
    PendingReviewsData,
    ReviewStatsData,
    ReviewStatusCount,
)
from app.services.review_service import update_book_rating
from app.core.auth import require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reviews", tags=["admin"])


def _get_review_or_404(db: Session, review_id: str) -> Review:
    review = db.query(Review).filter(Review.id == review_id).first()
    if not review:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Review not found")
    return review


def _require_pending(review: Review) -> None:
    if review.status != ReviewStatus.PENDING:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Review has already been processed",
        )


@router.get("/pending", response_model=ApiResponse[PendingReviewsData])
def get_pending_reviews(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Moderation queue, newest first."""
    query = (
        db.query(Review)
        .join(Book, Book.id == Review.book_id)
        .join(User, User.id == Review.user_id)
        .filter(Review.status == ReviewStatus.PENDING)
    )
    total = query.count()
    reviews = (
        query.options(joinedload(Review.book), joinedload(Review.user))
        .order_by(Review.created_at.desc(), Review.id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return ApiResponse(
        message="Pending reviews retrieved successfully",
        data=PendingReviewsData(
            reviews=[PendingReviewItem.model_validate(r) for r in reviews],
            pagination=Pagination.build(page, limit, total),
        ),
    )


@router.get("/stats", response_model=ApiResponse[ReviewStatsData])
def get_review_stats(
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    rows = db.query(Review.status, func.count(Review.id)).group_by(Review.status).all()
    counts = {row[0]: row[1] for row in rows}
    return ApiResponse(
        message="Review stats retrieved successfully",
        data=ReviewStatsData(
            total=sum(counts.values()),
            pending=counts.get(ReviewStatus.PENDING, 0),
            by_status=[
                ReviewStatusCount(status=s, count=counts.get(s, 0))
                for s in ReviewStatus
            ],
        ),
    )


@router.put("/{review_id}/approve", response_model=ApiResponse[None])
def approve_review(
    review_id: str,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    review = _get_review_or_404(db, review_id)
    _require_pending(review)

    review.status = ReviewStatus.APPROVED
    review.updated_at = datetime.utcnow()
    db.flush()
    update_book_rating(db, review.book_id)
    db.commit()

    logger.info("Admin %s approved review %s", admin.id, review_id)
    return ApiResponse(message="Review approved successfully")


@router.put("/{review_id}/reject", response_model=ApiResponse[None])
def reject_review(
    review_id: str,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    review = _get_review_or_404(db, review_id)
    _require_pending(review)

    review.status = ReviewStatus.REJECTED
    review.updated_at = datetime.utcnow()
    db.commit()

    logger.info("Admin %s rejected review %s", admin.id, review_id)
    return ApiResponse(message="Review rejected successfully")


@router.delete("/{review_id}", response_model=ApiResponse[None])
def delete_review(
    review_id: str,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    review = _get_review_or_404(db, review_id)
    book_id = review.book_id

    db.delete(review)
    db.flush()
    update_book_rating(db, book_id)
    db.commit()

    logger.info("Admin %s deleted review %s", admin.id, review_id)
    return ApiResponse(message="Review deleted successfully")
