from typing import Optional
import uuid as uuid_lib

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
import logging

from app.database import get_db
from app.services import recommendation_engine
from app.services.recommendation_store import SqlAlchemyRecommendationStore
from app.schemas.book import BookResponse
from app.schemas.common import ApiResponse
from app.schemas.recommendation import RecommendationsData
from app.core.auth import require_user
from app.models import User
from app.utils.timing import now_ms, log_elapsed
from app.core.config import settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["recommendations"])


@router.get("/recommendations", response_model=ApiResponse[RecommendationsData])
def get_recommendations(
    limit: Optional[str] = Query(None, description="Number of books, default 12"),
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """
    Personalized recommendations for the authenticated reader.

    A malformed limit is not an error: it falls back to the default.
    """
    t0 = now_ms()
    request_id = str(uuid_lib.uuid4())
    effective_limit = recommendation_engine.normalize_limit(
        limit,
        default=settings.RECOMMENDATION_DEFAULT_LIMIT,
        maximum=settings.RECOMMENDATION_MAX_LIMIT,
    )

    logger.info("Fetching recommendations for user %s (limit=%d)", user.id, effective_limit)

    try:
        outcome = recommendation_engine.get_recommendations(
            SqlAlchemyRecommendationStore(db),
            user_id=user.id,
            limit=effective_limit,
        )
    except Exception as e:
        logger.exception(
            "[GET /api/recommendations ERROR] req_id=%s user_id=%s error_type=%s",
            request_id,
            user.id,
            type(e).__name__,
        )
        raise HTTPException(status_code=500, detail="Internal server error")

    if settings.DEBUG:
        log_elapsed(
            t0,
            f"req_id={request_id} user={user.id} limit={effective_limit} count={len(outcome.books)} total",
            logger.debug,
        )

    message = (
        "No reading history found, showing popular books"
        if outcome.used_fallback
        else "Recommendations retrieved successfully"
    )
    return ApiResponse(
        message=message,
        data=RecommendationsData(
            recommendations=[BookResponse.model_validate(b) for b in outcome.books],
            reason=outcome.reason,
        ),
    )
