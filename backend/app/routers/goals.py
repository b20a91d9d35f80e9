from datetime import datetime
from typing import Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.models import User, ReadingGoal
from app.schemas.common import ApiResponse
from app.schemas.goals import (
    ReadingGoalRequest,
    ReadingGoalResponse,
    ReadingStatsData,
    ShelfStats,
    ReadingStreakResponse,
    MonthlyProgressData,
    MonthProgress,
    GenreBreakdownData,
    GenreBreakdownRow,
)
from app.services import reading_stats
from app.core.auth import require_member

logger = logging.getLogger(__name__)

router = APIRouter(tags=["goals"])


def _utc_today():
    # Library timestamps are stored as naive UTC
    return datetime.utcnow().date()


@router.post("/goals", response_model=ApiResponse[ReadingGoalResponse])
def set_reading_goal(
    payload: ReadingGoalRequest,
    user: User = Depends(require_member),
    db: Session = Depends(get_db),
):
    """Set (or replace) this year's reading goal."""
    if payload.annual_goal is None or payload.annual_goal < 1:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Annual reading goal is required and must be greater than 0",
        )

    current_year = _utc_today().year
    goal = db.query(ReadingGoal).filter(ReadingGoal.user_id == user.id).first()
    if goal:
        goal.annual_goal = payload.annual_goal
        goal.current_year = current_year
        goal.start_date = datetime(current_year, 1, 1)
        goal.updated_at = datetime.utcnow()
    else:
        goal = ReadingGoal(
            user_id=user.id,
            annual_goal=payload.annual_goal,
            current_year=current_year,
            start_date=datetime(current_year, 1, 1),
        )
        db.add(goal)

    db.commit()
    db.refresh(goal)
    logger.info("User %s set reading goal %d for %d", user.id, goal.annual_goal, current_year)
    return ApiResponse(message="Reading goal set successfully", data=ReadingGoalResponse.model_validate(goal))


@router.get("/stats", response_model=ApiResponse[ReadingStatsData])
def get_reading_stats(
    user: User = Depends(require_member),
    db: Session = Depends(get_db),
):
    """Goal, this year's shelf counts and the reading streak."""
    today = _utc_today()
    goal = db.query(ReadingGoal).filter(ReadingGoal.user_id == user.id).first()
    activities = reading_stats.load_activity(db, user.id)

    summary = reading_stats.summarize_shelves(activities, today.year)
    streak = reading_stats.reading_streak_for(activities, today)

    return ApiResponse(
        message="Reading stats retrieved successfully",
        data=ReadingStatsData(
            goal=ReadingGoalResponse.model_validate(goal) if goal else None,
            stats=ShelfStats.model_validate(summary),
            reading_streak=ReadingStreakResponse.model_validate(streak),
        ),
    )


@router.get("/stats/monthly", response_model=ApiResponse[MonthlyProgressData])
def get_monthly_progress(
    year: Optional[int] = Query(None, ge=1970, le=9999, description="Defaults to the current year"),
    user: User = Depends(require_member),
    db: Session = Depends(get_db),
):
    target_year = year or _utc_today().year
    rows = reading_stats.monthly_progress(reading_stats.load_activity(db, user.id), target_year)
    return ApiResponse(
        message="Monthly progress retrieved successfully",
        data=MonthlyProgressData(
            year=target_year,
            months=[MonthProgress.model_validate(r) for r in rows],
        ),
    )


@router.get("/stats/genres", response_model=ApiResponse[GenreBreakdownData])
def get_genre_breakdown(
    user: User = Depends(require_member),
    db: Session = Depends(get_db),
):
    current_year = _utc_today().year
    rows = reading_stats.genre_breakdown(reading_stats.load_activity(db, user.id), current_year)
    return ApiResponse(
        message="Genre breakdown retrieved successfully",
        data=GenreBreakdownData(
            year=current_year,
            genres=[GenreBreakdownRow.model_validate(r) for r in rows],
        ),
    )
