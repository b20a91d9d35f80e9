from pydantic import BaseModel, ConfigDict
from typing import Optional, List
from datetime import date, datetime


class ReadingGoalRequest(BaseModel):
    annual_goal: Optional[int] = None


class ReadingGoalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    annual_goal: int
    current_year: int
    start_date: datetime
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ShelfStats(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    books_read: int = 0
    books_currently_reading: int = 0
    books_want_to_read: int = 0
    total_pages_read: int = 0
    total_pages_currently_reading: int = 0
    year: int


class ReadingStreakResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    current: int = 0
    longest: int = 0
    last_read_date: Optional[date] = None


class ReadingStatsData(BaseModel):
    goal: Optional[ReadingGoalResponse] = None
    stats: ShelfStats
    reading_streak: ReadingStreakResponse


class MonthProgress(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    month: int
    books_read: int = 0
    total_pages: int = 0


class MonthlyProgressData(BaseModel):
    year: int
    months: List[MonthProgress]


class GenreBreakdownRow(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    genre: str
    books_read: int
    total_pages: int


class GenreBreakdownData(BaseModel):
    year: int
    genres: List[GenreBreakdownRow]
