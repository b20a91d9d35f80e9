"""
Reading-goal statistics: shelf summary, reading streak, monthly progress and
genre breakdown.

All computations are pure functions over ReadingActivity snapshots of the
user's library; load_activity() is the only database access. A library
entry's updated_at is treated as the day the book was finished once it sits
on the "read" shelf.
"""
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, List, Optional, Union
import logging

from sqlalchemy.orm import Session

from app.models import Book, Shelf, UserLibraryEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReadingActivity:
    shelf: Shelf
    progress: int
    updated_at: datetime
    genre: Optional[str] = None


@dataclass
class ShelfSummary:
    year: int
    books_read: int = 0
    books_currently_reading: int = 0
    books_want_to_read: int = 0
    total_pages_read: int = 0
    total_pages_currently_reading: int = 0


@dataclass
class ReadingStreak:
    current: int = 0
    longest: int = 0
    last_read_date: Optional[date] = None


@dataclass
class MonthlyProgressRow:
    month: int
    books_read: int = 0
    total_pages: int = 0


@dataclass
class GenreBreakdownEntry:
    genre: str
    books_read: int = 0
    total_pages: int = 0


def _as_date(value: Union[date, datetime]) -> date:
    return value.date() if isinstance(value, datetime) else value


def _since_start_of(year: int, activity: ReadingActivity) -> bool:
    return activity.updated_at is not None and activity.updated_at >= datetime(year, 1, 1)


def summarize_shelves(activities: Iterable[ReadingActivity], year: int) -> ShelfSummary:
    """Shelf counts and page totals for entries touched since January 1st of year."""
    summary = ShelfSummary(year=year)
    for activity in activities:
        if not _since_start_of(year, activity):
            continue
        if activity.shelf == Shelf.READ:
            summary.books_read += 1
            summary.total_pages_read += activity.progress or 0
        elif activity.shelf == Shelf.CURRENTLY_READING:
            summary.books_currently_reading += 1
            summary.total_pages_currently_reading += activity.progress or 0
        elif activity.shelf == Shelf.WANT_TO_READ:
            summary.books_want_to_read += 1
    return summary


def compute_reading_streak(finished_on: Iterable[Union[date, datetime]], today: date) -> ReadingStreak:
    """
    Streaks of consecutive calendar days with at least one finished book.

    current is the run ending on the latest finish day, and drops to 0 once
    that day is older than yesterday. Several books on one day count once.
    """
    days = sorted({_as_date(d) for d in finished_on if d is not None}, reverse=True)
    if not days:
        return ReadingStreak()

    latest_run = 1
    in_latest_run = True
    longest = run = 1
    for newer, older in zip(days, days[1:]):
        if (newer - older).days == 1:
            run += 1
        else:
            run = 1
            in_latest_run = False
        if in_latest_run:
            latest_run = run
        longest = max(longest, run)

    current = latest_run if (today - days[0]).days <= 1 else 0
    return ReadingStreak(current=current, longest=longest, last_read_date=days[0])


def monthly_progress(activities: Iterable[ReadingActivity], year: int) -> List[MonthlyProgressRow]:
    """Books finished and pages read per month of year; all 12 months, zero-filled."""
    months = [MonthlyProgressRow(month=m) for m in range(1, 13)]
    for activity in activities:
        if activity.shelf != Shelf.READ or activity.updated_at is None:
            continue
        if activity.updated_at.year != year:
            continue
        row = months[activity.updated_at.month - 1]
        row.books_read += 1
        row.total_pages += activity.progress or 0
    return months


def genre_breakdown(activities: Iterable[ReadingActivity], year: int) -> List[GenreBreakdownEntry]:
    """Books finished per genre since January 1st of year, most read first."""
    by_genre = defaultdict(lambda: [0, 0])
    for activity in activities:
        if activity.shelf != Shelf.READ or activity.genre is None:
            continue
        if not _since_start_of(year, activity):
            continue
        totals = by_genre[activity.genre]
        totals[0] += 1
        totals[1] += activity.progress or 0

    rows = [GenreBreakdownEntry(genre=g, books_read=t[0], total_pages=t[1]) for g, t in by_genre.items()]
    rows.sort(key=lambda r: (-r.books_read, r.genre))
    return rows


def load_activity(db: Session, user_id: str) -> List[ReadingActivity]:
    """Snapshot every library entry of the user with its book's genre."""
    rows = (
        db.query(
            UserLibraryEntry.shelf,
            UserLibraryEntry.progress,
            UserLibraryEntry.updated_at,
            Book.genre,
        )
        .outerjoin(Book, Book.id == UserLibraryEntry.book_id)
        .filter(UserLibraryEntry.user_id == user_id)
        .all()
    )
    return [
        ReadingActivity(shelf=r.shelf, progress=r.progress or 0, updated_at=r.updated_at, genre=r.genre)
        for r in rows
    ]


def reading_streak_for(activities: Iterable[ReadingActivity], today: date) -> ReadingStreak:
    return compute_reading_streak(
        (a.updated_at for a in activities if a.shelf == Shelf.READ),
        today=today,
    )
