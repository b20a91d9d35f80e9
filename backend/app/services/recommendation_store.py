"""
Read access the recommendation engine needs from the library and the catalog.

The engine never touches the ORM directly: it asks a RecommendationStore for
plain snapshots and does all grouping, ranking and merging in memory. The
SQLAlchemy implementation below is what the API uses; tests swap in an
in-memory store with the same methods.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Collection, Iterator, List, Optional, Protocol

from sqlalchemy import distinct, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models import Book, Shelf, UserLibraryEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookSnapshot:
    id: str
    title: str
    author: str
    genre: str
    average_rating: Optional[float] = 0.0
    total_reviews: int = 0
    description: Optional[str] = None
    cover_image: Optional[str] = None
    total_pages: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, book: Book) -> "BookSnapshot":
        return cls(
            id=book.id,
            title=book.title,
            author=book.author,
            genre=book.genre,
            average_rating=book.average_rating,
            total_reviews=book.total_reviews or 0,
            description=book.description,
            cover_image=book.cover_image,
            total_pages=book.total_pages,
            created_at=book.created_at,
            updated_at=book.updated_at,
        )


@dataclass(frozen=True)
class LibraryEntrySnapshot:
    user_id: str
    book_id: str
    shelf: Shelf
    progress: int = 0


@dataclass(frozen=True)
class ReadRecord:
    """One "read" library entry joined to its book's genre."""
    user_id: str
    book_id: str
    genre: str


class RecommendationStore(Protocol):
    def get_library_entries(self, user_id: str) -> List[LibraryEntrySnapshot]:
        """Every library entry of the user, on any shelf."""
        ...

    def get_books_by_ids(self, book_ids: Collection[str]) -> List[BookSnapshot]:
        """Books for the given ids, in the order of book_ids. Unknown ids are skipped."""
        ...

    def get_books_in_genres(
        self,
        genres: Collection[str],
        exclude_ids: Collection[str],
        min_rating: float,
        limit: int,
    ) -> List[BookSnapshot]:
        """Books in any of the genres, rated at least min_rating, best rated first."""
        ...

    def get_similar_reader_records(
        self,
        user_genres: Collection[str],
        exclude_user_id: str,
        min_shared_genres: int,
    ) -> List[ReadRecord]:
        """
        Every "read" entry, with book genres, of the other users who have read
        books in at least min_shared_genres of user_genres.

        Users below the threshold are left out entirely; readers that qualify
        come back with all of their read entries, in any genre.
        """
        ...

    def get_popular_books(self, min_reviews: int, limit: int) -> List[BookSnapshot]:
        """Books with at least min_reviews reviews, best rated first."""
        ...


class SqlAlchemyRecommendationStore:
    """RecommendationStore backed by the request's SQLAlchemy session."""

    def __init__(self, db: Session) -> None:
        self._db = db

    @contextmanager
    def _query(self, label: str) -> Iterator[None]:
        # A failed statement poisons the transaction on Postgres; roll back so the
        # remaining (independent) queries of the request can still run.
        try:
            yield
        except SQLAlchemyError:
            logger.warning("Recommendation store query failed: %s", label)
            self._db.rollback()
            raise

    def get_library_entries(self, user_id: str) -> List[LibraryEntrySnapshot]:
        with self._query("library_entries"):
            rows = (
                self._db.query(
                    UserLibraryEntry.user_id,
                    UserLibraryEntry.book_id,
                    UserLibraryEntry.shelf,
                    UserLibraryEntry.progress,
                )
                .filter(UserLibraryEntry.user_id == user_id)
                .all()
            )
        return [
            LibraryEntrySnapshot(user_id=r.user_id, book_id=r.book_id, shelf=r.shelf, progress=r.progress or 0)
            for r in rows
        ]

    def get_books_by_ids(self, book_ids: Collection[str]) -> List[BookSnapshot]:
        ids = list(dict.fromkeys(book_ids))
        if not ids:
            return []
        with self._query("books_by_ids"):
            books = self._db.query(Book).filter(Book.id.in_(ids)).all()
        by_id = {book.id: BookSnapshot.from_model(book) for book in books}
        return [by_id[book_id] for book_id in ids if book_id in by_id]

    def get_books_in_genres(
        self,
        genres: Collection[str],
        exclude_ids: Collection[str],
        min_rating: float,
        limit: int,
    ) -> List[BookSnapshot]:
        genre_list = list(set(genres))
        if not genre_list or limit <= 0:
            return []
        with self._query("books_in_genres"):
            query = self._db.query(Book).filter(
                Book.genre.in_(genre_list),
                Book.average_rating >= min_rating,
            )
            if exclude_ids:
                query = query.filter(~Book.id.in_(list(exclude_ids)))
            books = (
                query.order_by(Book.average_rating.desc(), Book.total_reviews.desc(), Book.id.asc())
                .limit(limit)
                .all()
            )
        return [BookSnapshot.from_model(book) for book in books]

    def get_similar_reader_records(
        self,
        user_genres: Collection[str],
        exclude_user_id: str,
        min_shared_genres: int,
    ) -> List[ReadRecord]:
        genre_list = list(set(user_genres))
        if not genre_list:
            return []
        candidate_ids = (
            select(UserLibraryEntry.user_id)
            .join(Book, Book.id == UserLibraryEntry.book_id)
            .where(
                UserLibraryEntry.user_id != exclude_user_id,
                UserLibraryEntry.shelf == Shelf.READ,
                Book.genre.in_(genre_list),
            )
            .group_by(UserLibraryEntry.user_id)
            .having(func.count(distinct(Book.genre)) >= min_shared_genres)
        )
        with self._query("similar_reader_records"):
            rows = (
                self._db.query(UserLibraryEntry.user_id, UserLibraryEntry.book_id, Book.genre)
                .join(Book, Book.id == UserLibraryEntry.book_id)
                .filter(
                    UserLibraryEntry.user_id.in_(candidate_ids),
                    UserLibraryEntry.shelf == Shelf.READ,
                )
                .all()
            )
        return [ReadRecord(user_id=r.user_id, book_id=r.book_id, genre=r.genre) for r in rows]

    def get_popular_books(self, min_reviews: int, limit: int) -> List[BookSnapshot]:
        if limit <= 0:
            return []
        with self._query("popular_books"):
            books = (
                self._db.query(Book)
                .filter(Book.total_reviews >= min_reviews)
                .order_by(Book.average_rating.desc(), Book.total_reviews.desc(), Book.id.asc())
                .limit(limit)
                .all()
            )
        return [BookSnapshot.from_model(book) for book in books]
