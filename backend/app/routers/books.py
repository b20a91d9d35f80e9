from fastapi import APIRouter, Depends, Query, HTTPException, status
from sqlalchemy.orm import Session, Query as OrmQuery
from sqlalchemy import or_, asc, desc
from typing import Optional, List
import logging
from app.database import get_db
from app.models import Book
from app.schemas.book import BookResponse, BookListData
from app.schemas.common import ApiResponse, Pagination

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/books", tags=["books"])

# Sort with allowlist; anything else falls back to newest first
SORT_MAP = {
    "title": asc(Book.title),
    "author": asc(Book.author),
    "rating": desc(Book.average_rating),
    "date": desc(Book.created_at),
}
DEFAULT_SORT = desc(Book.created_at)


def _paginate(query: OrmQuery, page: int, limit: int) -> BookListData:
    total = query.order_by(None).count()
    books = query.offset((page - 1) * limit).limit(limit).all()
    return BookListData(
        books=[BookResponse.model_validate(b) for b in books],
        pagination=Pagination.build(page, limit, total),
    )


@router.get("", response_model=ApiResponse[BookListData])
def get_books(
    search: Optional[str] = Query(None, description="Search in title or author"),
    genre: Optional[str] = Query(None, description="Filter by exact genre"),
    sort_by: Optional[str] = Query(None, description="Sort field: title, author, rating, date"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    """Get paginated list of books with optional search, genre filter and sort."""
    query = db.query(Book)

    # Case-insensitive search against title and author
    if search and search.strip():
        qq = f"%{search.strip()}%"
        query = query.filter(or_(Book.title.ilike(qq), Book.author.ilike(qq)))

    if genre:
        query = query.filter(Book.genre == genre)

    query = query.order_by(SORT_MAP.get(sort_by or "", DEFAULT_SORT), Book.id.asc())
    data = _paginate(query, page, limit)

    logger.info(
        "Fetched %d books (search=%r genre=%r sort_by=%r page=%d)",
        len(data.books), search, genre, sort_by, page,
    )
    return ApiResponse(message="Books retrieved successfully", data=data)


@router.get("/popular", response_model=ApiResponse[List[BookResponse]])
def get_popular_books(
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    """Most reviewed books, best rated first among equals."""
    books = (
        db.query(Book)
        .order_by(Book.total_reviews.desc(), Book.average_rating.desc(), Book.id.asc())
        .limit(limit)
        .all()
    )
    return ApiResponse(
        message="Popular books retrieved successfully",
        data=[BookResponse.model_validate(b) for b in books],
    )


@router.get("/newest", response_model=ApiResponse[List[BookResponse]])
def get_newest_books(
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    books = db.query(Book).order_by(Book.created_at.desc(), Book.id.asc()).limit(limit).all()
    return ApiResponse(
        message="Newest books retrieved successfully",
        data=[BookResponse.model_validate(b) for b in books],
    )


@router.get("/genre/{genre}", response_model=ApiResponse[BookListData])
def get_books_by_genre(
    genre: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    if not genre.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Genre is required")

    query = db.query(Book).filter(Book.genre == genre).order_by(Book.created_at.desc(), Book.id.asc())
    return ApiResponse(message="Books retrieved successfully", data=_paginate(query, page, limit))


@router.get("/{book_id}", response_model=ApiResponse[BookResponse])
def get_book(book_id: str, db: Session = Depends(get_db)):
    """Get a single book by ID."""
    book = db.query(Book).filter(Book.id == book_id).first()
    if not book:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Book not found",
        )
    return ApiResponse(message="Book retrieved successfully", data=BookResponse.model_validate(book))
