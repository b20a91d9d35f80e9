from datetime import datetime
from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session, joinedload

from app.database import get_db
from app.models import User, Book, UserLibraryEntry, Shelf
from app.schemas.common import ApiResponse
from app.schemas.library import (
    LibraryAddRequest,
    ProgressUpdateRequest,
    LibraryEntryResponse,
    LibraryItemResponse,
)
from app.core.auth import require_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/library", tags=["library"])

SHELF_VALUES = [s.value for s in Shelf]


def _bad_request(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


def _check_progress(progress: int, book: Book) -> None:
    total_pages = book.total_pages or 0
    if progress < 0 or progress > total_pages:
        raise _bad_request(f"Progress must be between 0 and {total_pages}")


@router.post("", response_model=ApiResponse[LibraryEntryResponse])
def add_to_library(
    payload: LibraryAddRequest,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """Put a book on one of the user's shelves, replacing any existing entry for it."""
    if not payload.book_id:
        raise _bad_request("Book ID is required")

    book = db.query(Book).filter(Book.id == payload.book_id).first()
    if not book:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found")

    if payload.shelf not in SHELF_VALUES:
        raise _bad_request("Invalid shelf. Must be: wantToRead, currentlyReading, or read")
    _check_progress(payload.progress, book)

    entry = db.query(UserLibraryEntry).filter(
        UserLibraryEntry.user_id == user.id,
        UserLibraryEntry.book_id == book.id,
    ).first()

    if entry:
        entry.shelf = Shelf(payload.shelf)
        entry.progress = payload.progress
        entry.updated_at = datetime.utcnow()
    else:
        entry = UserLibraryEntry(
            user_id=user.id,
            book_id=book.id,
            shelf=Shelf(payload.shelf),
            progress=payload.progress,
        )
        db.add(entry)

    db.commit()
    db.refresh(entry)
    logger.info("User %s shelved book %s as %s", user.id, book.id, entry.shelf.value)
    return ApiResponse(
        message="Book added to library successfully",
        data=LibraryEntryResponse.model_validate(entry),
    )


@router.get("", response_model=ApiResponse[List[LibraryItemResponse]])
def get_library(
    shelf: Optional[str] = Query(None, description="wantToRead, currentlyReading or read"),
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """Get the user's library, most recently updated first. An unknown shelf is ignored."""
    query = (
        db.query(UserLibraryEntry)
        .join(Book, Book.id == UserLibraryEntry.book_id)
        .options(joinedload(UserLibraryEntry.book))
        .filter(UserLibraryEntry.user_id == user.id)
    )
    if shelf in SHELF_VALUES:
        query = query.filter(UserLibraryEntry.shelf == Shelf(shelf))

    entries = query.order_by(UserLibraryEntry.updated_at.desc(), UserLibraryEntry.id.asc()).all()
    return ApiResponse(
        message="Library retrieved successfully",
        data=[LibraryItemResponse.model_validate(e) for e in entries],
    )


@router.put("/{book_id}/progress", response_model=ApiResponse[LibraryEntryResponse])
def update_progress(
    book_id: str,
    payload: ProgressUpdateRequest,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """
    Record pages read. Reaching the last page moves the book to the "read" shelf.
    """
    if payload.progress is None:
        raise _bad_request("Progress is required")

    entry = db.query(UserLibraryEntry).filter(
        UserLibraryEntry.user_id == user.id,
        UserLibraryEntry.book_id == book_id,
    ).first()
    if not entry:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found in your library")

    book = db.query(Book).filter(Book.id == book_id).first()
    if not book:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found")

    _check_progress(payload.progress, book)

    entry.progress = payload.progress
    if book.total_pages and payload.progress == book.total_pages:
        entry.shelf = Shelf.READ
    entry.updated_at = datetime.utcnow()

    db.commit()
    db.refresh(entry)
    return ApiResponse(
        message="Progress updated successfully",
        data=LibraryEntryResponse.model_validate(entry),
    )


@router.delete("/{book_id}", response_model=ApiResponse[None])
def remove_from_library(
    book_id: str,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    deleted = db.query(UserLibraryEntry).filter(
        UserLibraryEntry.user_id == user.id,
        UserLibraryEntry.book_id == book_id,
    ).delete(synchronize_session=False)

    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found in your library")

    db.commit()
    return ApiResponse(message="Book removed from library successfully")
