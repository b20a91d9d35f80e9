"""Pytest configuration for backend tests."""
import sys
import os
from datetime import datetime
from pathlib import Path
from typing import Optional
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

# Settings are read at import time; never point tests at a real database
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

# Import database components
from app.database import Base, get_db, enable_sqlite_savepoints

# Import the entire models module to ensure all models are registered with Base.metadata
import app.models  # noqa: F401
from app.models import Book, User, UserRole, UserLibraryEntry, Shelf, Review, ReviewStatus
from app.core.security import create_access_token
from app.main import app as fastapi_app


@pytest.fixture(scope="function")
def engine():
    """
    Fresh in-memory SQLite database per test.

    StaticPool keeps the single connection alive so every session (and the
    TestClient's worker threads) sees the same database.
    """
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(test_engine)
    if not Base.metadata.tables:
        raise RuntimeError("No tables registered in Base.metadata. Did you import app.models?")

    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture(scope="function")
def db(engine) -> Session:
    """Database session for each test, matching the production session options."""
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture(scope="function")
def client(db: Session):
    """TestClient whose requests run on the test session."""
    def override_get_db():
        yield db

    fastapi_app.dependency_overrides[get_db] = override_get_db
    yield TestClient(fastapi_app)
    fastapi_app.dependency_overrides.clear()


# ----------------------------
# Factories
# ----------------------------
@pytest.fixture
def make_user(db: Session):
    counter = {"n": 0}

    def _make_user(name: Optional[str] = None, role: UserRole = UserRole.USER) -> User:
        counter["n"] += 1
        user = User(
            name=name or f"Reader {counter['n']}",
            email=f"reader{counter['n']}@example.com",
            role=role,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_book(db: Session):
    counter = {"n": 0}

    def _make_book(
        genre: str = "Fiction",
        average_rating: float = 4.0,
        total_reviews: int = 0,
        total_pages: int = 300,
        title: Optional[str] = None,
        author: str = "Some Author",
        created_at: Optional[datetime] = None,
        book_id: Optional[str] = None,
    ) -> Book:
        counter["n"] += 1
        book = Book(
            title=title or f"Book {counter['n']}",
            author=author,
            genre=genre,
            average_rating=average_rating,
            total_reviews=total_reviews,
            total_pages=total_pages,
        )
        if book_id:
            book.id = book_id
        if created_at:
            book.created_at = created_at
        db.add(book)
        db.commit()
        db.refresh(book)
        return book

    return _make_book


@pytest.fixture
def shelve(db: Session):
    def _shelve(
        user: User,
        book: Book,
        shelf: Shelf = Shelf.READ,
        progress: int = 0,
        updated_at: Optional[datetime] = None,
    ) -> UserLibraryEntry:
        entry = UserLibraryEntry(user_id=user.id, book_id=book.id, shelf=shelf, progress=progress)
        if updated_at:
            entry.updated_at = updated_at
        db.add(entry)
        db.commit()
        db.refresh(entry)
        return entry

    return _shelve


@pytest.fixture
def make_review(db: Session):
    def _make_review(
        user: User,
        book: Book,
        rating: int = 4,
        status: ReviewStatus = ReviewStatus.PENDING,
        text: str = "A thoughtful and lengthy review.",
    ) -> Review:
        review = Review(user_id=user.id, book_id=book.id, rating=rating, text=text, status=status)
        db.add(review)
        db.commit()
        db.refresh(review)
        return review

    return _make_review


@pytest.fixture
def auth_headers():
    def _auth_headers(user: User) -> dict:
        token = create_access_token({"sub": user.id, "role": user.role.value})
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers
