"""Tests for reading goals and the stats endpoints."""
from datetime import datetime, timedelta

from app.models import ReadingGoal, Shelf, UserRole


def test_set_goal_creates_then_replaces(client, db, make_user, auth_headers):
    user = make_user()
    headers = auth_headers(user)
    year = datetime.utcnow().year

    first = client.post("/api/goals", json={"annual_goal": 12}, headers=headers)
    assert first.status_code == 200
    data = first.json()["data"]
    assert data["annual_goal"] == 12
    assert data["current_year"] == year
    assert data["start_date"].startswith(f"{year}-01-01")

    second = client.post("/api/goals", json={"annual_goal": 30}, headers=headers)
    assert second.status_code == 200
    assert db.query(ReadingGoal).count() == 1
    assert second.json()["data"]["annual_goal"] == 30


def test_goal_must_be_positive(client, make_user, auth_headers):
    headers = auth_headers(make_user())
    for body in ({}, {"annual_goal": 0}, {"annual_goal": -5}):
        response = client.post("/api/goals", json=body, headers=headers)
        assert response.status_code == 400
        assert response.json()["message"] == "Annual reading goal is required and must be greater than 0"


def test_admins_may_use_goals(client, make_user, auth_headers):
    admin = make_user(role=UserRole.ADMIN)
    response = client.post("/api/goals", json={"annual_goal": 3}, headers=auth_headers(admin))
    assert response.status_code == 200


def test_stats_without_activity(client, make_user, auth_headers):
    response = client.get("/api/stats", headers=auth_headers(make_user()))
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["goal"] is None
    assert data["stats"]["books_read"] == 0
    assert data["reading_streak"] == {"current": 0, "longest": 0, "last_read_date": None}


def test_stats_summarize_library(client, make_user, make_book, shelve, auth_headers):
    user = make_user()
    now = datetime.utcnow()
    shelve(user, make_book(), Shelf.READ, progress=300, updated_at=now)
    shelve(user, make_book(), Shelf.READ, progress=200, updated_at=now - timedelta(days=1))
    shelve(user, make_book(), Shelf.CURRENTLY_READING, progress=40, updated_at=now)
    shelve(user, make_book(), Shelf.WANT_TO_READ, updated_at=now)
    headers = auth_headers(user)
    client.post("/api/goals", json={"annual_goal": 20}, headers=headers)

    data = client.get("/api/stats", headers=headers).json()["data"]
    assert data["goal"]["annual_goal"] == 20
    stats = data["stats"]
    assert stats["year"] == now.year
    assert stats["books_currently_reading"] == 1
    assert stats["books_want_to_read"] == 1
    assert stats["total_pages_currently_reading"] == 40
    assert data["reading_streak"]["last_read_date"] == now.date().isoformat()
    assert data["reading_streak"]["current"] >= 1
    assert data["reading_streak"]["longest"] >= 1


def test_monthly_progress_for_requested_year(client, make_user, make_book, shelve, auth_headers):
    user = make_user()
    shelve(user, make_book(), Shelf.READ, progress=120, updated_at=datetime(2024, 3, 10))
    shelve(user, make_book(), Shelf.READ, progress=80, updated_at=datetime(2024, 3, 28))
    shelve(user, make_book(), Shelf.READ, progress=500, updated_at=datetime(2023, 3, 28))

    response = client.get("/api/stats/monthly", params={"year": 2024}, headers=auth_headers(user))
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["year"] == 2024
    assert len(data["months"]) == 12
    assert data["months"][2] == {"month": 3, "books_read": 2, "total_pages": 200}
    assert data["months"][0] == {"month": 1, "books_read": 0, "total_pages": 0}


def test_monthly_progress_rejects_non_numeric_year(client, make_user, auth_headers):
    response = client.get("/api/stats/monthly", params={"year": "soon"}, headers=auth_headers(make_user()))
    assert response.status_code == 400
    assert response.json()["success"] is False


def test_genre_breakdown(client, make_user, make_book, shelve, auth_headers):
    user = make_user()
    now = datetime.utcnow()
    shelve(user, make_book(genre="Fantasy"), Shelf.READ, progress=100, updated_at=now)
    shelve(user, make_book(genre="Fantasy"), Shelf.READ, progress=150, updated_at=now)
    shelve(user, make_book(genre="Sci-Fi"), Shelf.READ, progress=90, updated_at=now)
    shelve(user, make_book(genre="Romance"), Shelf.WANT_TO_READ, updated_at=now)

    data = client.get("/api/stats/genres", headers=auth_headers(user)).json()["data"]
    assert data["year"] == now.year
    assert data["genres"] == [
        {"genre": "Fantasy", "books_read": 2, "total_pages": 250},
        {"genre": "Sci-Fi", "books_read": 1, "total_pages": 90},
    ]


def test_stats_require_authentication(client):
    assert client.get("/api/stats").status_code == 401
