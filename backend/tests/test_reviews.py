"""Tests for review submission, editing and moderation."""
import pytest

from app.models import Review, ReviewStatus, Shelf, UserRole
from app.services import review_service
from app.services.review_service import update_book_rating, validate_review_input

GOOD_TEXT = "Loved every single chapter of it."


@pytest.fixture
def reader(make_user):
    return make_user(name="Reader")


@pytest.fixture
def admin(make_user):
    return make_user(name="Moderator", role=UserRole.ADMIN)


@pytest.mark.parametrize(
    "rating,text,message",
    [
        (None, GOOD_TEXT, "Rating is required and must be between 1 and 5"),
        (0, GOOD_TEXT, "Rating is required and must be between 1 and 5"),
        (6, GOOD_TEXT, "Rating is required and must be between 1 and 5"),
        (4, None, "Review text is required and must be at least 10 characters long"),
        (4, "   short   ", "Review text is required and must be at least 10 characters long"),
        (5, GOOD_TEXT, None),
    ],
)
def test_validate_review_input(rating, text, message):
    assert validate_review_input(rating, text) == message


def test_submit_review_for_finished_book(client, db, reader, make_book, shelve, auth_headers):
    book = make_book()
    shelve(reader, book, Shelf.READ)

    response = client.post(
        f"/api/reviews/books/{book.id}",
        json={"rating": 5, "text": f"  {GOOD_TEXT}  "},
        headers=auth_headers(reader),
    )
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["status"] == "pending"
    assert data["text"] == GOOD_TEXT

    # Pending reviews don't count towards the rating
    db.refresh(book)
    assert book.total_reviews == 0


def test_cannot_review_unfinished_book(client, reader, make_book, shelve, auth_headers):
    book = make_book()
    shelve(reader, book, Shelf.CURRENTLY_READING)

    response = client.post(
        f"/api/reviews/books/{book.id}",
        json={"rating": 4, "text": GOOD_TEXT},
        headers=auth_headers(reader),
    )
    assert response.status_code == 400
    assert response.json()["message"] == "You can only review books you have finished reading"


def test_duplicate_review_conflicts(client, reader, make_book, shelve, make_review, auth_headers):
    book = make_book()
    shelve(reader, book, Shelf.READ)
    make_review(reader, book)

    response = client.post(
        f"/api/reviews/books/{book.id}",
        json={"rating": 4, "text": GOOD_TEXT},
        headers=auth_headers(reader),
    )
    assert response.status_code == 409
    assert response.json()["message"] == "You have already reviewed this book"


def test_bad_review_body_is_rejected_before_lookups(client, reader, auth_headers):
    response = client.post(
        "/api/reviews/books/whatever",
        json={"rating": 9, "text": GOOD_TEXT},
        headers=auth_headers(reader),
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Rating is required and must be between 1 and 5"


def test_list_own_reviews_with_status_filter(client, reader, make_user, make_book, make_review, auth_headers):
    make_review(reader, make_book(title="Pending one"))
    make_review(reader, make_book(title="Approved one"), status=ReviewStatus.APPROVED)
    make_review(make_user(), make_book(title="Someone else's"))
    headers = auth_headers(reader)

    everything = client.get("/api/reviews", headers=headers).json()["data"]
    assert {r["book"]["title"] for r in everything} == {"Pending one", "Approved one"}

    approved = client.get("/api/reviews", params={"status": "approved"}, headers=headers).json()["data"]
    assert [r["book"]["title"] for r in approved] == ["Approved one"]


def test_book_reviews_only_show_approved(client, reader, make_user, make_book, make_review, auth_headers):
    book = make_book()
    make_review(reader, book, status=ReviewStatus.APPROVED)
    make_review(make_user(), book, status=ReviewStatus.PENDING)
    make_review(make_user(), book, status=ReviewStatus.REJECTED)

    response = client.get(f"/api/reviews/books/{book.id}", headers=auth_headers(reader))
    assert response.status_code == 200
    data = response.json()["data"]
    assert len(data) == 1
    assert data[0]["user"]["name"] == "Reader"

    missing = client.get("/api/reviews/books/unknown", headers=auth_headers(reader))
    assert missing.status_code == 404


def test_only_pending_reviews_can_be_edited(client, reader, make_book, make_review, auth_headers):
    pending = make_review(reader, make_book(), rating=2)
    approved = make_review(reader, make_book(), status=ReviewStatus.APPROVED)
    headers = auth_headers(reader)

    edited = client.put(f"/api/reviews/{pending.id}", json={"rating": 3, "text": GOOD_TEXT}, headers=headers)
    assert edited.status_code == 200
    assert edited.json()["data"]["rating"] == 3

    locked = client.put(f"/api/reviews/{approved.id}", json={"rating": 3, "text": GOOD_TEXT}, headers=headers)
    assert locked.status_code == 400
    assert locked.json()["message"] == "Cannot edit a review that has been approved or rejected"


def test_cannot_edit_someone_elses_review(client, reader, make_user, make_book, make_review, auth_headers):
    review = make_review(make_user(), make_book())
    response = client.put(f"/api/reviews/{review.id}", json={"rating": 3, "text": GOOD_TEXT}, headers=auth_headers(reader))
    assert response.status_code == 404


def test_deleting_approved_review_recomputes_rating(client, db, reader, make_user, make_book, make_review, auth_headers):
    book = make_book(average_rating=0.0)
    mine = make_review(reader, book, rating=1, status=ReviewStatus.APPROVED)
    make_review(make_user(), book, rating=4, status=ReviewStatus.APPROVED)
    update_book_rating(db, book.id)
    db.commit()
    assert book.average_rating == 2.5

    response = client.delete(f"/api/reviews/{mine.id}", headers=auth_headers(reader))
    assert response.status_code == 200

    db.refresh(book)
    assert book.average_rating == 4.0
    assert book.total_reviews == 1


def test_update_book_rating_uses_approved_reviews_only(db, make_user, make_book, make_review):
    book = make_book(average_rating=0.0)
    make_review(make_user(), book, rating=5, status=ReviewStatus.APPROVED)
    make_review(make_user(), book, rating=4, status=ReviewStatus.APPROVED)
    make_review(make_user(), book, rating=4, status=ReviewStatus.APPROVED)
    make_review(make_user(), book, rating=1, status=ReviewStatus.PENDING)
    make_review(make_user(), book, rating=1, status=ReviewStatus.REJECTED)

    assert update_book_rating(db, book.id) is True
    db.commit()
    db.refresh(book)
    assert book.average_rating == 4.3
    assert book.total_reviews == 3


def test_update_book_rating_unknown_book(db):
    assert update_book_rating(db, "missing") is False


# ----------------------------
# Moderation
# ----------------------------
def test_moderation_requires_admin(client, reader, auth_headers):
    response = client.get("/api/admin/reviews/pending", headers=auth_headers(reader))
    assert response.status_code == 403


def test_pending_queue_is_paginated(client, admin, make_user, make_book, make_review, auth_headers):
    for _ in range(3):
        make_review(make_user(), make_book())
    make_review(make_user(), make_book(), status=ReviewStatus.APPROVED)

    response = client.get("/api/admin/reviews/pending", params={"limit": 2}, headers=auth_headers(admin))
    assert response.status_code == 200
    data = response.json()["data"]
    assert len(data["reviews"]) == 2
    assert data["reviews"][0]["user"]["email"].endswith("@example.com")
    assert data["pagination"] == {
        "current_page": 1,
        "total_pages": 2,
        "total_items": 3,
        "has_next": True,
        "has_prev": False,
    }


def test_approve_updates_book_rating(client, db, admin, make_user, make_book, make_review, auth_headers):
    book = make_book(average_rating=0.0)
    review = make_review(make_user(), book, rating=5)
    headers = auth_headers(admin)

    response = client.put(f"/api/admin/reviews/{review.id}/approve", headers=headers)
    assert response.status_code == 200
    assert response.json()["message"] == "Review approved successfully"

    db.refresh(book)
    assert book.average_rating == 5.0
    assert book.total_reviews == 1

    again = client.put(f"/api/admin/reviews/{review.id}/approve", headers=headers)
    assert again.status_code == 400
    assert again.json()["message"] == "Review has already been processed"


def test_approve_survives_rating_recompute_failure(
    client, db, admin, make_user, make_book, make_review, auth_headers, monkeypatch
):
    """A failed recompute rolls back only its savepoint; the approval is still committed."""
    book = make_book(average_rating=3.0, total_reviews=2)
    review = make_review(make_user(), book, rating=5)

    # average_rating is NOT NULL, so the recompute's flush fails
    monkeypatch.setattr(review_service, "round", lambda value, ndigits=None: None, raising=False)

    response = client.put(f"/api/admin/reviews/{review.id}/approve", headers=auth_headers(admin))
    assert response.status_code == 200
    assert response.json()["message"] == "Review approved successfully"

    db.expire_all()
    assert db.query(Review).filter(Review.id == review.id).one().status == ReviewStatus.APPROVED
    db.refresh(book)
    assert book.average_rating == 3.0
    assert book.total_reviews == 2


def test_delete_survives_rating_recompute_failure(
    client, db, reader, make_book, make_review, auth_headers, monkeypatch
):
    review = make_review(reader, make_book(), status=ReviewStatus.APPROVED)
    monkeypatch.setattr(review_service, "round", lambda value, ndigits=None: None, raising=False)

    response = client.delete(f"/api/reviews/{review.id}", headers=auth_headers(reader))
    assert response.status_code == 200
    db.expire_all()
    assert db.query(Review).count() == 0


def test_reject_leaves_rating_untouched(client, db, admin, make_user, make_book, make_review, auth_headers):
    book = make_book(average_rating=0.0)
    review = make_review(make_user(), book, rating=1)

    response = client.put(f"/api/admin/reviews/{review.id}/reject", headers=auth_headers(admin))
    assert response.status_code == 200

    db.refresh(review)
    db.refresh(book)
    assert review.status == ReviewStatus.REJECTED
    assert book.total_reviews == 0


def test_admin_delete_and_missing_review(client, db, admin, make_user, make_book, make_review, auth_headers):
    review = make_review(make_user(), make_book(), status=ReviewStatus.APPROVED)
    headers = auth_headers(admin)

    response = client.delete(f"/api/admin/reviews/{review.id}", headers=headers)
    assert response.status_code == 200
    assert db.query(Review).count() == 0

    missing = client.put("/api/admin/reviews/nope/approve", headers=headers)
    assert missing.status_code == 404
    assert missing.json()["message"] == "Review not found"


def test_review_stats(client, admin, make_user, make_book, make_review, auth_headers):
    make_review(make_user(), make_book())
    make_review(make_user(), make_book())
    make_review(make_user(), make_book(), status=ReviewStatus.APPROVED)

    data = client.get("/api/admin/reviews/stats", headers=auth_headers(admin)).json()["data"]
    assert data["total"] == 3
    assert data["pending"] == 2
    assert {row["status"]: row["count"] for row in data["by_status"]} == {
        "pending": 2,
        "approved": 1,
        "rejected": 0,
    }
