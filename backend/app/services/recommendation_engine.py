"""
Personalized book recommendations.

Three candidate generators feed one aggregator:

  1. similar_by_genre       - any genre the user has finished a book in (rating >= 3.0)
  2. genre_preference_based - the user's top 3 genres by affinity (rating >= 3.5)
  3. collaborative          - books finished by readers sharing >= 2 genres with the user

Candidates are concatenated in that order, deduplicated (first occurrence
wins), sorted by catalog rating and truncated. Users with nothing on their
"read" shelf get the global popularity list instead.

The ranking logic lives in pure functions over snapshots; everything that
talks to the database goes through a RecommendationStore.
"""
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from typing import Callable, Collection, Iterable, List, Optional, Sequence, Set
import logging

from app.models import Shelf
from app.services.recommendation_store import (
    BookSnapshot,
    ReadRecord,
    RecommendationStore,
)
from app.utils.timing import time_operation

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 12

SIMILAR_BY_GENRE_MIN_RATING = 3.0
GENRE_PREFERENCE_MIN_RATING = 3.5
TOP_GENRE_COUNT = 3

MIN_SHARED_GENRES = 2
MAX_SIMILAR_USERS = 10

POPULAR_MIN_REVIEWS = 5

REASON_NO_HISTORY = "no reading history"
REASON_PERSONALIZED = "based on reading history and preferences"

SIMILAR_BY_GENRE = "similar_by_genre"
GENRE_PREFERENCE = "genre_preference_based"
COLLABORATIVE = "collaborative"
POPULARITY_FALLBACK = "popularity_fallback"


@dataclass(frozen=True)
class GenreAffinity:
    genre: str
    books_read: int
    average_rating: float


@dataclass(frozen=True)
class SimilarUser:
    user_id: str
    shared_genre_count: int
    total_books_read: int


@dataclass
class GeneratorResult:
    """Output of one candidate generator: its books, or the error it hit."""
    name: str
    books: List[BookSnapshot] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class RecommendationOutcome:
    books: List[BookSnapshot]
    reason: str
    used_fallback: bool
    generator_results: List[GeneratorResult] = field(default_factory=list)


def normalize_limit(raw: Optional[str], default: int = DEFAULT_LIMIT, maximum: Optional[int] = None) -> int:
    """
    Parse the ?limit= query value.

    Missing, non-numeric and non-positive values fall back to the default;
    values above maximum are clamped. Only whole numbers are accepted, so "2.5"
    is non-numeric here.
    """
    if raw is None:
        return default
    try:
        limit = int(str(raw).strip())
    except ValueError:
        return default
    if limit < 1:
        return default
    if maximum is not None and limit > maximum:
        return maximum
    return limit


def _rating(book: BookSnapshot) -> float:
    return book.average_rating or 0.0


def _catalog_order(book: BookSnapshot):
    return (-_rating(book), -(book.total_reviews or 0), book.id)


# ---------------------------------------------------------------------------
# Pure ranking functions
# ---------------------------------------------------------------------------

def compute_genre_affinity(read_books: Iterable[BookSnapshot]) -> List[GenreAffinity]:
    """
    Rank the genres of the user's finished books.

    Ordered by books read desc, then by the mean catalog rating of those
    books desc. The rating is the catalog-wide average_rating, not the
    user's own rating of each book.
    """
    counts: Counter = Counter()
    rating_totals: defaultdict = defaultdict(float)
    for book in read_books:
        counts[book.genre] += 1
        rating_totals[book.genre] += _rating(book)

    affinity = [
        GenreAffinity(genre=genre, books_read=count, average_rating=rating_totals[genre] / count)
        for genre, count in counts.items()
    ]
    affinity.sort(key=lambda a: (-a.books_read, -a.average_rating, a.genre))
    return affinity


def rank_catalog_candidates(
    books: Iterable[BookSnapshot],
    genres: Collection[str],
    exclude_ids: Collection[str],
    min_rating: float,
    limit: int,
) -> List[BookSnapshot]:
    """Filter to the genres and rating floor, drop excluded ids, best rated first."""
    genre_set = set(genres)
    excluded = set(exclude_ids)
    eligible = [
        book for book in books
        if book.genre in genre_set and book.id not in excluded and _rating(book) >= min_rating
    ]
    eligible.sort(key=_catalog_order)
    return eligible[:max(limit, 0)]


def find_similar_users(
    user_id: str,
    user_genres: Set[str],
    read_records: Iterable[ReadRecord],
) -> List[SimilarUser]:
    """
    Readers whose finished-genre set overlaps user_genres in at least
    MIN_SHARED_GENRES genres. Most overlap first, then most books read;
    at most MAX_SIMILAR_USERS.
    """
    if not user_genres:
        return []

    genres_by_user: defaultdict = defaultdict(set)
    books_by_user: Counter = Counter()
    for record in read_records:
        if record.user_id == user_id:
            continue
        genres_by_user[record.user_id].add(record.genre)
        books_by_user[record.user_id] += 1

    similar = []
    for other_id, genres in genres_by_user.items():
        shared = len(genres & user_genres)
        if shared >= MIN_SHARED_GENRES:
            similar.append(SimilarUser(other_id, shared, books_by_user[other_id]))

    similar.sort(key=lambda u: (-u.shared_genre_count, -u.total_books_read, u.user_id))
    return similar[:MAX_SIMILAR_USERS]


def collaborative_book_ids(
    similar_users: Sequence[SimilarUser],
    read_records: Iterable[ReadRecord],
    exclude_ids: Collection[str],
    limit: int,
) -> List[str]:
    """Books the similar users finished, most widely read first."""
    similar_ids = {u.user_id for u in similar_users}
    excluded = set(exclude_ids)
    read_counts = Counter(
        record.book_id
        for record in read_records
        if record.user_id in similar_ids and record.book_id not in excluded
    )
    ranked = sorted(read_counts.items(), key=lambda item: (-item[1], item[0]))
    return [book_id for book_id, _ in ranked[:max(limit, 0)]]


def merge_candidates(
    candidate_lists: Iterable[Sequence[BookSnapshot]],
    exclude_ids: Collection[str],
    limit: int,
) -> List[BookSnapshot]:
    """
    Concatenate, keep the first occurrence of every book id, sort by rating.

    The sort is stable, so equally rated books keep their concatenation order.
    """
    excluded = set(exclude_ids)
    seen: Set[str] = set()
    merged: List[BookSnapshot] = []
    for candidates in candidate_lists:
        for book in candidates:
            if book.id in seen or book.id in excluded:
                continue
            seen.add(book.id)
            merged.append(book)

    merged.sort(key=lambda b: -_rating(b))
    return merged[:max(limit, 0)]


def rank_popular(books: Iterable[BookSnapshot], limit: int, min_reviews: int = POPULAR_MIN_REVIEWS) -> List[BookSnapshot]:
    popular = [book for book in books if (book.total_reviews or 0) >= min_reviews]
    popular.sort(key=_catalog_order)
    return popular[:max(limit, 0)]


# ---------------------------------------------------------------------------
# Generators (store access + pure ranking)
# ---------------------------------------------------------------------------

def similar_by_genre(
    store: RecommendationStore,
    read_genres: Collection[str],
    library_ids: Collection[str],
    limit: int,
) -> List[BookSnapshot]:
    if not read_genres:
        return []
    books = store.get_books_in_genres(read_genres, library_ids, SIMILAR_BY_GENRE_MIN_RATING, limit)
    return rank_catalog_candidates(books, read_genres, library_ids, SIMILAR_BY_GENRE_MIN_RATING, limit)
    return rank_catalog_candidates(books, genres, library_ids, SIMILAR_BY_GENRE_MIN_RATING, limit)


def genre_preference_based(
    store: RecommendationStore,
    affinity: Sequence[GenreAffinity],
    library_ids: Collection[str],
    limit: int,
) -> List[BookSnapshot]:
    if not affinity:
        return []
    favorite_genres = [a.genre for a in affinity[:TOP_GENRE_COUNT]]
    books = store.get_books_in_genres(favorite_genres, library_ids, GENRE_PREFERENCE_MIN_RATING, limit)
    return rank_catalog_candidates(books, favorite_genres, library_ids, GENRE_PREFERENCE_MIN_RATING, limit)


def collaborative(
    store: RecommendationStore,
    user_id: str,
    affinity: Sequence[GenreAffinity],
    library_ids: Collection[str],
    limit: int,
) -> List[BookSnapshot]:
    if not affinity:
        return []
    user_genres = {a.genre for a in affinity}
    records = store.get_similar_reader_records(user_genres, user_id, MIN_SHARED_GENRES)
    similar_users = find_similar_users(user_id, user_genres, records)
    if not similar_users:
        return []
    logger.debug("User %s has %d similar readers", user_id, len(similar_users))
    book_ids = collaborative_book_ids(similar_users, records, library_ids, limit)
    return store.get_books_by_ids(book_ids)


def popular_books(store: RecommendationStore, limit: int) -> List[BookSnapshot]:
    return rank_popular(store.get_popular_books(POPULAR_MIN_REVIEWS, limit), limit)


def _run_generator(name: str, generate: Callable[[], List[BookSnapshot]]) -> GeneratorResult:
    """Run one generator; a failure becomes an empty, logged contribution."""
    try:
        with time_operation(f"recommendations.{name}"):
            books = list(generate())
    except Exception as e:
        logger.exception("Recommendation generator %s failed", name)
        return GeneratorResult(name=name, error=f"{type(e).__name__}: {e}")
    return GeneratorResult(name=name, books=books)


# ---------------------------------------------------------------------------
# Aggregator
# ---------------------------------------------------------------------------

def get_recommendations(
    store: RecommendationStore,
    user_id: str,
    limit: int = DEFAULT_LIMIT,
) -> RecommendationOutcome:
    """
    Build the recommendation list for user_id.

    Only the load of the user's own library may raise; every other read
    degrades to an empty contribution. Never writes to the store.
    """
    entries = store.get_library_entries(user_id)
    library_ids = frozenset(entry.book_id for entry in entries)
    read_ids = [entry.book_id for entry in entries if entry.shelf == Shelf.READ]

    if not read_ids:
        logger.info("User %s has no reading history, using popular books", user_id)
        fallback = _run_generator(POPULARITY_FALLBACK, lambda: popular_books(store, limit))
        return RecommendationOutcome(
            books=fallback.books[:limit],
            reason=REASON_NO_HISTORY,
            used_fallback=True,
            generator_results=[fallback],
        )

    try:
        read_books = store.get_books_by_ids(read_ids)
    except Exception:
        logger.exception("Loading read books failed for user %s", user_id)
        read_books = []
    affinity = compute_genre_affinity(read_books)
    read_genres = {book.genre for book in read_books}

    results = [
        _run_generator(SIMILAR_BY_GENRE, lambda: similar_by_genre(store, read_genres, library_ids, limit)),
        _run_generator(GENRE_PREFERENCE, lambda: genre_preference_based(store, affinity, library_ids, limit)),
        _run_generator(COLLABORATIVE, lambda: collaborative(store, user_id, affinity, library_ids, limit)),
    ]

    books = merge_candidates([r.books for r in results], library_ids, limit)
    logger.info(
        "Recommendations for user %s: %s -> %d",
        user_id,
        ", ".join(f"{r.name}={len(r.books)}{'' if r.ok else '(failed)'}" for r in results),
        len(books),
    )
    return RecommendationOutcome(
        books=books,
        reason=REASON_PERSONALIZED,
        used_fallback=False,
        generator_results=results,
    )
