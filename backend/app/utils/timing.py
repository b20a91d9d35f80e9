"""Lightweight timing helpers for request-path debugging."""
import time
from contextlib import contextmanager
from typing import Optional, Callable
import logging

logger = logging.getLogger(__name__)


def now_ms() -> float:
    """Current time in milliseconds from the high-resolution timer."""
    return time.perf_counter() * 1000


@contextmanager
def time_operation(label: str, log_fn: Optional[Callable[[str], None]] = None, min_ms: float = 0.0):
    """
    Time the wrapped block and log the elapsed milliseconds.

    Logs through log_fn when given, else logger.debug. Blocks faster than
    min_ms are not logged. The elapsed time is logged even if the block raises.

        with time_operation("recommendations.similar_by_genre"):
            books = similar_by_genre(store, read_ids, library_ids, limit)
    """
    start = now_ms()
    try:
        yield
    finally:
        elapsed = now_ms() - start
        if elapsed >= min_ms:
            (log_fn or logger.debug)(f"{label}: {elapsed:.2f}ms")


def log_elapsed(start_ms: float, label: str, log_fn: Optional[Callable[[str], None]] = None) -> float:
    """Log time since start_ms and return now_ms() so calls can be chained."""
    elapsed = now_ms() - start_ms
    (log_fn or logger.debug)(f"{label}: {elapsed:.2f}ms")
    return now_ms()
