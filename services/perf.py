import logging
from collections import deque
from contextlib import contextmanager
from time import perf_counter
from typing import Any, Deque, Dict, List

logger = logging.getLogger(__name__)

MAX_RECENT_TIMINGS = 50

_recent_timings: Deque[Dict[str, Any]] = deque(maxlen=MAX_RECENT_TIMINGS)


def get_recent_timings(label: str | None = None) -> List[Dict[str, Any]]:
    timings = list(_recent_timings)
    if label:
        timings = [entry for entry in timings if entry["label"] == label]
    return timings


def clear_timings() -> None:
    _recent_timings.clear()


@contextmanager
def time_block(label: str, **context: Any):
    """Time a derivation step; extra keyword context (row counts, token) is kept with the entry."""
    start = perf_counter()
    try:
        yield context
    finally:
        duration_ms = round((perf_counter() - start) * 1000.0, 2)
        _recent_timings.append({"label": label, "duration_ms": duration_ms, **context})
        logger.debug("[perf] %s took %.2fms %s", label, duration_ms, context or "")
