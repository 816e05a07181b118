"""Clock and scheduling seams shared by the services."""

from __future__ import annotations

import datetime
import threading
from typing import Any, Callable

Clock = Callable[[], datetime.datetime]
Scheduler = Callable[[float, Callable[[], Any]], Any]


def utc_now() -> datetime.datetime:
    """Return the current timezone-aware UTC datetime."""
    return datetime.datetime.now(datetime.timezone.utc)


def run_later(delay: float, function: Callable[[], Any]) -> threading.Timer:
    """Run ``function`` once on a daemon timer thread after ``delay`` seconds."""
    timer = threading.Timer(delay, function)
    timer.daemon = True
    timer.start()
    return timer


def as_datetime(value: Any) -> datetime.datetime | None:
    """Coerce a stored timestamp into an aware datetime.

    Firestore returns ``DatetimeWithNanoseconds``; older documents may hold
    ISO strings or epoch milliseconds.
    """
    if value is None:
        return None
    if isinstance(value, datetime.datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=datetime.timezone.utc)
        return value
    if isinstance(value, (int, float)):
        return datetime.datetime.fromtimestamp(value / 1000, datetime.timezone.utc)
    if isinstance(value, str):
        try:
            return as_datetime(datetime.datetime.fromisoformat(value))
        except ValueError:
            return None
    return None
