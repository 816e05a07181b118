"""Retry helper for reads that hit a temporarily unavailable backend."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, TypeVar

from google.api_core import exceptions as api_exceptions

from devlink.errors import BackendUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_unavailable(error: Exception) -> bool:
    """True for errors that mean "try again later"."""
    if isinstance(error, api_exceptions.ServiceUnavailable):
        return True
    return "unavailable" in str(error).lower()


def retry_with_backoff(
    fn: Callable[[], T],
    attempts: int = 3,
    base_delay: float = 1.0,
    sleep: Callable[[float], Any] = time.sleep,
) -> T:
    """Call ``fn``, retrying unavailable errors with doubling delays.

    Other errors propagate on the first failure. When every attempt was
    unavailable, ``BackendUnavailableError`` is raised from the last error.
    """
    for attempt in range(attempts):
        try:
            return fn()
        except Exception as e:
            if not is_unavailable(e):
                raise
            if attempt == attempts - 1:
                raise BackendUnavailableError() from e
            delay = base_delay * (2**attempt)
            logger.warning(
                f"Attempt {attempt + 1} failed, retrying in {delay:.1f}s: {e}"
            )
            sleep(delay)
    raise BackendUnavailableError()
