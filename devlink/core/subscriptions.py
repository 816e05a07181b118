"""Cancellation handles for live listeners and timers."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

logger = logging.getLogger(__name__)


class Subscription:
    """A disposer that cancels one or more listeners.

    Calling the subscription (or ``cancel()``) runs every registered
    cancel function once, for example ``watch.unsubscribe`` or
    ``timer.cancel``.
    """

    def __init__(self, *cancellers: Callable[[], Any] | None) -> None:
        self._cancellers: list[Callable[[], Any]] = []
        self._lock = threading.Lock()
        self._cancelled = False
        for canceller in cancellers:
            self.add(canceller)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def add(self, canceller: Callable[[], Any] | None) -> None:
        """Register a cancel function. Runs it at once if already cancelled."""
        if canceller is None:
            return
        with self._lock:
            if not self._cancelled:
                self._cancellers.append(canceller)
                return
        canceller()

    def cancel(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            cancellers, self._cancellers = self._cancellers, []
        for canceller in cancellers:
            try:
                canceller()
            except Exception as e:
                logger.warning(f"Error cancelling listener: {e}")

    __call__ = cancel


class RepeatingTimer:
    """Run a function every ``interval`` seconds on a daemon thread."""

    def __init__(self, interval: float, function: Callable[[], Any]) -> None:
        self.interval = interval
        self.function = function
        self._stopped = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> RepeatingTimer:
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()
        return self

    def _run(self) -> None:
        while not self._stopped.wait(self.interval):
            try:
                self.function()
            except Exception as e:
                logger.error(f"Repeating task failed: {e}")

    def cancel(self) -> None:
        self._stopped.set()

    @property
    def running(self) -> bool:
        return self._thread is not None and not self._stopped.is_set()
