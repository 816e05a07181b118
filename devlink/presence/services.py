"""Presence tracking: heartbeats, app-state hooks and derived status."""

from __future__ import annotations

import datetime
import logging
import threading
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Callable, cast

from devlink.core.constants import (
    APP_STATE_ACTIVE,
    APP_STATE_BACKGROUND,
    APP_STATE_INACTIVE,
    ONLINE_THRESHOLD_SECONDS,
    PRESENCE_OFFLINE,
    PRESENCE_ONLINE,
    PRESENCE_RECENTLY_ACTIVE,
    PROFILES_COLLECTION,
    RECENTLY_ACTIVE_THRESHOLD_SECONDS,
)
from devlink.core.subscriptions import RepeatingTimer, Subscription
from devlink.core.timing import Clock, as_datetime, utc_now
from devlink.errors import NotFoundError, ValidationError

if TYPE_CHECKING:
    from google.cloud.firestore_v1.base_document import DocumentSnapshot
    from google.cloud.firestore_v1.client import Client

logger = logging.getLogger(__name__)

APP_STATES = (APP_STATE_ACTIVE, APP_STATE_BACKGROUND, APP_STATE_INACTIVE)

TimerFactory = Callable[[float, Callable[[], Any]], Any]
StatusCallback = Callable[[str, str, "dict[str, Any] | None"], Any]


def _elapsed_seconds(profile: Mapping[str, Any], now: datetime.datetime) -> float | None:
    last_seen = as_datetime(profile.get("lastSeen"))
    if last_seen is None:
        return None
    return (now - last_seen).total_seconds()


def presence_status(
    profile: Mapping[str, Any] | None, now: datetime.datetime | None = None
) -> str:
    """Derive ``online``, ``recently_active`` or ``offline`` from a profile.

    ``lastSeen`` wins over the ``isOnline`` flag, which can be left behind by
    a client that crashed. The flag is only used when there is no
    ``lastSeen`` at all.
    """
    if not profile:
        return PRESENCE_OFFLINE
    elapsed = _elapsed_seconds(profile, now or utc_now())
    if elapsed is None:
        return PRESENCE_ONLINE if profile.get("isOnline") is True else PRESENCE_OFFLINE
    if elapsed < ONLINE_THRESHOLD_SECONDS:
        return PRESENCE_ONLINE
    if elapsed < RECENTLY_ACTIVE_THRESHOLD_SECONDS:
        return PRESENCE_RECENTLY_ACTIVE
    return PRESENCE_OFFLINE


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit if count == 1 else unit + 's'} ago"


def last_seen_text(
    profile: Mapping[str, Any] | None, now: datetime.datetime | None = None
) -> str:
    """Human-readable "last seen" string; empty when unknown."""
    if not profile:
        return ""
    last_seen = as_datetime(profile.get("lastSeen"))
    if last_seen is None:
        return ""
    elapsed = (now or utc_now()) - last_seen
    minutes = int(elapsed.total_seconds() // 60)
    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return _plural(minutes, "minute")
    hours = minutes // 60
    if hours < 24:
        return _plural(hours, "hour")
    if elapsed.days < 7:
        return _plural(elapsed.days, "day")
    return last_seen.date().isoformat()


def reconcile(
    db: Client,
    user_id: str,
    now: datetime.datetime | None = None,
    stale_seconds: float = 300,
) -> bool:
    """Clear an ``isOnline`` flag that outlived its heartbeat.

    Returns True when the flag was cleared. Errors are logged, not raised.
    """
    if not user_id:
        return False
    try:
        profile_ref = db.collection(PROFILES_COLLECTION).document(user_id)
        snapshot = cast("DocumentSnapshot", profile_ref.get())
        if not snapshot.exists:
            return False
        profile = snapshot.to_dict() or {}
        if profile.get("isOnline") is not True:
            return False
        elapsed = _elapsed_seconds(profile, now or utc_now())
        if elapsed is not None and elapsed <= stale_seconds:
            return False
        profile_ref.set({"isOnline": False}, merge=True)
        logger.info(f"Cleared stale online flag for user {user_id}")
        return True
    except Exception as e:
        logger.error(f"Error reconciling presence for user {user_id}: {e}")
        return False


class AppState:
    """Observable foreground/background state of one client session."""

    def __init__(self, state: str = APP_STATE_ACTIVE) -> None:
        self._state = state
        self._listeners: list[Callable[[str], Any]] = []
        self._lock = threading.Lock()

    @property
    def current(self) -> str:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state == APP_STATE_ACTIVE

    def set(self, state: str) -> None:
        """Move to ``state`` and notify listeners if it changed."""
        if state not in APP_STATES:
            raise ValidationError(f"Unknown app state: {state}")
        with self._lock:
            if state == self._state:
                return
            self._state = state
            listeners = list(self._listeners)
        for listener in listeners:
            listener(state)

    def add_listener(self, listener: Callable[[str], Any]) -> Subscription:
        with self._lock:
            self._listeners.append(listener)

        def remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return Subscription(remove)


class PresenceTracker:
    """Keeps one user's ``lastSeen``/``isOnline`` fresh while their app is open.

    An online write within ``PRESENCE_MIN_WRITE_SECONDS`` of the previous
    write is dropped. Going offline is never dropped but still counts as a
    write, so a quick return to the foreground waits for the next heartbeat.
    All writes are best-effort.
    """

    def __init__(
        self,
        db: Client,
        app_state: AppState | None = None,
        clock: Clock = utc_now,
        config: Mapping[str, Any] | None = None,
        timer_factory: TimerFactory = RepeatingTimer,
    ) -> None:
        config = config or {}
        self.db = db
        self.app_state = app_state or AppState()
        self.clock = clock
        self.heartbeat_interval = config.get("PRESENCE_HEARTBEAT_SECONDS", 60)
        self.min_write_interval = config.get("PRESENCE_MIN_WRITE_SECONDS", 30)
        self.stale_after = config.get("PRESENCE_STALE_SECONDS", 300)
        self.reconcile_interval = config.get("PRESENCE_RECONCILE_SECONDS", 300)
        self.timer_factory = timer_factory

        self.user_id: str | None = None
        self._heartbeat: Any = None
        self._app_state_subscription: Subscription | None = None
        self._last_write: datetime.datetime | None = None
        self._lock = threading.RLock()

    @property
    def heartbeat_running(self) -> bool:
        return self._heartbeat is not None

    def start(self, user_id: str) -> None:
        """Begin tracking ``user_id``; a no-op if already tracking them."""
        with self._lock:
            if self.user_id == user_id:
                return
            if self.user_id is not None:
                self.stop()
            self.user_id = user_id

        reconcile(self.db, user_id, self.clock(), self.stale_after)
        self.set_online(True)
        self._start_heartbeat()
        self._app_state_subscription = self.app_state.add_listener(
            self._on_app_state
        )
        logger.info(f"Presence tracking started for user {user_id}")

    def stop(self) -> None:
        """Stop heartbeats and listeners, then write offline."""
        with self._lock:
            user_id = self.user_id
            if user_id is None:
                return
            self._stop_heartbeat()
            if self._app_state_subscription is not None:
                self._app_state_subscription.cancel()
                self._app_state_subscription = None
            self.set_online(False)
            self.user_id = None
            self._last_write = None
        logger.info(f"Presence tracking stopped for user {user_id}")

    def _start_heartbeat(self) -> None:
        with self._lock:
            if self._heartbeat is None:
                self._heartbeat = self.timer_factory(
                    self.heartbeat_interval, self.heartbeat
                ).start()

    def _stop_heartbeat(self) -> None:
        with self._lock:
            if self._heartbeat is not None:
                self._heartbeat.cancel()
                self._heartbeat = None

    def heartbeat(self) -> bool:
        """Refresh ``lastSeen`` if the app is in the foreground."""
        if self.user_id is None or not self.app_state.is_active:
            return False
        return self._write(True)

    def set_online(self, is_online: bool) -> bool:
        return self._write(is_online)

    def _write(self, is_online: bool) -> bool:
        user_id = self.user_id
        if user_id is None:
            return False

        now = self.clock()
        if (
            is_online
            and self._last_write is not None
            and (now - self._last_write).total_seconds()
            < self.min_write_interval
        ):
            return False

        data: dict[str, Any] = {"isOnline": is_online}
        if is_online:
            data["lastSeen"] = now
        try:
            self.db.collection(PROFILES_COLLECTION).document(user_id).set(
                data, merge=True
            )
        except Exception as e:
            logger.error(f"Error writing presence for user {user_id}: {e}")
            return False
        self._last_write = now
        return True

    def _on_app_state(self, state: str) -> None:
        if state == APP_STATE_ACTIVE:
            self.set_online(True)
            self._start_heartbeat()
        else:
            self.set_online(False)
            self._stop_heartbeat()

    def subscribe(self, user_id: str, callback: StatusCallback) -> Subscription:
        """Watch another user's presence.

        ``callback`` receives ``(status, last_seen_text, profile)``. A missing
        profile or a listener error reports offline. A reconciliation timer
        runs alongside the listener; cancelling the result stops both.
        """
        if not user_id:
            return Subscription()

        reconcile(self.db, user_id, self.clock(), self.stale_after)
        timer = self.timer_factory(
            self.reconcile_interval,
            lambda: reconcile(self.db, user_id, self.clock(), self.stale_after),
        ).start()

        def on_snapshot(snapshots: list[Any], changes: Any, read_time: Any) -> None:
            try:
                snapshot = snapshots[0] if snapshots else None
                if snapshot is None or not snapshot.exists:
                    callback(PRESENCE_OFFLINE, "", None)
                    return
                profile = snapshot.to_dict() or {}
                now = self.clock()
                callback(
                    presence_status(profile, now), last_seen_text(profile, now), profile
                )
            except Exception as e:
                logger.error(f"Error in presence listener for user {user_id}: {e}")
                callback(PRESENCE_OFFLINE, "", None)

        profile_ref = self.db.collection(PROFILES_COLLECTION).document(user_id)
        watch = profile_ref.on_snapshot(on_snapshot)
        return Subscription(watch.unsubscribe, timer.cancel)


class PresenceRegistry:
    """One presence tracker per signed-in user for the HTTP layer."""

    def __init__(
        self,
        db: Client,
        clock: Clock = utc_now,
        config: Mapping[str, Any] | None = None,
        timer_factory: TimerFactory = RepeatingTimer,
    ) -> None:
        self.db = db
        self.clock = clock
        self.config = dict(config or {})
        self.timer_factory = timer_factory
        self._trackers: dict[str, PresenceTracker] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str) -> PresenceTracker | None:
        with self._lock:
            return self._trackers.get(user_id)

    def start(self, user_id: str) -> PresenceTracker:
        with self._lock:
            tracker = self._trackers.get(user_id)
            if tracker is None:
                tracker = PresenceTracker(
                    self.db,
                    AppState(),
                    clock=self.clock,
                    config=self.config,
                    timer_factory=self.timer_factory,
                )
                self._trackers[user_id] = tracker
        tracker.start(user_id)
        return tracker

    def stop(self, user_id: str) -> None:
        with self._lock:
            tracker = self._trackers.pop(user_id, None)
        if tracker is not None:
            tracker.stop()

    def set_app_state(self, user_id: str, state: str) -> None:
        """Push a client's foreground/background transition."""
        tracker = self.get(user_id)
        if tracker is None:
            raise NotFoundError("No presence session for this user.")
        tracker.app_state.set(state)

    def status(self, user_id: str) -> dict[str, Any]:
        """One-shot derived presence of any user."""
        snapshot = cast(
            "DocumentSnapshot",
            self.db.collection(PROFILES_COLLECTION).document(user_id).get(),
        )
        if not snapshot.exists:
            raise NotFoundError("User not found.")
        profile = snapshot.to_dict() or {}
        now = self.clock()
        return {
            "userId": user_id,
            "status": presence_status(profile, now),
            "lastSeenText": last_seen_text(profile, now),
            "lastSeen": profile.get("lastSeen"),
            "isOnline": profile.get("isOnline") is True,
        }

    def shutdown(self) -> None:
        with self._lock:
            trackers, self._trackers = list(self._trackers.values()), {}
        for tracker in trackers:
            tracker.stop()
