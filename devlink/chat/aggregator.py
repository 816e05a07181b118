"""Live projection of a user's threads into a sorted conversation list."""

from __future__ import annotations

import datetime
import logging
import threading
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any, Callable

from firebase_admin import firestore

from devlink.core.constants import (
    CHATS_COLLECTION,
    THREAD_DIRECT,
    THREAD_GROUP,
)
from devlink.core.subscriptions import Subscription
from devlink.core.timing import Clock, Scheduler, as_datetime, run_later, utc_now
from devlink.profile.services import get_profile, participant_info

from .ids import participants_from_thread_id
from .models import Conversation

if TYPE_CHECKING:
    from google.cloud.firestore_v1.client import Client

logger = logging.getLogger(__name__)

ProfileLookup = Callable[[str], dict[str, Any]]

_EPOCH = datetime.datetime.min.replace(tzinfo=datetime.timezone.utc)
_COMPARED_FIELDS = ("id", "conversationId", "lastMessage", "unreadCount", "isPinned")


def _last_activity(thread: dict[str, Any]) -> Any:
    last_message = thread.get("lastMessage") or {}
    return (
        last_message.get("createdAt")
        or thread.get("updatedAt")
        or thread.get("createdAt")
    )


def conversation_from_thread(
    thread_id: str,
    thread: dict[str, Any],
    user_id: str,
    participants: list[str] | None = None,
    profile_lookup: ProfileLookup | None = None,
) -> Conversation | None:
    """Project one thread into a conversation item for ``user_id``.

    ``participants`` overrides the stored list, which is how the fallback
    scan passes ids parsed from the thread id. Returns None for inactive
    threads and for direct threads without a counterpart.
    """
    if thread.get("isActive") is False:
        return None

    last_message = thread.get("lastMessage") or {}
    common = {
        "conversationId": thread_id,
        "lastMessage": last_message.get("text") or "",
        "lastMessageTime": _last_activity(thread),
        "unreadCount": 0,
        "isPinned": False,
        "isArchived": False,
        "joinedAt": thread.get("createdAt"),
    }

    if thread.get("type") == THREAD_GROUP:
        metadata = thread.get("metadata") or {}
        name = metadata.get("name") or "Group Chat"
        return {
            "id": thread_id,
            "type": THREAD_GROUP,
            "name": name,
            "displayName": name,
            "avatar": metadata.get("avatar"),
            "username": "group",
            "participants": thread.get("participants") or [],
            "participantsInfo": thread.get("participantsInfo") or {},
            **common,
        }

    if participants is None:
        participants = thread.get("participants")
    if not isinstance(participants, list):
        return None
    other_id = next((pid for pid in participants if pid != user_id), None)
    if not other_id:
        return None

    info = (thread.get("participantsInfo") or {}).get(other_id)
    if not info or not info.get("name"):
        info = (
            profile_lookup(other_id)
            if profile_lookup
            else participant_info(None, other_id)
        )

    return {
        **info,
        "id": f"direct_{thread_id}",
        "type": THREAD_DIRECT,
        **common,
    }


def build_conversation_list(
    threads: Iterable[tuple[str, dict[str, Any]]],
    user_id: str,
    profile_lookup: ProfileLookup | None = None,
    parsed_participants: dict[str, list[str]] | None = None,
) -> list[Conversation]:
    """Project threads into a conversation list, most recent first.

    Threads with equal activity times keep their input order.
    """
    parsed_participants = parsed_participants or {}
    conversations: list[Conversation] = []
    for thread_id, thread in threads:
        item = conversation_from_thread(
            thread_id,
            thread,
            user_id,
            participants=parsed_participants.get(thread_id),
            profile_lookup=profile_lookup,
        )
        if item is not None:
            conversations.append(item)

    return sorted(
        conversations,
        key=lambda c: as_datetime(c.get("lastMessageTime")) or _EPOCH,
        reverse=True,
    )


def conversations_equal(a: list[Conversation], b: list[Conversation]) -> bool:
    """Shallow comparison over the fields that change what the list shows."""
    if len(a) != len(b):
        return False
    return all(
        x.get(field) == y.get(field)
        for x, y in zip(a, b)
        for field in _COMPARED_FIELDS
    )


def _has_participants(thread: dict[str, Any]) -> bool:
    participants = thread.get("participants")
    return isinstance(participants, list) and len(participants) > 0


class ChatListAggregator:
    """Keeps a user's conversation list in sync with the ``chats`` collection.

    The membership query is the normal path. When it comes back empty the
    whole collection is scanned and membership of legacy threads without a
    ``participants`` field is derived from their ids; those threads get a
    delayed repair write so the next query finds them.
    """

    def __init__(
        self,
        db: Client,
        clock: Clock = utc_now,
        scheduler: Scheduler = run_later,
        repair_delay: float = 1.0,
    ) -> None:
        self.db = db
        self.clock = clock
        self.scheduler = scheduler
        self.repair_delay = repair_delay
        self._queued_repairs: set[str] = set()
        self._lock = threading.Lock()

    def _membership_query(self, user_id: str) -> Any:
        return self.db.collection(CHATS_COLLECTION).where(
            filter=firestore.FieldFilter("participants", "array_contains", user_id)
        )

    def _lookup_profile(self, user_id: str) -> dict[str, Any]:
        try:
            return participant_info(get_profile(self.db, user_id), user_id)
        except Exception as e:
            logger.warning(f"Error fetching profile {user_id} for chat list: {e}")
            return participant_info(None, user_id)

    def _project(self, user_id: str, snapshots: list[Any]) -> list[dict[str, Any]]:
        if snapshots:
            threads = [(snap.id, snap.to_dict() or {}) for snap in snapshots]
            return build_conversation_list(threads, user_id, self._lookup_profile)
        return self._fallback(user_id)

    def _fallback(self, user_id: str) -> list[dict[str, Any]]:
        """Scan every thread and keep the ones the user belongs to."""
        threads = []
        parsed: dict[str, list[str]] = {}
        for snap in self.db.collection(CHATS_COLLECTION).stream():
            thread = snap.to_dict() or {}
            if _has_participants(thread):
                if user_id in thread["participants"]:
                    threads.append((snap.id, thread))
                continue
            if thread.get("type") == THREAD_GROUP:
                continue
            participants = participants_from_thread_id(snap.id)
            if user_id not in participants:
                continue
            parsed[snap.id] = participants
            threads.append((snap.id, thread))
            self.queue_repair(snap.id, participants)

        if threads:
            logger.info(f"Fallback scan found {len(threads)} chats for {user_id}")
        return build_conversation_list(
            threads, user_id, self._lookup_profile, parsed_participants=parsed
        )

    def load(self, user_id: str) -> list[dict[str, Any]]:
        """Build the conversation list once."""
        return self._project(user_id, list(self._membership_query(user_id).stream()))

    def subscribe(
        self,
        user_id: str,
        callback: Callable[[list[dict[str, Any]]], Any],
        error_callback: Callable[[Exception], Any] | None = None,
    ) -> Subscription:
        """Stream the conversation list, emitting only when it changed."""
        previous: list[list[dict[str, Any]]] = [[]]
        first = [True]

        def on_snapshot(snapshots: list[Any], changes: Any, read_time: Any) -> None:
            try:
                conversations = self._project(user_id, list(snapshots))
            except Exception as e:
                logger.error(f"Error building chat list for {user_id}: {e}")
                if error_callback:
                    error_callback(e)
                return
            if first[0] or not conversations_equal(conversations, previous[0]):
                first[0] = False
                previous[0] = conversations
                callback(conversations)

        watch = self._membership_query(user_id).on_snapshot(on_snapshot)
        return Subscription(watch.unsubscribe)

    # -- repair -----------------------------------------------------------

    def queue_repair(self, thread_id: str, participants: list[str]) -> bool:
        """Schedule a participants write for a legacy thread once.

        Returns False when a repair for the thread is already queued.
        """
        with self._lock:
            if thread_id in self._queued_repairs:
                return False
            self._queued_repairs.add(thread_id)
        self.scheduler(
            self.repair_delay, lambda: self._repair(thread_id, list(participants))
        )
        return True

    def _repair(self, thread_id: str, participants: list[str]) -> None:
        try:
            thread_ref = self.db.collection(CHATS_COLLECTION).document(thread_id)
            snapshot = thread_ref.get()
            if snapshot.exists and not _has_participants(snapshot.to_dict() or {}):
                thread_ref.update(
                    {
                        "participants": participants,
                        "isActive": True,
                        "type": THREAD_DIRECT,
                        "updatedAt": self.clock(),
                    }
                )
                logger.info(f"Restored participants of chat {thread_id}")
        except Exception as e:
            logger.warning(f"Error repairing participants of chat {thread_id}: {e}")
        finally:
            with self._lock:
                self._queued_repairs.discard(thread_id)
