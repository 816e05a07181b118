"""Service layer for chat threads, messages and receipts."""

from __future__ import annotations

import logging
import os
import tempfile
import uuid
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any, Callable, cast
from urllib.parse import unquote

from firebase_admin import firestore, storage
from werkzeug.utils import secure_filename

from devlink.core.constants import (
    CHATS_COLLECTION,
    DELETE_PAGE_SIZE,
    DELETED_MESSAGE_TEXT,
    FIRESTORE_BATCH_LIMIT,
    IMAGE_PREVIEW_TEXT,
    MESSAGE_DELETED,
    MESSAGE_IMAGE,
    MESSAGE_TEXT,
    MESSAGES_COLLECTION,
    READ_RECEIPT_WINDOW,
    THREAD_DIRECT,
    THREAD_GROUP,
)
from devlink.core.subscriptions import Subscription
from devlink.core.timing import Clock, utc_now
from devlink.errors import AuthorizationError, NotFoundError, ValidationError
from devlink.profile.services import get_participant_infos

from .ids import direct_thread_id, group_thread_id
from .models import Message, Thread
from .receipts import status_for_viewer, undelivered_for, unread_for

if TYPE_CHECKING:
    from google.cloud.firestore_v1.base_document import DocumentSnapshot
    from google.cloud.firestore_v1.client import Client
    from google.cloud.firestore_v1.document import DocumentReference
    from google.cloud.firestore_v1.transaction import Transaction

logger = logging.getLogger(__name__)


def _create_thread_if_absent(
    transaction: Transaction, thread_ref: DocumentReference, thread_data: dict[str, Any]
) -> bool:
    """Create the thread unless another client already did; report which."""
    snapshot = cast("DocumentSnapshot", thread_ref.get(transaction=transaction))
    if snapshot.exists:
        return False
    transaction.set(thread_ref, thread_data)
    return True


def _chunks(items: list[Any], size: int) -> Iterable[list[Any]]:
    for i in range(0, len(items), size):
        yield items[i : i + size]


class ChatService:
    """Thread and message store over the ``chats`` collection.

    Constructed once per process and handed to whoever needs it; nothing
    here is a module-level singleton.
    """

    def __init__(
        self,
        db: Client,
        clock: Clock = utc_now,
        read_window: int = READ_RECEIPT_WINDOW,
        delete_page_size: int = DELETE_PAGE_SIZE,
        bucket_factory: Callable[[], Any] | None = None,
    ) -> None:
        self.db = db
        self.clock = clock
        self.read_window = read_window
        self.delete_page_size = delete_page_size
        self._bucket_factory = bucket_factory or storage.bucket

    # -- references -----------------------------------------------------

    def thread_ref(self, thread_id: str) -> DocumentReference:
        return self.db.collection(CHATS_COLLECTION).document(thread_id)

    def messages_ref(self, thread_id: str) -> Any:
        return self.thread_ref(thread_id).collection(MESSAGES_COLLECTION)

    # -- reads ----------------------------------------------------------

    def get_thread(self, thread_id: str) -> Thread | None:
        """Fetch a thread by id."""
        snapshot = cast("DocumentSnapshot", self.thread_ref(thread_id).get())
        if not snapshot.exists:
            return None
        return {**(snapshot.to_dict() or {}), "id": thread_id}

    def require_thread(self, thread_id: str) -> Thread:
        thread = self.get_thread(thread_id)
        if thread is None:
            raise NotFoundError("Chat not found.")
        return thread

    def require_participant(self, thread_id: str, user_id: str) -> Thread:
        """Fetch a thread and check that ``user_id`` belongs to it."""
        thread = self.require_thread(thread_id)
        participants = thread.get("participants")
        if not isinstance(participants, list) or user_id not in participants:
            raise AuthorizationError("You are not a participant in this chat.")
        return thread

    def check_existing_thread(self, user_a: str, user_b: str) -> dict[str, Any]:
        """Report whether an active direct thread exists for a pair."""
        thread_id = direct_thread_id(user_a, user_b)
        thread = self.get_thread(thread_id)
        if thread is None:
            return {"exists": False, "chatId": None}
        return {
            "exists": thread.get("isActive") is not False,
            "chatId": thread_id,
            "chatData": thread,
        }

    def get_user_threads(self, user_id: str) -> list[dict[str, Any]]:
        """Fetch the threads a user participates in, newest first."""
        query = (
            self.db.collection(CHATS_COLLECTION)
            .where(
                filter=firestore.FieldFilter("participants", "array_contains", user_id)
            )
            .order_by("updatedAt", direction=firestore.Query.DESCENDING)
        )
        return [{**(doc.to_dict() or {}), "id": doc.id} for doc in query.stream()]

    def get_messages(
        self, thread_id: str, viewer_id: str, limit: int = 50
    ) -> list[Message]:
        """Fetch the latest messages of a thread, oldest first, for a participant."""
        thread = self.require_participant(thread_id, viewer_id)
        query = (
            self.messages_ref(thread_id)
            .order_by("createdAt", direction=firestore.Query.DESCENDING)
            .limit(limit)
        )
        snapshots = list(query.stream())
        snapshots.reverse()
        return self.visible_messages(snapshots, viewer_id, thread.get("participants"))

    @staticmethod
    def visible_messages(
        snapshots: Iterable[Any],
        viewer_id: str,
        participants: list[str] | None = None,
    ) -> list[Message]:
        """Project message snapshots for a viewer.

        Messages the viewer deleted for themselves are hidden. When the
        participant list is known, the viewer's own messages carry their
        receipt ``status``.
        """
        messages: list[Message] = []
        for snap in snapshots:
            data = snap.to_dict() or {}
            if (data.get("deletedFor") or {}).get(viewer_id):
                continue
            message = {**data, "id": snap.id}
            if participants:
                status = status_for_viewer(data, viewer_id, participants)
                if status:
                    message["status"] = status
            messages.append(message)
        return messages

    # -- thread creation --------------------------------------------------

    def _direct_thread_data(
        self, thread_id: str, user_a: str, user_b: str
    ) -> Thread:
        participants = sorted([user_a, user_b])
        now = self.clock()
        return {
            "id": thread_id,
            "type": THREAD_DIRECT,
            "participants": participants,
            "participantsInfo": get_participant_infos(self.db, participants),
            "createdAt": now,
            "updatedAt": now,
            "isActive": True,
            "lastMessage": None,
        }

    def _create_direct_thread(
        self, thread_id: str, user_a: str, user_b: str
    ) -> Thread:
        thread_ref = self.thread_ref(thread_id)
        thread_data = self._direct_thread_data(thread_id, user_a, user_b)
        transaction = self.db.transaction()
        created = firestore.transactional(_create_thread_if_absent)(
            transaction, thread_ref, thread_data
        )
        if created:
            logger.info(f"Created direct chat {thread_id}")
            return thread_data
        # Another client won the race; return what it wrote.
        return self.require_thread(thread_id)

    def ensure_direct_thread(self, user_a: str, user_b: str) -> Thread:
        """Return the direct thread for two users, creating it if needed.

        The id is the sorted pair joined with ``_``, so both argument orders
        and concurrent callers land on the same document. An existing thread
        is returned untouched.
        """
        thread_id = direct_thread_id(user_a, user_b)
        existing = self.get_thread(thread_id)
        if existing is not None:
            return existing
        return self._create_direct_thread(thread_id, user_a, user_b)

    def ensure_participants(self, thread_id: str, user_a: str, user_b: str) -> bool:
        """Repair a direct thread's participant list and info cache.

        Creates the thread when it is missing. Info entries without a name
        are refetched from the profiles. This is a plain read-modify-write,
        so two concurrent repairs may both write. Returns True when anything
        was written.
        """
        if not thread_id or not user_a or not user_b:
            return False

        thread = self.get_thread(thread_id)
        if thread is None:
            self._create_direct_thread(thread_id, user_a, user_b)
            return True

        existing = thread.get("participants")
        existing = existing if isinstance(existing, list) else []
        participants = list(dict.fromkeys([*existing, user_a, user_b]))

        participants_info = dict(thread.get("participantsInfo") or {})
        missing_info = [
            uid
            for uid in (user_a, user_b)
            if not (participants_info.get(uid) or {}).get("name")
        ]

        if participants == existing and not missing_info:
            return False

        if missing_info:
            participants_info.update(get_participant_infos(self.db, missing_info))

        self.thread_ref(thread_id).set(
            {
                "participants": participants,
                "participantsInfo": participants_info,
                "isActive": True,
                "updatedAt": self.clock(),
            },
            merge=True,
        )
        logger.info(f"Repaired participants of chat {thread_id}")
        return True

    def create_group_thread(
        self,
        creator_id: str,
        member_ids: list[str],
        name: str,
        description: str = "",
    ) -> Thread:
        """Create a group thread with the creator as admin."""
        if not creator_id:
            raise ValidationError("A group needs a creator.")
        if not name or not name.strip():
            raise ValidationError("Group name is required.")

        participants = [creator_id] + [
            uid for uid in dict.fromkeys(member_ids) if uid and uid != creator_id
        ]
        now = self.clock()
        participants_info = get_participant_infos(self.db, participants)
        for uid, info in participants_info.items():
            info["role"] = "admin" if uid == creator_id else "member"
            info["joinedAt"] = now

        thread_id = group_thread_id()
        thread_data = {
            "id": thread_id,
            "type": THREAD_GROUP,
            "participants": participants,
            "participantsInfo": participants_info,
            "createdAt": now,
            "updatedAt": now,
            "createdBy": creator_id,
            "isActive": True,
            "lastMessage": None,
            "metadata": {
                "name": name.strip(),
                "description": description or "",
                "avatar": None,
            },
        }
        self.thread_ref(thread_id).set(thread_data)
        logger.info(f"Created group chat {thread_id} with {len(participants)} members")
        return thread_data

    # -- messages ---------------------------------------------------------

    def send_message(
        self,
        thread_id: str,
        sender_id: str,
        text: str | None,
        image_ref: str | None = None,
    ) -> Message:
        """Append a message and update the thread's last-message summary."""
        if not thread_id or not sender_id:
            raise ValidationError("Chat ID and sender ID are required.")
        if not (text and text.strip()) and not image_ref:
            raise ValidationError("Message must have text or image.")

        self.require_participant(thread_id, sender_id)

        now = self.clock()
        message_ref = self.messages_ref(thread_id).document()
        message_data = {
            "senderId": sender_id,
            "text": text or "",
            "imageUrl": image_ref,
            "messageType": MESSAGE_IMAGE if image_ref else MESSAGE_TEXT,
            "createdAt": now,
            "deliveredTo": {sender_id: now},
            "readBy": {sender_id: now},
            "edited": False,
        }

        batch = self.db.batch()
        batch.set(message_ref, message_data)
        batch.update(
            self.thread_ref(thread_id),
            {
                "lastMessage": {
                    "id": message_ref.id,
                    "senderId": sender_id,
                    "text": text or IMAGE_PREVIEW_TEXT,
                    "createdAt": now,
                },
                "updatedAt": now,
            },
        )
        batch.commit()
        return {**message_data, "id": message_ref.id}

    def _get_message(
        self, thread_id: str, message_id: str
    ) -> tuple[DocumentReference, dict[str, Any]]:
        message_ref = self.messages_ref(thread_id).document(message_id)
        snapshot = cast("DocumentSnapshot", message_ref.get())
        if not snapshot.exists:
            raise NotFoundError("Message not found.")
        return message_ref, snapshot.to_dict() or {}

    def edit_message(
        self, thread_id: str, message_id: str, editor_id: str, text: str
    ) -> Message:
        """Change the text of one of the editor's own messages."""
        if not text or not text.strip():
            raise ValidationError("Message text is required.")
        thread = self.require_participant(thread_id, editor_id)
        message_ref, message = self._get_message(thread_id, message_id)
        if message.get("senderId") != editor_id:
            raise AuthorizationError("You can only edit your own messages.")
        if message.get("deletedForEveryone"):
            raise ValidationError("Deleted messages cannot be edited.")

        now = self.clock()
        updates = {"text": text, "edited": True, "editedAt": now}
        message_ref.update(updates)

        last_message = thread.get("lastMessage") or {}
        if last_message.get("id") == message_id:
            self.thread_ref(thread_id).update({"lastMessage.text": text})
        return {**message, **updates, "id": message_id}

    def delete_message_for_user(
        self, thread_id: str, message_id: str, user_id: str
    ) -> None:
        """Hide a message from one participant's view only."""
        self.require_participant(thread_id, user_id)
        message_ref, _ = self._get_message(thread_id, message_id)
        message_ref.update({f"deletedFor.{user_id}": True})

    def delete_message_for_everyone(
        self, thread_id: str, message_id: str, user_id: str
    ) -> None:
        """Replace one of the sender's messages with a tombstone for everyone."""
        self.require_participant(thread_id, user_id)
        message_ref, message = self._get_message(thread_id, message_id)
        if message.get("senderId") != user_id:
            raise AuthorizationError("You can only delete your own messages.")

        if message.get("imageUrl"):
            self._delete_image(message["imageUrl"])

        message_ref.update(
            {
                "text": DELETED_MESSAGE_TEXT,
                "messageType": MESSAGE_DELETED,
                "deletedForEveryone": True,
                "deletedAt": self.clock(),
                "imageUrl": None,
            }
        )

    # -- media ------------------------------------------------------------

    def upload_image(self, thread_id: str, sender_id: str, image_file: Any) -> str:
        """Store an image for a thread in Cloud Storage and return its URL."""
        self.require_participant(thread_id, sender_id)
        filename = secure_filename(image_file.filename or "image.jpg")
        bucket = self._bucket_factory()
        blob = bucket.blob(f"chat_images/{thread_id}/{uuid.uuid4().hex}_{filename}")

        with tempfile.NamedTemporaryFile(suffix=os.path.splitext(filename)[1]) as tmp:
            image_file.save(tmp.name)
            blob.upload_from_filename(tmp.name)

        blob.make_public()
        return blob.public_url

    def _delete_image(self, image_url: str) -> None:
        """Remove an uploaded image; failures only get logged."""
        try:
            bucket = self._bucket_factory()
            prefix = f"https://storage.googleapis.com/{bucket.name}/"
            if not image_url.startswith(prefix):
                return
            bucket.blob(unquote(image_url[len(prefix) :])).delete()
        except Exception as e:
            logger.warning(f"Error deleting chat image {image_url}: {e}")

    # -- receipts ---------------------------------------------------------

    def _stamp(self, snapshots: list[Any], field: str) -> int:
        now = self.clock()
        for chunk in _chunks(snapshots, FIRESTORE_BATCH_LIMIT):
            batch = self.db.batch()
            for snap in chunk:
                batch.update(snap.reference, {field: now})
            batch.commit()
        return len(snapshots)

    def mark_delivered(
        self, thread_id: str, user_id: str, snapshots: Iterable[Any] | None = None
    ) -> int:
        """Stamp ``deliveredTo`` for every message the user received.

        ``snapshots`` is the batch a live listener just delivered; without it
        the latest receipt window is read. Returns the number of messages
        stamped.
        """
        if snapshots is None:
            snapshots = self._latest_messages(thread_id)
        pending = undelivered_for(snapshots, user_id)
        if not pending:
            return 0
        return self._stamp(pending, f"deliveredTo.{user_id}")

    def mark_read(self, thread_id: str, user_id: str) -> int:
        """Stamp ``readBy`` on the latest messages the user has not read."""
        pending = unread_for(self._latest_messages(thread_id), user_id)
        if not pending:
            return 0
        return self._stamp(pending, f"readBy.{user_id}")

    def _latest_messages(self, thread_id: str) -> list[Any]:
        query = (
            self.messages_ref(thread_id)
            .order_by("createdAt", direction=firestore.Query.DESCENDING)
            .limit(self.read_window)
        )
        return list(query.stream())

    # -- deletion ---------------------------------------------------------

    def delete_thread_permanently(self, thread_id: str) -> int:
        """Delete every message page by page, then the thread itself.

        Returns the number of messages removed. Irreversible.
        """
        if not thread_id:
            raise ValidationError("Chat ID is required.")

        deleted = 0
        while True:
            page = list(
                self.messages_ref(thread_id)
                .order_by("createdAt")
                .limit(self.delete_page_size)
                .stream()
            )
            if not page:
                break
            batch = self.db.batch()
            for snap in page:
                batch.delete(snap.reference)
            batch.commit()
            deleted += len(page)
            if len(page) < self.delete_page_size:
                break

        self.thread_ref(thread_id).delete()
        logger.info(f"Deleted chat {thread_id} and {deleted} messages")
        return deleted

    # -- live listeners ---------------------------------------------------

    def subscribe_to_messages(
        self,
        thread_id: str,
        viewer_id: str,
        callback: Callable[[list[dict[str, Any]]], Any],
        error_callback: Callable[[Exception], Any] | None = None,
    ) -> Subscription:
        """Stream a thread's messages to ``callback``, oldest first.

        The thread's participants are read once up front so the viewer's own
        messages carry their receipt ``status``. Each snapshot also stamps
        delivery and read receipts for the viewer; those writes are best-effort.
        """
        thread = self.get_thread(thread_id)
        participants = thread.get("participants") if thread else None
        query = self.messages_ref(thread_id).order_by("createdAt")

        def on_snapshot(snapshots: list[Any], changes: Any, read_time: Any) -> None:
            try:
                callback(self.visible_messages(snapshots, viewer_id, participants))
            except Exception as e:
                logger.error(f"Message listener for {thread_id} failed: {e}")
                if error_callback:
                    error_callback(e)
                return
            try:
                self.mark_delivered(thread_id, viewer_id, snapshots)
                self.mark_read(thread_id, viewer_id)
            except Exception as e:
                logger.warning(f"Error stamping receipts in {thread_id}: {e}")

        return Subscription(query.on_snapshot(on_snapshot).unsubscribe)
