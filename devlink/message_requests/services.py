"""Message requests: the consent gate between users who do not follow each other."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, cast

from firebase_admin import firestore

from devlink.chat.ids import participants_from_thread_id
from devlink.core.constants import (
    DEFAULT_REQUEST_TEXT,
    MESSAGE_REQUESTS_COLLECTION,
    REQUEST_ACCEPTED,
    REQUEST_PENDING,
    REQUEST_REJECTED,
)
from devlink.core.subscriptions import Subscription
from devlink.core.timing import Clock, Scheduler, run_later, utc_now
from devlink.errors import (
    AuthorizationError,
    DuplicateResourceError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from devlink.profile.services import get_profile, is_mutual_follow, participant_info

if TYPE_CHECKING:
    from google.cloud.firestore_v1.base_document import DocumentSnapshot
    from google.cloud.firestore_v1.client import Client
    from google.cloud.firestore_v1.document import DocumentReference

    from devlink.chat.services import ChatService

logger = logging.getLogger(__name__)


class MessageRequestService:
    """Creates and resolves message requests.

    A request moves from ``pending`` to ``accepted`` or ``rejected`` and
    never back. Accepting opens the direct thread; the request text is then
    delivered as the first message after ``initial_message_delay`` seconds
    so the new thread has settled.
    """

    def __init__(
        self,
        db: Client,
        chat_service: ChatService,
        clock: Clock = utc_now,
        scheduler: Scheduler = run_later,
        initial_message_delay: float = 1.0,
    ) -> None:
        self.db = db
        self.chat_service = chat_service
        self.clock = clock
        self.scheduler = scheduler
        self.initial_message_delay = initial_message_delay

    def _collection(self) -> Any:
        return self.db.collection(MESSAGE_REQUESTS_COLLECTION)

    def _lookup_info(self, user_id: str) -> dict[str, Any]:
        try:
            return participant_info(get_profile(self.db, user_id), user_id)
        except Exception as e:
            logger.warning(f"Error fetching profile {user_id}: {e}")
            return participant_info(None, user_id)

    def _pending_between(self, sender_id: str, recipient_id: str) -> list[Any]:
        query = (
            self._collection()
            .where(filter=firestore.FieldFilter("senderId", "==", sender_id))
            .where(filter=firestore.FieldFilter("recipientId", "==", recipient_id))
            .where(filter=firestore.FieldFilter("status", "==", REQUEST_PENDING))
            .limit(1)
        )
        return list(query.stream())

    def send_request(
        self, sender_id: str, recipient_id: str, text: str | None = None
    ) -> dict[str, Any]:
        """Create a pending request from ``sender_id`` to ``recipient_id``.

        The duplicate check is a query followed by a write, so two
        simultaneous sends can still both succeed.
        """
        if not sender_id or not recipient_id:
            raise ValidationError("Sender and recipient are required.")
        if sender_id == recipient_id:
            raise ValidationError("You cannot send a message request to yourself.")
        if self._pending_between(sender_id, recipient_id):
            raise DuplicateResourceError("Message request already sent.")

        request_ref = self._collection().document()
        request_data = {
            "senderId": sender_id,
            "recipientId": recipient_id,
            "message": text or DEFAULT_REQUEST_TEXT,
            "status": REQUEST_PENDING,
            "createdAt": self.clock(),
            "senderInfo": self._lookup_info(sender_id),
        }
        request_ref.set(request_data)
        logger.info(f"Message request {request_ref.id}: {sender_id} -> {recipient_id}")
        return {**request_data, "id": request_ref.id}

    def _get_request(self, request_id: str) -> tuple[DocumentReference, dict[str, Any]]:
        request_ref = self._collection().document(request_id)
        snapshot = cast("DocumentSnapshot", request_ref.get())
        if not snapshot.exists:
            raise NotFoundError("Message request not found.")
        return request_ref, snapshot.to_dict() or {}

    def _get_pending_for_recipient(
        self, request_id: str, recipient_id: str
    ) -> tuple[DocumentReference, dict[str, Any]]:
        request_ref, request_data = self._get_request(request_id)
        if request_data.get("recipientId") != recipient_id:
            raise AuthorizationError("Only the recipient can answer this request.")
        if request_data.get("status") != REQUEST_PENDING:
            raise InvalidStateError(
                f"Message request is already {request_data.get('status')}."
            )
        return request_ref, request_data

    def accept_request(self, request_id: str, recipient_id: str) -> dict[str, Any]:
        """Accept a pending request and open the direct thread."""
        request_ref, request_data = self._get_pending_for_recipient(
            request_id, recipient_id
        )
        sender_id = request_data["senderId"]

        thread = self.chat_service.ensure_direct_thread(sender_id, recipient_id)
        thread_id = thread["id"]

        request_ref.update(
            {
                "status": REQUEST_ACCEPTED,
                "acceptedAt": self.clock(),
                "chatId": thread_id,
            }
        )

        try:
            self.chat_service.ensure_participants(thread_id, sender_id, recipient_id)
        except Exception as e:
            logger.warning(f"Error repairing participants of chat {thread_id}: {e}")

        text = request_data.get("message")
        if text and text.strip():
            self.scheduler(
                self.initial_message_delay,
                lambda: self._deliver_initial_message(thread_id, sender_id, text),
            )

        logger.info(f"Message request {request_id} accepted, chat {thread_id}")
        return {"chatId": thread_id, "requestId": request_id}

    def reject_request(self, request_id: str, recipient_id: str) -> None:
        """Reject a pending request. Rejection is final."""
        request_ref, _ = self._get_pending_for_recipient(request_id, recipient_id)
        request_ref.update({"status": REQUEST_REJECTED, "rejectedAt": self.clock()})
        logger.info(f"Message request {request_id} rejected")

    def delete_request(self, request_id: str, user_id: str) -> None:
        """Delete a request; only its sender or recipient may."""
        request_ref, request_data = self._get_request(request_id)
        if user_id not in (request_data.get("senderId"), request_data.get("recipientId")):
            raise AuthorizationError("You cannot delete this message request.")
        request_ref.delete()

    def _deliver_initial_message(
        self, thread_id: str, sender_id: str, text: str
    ) -> None:
        try:
            self.send_initial_message(thread_id, sender_id, text)
        except Exception as e:
            logger.error(f"Error sending initial message to chat {thread_id}: {e}")

    def send_initial_message(
        self, thread_id: str, sender_id: str, text: str
    ) -> dict[str, Any]:
        """Send the accepted request's text as the thread's first message.

        Runs after thread creation has had time to land. A missing
        participant list is rebuilt from the thread id and the sender is
        added if absent, so the send is not refused.
        """
        thread = self.chat_service.get_thread(thread_id)
        if thread is None:
            raise NotFoundError(f"Chat {thread_id} does not exist.")

        participants = thread.get("participants")
        if not isinstance(participants, list) or not participants:
            participants = participants_from_thread_id(thread_id)
        updated = list(participants)
        if sender_id not in updated:
            updated.append(sender_id)
        if updated != thread.get("participants"):
            self.chat_service.thread_ref(thread_id).update({"participants": updated})

        return self.chat_service.send_message(thread_id, sender_id, text)

    def _pending_query(self, field: str, user_id: str) -> Any:
        return (
            self._collection()
            .where(filter=firestore.FieldFilter(field, "==", user_id))
            .where(filter=firestore.FieldFilter("status", "==", REQUEST_PENDING))
            .order_by("createdAt", direction=firestore.Query.DESCENDING)
        )

    def _with_sender_info(self, snapshot: Any) -> dict[str, Any]:
        data = snapshot.to_dict() or {}
        sender_info = data.get("senderInfo") or {}
        if not sender_info.get("name") and data.get("senderId"):
            sender_info = self._lookup_info(data["senderId"])
        return {**data, "id": snapshot.id, "senderInfo": sender_info}

    def get_received_requests(self, user_id: str) -> list[dict[str, Any]]:
        """Pending requests addressed to the user, newest first."""
        return [
            self._with_sender_info(snap)
            for snap in self._pending_query("recipientId", user_id).stream()
        ]

    def get_sent_requests(self, user_id: str) -> list[dict[str, Any]]:
        """Pending requests the user sent, with the recipient's info attached."""
        requests = []
        for snap in self._pending_query("senderId", user_id).stream():
            data = snap.to_dict() or {}
            recipient_info = self._lookup_info(data.get("recipientId", ""))
            requests.append(
                {
                    **data,
                    "id": snap.id,
                    "recipientInfo": recipient_info,
                    "recipientName": recipient_info["name"],
                }
            )
        return requests

    def subscribe_to_requests(
        self,
        user_id: str,
        callback: Callable[[list[dict[str, Any]]], Any],
        error_callback: Callable[[Exception], Any] | None = None,
    ) -> Subscription:
        """Stream the user's received pending requests."""

        def on_snapshot(snapshots: list[Any], changes: Any, read_time: Any) -> None:
            try:
                requests = [self._with_sender_info(snap) for snap in snapshots]
            except Exception as e:
                logger.error(f"Error loading message requests for {user_id}: {e}")
                if error_callback:
                    error_callback(e)
                return
            callback(requests)

        query = self._pending_query("recipientId", user_id)
        return Subscription(query.on_snapshot(on_snapshot).unsubscribe)

    def start_conversation(
        self, sender_id: str, recipient_id: str, text: str | None = None
    ) -> dict[str, Any]:
        """Open a chat when the pair may talk, otherwise send a request.

        Users who already share an active thread, or who follow each other,
        go straight to the direct thread.
        """
        if not sender_id or not recipient_id:
            raise ValidationError("Sender and recipient are required.")
        if sender_id == recipient_id:
            raise ValidationError("You cannot message yourself.")

        existing = self.chat_service.check_existing_thread(sender_id, recipient_id)
        if existing["exists"] or is_mutual_follow(self.db, sender_id, recipient_id):
            thread = self.chat_service.ensure_direct_thread(sender_id, recipient_id)
            if text and text.strip():
                self.chat_service.send_message(thread["id"], sender_id, text)
            return {"type": "chat", "chatId": thread["id"], "thread": thread}

        request = self.send_request(sender_id, recipient_id, text)
        return {"type": "request", "request": request}
