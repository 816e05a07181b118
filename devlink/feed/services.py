"""Popular posts feed."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, cast

from firebase_admin import firestore

from devlink.core.constants import (
    AGGREGATED_COLLECTION,
    FOLLOWING_COLLECTION,
    POPULAR_POSTS_DOC,
    POPULAR_POSTS_LIMIT,
    POSTS_COLLECTION,
    PROFILES_COLLECTION,
)

from .retry import is_unavailable, retry_with_backoff

if TYPE_CHECKING:
    from google.cloud.firestore_v1.base_document import DocumentSnapshot
    from google.cloud.firestore_v1.client import Client

logger = logging.getLogger(__name__)


def normalize_post(post: dict[str, Any]) -> dict[str, Any]:
    """Fill in the image, avatar and like fields the clients expect."""
    likes = post.get("likes") or post.get("likeCount") or 0
    return {
        **post,
        "imageUrl": post.get("imageUrl") or post.get("avatarUrl"),
        "userAvatar": post.get("userAvatar") or post.get("avatarUrl"),
        "likes": likes,
        "likeCount": likes,
    }


class FeedService:
    """Reads the pre-aggregated popular posts document.

    When the aggregate is missing or empty the posts collection is queried
    directly. Reads go through ``retry_with_backoff``.
    """

    def __init__(
        self,
        db: Client,
        attempts: int = 3,
        base_delay: float = 1.0,
        sleep: Callable[[float], Any] | None = None,
    ) -> None:
        self.db = db
        self.attempts = attempts
        self.base_delay = base_delay
        self.sleep = sleep

    def get_popular_posts(self, user_id: str | None = None) -> list[dict[str, Any]]:
        """Popular posts, without those by users ``user_id`` already follows."""
        kwargs: dict[str, Any] = {}
        if self.sleep is not None:
            kwargs["sleep"] = self.sleep
        posts = retry_with_backoff(
            self._load_posts, self.attempts, self.base_delay, **kwargs
        )
        if user_id:
            following = self._following_ids(user_id)
            posts = [post for post in posts if post.get("userId") not in following]
        return posts

    def _load_posts(self) -> list[dict[str, Any]]:
        snapshot = cast(
            "DocumentSnapshot",
            self.db.collection(AGGREGATED_COLLECTION).document(POPULAR_POSTS_DOC).get(),
        )
        if snapshot.exists:
            posts = (snapshot.to_dict() or {}).get("posts")
            if isinstance(posts, list) and posts:
                return [normalize_post(post) for post in posts]
        logger.info("Popular posts aggregate missing or empty, querying posts")
        return self._query_posts()

    def _query_posts(self) -> list[dict[str, Any]]:
        posts_ref = self.db.collection(POSTS_COLLECTION)
        snapshots = None
        for field in ("likes", "likeCount"):
            try:
                snapshots = list(
                    posts_ref.order_by(field, direction=firestore.Query.DESCENDING)
                    .limit(POPULAR_POSTS_LIMIT)
                    .stream()
                )
                break
            except Exception as e:
                if is_unavailable(e):
                    raise
                logger.warning(f"Ordering posts by {field} failed: {e}")
        if snapshots is None:
            snapshots = list(posts_ref.limit(POPULAR_POSTS_LIMIT).stream())
        return [
            normalize_post({"id": snap.id, "postId": snap.id, **(snap.to_dict() or {})})
            for snap in snapshots
        ]

    def _following_ids(self, user_id: str) -> set[str]:
        following_ref = (
            self.db.collection(PROFILES_COLLECTION)
            .document(user_id)
            .collection(FOLLOWING_COLLECTION)
        )
        return {snap.id for snap in following_ref.stream()}
