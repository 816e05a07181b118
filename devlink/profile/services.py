"""Profile lookups and follow-edge operations."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, cast

from devlink.core.constants import (
    FOLLOWERS_COLLECTION,
    FOLLOWING_COLLECTION,
    PROFILES_COLLECTION,
    UNKNOWN_USER_NAME,
    UNKNOWN_USERNAME,
)
from devlink.core.timing import utc_now
from devlink.errors import ValidationError

if TYPE_CHECKING:
    from google.cloud.firestore_v1.base_document import DocumentSnapshot
    from google.cloud.firestore_v1.client import Client

logger = logging.getLogger(__name__)


def get_profile(db: Client, user_id: str) -> dict[str, Any] | None:
    """Fetch a profile by user id."""
    profile_doc = cast(
        "DocumentSnapshot", db.collection(PROFILES_COLLECTION).document(user_id).get()
    )
    if not profile_doc.exists:
        return None
    return profile_doc.to_dict() or {}


def display_name(profile: dict[str, Any] | None) -> str:
    """Return the best available display name for a profile."""
    profile = profile or {}
    return (
        profile.get("name")
        or profile.get("displayName")
        or profile.get("username")
        or UNKNOWN_USER_NAME
    )


def participant_info(profile: dict[str, Any] | None, user_id: str) -> dict[str, Any]:
    """Build the denormalized info entry cached on threads and requests."""
    profile = profile or {}
    return {
        "id": user_id,
        "name": display_name(profile),
        "displayName": profile.get("displayName")
        or profile.get("name")
        or profile.get("username")
        or UNKNOWN_USER_NAME,
        "avatar": profile.get("avatar") or profile.get("photoURL"),
        "username": profile.get("username") or UNKNOWN_USERNAME,
    }


def get_participant_infos(
    db: Client, user_ids: list[str]
) -> dict[str, dict[str, Any]]:
    """Fetch info entries for several users in one round-trip.

    Users without a profile still get an entry with placeholder values.
    """
    if not user_ids:
        return {}
    refs = [db.collection(PROFILES_COLLECTION).document(uid) for uid in user_ids]
    profiles: dict[str, dict[str, Any]] = {}
    for doc in db.get_all(refs):
        snapshot = cast("DocumentSnapshot", doc)
        if snapshot.exists:
            profiles[snapshot.id] = snapshot.to_dict() or {}
    return {uid: participant_info(profiles.get(uid), uid) for uid in user_ids}


def is_following(db: Client, follower_id: str, followee_id: str) -> bool:
    """Check whether a follow edge exists."""
    edge = (
        db.collection(PROFILES_COLLECTION)
        .document(follower_id)
        .collection(FOLLOWING_COLLECTION)
        .document(followee_id)
        .get()
    )
    return bool(edge.exists)


def is_mutual_follow(db: Client, user_a: str, user_b: str) -> bool:
    """Check whether two users follow each other.

    Invalid or identical ids are never mutual. Lookup failures count as "not
    mutual" so callers fall back to the message request flow.
    """
    if not isinstance(user_a, str) or not isinstance(user_b, str):
        return False
    if not user_a or not user_b or user_a == user_b:
        return False
    try:
        return is_following(db, user_a, user_b) and is_following(db, user_b, user_a)
    except Exception as e:
        logger.warning(f"Mutual follow check failed for {user_a}/{user_b}: {e}")
        return False


def follow_user(db: Client, follower_id: str, followee_id: str) -> None:
    """Create the follow edge in both directions."""
    if follower_id == followee_id:
        raise ValidationError("You cannot follow yourself.")

    now = utc_now()
    batch = db.batch()

    following_ref = (
        db.collection(PROFILES_COLLECTION)
        .document(follower_id)
        .collection(FOLLOWING_COLLECTION)
        .document(followee_id)
    )
    batch.set(following_ref, {"followedAt": now, "isActive": True})

    follower_ref = (
        db.collection(PROFILES_COLLECTION)
        .document(followee_id)
        .collection(FOLLOWERS_COLLECTION)
        .document(follower_id)
    )
    batch.set(follower_ref, {"followedAt": now, "isActive": True})

    batch.commit()


def unfollow_user(db: Client, follower_id: str, followee_id: str) -> None:
    """Remove the follow edge in both directions."""
    batch = db.batch()
    batch.delete(
        db.collection(PROFILES_COLLECTION)
        .document(follower_id)
        .collection(FOLLOWING_COLLECTION)
        .document(followee_id)
    )
    batch.delete(
        db.collection(PROFILES_COLLECTION)
        .document(followee_id)
        .collection(FOLLOWERS_COLLECTION)
        .document(follower_id)
    )
    batch.commit()
