"""Thread id helpers."""

from __future__ import annotations

import uuid

from devlink.core.constants import (
    DIRECT_ID_SEPARATOR,
    GROUP_ID_PREFIX,
    MIN_PARSED_USER_ID_LENGTH,
)
from devlink.errors import ValidationError


def direct_thread_id(user_a: str, user_b: str) -> str:
    """Return the canonical id of the direct thread between two users."""
    if not user_a or not user_b:
        raise ValidationError("Both user ids are required.")
    if user_a == user_b:
        raise ValidationError("A direct thread needs two distinct users.")
    return DIRECT_ID_SEPARATOR.join(sorted([user_a, user_b]))


def group_thread_id() -> str:
    """Return a fresh random id for a group thread."""
    return f"{GROUP_ID_PREFIX}{uuid.uuid4().hex}"


def is_group_thread_id(thread_id: str) -> bool:
    return thread_id.startswith(GROUP_ID_PREFIX)


def participants_from_thread_id(thread_id: str) -> list[str]:
    """Guess the participants of a legacy direct thread from its id.

    Fallback only, for threads whose ``participants`` field went missing.
    It assumes ids are joined with ``_`` and that real user ids are longer
    than ten characters, so short or malformed tokens are dropped. Group
    ids and ids without a separator yield nothing.
    """
    if not thread_id or is_group_thread_id(thread_id):
        return []
    if DIRECT_ID_SEPARATOR not in thread_id:
        return []
    parts = [
        part
        for part in thread_id.split(DIRECT_ID_SEPARATOR)
        if part and len(part) > MIN_PARSED_USER_ID_LENGTH
    ]
    # Preserve order while dropping duplicates.
    return list(dict.fromkeys(parts))
