"""Delivery and read receipt projections.

Receipts are open maps keyed by recipient id (``deliveredTo`` and
``readBy``), so a direct thread holds one entry per message and a group
thread one per member. Everything here is a pure function of those maps.
Since the maps only ever gain keys, the derived status never moves
backwards.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from devlink.core.constants import STATUS_DELIVERED, STATUS_READ, STATUS_SENT

_RANK = {STATUS_SENT: 0, STATUS_DELIVERED: 1, STATUS_READ: 2}


def message_status(message: dict[str, Any], recipient_id: str) -> str:
    """Return ``read``, ``delivered`` or ``sent`` for one recipient."""
    if (message.get("readBy") or {}).get(recipient_id):
        return STATUS_READ
    if (message.get("deliveredTo") or {}).get(recipient_id):
        return STATUS_DELIVERED
    return STATUS_SENT


def group_status(message: dict[str, Any], recipient_ids: Iterable[str]) -> str:
    """Return the weakest status across all recipients."""
    statuses = [message_status(message, rid) for rid in recipient_ids]
    if not statuses:
        return STATUS_SENT
    return min(statuses, key=_RANK.__getitem__)


def status_for_viewer(
    message: dict[str, Any], viewer_id: str, participants: Iterable[str]
) -> str | None:
    """Return the tick state a sender sees on their own message.

    Messages written by someone else carry no status (``None``).
    """
    if message.get("senderId") != viewer_id:
        return None
    recipients = [pid for pid in participants if pid != viewer_id]
    if len(recipients) == 1:
        return message_status(message, recipients[0])
    return group_status(message, recipients)


def needs_delivery_receipt(message: dict[str, Any], user_id: str) -> bool:
    """True when ``user_id`` received the message but has not stamped it."""
    if message.get("senderId") == user_id:
        return False
    return not (message.get("deliveredTo") or {}).get(user_id)


def needs_read_receipt(message: dict[str, Any], user_id: str) -> bool:
    return not (message.get("readBy") or {}).get(user_id)


def undelivered_for(snapshots: Iterable[Any], user_id: str) -> list[Any]:
    """Select the message snapshots a delivery batch must stamp."""
    return [
        snap
        for snap in snapshots
        if needs_delivery_receipt(snap.to_dict() or {}, user_id)
    ]


def unread_for(snapshots: Iterable[Any], user_id: str) -> list[Any]:
    """Select the message snapshots a read batch must stamp."""
    return [
        snap for snap in snapshots if needs_read_receipt(snap.to_dict() or {}, user_id)
    ]
