"""Data models for the chat blueprint."""

from __future__ import annotations

from typing import Any, Optional, TypedDict


class ThreadDocument(TypedDict, total=False):
    """Fields every document in the ``chats`` tree carries."""

    id: str
    createdAt: Any
    updatedAt: Any


class ParticipantInfo(TypedDict, total=False):
    """Cached public profile fields of a thread participant."""

    id: str
    name: str
    displayName: str
    avatar: Optional[str]
    username: str
    role: str
    joinedAt: Any


class LastMessage(TypedDict, total=False):
    """Summary of the newest message, denormalized onto the thread."""

    id: str
    senderId: str
    text: str
    createdAt: Any


class GroupMetadata(TypedDict, total=False):
    name: str
    description: str
    avatar: Optional[str]


class Thread(ThreadDocument, total=False):
    """A chat thread document in Firestore."""

    type: str
    participants: list[str]
    participantsInfo: dict[str, ParticipantInfo]
    lastMessage: Optional[LastMessage]
    isActive: bool
    createdBy: str
    metadata: GroupMetadata


class Message(ThreadDocument, total=False):
    """A message document in a thread's ``messages`` sub-collection."""

    senderId: str
    text: str
    imageUrl: Optional[str]
    messageType: str
    deliveredTo: dict[str, Any]
    readBy: dict[str, Any]
    edited: bool
    editedAt: Any
    deletedFor: dict[str, bool]
    deletedForEveryone: bool
    deletedAt: Any


class Conversation(TypedDict, total=False):
    """One row of a user's chat list."""

    id: str
    conversationId: str
    type: str
    name: str
    displayName: str
    avatar: Optional[str]
    username: str
    participants: list[str]
    lastMessage: str
    lastMessageTime: Any
    unreadCount: int
    isPinned: bool
    isArchived: bool
    joinedAt: Any
