"""Construction of the service objects and accessors for request handlers."""

from __future__ import annotations

from typing import TYPE_CHECKING

from flask import current_app

if TYPE_CHECKING:
    from flask import Flask
    from google.cloud.firestore_v1.client import Client

    from .chat.aggregator import ChatListAggregator
    from .chat.services import ChatService
    from .feed.services import FeedService
    from .message_requests.services import MessageRequestService
    from .presence.services import PresenceRegistry

DB_KEY = "devlink.db"
CHAT_KEY = "devlink.chat"
REQUESTS_KEY = "devlink.requests"
AGGREGATOR_KEY = "devlink.aggregator"
PRESENCE_KEY = "devlink.presence"
FEED_KEY = "devlink.feed"


def init_services(app: Flask, db: Client) -> None:
    """Build every service once and attach it to the app."""
    # The blueprints import the accessors below, so the services load late.
    from .chat.aggregator import ChatListAggregator
    from .chat.services import ChatService
    from .feed.services import FeedService
    from .message_requests.services import MessageRequestService
    from .presence.services import PresenceRegistry

    config = app.config
    chat_service = ChatService(
        db,
        read_window=config["READ_RECEIPT_WINDOW"],
        delete_page_size=config["DELETE_PAGE_SIZE"],
    )
    app.extensions[DB_KEY] = db
    app.extensions[CHAT_KEY] = chat_service
    app.extensions[REQUESTS_KEY] = MessageRequestService(
        db,
        chat_service,
        initial_message_delay=config["INITIAL_MESSAGE_DELAY_SECONDS"],
    )
    app.extensions[AGGREGATOR_KEY] = ChatListAggregator(
        db, repair_delay=config["REPAIR_DELAY_SECONDS"]
    )
    app.extensions[PRESENCE_KEY] = PresenceRegistry(db, config=config)
    app.extensions[FEED_KEY] = FeedService(
        db,
        attempts=config["FEED_RETRY_ATTEMPTS"],
        base_delay=config["FEED_RETRY_BASE_DELAY_SECONDS"],
    )


def get_db() -> Client:
    return current_app.extensions[DB_KEY]


def get_chat_service() -> ChatService:
    return current_app.extensions[CHAT_KEY]


def get_request_service() -> MessageRequestService:
    return current_app.extensions[REQUESTS_KEY]


def get_aggregator() -> ChatListAggregator:
    return current_app.extensions[AGGREGATOR_KEY]


def get_presence_registry() -> PresenceRegistry:
    return current_app.extensions[PRESENCE_KEY]


def get_feed_service() -> FeedService:
    return current_app.extensions[FEED_KEY]
