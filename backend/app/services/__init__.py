"""Application service helpers."""

from .conversations import ConversationAggregator, ConversationListing, ConversationSummary
from .message_store import MessageStore
from .push import (
    PushDispatcher,
    PushGatewayDispatcher,
    PushNotification,
    PushResult,
    build_message_notification,
    upsert_subscription,
)
from .reactions import ReactionEngine
from .threads import fetch_thread, resolve_thread
from .users import UserDirectory, mutual_contacts, toggle_follow

__all__ = [
    "ConversationAggregator",
    "ConversationListing",
    "ConversationSummary",
    "MessageStore",
    "PushDispatcher",
    "PushGatewayDispatcher",
    "PushNotification",
    "PushResult",
    "build_message_notification",
    "upsert_subscription",
    "ReactionEngine",
    "fetch_thread",
    "resolve_thread",
    "UserDirectory",
    "mutual_contacts",
    "toggle_follow",
]
