"""Database models package."""

from .base import Base
from .chat import (
    DirectMessage,
    DirectMessageReaction,
    PushSubscription,
    User,
    UserFollow,
    as_utc,
    utcnow,
)
from .enums import MessageType, RealtimeEvent

__all__ = [
    "Base",
    "User",
    "UserFollow",
    "DirectMessage",
    "DirectMessageReaction",
    "PushSubscription",
    "MessageType",
    "RealtimeEvent",
    "as_utc",
    "utcnow",
]
