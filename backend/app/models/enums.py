from __future__ import annotations

from enum import Enum


class MessageType(str, Enum):
    """Kinds of direct messages."""

    TEXT = "text"
    IMAGE = "image"
    FILE = "file"
    AUDIO = "audio"
    VIDEO = "video"

    @property
    def requires_media(self) -> bool:
        return self is not MessageType.TEXT


class RealtimeEvent(str, Enum):
    """Event names pushed to live websocket channels."""

    MESSAGE_CREATED = "message.created"
    MESSAGE_EDITED = "message.edited"
    MESSAGE_REACTION_CHANGED = "message.reaction_changed"
    PRESENCE_TYPING = "presence.typing"
