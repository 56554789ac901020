"""Schemas related to direct messages."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from app.models.enums import MessageType
from app.schemas.users import PublicUser


class MessageCreate(BaseModel):
    """Payload for sending a direct message."""

    recipient_id: int = Field(..., description="Identifier of the receiving user")
    content: str = Field(default="", description="Message body, may be empty for media kinds")
    message_type: MessageType = Field(default=MessageType.TEXT)
    media_url: str | None = Field(default=None, max_length=1024)
    media_duration: float | None = Field(default=None, ge=0)
    media_poster_url: str | None = Field(default=None, max_length=1024)
    reply_to_id: int | None = Field(default=None, description="Message this one replies to")


class MessageUpdate(BaseModel):
    """Payload for editing the body of a message."""

    content: str


class ReactionRequest(BaseModel):
    """Payload for toggling a reaction."""

    emoji: str = Field(..., max_length=32, description="Emoji identifier, e.g. a unicode emoji or :thumbsup:")


class ReactionRead(BaseModel):
    """Single reaction attached to a message."""

    user_id: int
    emoji: str
    created_at: datetime


class ReplyPreview(BaseModel):
    """Short representation of the message being replied to."""

    id: int
    content: str
    message_type: MessageType
    sender: PublicUser


class MessageRead(BaseModel):
    """Serialized representation of a direct message."""

    id: int
    sender_id: int
    recipient_id: int
    sender: PublicUser
    recipient: PublicUser
    content: str
    message_type: MessageType
    media_url: str | None = None
    media_duration: float | None = None
    media_poster_url: str | None = None
    thread_id: int
    reply_to_id: int | None = None
    reply_to: ReplyPreview | None = None
    reactions: list[ReactionRead] = []
    is_read: bool = False
    read_at: datetime | None = None
    edited: bool = False
    edited_at: datetime | None = None
    created_at: datetime


class MessageHistoryPage(BaseModel):
    """Window of messages returned in ascending order."""

    messages: list[MessageRead]
    has_more: bool = False
    next_cursor: datetime | None = Field(
        default=None,
        description="Pass as `before` to fetch the next older window",
    )


class ConversationLastMessage(BaseModel):
    """Most recent message exchanged with a counterpart."""

    id: int
    content: str
    message_type: MessageType
    created_at: datetime
    is_read: bool
    sender_id: int


class ConversationRead(BaseModel):
    """Summary of the conversation with one counterpart."""

    user: PublicUser
    last_message: ConversationLastMessage
    unread_count: int = 0


class ConversationPagination(BaseModel):
    current_page: int
    total_pages: int
    total_conversations: int
    has_more: bool
    limit: int


class ConversationPage(BaseModel):
    conversations: list[ConversationRead]
    pagination: ConversationPagination


class ReadReceipt(BaseModel):
    """Outcome of a bulk read transition."""

    updated: int
    read_at: datetime


class UnreadCount(BaseModel):
    count: int


class MediaUploadRead(BaseModel):
    """Location and metadata of an uploaded media payload."""

    url: str
    content_type: str | None = None
    size: int
    duration: float | None = None
