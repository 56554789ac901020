"""Pydantic schemas for API payloads."""

from .auth import LoginRequest, Token, UserCreate, UserRead
from .messages import (
    ConversationLastMessage,
    ConversationPage,
    ConversationPagination,
    ConversationRead,
    MediaUploadRead,
    MessageCreate,
    MessageHistoryPage,
    MessageRead,
    MessageUpdate,
    ReactionRead,
    ReactionRequest,
    ReadReceipt,
    ReplyPreview,
    UnreadCount,
)
from .push import PushSubscriptionCreate, PushSubscriptionRead, VapidPublicKey
from .users import FollowState, PublicUser

__all__ = [
    "LoginRequest",
    "Token",
    "UserCreate",
    "UserRead",
    "PublicUser",
    "FollowState",
    "MessageCreate",
    "MessageUpdate",
    "MessageRead",
    "MessageHistoryPage",
    "ReplyPreview",
    "ReactionRead",
    "ReactionRequest",
    "ReadReceipt",
    "UnreadCount",
    "MediaUploadRead",
    "ConversationRead",
    "ConversationLastMessage",
    "ConversationPagination",
    "ConversationPage",
    "PushSubscriptionCreate",
    "PushSubscriptionRead",
    "VapidPublicKey",
]
