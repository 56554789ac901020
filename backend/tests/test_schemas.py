"""Unit tests validating Pydantic schema constraints."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from app.models import MessageType
from app.schemas import MessageCreate, PushSubscriptionCreate, ReactionRequest, UserCreate


def test_user_create_strips_whitespace():
    user = UserCreate(username="  planner  ", password="longenough", full_name="  Plan  ")
    assert user.username == "planner"
    assert user.full_name == "Plan"


def test_user_create_enforces_password_length():
    with pytest.raises(ValidationError):
        UserCreate(username="bob", password="short")


def test_message_create_defaults_to_text():
    message = MessageCreate(recipient_id=2)
    assert message.message_type is MessageType.TEXT
    assert message.content == ""
    assert message.reply_to_id is None


def test_message_create_rejects_unknown_kind():
    with pytest.raises(ValidationError):
        MessageCreate(recipient_id=2, content="hi", message_type="sticker")


def test_message_create_rejects_negative_duration():
    with pytest.raises(ValidationError):
        MessageCreate(recipient_id=2, message_type="audio", media_url="/a.ogg", media_duration=-1)


def test_reaction_request_limits_emoji_length():
    with pytest.raises(ValidationError):
        ReactionRequest(emoji="x" * 33)


def test_push_subscription_requires_keys():
    with pytest.raises(ValidationError):
        PushSubscriptionCreate(endpoint="https://push.example/abc", keys={"p256dh": "k"})
