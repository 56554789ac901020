"""Schemas related to user identity and the social graph."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class PublicUser(BaseModel):
    """Display-safe projection of a user."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    full_name: str | None = None
    display_name: str
    avatar_url: str | None = None
    is_online: bool = False
    last_active_at: datetime | None = None


class FollowState(BaseModel):
    """Result of toggling a follow edge."""

    user_id: int
    following: bool
