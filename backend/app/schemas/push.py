"""Schemas for push subscription management."""

from pydantic import BaseModel, ConfigDict, Field


class PushKeys(BaseModel):
    p256dh: str = Field(..., min_length=1, max_length=255)
    auth: str = Field(..., min_length=1, max_length=255)


class PushSubscriptionCreate(BaseModel):
    """Browser PushSubscription serialized by the client."""

    endpoint: str = Field(..., min_length=1, max_length=768)
    keys: PushKeys


class PushSubscriptionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    endpoint: str


class VapidPublicKey(BaseModel):
    public_key: str | None = None
